# backend/practice_space/core/exceptions.py
"""
Domain-specific exceptions for the practice space scheduler.

These exceptions carry a business-focused message, a stable code and a
details payload that the API layer can render without re-deriving context.
"""

from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when a requested time window fails business validation."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        details = dict(details or {})
        if errors is not None:
            details.setdefault("errors", list(errors))
        super().__init__(message, code=code or "VALIDATION_ERROR", details=details)

    @property
    def errors(self) -> List[str]:
        return list(self.details.get("errors", []))


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ServiceException(DomainException):
    """Infrastructure failure inside a service: database errors, lock timeouts."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


# Specific business exceptions


class BookingConflictException(ConflictException):
    """Raised when a booking overlaps an existing booking, event hold or closure."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot conflicts with an existing booking",
            code="BOOKING_CONFLICT",
            details=details or {},
        )

    @property
    def conflicts(self) -> Dict[str, Any]:
        return dict(self.details.get("conflicts", {}))


class StateException(BusinessRuleException):
    """Raised when a lifecycle transition is not allowed from the current state."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        *,
        current_status: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        if current_status is not None:
            details.setdefault("current_status", current_status)
        super().__init__(message, code=code or "INVALID_STATE", details=details)


class IntegrationError(Exception):
    """
    Raised by downstream collaborators (billing, notifications).

    The event publisher logs and swallows these; a scheduling decision that
    already committed is never rolled back because a subscriber failed.
    """

    def __init__(self, message: str, *, collaborator: Optional[str] = None):
        self.collaborator = collaborator
        super().__init__(message)


class RepositoryException(Exception):
    """
    Data access failure raised by repositories.

    Services translate it: constraint and deadlock messages become
    BookingConflictException, anything else propagates unchanged.
    """

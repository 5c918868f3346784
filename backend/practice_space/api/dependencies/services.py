# backend/practice_space/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected.
"""

from functools import lru_cache
import logging

from fastapi import Depends
from sqlalchemy.orm import Session

from ...events import EventPublisher, get_event_publisher
from ...services.availability_service import AvailabilityService
from ...services.cache_service import CacheService
from ...services.recurring_series_service import RecurringSeriesService
from ...services.reservation_service import ReservationService
from .database import get_db

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_cache_service_singleton() -> CacheService:
    """Get singleton cache service instance."""
    return CacheService()


def get_cache_service_dep() -> CacheService:
    """Get cache service instance for dependency injection."""
    return get_cache_service_singleton()


def get_publisher_dep() -> EventPublisher:
    return get_event_publisher()


def get_availability_service(
    db: Session = Depends(get_db), cache: CacheService = Depends(get_cache_service_dep)
) -> AvailabilityService:
    """Get AvailabilityService instance with proper dependencies."""
    return AvailabilityService(db, cache)


def get_reservation_service(
    db: Session = Depends(get_db),
    availability_service: AvailabilityService = Depends(get_availability_service),
    publisher: EventPublisher = Depends(get_publisher_dep),
) -> ReservationService:
    """
    Get reservation service instance.

    Args:
        db: Database session
        availability_service: Read-side availability queries sharing the session
        publisher: Process-wide booking event publisher

    Returns:
        ReservationService instance
    """
    return ReservationService(
        db,
        availability_service.cache,
        availability_service=availability_service,
        publisher=publisher,
    )


def get_recurring_series_service(
    db: Session = Depends(get_db),
    reservation_service: ReservationService = Depends(get_reservation_service),
) -> RecurringSeriesService:
    """Get RecurringSeriesService instance with proper dependencies."""
    return RecurringSeriesService(
        db, reservation_service.cache, reservation_service=reservation_service
    )

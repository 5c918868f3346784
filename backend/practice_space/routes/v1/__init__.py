# backend/practice_space/routes/v1/__init__.py
"""
API v1 Routes

Versioned API endpoints under /api/v1.
"""

from . import availability, closures, reservations, series

__all__ = [
    "availability",
    "closures",
    "reservations",
    "series",
]

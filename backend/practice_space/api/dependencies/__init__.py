# backend/practice_space/api/dependencies/__init__.py
"""
FastAPI dependencies for the practice space API.
"""

from .database import get_db
from .services import (
    get_availability_service,
    get_cache_service_dep,
    get_recurring_series_service,
    get_reservation_service,
)

__all__ = [
    "get_db",
    "get_availability_service",
    "get_cache_service_dep",
    "get_recurring_series_service",
    "get_reservation_service",
]

# backend/practice_space/repositories/__init__.py
"""
Repository layer for the practice space scheduler.

Key Components:
- BaseRepository: shared lookups and flush-only writes
- ConflictCheckerRepository: per-day conflict source queries
- BookingRepository: lifecycle, series and sweep lookups
- RecurringSeriesRepository: series lookups
- RepositoryFactory: central construction point used by services

Usage:
    from practice_space.repositories import RepositoryFactory

    repository = RepositoryFactory.create_conflict_checker_repository(db)
    rows = repository.get_rehearsals_for_conflict_check(day_start, day_end)
"""

from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .conflict_checker_repository import ConflictCheckerRepository
from .factory import RepositoryFactory
from .recurring_series_repository import RecurringSeriesRepository

__all__ = [
    "BaseRepository",
    "BookingRepository",
    "ConflictCheckerRepository",
    "RecurringSeriesRepository",
    "RepositoryFactory",
]

"""
Dialect-aware helpers for SQLAlchemy sessions.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def resolve_session_bind(session: Session) -> Optional[Connection | Engine]:
    """Return the engine/connection bound to a session, or None if unbound."""
    try:
        return session.get_bind()
    except Exception:
        return None


def get_dialect_name(session: Session, default: str = "sqlite") -> str:
    """
    Return the SQLAlchemy dialect name for the session.

    Falls back to ``default`` when the bound engine cannot be resolved.
    """
    bind = resolve_session_bind(session)
    dialect = getattr(bind, "dialect", None)
    return getattr(dialect, "name", None) or default


def is_postgres(session: Session) -> bool:
    return get_dialect_name(session) in {"postgresql", "postgres"}


def advisory_lock_id(key: str) -> int:
    """Map a lock key onto PostgreSQL's signed 64-bit advisory lock space."""
    digest = hashlib.sha256(key.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


def acquire_advisory_xact_lock(session: Session, key: str) -> bool:
    """
    Take a transaction-scoped advisory lock on PostgreSQL.

    The lock is released automatically at commit or rollback. Other dialects
    return False and rely on the process/Redis day lock alone.
    """
    if not is_postgres(session):
        return False
    session.execute(text("SELECT pg_advisory_xact_lock(:lock_id)"), {"lock_id": advisory_lock_id(key)})
    logger.debug("Acquired advisory lock for %s", key)
    return True

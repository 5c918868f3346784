# backend/practice_space/init_db.py
"""Create the scheduling tables on the configured database."""

import logging
from typing import Optional

from sqlalchemy.engine import Engine

from .database import Base, engine as default_engine
from .models import Booking, Closure, RecurringSeries  # noqa: F401  registers tables

logger = logging.getLogger(__name__)


def create_tables(bind: Optional[Engine] = None) -> None:
    target = bind or default_engine
    Base.metadata.create_all(bind=target)
    logger.info(f"Created tables: {', '.join(sorted(Base.metadata.tables))}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    create_tables()

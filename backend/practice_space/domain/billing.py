"""Credit-block arithmetic shared by lifecycle events and the credit forecast."""

from __future__ import annotations

from datetime import datetime
import math
from typing import Optional

from ..core.config import settings


def billable_units(start: datetime, end: datetime, minutes_per_block: Optional[int] = None) -> int:
    """
    Number of credit blocks a window consumes.

    Partial blocks round up: 61 minutes with 30-minute blocks costs 3.
    """
    block = minutes_per_block or settings.credit_minutes_per_block
    minutes = (end - start).total_seconds() / 60
    if minutes <= 0:
        return 0
    return int(math.ceil(minutes / block))


"""
Billing period arithmetic.

All timestamps are stored as naive UTC datetimes and rendered with a
trailing "Z".
"""

import calendar
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

BILLING_PERIOD = timedelta(days=30)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO-8601 string (with Z or offset) or epoch seconds. None if unusable."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            logger.warning("Epoch timestamp out of range", extra={"value": value})
            return None
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            return to_naive_utc(datetime.fromisoformat(text))
        except ValueError:
            logger.warning("Unparseable timestamp", extra={"value": value})
    return None


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return to_naive_utc(value).isoformat(timespec="seconds") + "Z"


def compute_period(created_at=None, received_at: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """
    Fixed 30-day period for a confirmed charge. Starts at the provider's
    created_at, or at receipt time when that is missing or unparseable.
    """
    start = parse_timestamp(created_at) or received_at or utcnow()
    start = to_naive_utc(start)
    return start, start + BILLING_PERIOD


def add_one_month(value: datetime) -> datetime:
    """Same day next calendar month, clamped to the month's last day."""
    year = value.year + (value.month // 12)
    month = value.month % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)

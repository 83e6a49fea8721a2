"""Common utility functions used across backend modules."""

from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
import logging
from typing import Any, Iterator, Tuple
import uuid


logger = logging.getLogger(__name__)


def round_half_up(value: Any) -> int:
    """Round to the nearest whole rupee with halves rounded away from zero.

    Raises:
        ValueError: If ``value`` is not numeric.
    """
    try:
        return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except (InvalidOperation, TypeError, ValueError):
        logger.exception("Invalid amount for rounding value=%s", value)
        raise ValueError("Invalid amount. Please provide a numeric value.")


def parse_month(value: str) -> Tuple[int, int]:
    """Parse ``YYYY-MM`` into ``(year, month)``.

    Raises:
        ValueError: If the value is not a valid month.
    """
    try:
        year_text, month_text = str(value or "").strip().split("-", 1)
        year, month = int(year_text), int(month_text)
    except (TypeError, ValueError):
        raise ValueError("Month must use the YYYY-MM format.")
    if not 1 <= month <= 12 or year < 1:
        raise ValueError("Month must use the YYYY-MM format.")
    return year, month


def iter_month_days(year: int, month: int) -> Iterator[Tuple[date, datetime, datetime]]:
    """Yield ``(day, window_start, window_end)`` UTC day windows for a month."""
    current = date(year, month, 1)
    while current.month == month:
        start = datetime(current.year, current.month, current.day, tzinfo=timezone.utc)
        yield current, start, start + timedelta(days=1)
        current = current + timedelta(days=1)


def new_document_id(prefix: str = "") -> str:
    """Return a random hex id, optionally prefixed as ``<prefix>-<hex>``."""
    token = uuid.uuid4().hex
    return "{0}-{1}".format(prefix, token) if prefix else token

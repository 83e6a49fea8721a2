"""Per-device index of booked time ranges answering overlap queries."""

from __future__ import annotations

from bisect import bisect_left
from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Dict, Iterable, List, Optional

from models.base import ensure_utc
from models.bookings import BookingModel


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookedInterval:
    """Half-open ``[start, end)`` range held by one booking."""

    booking_id: str
    device_id: str
    category: str
    start: datetime
    end: datetime


class _DeviceTimeline:
    """Intervals of one device sorted by start with a running max of end times."""

    def __init__(self, intervals: List[BookedInterval]) -> None:
        self.intervals = sorted(intervals, key=lambda item: (item.start, item.end))
        self.starts = [item.start for item in self.intervals]
        self.max_end: List[datetime] = []
        for item in self.intervals:
            previous = self.max_end[-1] if self.max_end else item.end
            self.max_end.append(max(previous, item.end))

    def overlaps(self, start: datetime, end: datetime, exclude_booking_id: Optional[str]) -> bool:
        # Candidates are the intervals starting before `end`.
        limit = bisect_left(self.starts, end)
        if limit == 0:
            return False
        if exclude_booking_id is None:
            return self.max_end[limit - 1] > start
        for item in self.intervals[:limit]:
            if item.booking_id != exclude_booking_id and item.end > start:
                return True
        return False


class IntervalIndex:
    """Read-only snapshot of active bookings grouped by device.

    Cancelled and completed bookings are dropped when the index is built,
    so every query only sees bookings that still hold their device.
    """

    def __init__(self, bookings: Iterable[BookingModel] = ()) -> None:
        grouped: Dict[str, List[BookedInterval]] = {}
        for booking in bookings:
            if not booking.is_active:
                continue
            grouped.setdefault(booking.device_id, []).append(
                BookedInterval(
                    booking_id=booking.booking_id,
                    device_id=booking.device_id,
                    category=booking.category,
                    start=booking.start_time,
                    end=booking.end_time,
                )
            )
        self._timelines = {device_id: _DeviceTimeline(items) for device_id, items in grouped.items()}

    def __len__(self) -> int:
        return sum(len(timeline.intervals) for timeline in self._timelines.values())

    def overlaps(
        self,
        device_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> bool:
        """Return whether ``[start, end)`` collides with an active booking of ``device_id``.

        Touching ranges (one ends exactly when the other starts) do not overlap.
        """
        timeline = self._timelines.get(device_id)
        if timeline is None:
            return False
        return timeline.overlaps(ensure_utc(start), ensure_utc(end), exclude_booking_id)

    def booked_device_count(
        self,
        category: str,
        day_start: datetime,
        day_end: datetime,
        device_ids: Optional[Iterable[str]] = None,
    ) -> int:
        """Count distinct devices of ``category`` booked at any point of the window.

        ``device_ids`` narrows the count to those devices.
        """
        window_start = ensure_utc(day_start)
        window_end = ensure_utc(day_end)
        allowed = set(device_ids) if device_ids is not None else None
        booked = 0
        for device_id, timeline in self._timelines.items():
            if allowed is not None and device_id not in allowed:
                continue
            for item in timeline.intervals:
                if item.category != category:
                    continue
                if item.start < window_end and item.end > window_start:
                    booked += 1
                    break
        return booked

    def intervals_for(self, device_id: str) -> List[BookedInterval]:
        """Return the sorted intervals held by ``device_id``."""
        timeline = self._timelines.get(device_id)
        return list(timeline.intervals) if timeline else []

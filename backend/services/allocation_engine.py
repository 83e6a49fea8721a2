"""First-fit device allocation and monthly availability calendars."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Dict, List, Optional

from common.common_functions import iter_month_days
from models.bookings import BookingModel
from models.devices import DeviceModel
from models.enums import DayAvailability
from models.repositories import BookingRepository, DeviceRepository

from .interval_index import IntervalIndex
from .storage_guard import StorageGuard


logger = logging.getLogger(__name__)


class AllocationEngine:
    """Find free devices and reserve them without double-booking.

    Devices are tried in ascending id order and the first one whose booked
    ranges do not overlap the request wins, so the same fleet and booking
    state always yield the same device.
    """

    def __init__(
        self,
        device_repository: DeviceRepository,
        booking_repository: BookingRepository,
        storage_guard: Optional[StorageGuard] = None,
        max_reserve_attempts: int = 3,
    ) -> None:
        self._devices = device_repository
        self._bookings = booking_repository
        self._guard = storage_guard or StorageGuard()
        self._max_reserve_attempts = max(1, int(max_reserve_attempts))

    async def eligible_devices(self, category: str) -> List[DeviceModel]:
        """Return allocatable devices of ``category`` in first-fit order."""
        devices = await self._guard.read("list_devices", lambda: self._devices.list_devices(category))
        eligible = [device for device in devices if device.is_allocatable]
        return sorted(eligible, key=lambda device: device.sort_key())

    async def _build_index(self, category: str) -> IntervalIndex:
        bookings = await self._guard.read(
            "list_active_bookings",
            lambda: self._bookings.list_active_bookings(category=category),
        )
        return IntervalIndex(bookings)

    async def find_available_device(
        self,
        category: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> Optional[str]:
        """Return the first device of ``category`` free over ``[start, end)``, or ``None``."""
        devices = await self.eligible_devices(category)
        if not devices:
            logger.info("No eligible devices registered category=%s", category)
            return None
        index = await self._build_index(category)
        for device in devices:
            if not index.overlaps(device.device_id, start, end, exclude_booking_id=exclude_booking_id):
                return device.device_id
        logger.info("All devices booked category=%s start=%s end=%s", category, start, end)
        return None

    async def reserve(self, booking: BookingModel) -> Optional[BookingModel]:
        """Allocate a device for ``booking`` and insert it atomically.

        The insert is a compare-and-set on the chosen device. When another
        request wins the same device first, allocation runs again against the
        fresh booking state, up to ``max_reserve_attempts`` times.
        Returns the stored booking, or ``None`` when nothing is free.
        """
        for attempt in range(1, self._max_reserve_attempts + 1):
            device_id = await self.find_available_device(booking.category, booking.start_time, booking.end_time)
            if device_id is None:
                return None
            candidate = booking.copy_with(device_id=device_id)
            stored = await self._guard.write("save_if_free", lambda: self._bookings.save_if_free(candidate))
            if stored:
                logger.info(
                    "Reserved booking_id=%s device_id=%s attempt=%d",
                    candidate.booking_id,
                    device_id,
                    attempt,
                )
                return candidate
            logger.warning(
                "Lost reservation race booking_id=%s device_id=%s attempt=%d",
                booking.booking_id,
                device_id,
                attempt,
            )
        return None

    async def get_month_availability(self, category: str, year: int, month: int) -> List[Dict[str, str]]:
        """Return ``[{date, status}]`` for each day of the month.

        A day is FULL when every eligible device is booked at some point of
        that UTC day. Categories without eligible devices return ``[]``.
        """
        devices = await self.eligible_devices(category)
        if not devices:
            return []
        index = await self._build_index(category)
        device_ids = [device.device_id for device in devices]
        total = len(device_ids)
        calendar: List[Dict[str, str]] = []
        for day, window_start, window_end in iter_month_days(year, month):
            booked = index.booked_device_count(category, window_start, window_end, device_ids=device_ids)
            status = DayAvailability.FULL if booked >= total else DayAvailability.AVAILABLE
            calendar.append({"date": day.isoformat(), "status": status.value})
        return calendar

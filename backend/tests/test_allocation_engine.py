"""Unit tests for first-fit allocation, reservation and availability calendars."""

import asyncio
import unittest

from booking_fixtures import booking, device, fast_guard, memory_bundle, utc

from models.enums import DeviceStatus
from repositories.memory_repositories import InMemoryBookingRepository
from services.allocation_engine import AllocationEngine


class AllocationEngineTests(unittest.IsolatedAsyncioTestCase):
    """First-fit device selection."""

    def setUp(self) -> None:
        self.bundle = memory_bundle(
            devices=[device("103"), device("101"), device("102"), device("100", status=DeviceStatus.MAINTENANCE)],
            bookings=[booking("b1", "101", utc(2026, 1, 1), utc(2026, 1, 3))],
        )
        self.engine = AllocationEngine(self.bundle.devices, self.bundle.bookings, storage_guard=fast_guard())

    async def test_skips_overlapping_device(self) -> None:
        device_id = await self.engine.find_available_device("PS5", utc(2026, 1, 2), utc(2026, 1, 4))
        self.assertEqual(device_id, "102")

    async def test_first_device_when_range_touches_booking(self) -> None:
        device_id = await self.engine.find_available_device("PS5", utc(2026, 1, 3), utc(2026, 1, 5))
        self.assertEqual(device_id, "101")

    async def test_allocation_is_deterministic(self) -> None:
        results = {
            await self.engine.find_available_device("PS5", utc(2026, 1, 2), utc(2026, 1, 4)) for _ in range(5)
        }
        self.assertEqual(results, {"102"})

    async def test_unallocatable_devices_are_skipped(self) -> None:
        devices = await self.engine.eligible_devices("PS5")
        self.assertEqual([item.device_id for item in devices], ["101", "102", "103"])

    async def test_unknown_category_returns_none(self) -> None:
        self.assertIsNone(await self.engine.find_available_device("Switch", utc(2026, 1, 1), utc(2026, 1, 2)))

    async def test_all_booked_returns_none(self) -> None:
        self.bundle.bookings.add(booking("b2", "102", utc(2026, 1, 1), utc(2026, 1, 5)))
        self.bundle.bookings.add(booking("b3", "103", utc(2026, 1, 1), utc(2026, 1, 5)))
        self.assertIsNone(await self.engine.find_available_device("PS5", utc(2026, 1, 2), utc(2026, 1, 4)))

    async def test_reserve_stores_booking_on_first_free_device(self) -> None:
        request = booking("new", "pending", utc(2026, 1, 2), utc(2026, 1, 4))
        stored = await self.engine.reserve(request)
        self.assertEqual(stored.device_id, "102")
        persisted = await self.bundle.bookings.get_booking("new")
        self.assertEqual(persisted.device_id, "102")

    async def test_reserve_returns_none_without_capacity(self) -> None:
        engine = AllocationEngine(memory_bundle().devices, memory_bundle().bookings, storage_guard=fast_guard())
        self.assertIsNone(await engine.reserve(booking("new", "x", utc(2026, 1, 2), utc(2026, 1, 4))))


class RacingBookingRepository(InMemoryBookingRepository):
    """Lets a competing booking land on the chosen device right before the first insert."""

    def __init__(self, competitor) -> None:
        super().__init__()
        self._competitor = competitor
        self.attempts = 0

    async def save_if_free(self, booking_model):
        self.attempts += 1
        if self._competitor is not None:
            self.add(self._competitor.copy_with(device_id=booking_model.device_id))
            self._competitor = None
        return await super().save_if_free(booking_model)


class ReservationRaceTests(unittest.IsolatedAsyncioTestCase):
    async def test_lost_race_retries_on_next_device(self) -> None:
        competitor = booking("rival", "tbd", utc(2026, 2, 1), utc(2026, 2, 3))
        bookings = RacingBookingRepository(competitor)
        devices = memory_bundle(devices=[device("101"), device("102")]).devices
        engine = AllocationEngine(devices, bookings, storage_guard=fast_guard())

        stored = await engine.reserve(booking("mine", "tbd", utc(2026, 2, 1), utc(2026, 2, 3)))

        self.assertEqual(stored.device_id, "102")
        self.assertEqual(bookings.attempts, 2)

    async def test_concurrent_reservations_never_share_a_device(self) -> None:
        bundle = memory_bundle(devices=[device("101"), device("102")])
        engine = AllocationEngine(bundle.devices, bundle.bookings, storage_guard=fast_guard())
        requests = [booking("r{0}".format(i), "tbd", utc(2026, 3, 1), utc(2026, 3, 4)) for i in range(4)]

        results = await asyncio.gather(*(engine.reserve(item) for item in requests))

        stored = [item for item in results if item is not None]
        self.assertEqual(sorted(item.device_id for item in stored), ["101", "102"])
        self.assertEqual(len(await bundle.bookings.list_active_bookings(category="PS5")), 2)


class MonthAvailabilityTests(unittest.IsolatedAsyncioTestCase):
    async def test_day_is_full_when_every_device_booked(self) -> None:
        bundle = memory_bundle(
            devices=[device("101"), device("102"), device("104", status=DeviceStatus.LOST)],
            bookings=[
                booking("b1", "101", utc(2026, 2, 10), utc(2026, 2, 12)),
                booking("b2", "102", utc(2026, 2, 11), utc(2026, 2, 13)),
                booking("b3", "104", utc(2026, 2, 1), utc(2026, 2, 28)),
            ],
        )
        engine = AllocationEngine(bundle.devices, bundle.bookings, storage_guard=fast_guard())

        calendar = await engine.get_month_availability("PS5", 2026, 2)

        self.assertEqual(len(calendar), 28)
        by_date = {row["date"]: row["status"] for row in calendar}
        self.assertEqual(by_date["2026-02-10"], "AVAILABLE")
        self.assertEqual(by_date["2026-02-11"], "FULL")
        self.assertEqual(by_date["2026-02-12"], "AVAILABLE")
        self.assertEqual(by_date["2026-02-13"], "AVAILABLE")

    async def test_category_without_devices_is_empty(self) -> None:
        bundle = memory_bundle()
        engine = AllocationEngine(bundle.devices, bundle.bookings, storage_guard=fast_guard())
        self.assertEqual(await engine.get_month_availability("PS5", 2026, 2), [])


if __name__ == "__main__":
    unittest.main()

"""Unit tests for the per-device booked interval index."""

import unittest

from booking_fixtures import booking, utc

from models.enums import BookingStatus
from services.interval_index import IntervalIndex


class IntervalIndexOverlapTests(unittest.TestCase):
    """Half-open overlap semantics."""

    def setUp(self) -> None:
        self.index = IntervalIndex(
            [
                booking("b1", "101", utc(2026, 1, 1), utc(2026, 1, 3)),
                booking("b2", "101", utc(2026, 1, 10), utc(2026, 1, 12)),
                booking("b3", "102", utc(2026, 1, 5), utc(2026, 1, 6), status=BookingStatus.CANCELLED),
            ]
        )

    def test_partial_overlap_detected(self) -> None:
        self.assertTrue(self.index.overlaps("101", utc(2026, 1, 2), utc(2026, 1, 4)))

    def test_touching_ranges_do_not_overlap(self) -> None:
        self.assertFalse(self.index.overlaps("101", utc(2026, 1, 3), utc(2026, 1, 10)))
        self.assertFalse(self.index.overlaps("101", utc(2025, 12, 30), utc(2026, 1, 1)))

    def test_containing_range_overlaps(self) -> None:
        self.assertTrue(self.index.overlaps("101", utc(2025, 12, 1), utc(2026, 2, 1)))

    def test_range_inside_booking_overlaps(self) -> None:
        self.assertTrue(self.index.overlaps("101", utc(2026, 1, 1, 6), utc(2026, 1, 1, 12)))

    def test_cancelled_bookings_are_ignored(self) -> None:
        self.assertFalse(self.index.overlaps("102", utc(2026, 1, 5), utc(2026, 1, 6)))

    def test_unknown_device_is_free(self) -> None:
        self.assertFalse(self.index.overlaps("999", utc(2026, 1, 1), utc(2026, 1, 2)))

    def test_exclude_own_booking(self) -> None:
        self.assertFalse(
            self.index.overlaps("101", utc(2026, 1, 1), utc(2026, 1, 5), exclude_booking_id="b1")
        )
        self.assertTrue(
            self.index.overlaps("101", utc(2026, 1, 1), utc(2026, 1, 11), exclude_booking_id="b1")
        )

    def test_long_earlier_booking_is_seen_past_later_starts(self) -> None:
        index = IntervalIndex(
            [
                booking("long", "101", utc(2026, 1, 1), utc(2026, 1, 31)),
                booking("short", "101", utc(2026, 1, 2), utc(2026, 1, 3)),
            ]
        )
        self.assertTrue(index.overlaps("101", utc(2026, 1, 20), utc(2026, 1, 21)))

    def test_matches_brute_force_check(self) -> None:
        rows = [
            booking("a", "101", utc(2026, 3, 1), utc(2026, 3, 4)),
            booking("b", "101", utc(2026, 3, 2), utc(2026, 3, 3)),
            booking("c", "101", utc(2026, 3, 8), utc(2026, 3, 9)),
            booking("d", "101", utc(2026, 3, 6), utc(2026, 3, 7), status=BookingStatus.COMPLETED),
        ]
        index = IntervalIndex(rows)
        for start_day in range(1, 12):
            for length in range(1, 5):
                start, end = utc(2026, 3, start_day), utc(2026, 3, start_day + length)
                expected = any(
                    row.is_active and row.start_time < end and row.end_time > start for row in rows
                )
                self.assertEqual(index.overlaps("101", start, end), expected, (start_day, length))


class BookedDeviceCountTests(unittest.TestCase):
    def test_counts_distinct_devices_in_window(self) -> None:
        index = IntervalIndex(
            [
                booking("b1", "101", utc(2026, 1, 1), utc(2026, 1, 3)),
                booking("b2", "101", utc(2026, 1, 2, 12), utc(2026, 1, 4)),
                booking("b3", "102", utc(2026, 1, 2), utc(2026, 1, 5)),
                booking("b4", "201", utc(2026, 1, 2), utc(2026, 1, 5), category="PS4"),
            ]
        )
        self.assertEqual(index.booked_device_count("PS5", utc(2026, 1, 2), utc(2026, 1, 3)), 2)
        self.assertEqual(index.booked_device_count("PS5", utc(2026, 1, 5), utc(2026, 1, 6)), 0)
        self.assertEqual(index.booked_device_count("PS4", utc(2026, 1, 2), utc(2026, 1, 3)), 1)
        self.assertEqual(
            index.booked_device_count("PS5", utc(2026, 1, 2), utc(2026, 1, 3), device_ids=["102"]),
            1,
        )

    def test_mixed_category_timeline_scanned_fully(self) -> None:
        index = IntervalIndex(
            [
                booking("b1", "301", utc(2026, 1, 1), utc(2026, 1, 2), category="PS4"),
                booking("b2", "301", utc(2026, 1, 8), utc(2026, 1, 9)),
            ]
        )
        self.assertEqual(index.booked_device_count("PS5", utc(2026, 1, 8), utc(2026, 1, 9)), 1)
        self.assertEqual(index.booked_device_count("PS4", utc(2026, 1, 8), utc(2026, 1, 9)), 0)


if __name__ == "__main__":
    unittest.main()

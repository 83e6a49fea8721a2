"""In-memory repository implementations used for local demo mode and tests."""

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from models.base import ensure_utc, utc_now
from models.bookings import BookingModel
from models.catalog import CatalogSettingsModel
from models.devices import DeviceModel
from models.enums import BookingStatus, DeviceStatus
from models.exceptions import ModelNotFoundError
from models.orders import OrderModel
from models.repositories import (
    BookingRepository,
    CatalogRepository,
    DeviceRepository,
    OrderRepository,
    RepositoryBundle,
    UserRepository,
)
from models.users import UserModel
from services.interval_index import IntervalIndex


logger = logging.getLogger(__name__)


class InMemoryDeviceRepository(DeviceRepository):
    """Fleet inventory held in a dict keyed by device id."""

    def __init__(self, devices: Iterable[DeviceModel] = ()) -> None:
        self._devices: Dict[str, DeviceModel] = {device.device_id: device for device in devices}

    def add(self, device: DeviceModel) -> None:
        self._devices[device.device_id] = device

    async def list_devices(self, category: str) -> List[DeviceModel]:
        return [device for device in self._devices.values() if device.category == category]

    async def get_device(self, device_id: str) -> DeviceModel:
        device = self._devices.get(device_id)
        if device is None:
            raise ModelNotFoundError("Device not found: {0}".format(device_id))
        return device

    async def update_device_status(self, device_id: str, status: DeviceStatus) -> None:
        device = await self.get_device(device_id)
        self._devices[device_id] = device.copy_with(status=status)


class InMemoryBookingRepository(BookingRepository):
    """Booking records guarded by one lock so check-and-insert is atomic."""

    def __init__(self, bookings: Iterable[BookingModel] = ()) -> None:
        self._bookings: Dict[str, BookingModel] = {booking.booking_id: booking for booking in bookings}
        self._lock = asyncio.Lock()

    def add(self, booking: BookingModel) -> None:
        """Insert without an overlap check; test fixtures only."""
        self._bookings[booking.booking_id] = booking

    async def list_active_bookings(
        self,
        category: Optional[str] = None,
        device_id: Optional[str] = None,
    ) -> List[BookingModel]:
        result = []
        for booking in self._bookings.values():
            if not booking.is_active:
                continue
            if category is not None and booking.category != category:
                continue
            if device_id is not None and booking.device_id != device_id:
                continue
            result.append(booking)
        return result

    async def get_booking(self, booking_id: str) -> BookingModel:
        booking = self._bookings.get(booking_id)
        if booking is None:
            raise ModelNotFoundError("Booking not found: {0}".format(booking_id))
        return booking

    async def save_if_free(self, booking: BookingModel) -> bool:
        async with self._lock:
            same_device = [item for item in self._bookings.values() if item.device_id == booking.device_id]
            index = IntervalIndex(same_device)
            if index.overlaps(
                booking.device_id,
                booking.start_time,
                booking.end_time,
                exclude_booking_id=booking.booking_id,
            ):
                return False
            self._bookings[booking.booking_id] = booking
            return True

    async def update_booking(self, booking: BookingModel) -> BookingModel:
        async with self._lock:
            if booking.booking_id not in self._bookings:
                raise ModelNotFoundError("Booking not found: {0}".format(booking.booking_id))
            self._bookings[booking.booking_id] = booking
            return booking

    async def count_user_bookings(self, user_id: str) -> int:
        return sum(
            1
            for booking in self._bookings.values()
            if booking.user_id == user_id and booking.status != BookingStatus.CANCELLED
        )

    async def list_overdue_candidates(self, now: datetime) -> List[BookingModel]:
        cutoff = ensure_utc(now)
        return [
            booking
            for booking in self._bookings.values()
            if booking.status == BookingStatus.ACTIVE and booking.end_time < cutoff
        ]


class InMemoryUserRepository(UserRepository):
    def __init__(self, users: Iterable[UserModel] = ()) -> None:
        self._users: Dict[str, UserModel] = {user.user_id: user for user in users}

    def add(self, user: UserModel) -> None:
        self._users[user.user_id] = user

    async def get_user(self, user_id: str) -> Optional[UserModel]:
        return self._users.get(user_id)


class InMemoryOrderRepository(OrderRepository):
    def __init__(self, orders: Iterable[OrderModel] = ()) -> None:
        self._orders: Dict[str, OrderModel] = {order.order_id: order for order in orders}

    def add(self, order: OrderModel) -> None:
        self._orders[order.order_id] = order

    async def create_order(self, order: OrderModel) -> OrderModel:
        self._orders[order.order_id] = order
        return order

    async def get_order(self, order_id: str) -> OrderModel:
        order = self._orders.get(order_id)
        if order is None:
            raise ModelNotFoundError("Order not found: {0}".format(order_id))
        return order

    async def update_order(self, order: OrderModel) -> OrderModel:
        if order.order_id not in self._orders:
            raise ModelNotFoundError("Order not found: {0}".format(order.order_id))
        self._orders[order.order_id] = order
        return order

    async def count_user_orders(self, customer_id: str, exclude_order_id: Optional[str] = None) -> int:
        return sum(
            1
            for order in self._orders.values()
            if order.customer_id == customer_id and order.order_id != exclude_order_id
        )

    async def count_recent_orders(self, customer_id: str, since: datetime) -> int:
        cutoff = ensure_utc(since)
        return sum(
            1
            for order in self._orders.values()
            if order.customer_id == customer_id and ensure_utc(order.created_at) > cutoff
        )


class InMemoryCatalogRepository(CatalogRepository):
    def __init__(self, settings: Iterable[CatalogSettingsModel] = ()) -> None:
        self._settings: Dict[str, CatalogSettingsModel] = {item.category.lower(): item for item in settings}

    async def get_catalog_settings(self, category: str) -> Optional[CatalogSettingsModel]:
        return self._settings.get(str(category or "").strip().lower())


def _read_json(path: Optional[str]) -> Any:
    if not path:
        return None
    file_path = Path(path)
    if not file_path.exists():
        logger.warning("Seed file not found at path=%s", file_path)
        return None
    try:
        return json.loads(file_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        logger.exception("Failed reading seed file path=%s", file_path)
        return None


def _parse_rows(model_cls, rows: Any, label: str) -> list:
    parsed = []
    for row in rows or []:
        try:
            parsed.append(model_cls.model_validate(row))
        except ValidationError:
            logger.exception("Invalid %s seed row skipped row=%s", label, row)
    return parsed


def load_catalog_settings(path: Optional[str]) -> List[CatalogSettingsModel]:
    """Read per-category pricing rows from a JSON array file."""
    return _parse_rows(CatalogSettingsModel, _read_json(path), "catalog")


def build_memory_repositories(
    catalog_settings_path: Optional[str] = None,
    demo_fleet_path: Optional[str] = None,
) -> RepositoryBundle:
    """Create in-memory repositories seeded from the bundled JSON files."""
    fleet = _read_json(demo_fleet_path) or {}
    devices = _parse_rows(DeviceModel, fleet.get("devices"), "device")
    users = _parse_rows(UserModel, fleet.get("users"), "user")
    bookings = _parse_rows(BookingModel, fleet.get("bookings"), "booking")
    catalog = load_catalog_settings(catalog_settings_path)
    logger.info(
        "In-memory storage seeded devices=%d users=%d bookings=%d categories=%d at=%s",
        len(devices),
        len(users),
        len(bookings),
        len(catalog),
        utc_now().isoformat(),
    )
    return RepositoryBundle(
        devices=InMemoryDeviceRepository(devices),
        bookings=InMemoryBookingRepository(bookings),
        users=InMemoryUserRepository(users),
        orders=InMemoryOrderRepository(),
        catalog=InMemoryCatalogRepository(catalog),
    )

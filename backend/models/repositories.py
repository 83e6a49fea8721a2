"""Repository interfaces for datastore-agnostic model access.

Every method is a coroutine: the booking pipeline runs on the event loop and
may suspend at any storage call.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from .bookings import BookingModel
from .catalog import CatalogSettingsModel
from .devices import DeviceModel
from .enums import DeviceStatus
from .exceptions import ModelNotFoundError, VersionConflictError
from .orders import OrderModel
from .users import UserModel


class DeviceRepository(ABC):
    """Fleet inventory access."""

    @abstractmethod
    async def list_devices(self, category: str) -> List[DeviceModel]:
        """Return every registered device of ``category``."""

    @abstractmethod
    async def get_device(self, device_id: str) -> DeviceModel:
        """Fetch a device.

        Raises:
            ModelNotFoundError: If the device does not exist.
        """

    @abstractmethod
    async def update_device_status(self, device_id: str, status: DeviceStatus) -> None:
        """Set the status of one device."""


class BookingRepository(ABC):
    """Rental records access."""

    @abstractmethod
    async def list_active_bookings(
        self,
        category: Optional[str] = None,
        device_id: Optional[str] = None,
    ) -> List[BookingModel]:
        """Return non-cancelled, non-completed bookings filtered by category or device."""

    @abstractmethod
    async def get_booking(self, booking_id: str) -> BookingModel:
        """Fetch a booking.

        Raises:
            ModelNotFoundError: If the booking does not exist.
        """

    @abstractmethod
    async def save_if_free(self, booking: BookingModel) -> bool:
        """Insert or replace ``booking`` only if no other active booking overlaps it.

        The overlap check and the write happen atomically per device.
        Returns ``False`` without writing when the range is taken.
        """

    @abstractmethod
    async def update_booking(self, booking: BookingModel) -> BookingModel:
        """Persist field changes that do not alter the reserved range."""

    @abstractmethod
    async def count_user_bookings(self, user_id: str) -> int:
        """Return the number of non-cancelled bookings placed by ``user_id``."""

    @abstractmethod
    async def list_overdue_candidates(self, now: datetime) -> List[BookingModel]:
        """Return Active bookings whose end time is before ``now``."""


class UserRepository(ABC):
    """Customer profile access."""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserModel]:
        """Return the user or ``None`` when no profile exists."""


class OrderRepository(ABC):
    """Payment order access."""

    @abstractmethod
    async def create_order(self, order: OrderModel) -> OrderModel:
        """Persist a new order."""

    @abstractmethod
    async def get_order(self, order_id: str) -> OrderModel:
        """Fetch an order.

        Raises:
            ModelNotFoundError: If the order does not exist.
        """

    @abstractmethod
    async def update_order(self, order: OrderModel) -> OrderModel:
        """Persist order field changes."""

    @abstractmethod
    async def count_user_orders(self, customer_id: str, exclude_order_id: Optional[str] = None) -> int:
        """Return how many orders ``customer_id`` has placed."""

    @abstractmethod
    async def count_recent_orders(self, customer_id: str, since: datetime) -> int:
        """Return how many orders ``customer_id`` created strictly after ``since``."""


class CatalogRepository(ABC):
    """Pricing configuration access."""

    @abstractmethod
    async def get_catalog_settings(self, category: str) -> Optional[CatalogSettingsModel]:
        """Return settings for ``category`` or ``None`` when not configured."""


@dataclass(frozen=True)
class RepositoryBundle:
    """The storage collaborators the booking pipeline is wired with."""

    devices: DeviceRepository
    bookings: BookingRepository
    users: UserRepository
    orders: OrderRepository
    catalog: CatalogRepository


__all__ = [
    "ModelNotFoundError",
    "VersionConflictError",
    "RepositoryBundle",
    "DeviceRepository",
    "BookingRepository",
    "UserRepository",
    "OrderRepository",
    "CatalogRepository",
]

"""Firestore implementations of the booking pipeline repositories.

The Firestore SDK is blocking, so every call runs in a worker thread via
``asyncio.to_thread`` to keep the event loop free.
"""

import asyncio
from datetime import datetime
import logging
from typing import Any, Dict, List, Optional

from core.firebase_client_manager import FirebaseClientManager
from models.base import ensure_utc
from models.bookings import BookingModel
from models.catalog import CatalogSettingsModel
from models.devices import DeviceModel
from models.enums import BookingStatus, DeviceStatus
from models.exceptions import ModelNotFoundError, ModelValidationError
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


def _parse_many(model_cls, rows: List[Dict[str, Any]], label: str) -> list:
    """Parse query rows, skipping documents that fail validation."""
    parsed = []
    for row in rows:
        try:
            parsed.append(model_cls.from_firestore(row, doc_id=row.get("id")))
        except ModelValidationError:
            logger.warning("Skipping invalid %s document id=%s", label, row.get("id"))
    return parsed


class FirestoreDeviceRepository(DeviceRepository):
    def __init__(self, firebase_manager: FirebaseClientManager, collection_name: str = "devices") -> None:
        self._firebase_manager = firebase_manager
        self._collection_name = collection_name
        logger.info("Initialized FirestoreDeviceRepository collection=%s", collection_name)

    async def list_devices(self, category: str) -> List[DeviceModel]:
        rows = await asyncio.to_thread(
            self._firebase_manager.query_documents,
            self._collection_name,
            [("category", "==", category)],
        )
        for row in rows:
            row.setdefault("device_id", row.get("id"))
        return _parse_many(DeviceModel, rows, "device")

    async def get_device(self, device_id: str) -> DeviceModel:
        payload = await asyncio.to_thread(self._firebase_manager.get_document, self._collection_name, device_id)
        if payload is None:
            raise ModelNotFoundError("Device not found: {0}".format(device_id))
        payload.setdefault("device_id", device_id)
        return DeviceModel.from_firestore(payload, doc_id=device_id)

    async def update_device_status(self, device_id: str, status: DeviceStatus) -> None:
        await asyncio.to_thread(
            self._firebase_manager.update_document,
            self._collection_name,
            device_id,
            {"status": DeviceStatus(status).value},
        )


class FirestoreBookingRepository(BookingRepository):
    """Rental documents keyed by booking id, reserved through a per-device lock document."""

    def __init__(
        self,
        firebase_manager: FirebaseClientManager,
        collection_name: str = "rentals",
        lock_collection_name: str = "device_locks",
    ) -> None:
        self._firebase_manager = firebase_manager
        self._collection_name = collection_name
        self._lock_collection_name = lock_collection_name
        logger.info(
            "Initialized FirestoreBookingRepository collection=%s locks=%s",
            collection_name,
            lock_collection_name,
        )

    async def _query(self, filters) -> List[BookingModel]:
        rows = await asyncio.to_thread(self._firebase_manager.query_documents, self._collection_name, filters)
        for row in rows:
            row.setdefault("booking_id", row.get("id"))
        return _parse_many(BookingModel, rows, "booking")

    async def list_active_bookings(
        self,
        category: Optional[str] = None,
        device_id: Optional[str] = None,
    ) -> List[BookingModel]:
        filters = []
        if category is not None:
            filters.append(("category", "==", category))
        if device_id is not None:
            filters.append(("device_id", "==", device_id))
        # Status is filtered here so legacy lower-case values are handled too.
        return [booking for booking in await self._query(filters) if booking.is_active]

    async def get_booking(self, booking_id: str) -> BookingModel:
        payload = await asyncio.to_thread(self._firebase_manager.get_document, self._collection_name, booking_id)
        if payload is None:
            raise ModelNotFoundError("Booking not found: {0}".format(booking_id))
        payload.setdefault("booking_id", booking_id)
        return BookingModel.from_firestore(payload, doc_id=booking_id)

    async def save_if_free(self, booking: BookingModel) -> bool:
        def _is_free(rows: List[Dict[str, Any]]) -> bool:
            for row in rows:
                row.setdefault("booking_id", row.get("id"))
            index = IntervalIndex(_parse_many(BookingModel, rows, "booking"))
            return not index.overlaps(
                booking.device_id,
                booking.start_time,
                booking.end_time,
                exclude_booking_id=booking.booking_id,
            )

        return await asyncio.to_thread(
            self._firebase_manager.reserve_document,
            self._collection_name,
            booking.booking_id,
            booking.to_firestore(),
            self._lock_collection_name,
            booking.device_id,
            [("device_id", "==", booking.device_id)],
            _is_free,
        )

    async def update_booking(self, booking: BookingModel) -> BookingModel:
        await asyncio.to_thread(
            self._firebase_manager.update_document,
            self._collection_name,
            booking.booking_id,
            booking.to_firestore(),
        )
        return booking

    async def count_user_bookings(self, user_id: str) -> int:
        bookings = await self._query([("user_id", "==", user_id)])
        return sum(1 for booking in bookings if booking.status != BookingStatus.CANCELLED)

    async def list_overdue_candidates(self, now: datetime) -> List[BookingModel]:
        bookings = await self._query([("end_time", "<", ensure_utc(now))])
        return [booking for booking in bookings if booking.status == BookingStatus.ACTIVE]


class FirestoreUserRepository(UserRepository):
    def __init__(self, firebase_manager: FirebaseClientManager, collection_name: str = "users") -> None:
        self._firebase_manager = firebase_manager
        self._collection_name = collection_name
        logger.info("Initialized FirestoreUserRepository collection=%s", collection_name)

    async def get_user(self, user_id: str) -> Optional[UserModel]:
        payload = await asyncio.to_thread(self._firebase_manager.get_document, self._collection_name, user_id)
        if payload is None:
            return None
        payload.setdefault("user_id", user_id)
        metadata = payload.get("metadata") or {}
        # Older profiles keep KYC fields under `metadata`.
        if not payload.get("kyc_status") and metadata.get("kyc_status"):
            payload["kyc_status"] = metadata["kyc_status"]
        if not payload.get("total_bookings") and metadata.get("total_bookings"):
            payload["total_bookings"] = metadata["total_bookings"]
        return UserModel.from_firestore(payload, doc_id=user_id)


class FirestoreOrderRepository(OrderRepository):
    def __init__(self, firebase_manager: FirebaseClientManager, collection_name: str = "orders") -> None:
        self._firebase_manager = firebase_manager
        self._collection_name = collection_name
        logger.info("Initialized FirestoreOrderRepository collection=%s", collection_name)

    async def create_order(self, order: OrderModel) -> OrderModel:
        await asyncio.to_thread(
            self._firebase_manager.set_document,
            self._collection_name,
            order.order_id,
            order.to_firestore(),
        )
        return order

    async def get_order(self, order_id: str) -> OrderModel:
        payload = await asyncio.to_thread(self._firebase_manager.get_document, self._collection_name, order_id)
        if payload is None:
            raise ModelNotFoundError("Order not found: {0}".format(order_id))
        payload.setdefault("order_id", order_id)
        shipping = payload.get("shipping_address") or {}
        if not payload.get("shipping_city") and isinstance(shipping, dict):
            payload["shipping_city"] = shipping.get("city")
        return OrderModel.from_firestore(payload, doc_id=order_id)

    async def update_order(self, order: OrderModel) -> OrderModel:
        await asyncio.to_thread(
            self._firebase_manager.update_document,
            self._collection_name,
            order.order_id,
            order.to_firestore(),
        )
        return order

    async def count_user_orders(self, customer_id: str, exclude_order_id: Optional[str] = None) -> int:
        total = await asyncio.to_thread(
            self._firebase_manager.count_documents,
            self._collection_name,
            [("customer_id", "==", customer_id)],
        )
        if exclude_order_id:
            current = await asyncio.to_thread(
                self._firebase_manager.get_document,
                self._collection_name,
                exclude_order_id,
            )
            if current is not None and current.get("customer_id") == customer_id:
                total -= 1
        return max(0, total)

    async def count_recent_orders(self, customer_id: str, since: datetime) -> int:
        return await asyncio.to_thread(
            self._firebase_manager.count_documents,
            self._collection_name,
            [("customer_id", "==", customer_id), ("created_at", ">", ensure_utc(since))],
        )


class FirestoreCatalogRepository(CatalogRepository):
    def __init__(self, firebase_manager: FirebaseClientManager, collection_name: str = "catalog_settings") -> None:
        self._firebase_manager = firebase_manager
        self._collection_name = collection_name
        logger.info("Initialized FirestoreCatalogRepository collection=%s", collection_name)

    async def get_catalog_settings(self, category: str) -> Optional[CatalogSettingsModel]:
        rows = await asyncio.to_thread(
            self._firebase_manager.query_documents,
            self._collection_name,
            [("device_category", "==", category)],
            None,
            1,
        )
        if not rows:
            rows = await asyncio.to_thread(
                self._firebase_manager.query_documents,
                self._collection_name,
                [("category", "==", category)],
                None,
                1,
            )
        if not rows:
            return None
        return CatalogSettingsModel.from_firestore(rows[0], doc_id=rows[0].get("id"))


def build_firestore_repositories(firebase_manager: FirebaseClientManager, settings) -> RepositoryBundle:
    """Wire Firestore repositories with the collection names from ``AppSettings``."""
    return RepositoryBundle(
        devices=FirestoreDeviceRepository(firebase_manager, settings.devices_collection),
        bookings=FirestoreBookingRepository(
            firebase_manager,
            settings.bookings_collection,
            settings.device_locks_collection,
        ),
        users=FirestoreUserRepository(firebase_manager, settings.users_collection),
        orders=FirestoreOrderRepository(firebase_manager, settings.orders_collection),
        catalog=FirestoreCatalogRepository(firebase_manager, settings.catalog_collection),
    )

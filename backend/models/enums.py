"""Reusable enums for console rental domain models."""

from enum import Enum
from typing import Any, Optional


class StringEnum(str, Enum):
    """Base enum class with string behavior for JSON serialization."""

    @classmethod
    def parse(cls, value: Any, default: Optional["StringEnum"] = None):
        """Parse a raw value case-insensitively, returning ``default`` on miss."""
        if isinstance(value, cls):
            return value
        normalized = str(value or "").strip().lower()
        for member in cls:
            if member.value.lower() == normalized or member.name.lower() == normalized:
                return member
        return default


class DeviceStatus(StringEnum):
    """Physical unit states in the fleet inventory."""

    AVAILABLE = "AVAILABLE"
    RENTED = "RENTED"
    MAINTENANCE = "MAINTENANCE"
    LOST = "LOST"
    UNDER_REPAIR = "UNDER_REPAIR"


UNALLOCATABLE_DEVICE_STATUSES = frozenset(
    {DeviceStatus.MAINTENANCE, DeviceStatus.LOST, DeviceStatus.UNDER_REPAIR}
)


class BookingStatus(StringEnum):
    """Rental lifecycle states."""

    PENDING = "Pending"
    ACTIVE = "Active"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    OVERDUE = "Overdue"


INACTIVE_BOOKING_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED})


class BookingStage(StringEnum):
    """Decision pipeline stages a booking request moves through."""

    REQUESTED = "Requested"
    ELIGIBILITY_CHECKED = "EligibilityChecked"
    ALLOCATED = "Allocated"
    QUOTED = "Quoted"
    PERSISTED = "Persisted"
    RISK_PENDING = "RiskPending"
    APPROVED = "Approved"
    MANUAL_REVIEW = "ManualReview"
    REJECTED = "Rejected"


class PaymentStatus(StringEnum):
    """Payment states shared by bookings and orders."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

    @classmethod
    def parse(cls, value: Any, default: Optional["StringEnum"] = None):
        """Gateways report a captured payment as ``SUCCESS``."""
        if not isinstance(value, cls) and str(value or "").strip().lower() == "success":
            return cls.PAID
        return super().parse(value, default)


class OrderStatus(StringEnum):
    """Order fulfilment states."""

    PLACED = "placed"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class KycStatus(StringEnum):
    """KYC verification lifecycle states."""

    NOT_STARTED = "NOT_STARTED"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class DeliveryType(StringEnum):
    """How the console reaches the customer."""

    DELIVERY = "DELIVERY"
    PICKUP = "PICKUP"


class RiskDecision(StringEnum):
    """Automated payment risk outcomes."""

    APPROVE = "APPROVE"
    MANUAL_REVIEW = "MANUAL_REVIEW"
    REJECT = "REJECT"


class PricingTier(StringEnum):
    """Rate bucket selected by rental length."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class DamageType(StringEnum):
    """Severity buckets used for damage estimates."""

    COSMETIC = "cosmetic"
    FUNCTIONAL = "functional"
    SEVERE = "severe"


class DayAvailability(StringEnum):
    """Calendar status for one day of a category."""

    AVAILABLE = "AVAILABLE"
    FULL = "FULL"

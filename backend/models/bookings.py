"""Booking (rental) model holding the reserved time range for one device."""

from datetime import datetime
import logging
from typing import List, Optional

from pydantic import BaseModel, Field, root_validator, validator

from .base import BaseDocumentModel, Rupees, ensure_utc
from .enums import (
    INACTIVE_BOOKING_STATUSES,
    BookingStage,
    BookingStatus,
    DeliveryType,
    PaymentStatus,
    RiskDecision,
)


logger = logging.getLogger(__name__)

EXTRA_CONTROLLER_ADDON_ID = "extra-controller"


class AddonItem(BaseModel):
    """One add-on line attached to a booking."""

    addon_id: str = Field(..., min_length=1)
    name: str = Field(default="")
    unit_price: Rupees = Field(default=0, ge=0)
    quantity: int = Field(default=1, ge=0)

    @property
    def is_extra_controller(self) -> bool:
        """Return whether the line adds controllers priced through the catalog."""
        return self.addon_id.strip().lower() == EXTRA_CONTROLLER_ADDON_ID

    @property
    def line_total(self) -> Rupees:
        """Return the flat cost for non-controller add-ons."""
        return int(self.unit_price) * int(self.quantity)


class BookingModel(BaseDocumentModel):
    """A reservation of one device over the half-open range ``[start_time, end_time)``."""

    booking_id: str = Field(..., min_length=1)
    user_id: Optional[str] = Field(default=None)
    device_id: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    plan_id: str = Field(default="DAILY")
    start_time: datetime = Field(...)
    end_time: datetime = Field(...)

    status: BookingStatus = Field(default=BookingStatus.PENDING)
    payment_status: PaymentStatus = Field(default=PaymentStatus.PENDING)
    stage: BookingStage = Field(default=BookingStage.PERSISTED)

    total_price: Rupees = Field(default=0, ge=0)
    payable_now: Rupees = Field(default=0, ge=0)
    deposit: Rupees = Field(default=0, ge=0)
    addons: List[AddonItem] = Field(default_factory=list)
    extra_controllers: int = Field(default=0, ge=0)
    protection_plan: str = Field(default="none")
    delivery_type: DeliveryType = Field(default=DeliveryType.DELIVERY)
    address: str = Field(default="")

    order_id: Optional[str] = Field(default=None)
    risk_score: Optional[int] = Field(default=None, ge=0, le=100)
    risk_decision: Optional[RiskDecision] = Field(default=None)

    @validator("start_time", "end_time")
    def _normalize_timezone(cls, value: datetime) -> datetime:
        """Store every range boundary in UTC."""
        return ensure_utc(value)

    @validator("status", pre=True)
    def _normalize_status(cls, value):
        """Accept lower-case statuses written by older clients."""
        parsed = BookingStatus.parse(value)
        if parsed is None:
            raise ValueError("Unknown booking status: {0}".format(value))
        return parsed

    @validator("payment_status", pre=True)
    def _normalize_payment_status(cls, value):
        """Accept upper-case payment statuses written by older clients."""
        parsed = PaymentStatus.parse(value)
        if parsed is None:
            raise ValueError("Unknown payment status: {0}".format(value))
        return parsed

    @root_validator(skip_on_failure=True)
    def _validate_range(cls, values: dict) -> dict:
        """Reject empty or inverted ranges."""
        start_time = values.get("start_time")
        end_time = values.get("end_time")
        if start_time is not None and end_time is not None and end_time <= start_time:
            logger.warning(
                "Rejected booking range booking_id=%s start=%s end=%s",
                values.get("booking_id"),
                start_time,
                end_time,
            )
            raise ValueError("end_time must be later than start_time")
        return values

    @property
    def is_active(self) -> bool:
        """Return whether the booking still holds its device."""
        return self.status not in INACTIVE_BOOKING_STATUSES

    @property
    def is_terminal(self) -> bool:
        """Return whether no further lifecycle transitions are allowed."""
        return self.status in INACTIVE_BOOKING_STATUSES

"""Booking decision pipeline: eligibility, allocation, pricing, persistence and risk."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, validator

from common.common_functions import new_document_id
from common.protection_catalog import DamageAssessment, ProtectionLedger
from core.access_policy import AccessPolicy
from models.base import Rupees, ensure_utc, utc_now
from models.bookings import AddonItem, BookingModel
from models.catalog import CatalogSettingsModel
from models.enums import (
    BookingStage,
    BookingStatus,
    DamageType,
    DeliveryType,
    DeviceStatus,
    OrderStatus,
    PaymentStatus,
    RiskDecision,
)
from models.exceptions import (
    AuthRequiredError,
    BookingNotFoundError,
    BookingStateError,
    BookingValidationError,
    DependencyError,
    KycRequiredError,
    ModelError,
    ModelNotFoundError,
    NoAvailabilityError,
    PickupRestrictedError,
)
from models.orders import OrderModel
from models.repositories import (
    BookingRepository,
    CatalogRepository,
    DeviceRepository,
    OrderRepository,
    UserRepository,
)
from models.risk_assessments import RiskAssessmentModel

from .allocation_engine import AllocationEngine
from .pricing_engine import PriceQuote, PricingEngine
from .risk_scorer import RiskScorer, should_score
from .storage_guard import StorageGuard


logger = logging.getLogger(__name__)

ANONYMOUS_USER_IDS = frozenset({"", "guest"})

_STAGE_BY_DECISION = {
    RiskDecision.APPROVE: BookingStage.APPROVED,
    RiskDecision.MANUAL_REVIEW: BookingStage.MANUAL_REVIEW,
    RiskDecision.REJECT: BookingStage.REJECTED,
}


class BookingRequest(BaseModel):
    """Inbound booking payload; accepts the storefront's camelCase keys."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    category: str = Field(..., min_length=1, validation_alias=AliasChoices("category", "productCategory"))
    plan_id: str = Field(default="DAILY", alias="planId")
    start_date: datetime = Field(..., alias="startDate")
    end_date: datetime = Field(..., alias="endDate")
    delivery_type: DeliveryType = Field(default=DeliveryType.DELIVERY, alias="deliveryType")
    address: str = Field(default="")
    addons: List[AddonItem] = Field(default_factory=list)
    protection_plan: str = Field(default="none", alias="protectionPlan")
    shipping_city: Optional[str] = Field(default=None, alias="shippingCity")

    @validator("addons", pre=True)
    def _coerce_addons(cls, value):
        """Plain add-on ids become single-quantity lines."""
        if value is None:
            return []
        return [{"addon_id": item} if isinstance(item, str) else item for item in value]

    @validator("delivery_type", pre=True)
    def _normalize_delivery_type(cls, value):
        parsed = DeliveryType.parse(value)
        if parsed is None:
            raise ValueError("deliveryType must be DELIVERY or PICKUP")
        return parsed

    @validator("start_date", "end_date")
    def _normalize_timezone(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "BookingRequest":
        """Parse a raw body, reporting problems as ``BookingValidationError``."""
        try:
            request = cls.model_validate(payload or {})
        except ValidationError as exc:
            fields = sorted({".".join(str(part) for part in error["loc"]) for error in exc.errors()})
            raise BookingValidationError("Missing or invalid fields: {0}".format(", ".join(fields)))
        if request.end_date <= request.start_date:
            raise BookingValidationError("endDate must be later than startDate.")
        return request

    @property
    def is_authenticated(self) -> bool:
        return (self.user_id or "").strip().lower() not in ANONYMOUS_USER_IDS


class BookingDecision(BaseModel):
    """Outcome of a booking request handed to the API and notification layers."""

    booking_id: str
    device_id: str
    category: str
    stage: BookingStage
    quote: Optional[PriceQuote] = None
    order_id: Optional[str] = None
    demo: bool = False

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": True,
            "bookingId": self.booking_id,
            "deviceId": self.device_id,
            "orderId": self.order_id,
            "total": self.quote.total if self.quote else 0,
            "payableNow": self.quote.payable_now if self.quote else 0,
            "quote": self.quote.to_response() if self.quote else None,
            "demo": self.demo,
            "message": "Booking confirmed (Demo Mode)!" if self.demo else "Booking confirmed!",
        }


class BookingOrchestrator:
    """Runs ``Requested -> EligibilityChecked -> Allocated -> Quoted -> Persisted``.

    Risk scoring happens later, when the payment webhook reports the order
    as paid, and moves the booking to Approved, ManualReview or Rejected.
    Approved bookings become Active; ManualReview bookings wait for
    ``activate_booking``.
    """

    def __init__(
        self,
        device_repository: DeviceRepository,
        booking_repository: BookingRepository,
        user_repository: UserRepository,
        order_repository: OrderRepository,
        catalog_repository: CatalogRepository,
        allocation_engine: AllocationEngine,
        pricing_engine: PricingEngine,
        protection_ledger: ProtectionLedger,
        risk_scorer: RiskScorer,
        storage_guard: StorageGuard,
        access_policy: Optional[AccessPolicy] = None,
    ) -> None:
        self._devices = device_repository
        self._bookings = booking_repository
        self._users = user_repository
        self._orders = order_repository
        self._catalog = catalog_repository
        self._allocation = allocation_engine
        self._pricing = pricing_engine
        self._protection = protection_ledger
        self._risk = risk_scorer
        self._guard = storage_guard
        self._policy = access_policy or AccessPolicy()

    # -- booking request ---------------------------------------------------

    async def request(self, booking_request: BookingRequest) -> BookingDecision:
        """Decide and persist one booking request.

        Raises:
            AuthRequiredError: No authenticated user.
            KycRequiredError: User KYC is not approved.
            PickupRestrictedError: Self-pickup without KYC and booking history.
            NoAvailabilityError: No device free for the requested range.
            BookingValidationError: Pricing rejected the request.
            DependencyError: Storage failed and fail-open does not apply.
        """
        if not booking_request.is_authenticated:
            raise AuthRequiredError()
        user_id = booking_request.user_id.strip()
        logger.info(
            "Booking requested user_id=%s category=%s start=%s end=%s delivery=%s",
            user_id,
            booking_request.category,
            booking_request.start_date,
            booking_request.end_date,
            booking_request.delivery_type.value,
        )

        try:
            await self._check_eligibility(user_id, booking_request.delivery_type)
            device_id = await self._allocation.find_available_device(
                booking_request.category,
                booking_request.start_date,
                booking_request.end_date,
            )
        except DependencyError:
            if self._policy.allows_fail_open(user_id):
                return self._demo_decision(booking_request)
            raise
        if device_id is None:
            raise NoAvailabilityError()

        settings = await self._catalog_settings(booking_request.category)
        quote = self._pricing.quote_for_range(
            booking_request.category,
            booking_request.start_date,
            booking_request.end_date,
            addons=booking_request.addons,
            protection_plan_id=booking_request.protection_plan,
            settings=settings,
        )

        booking = BookingModel(
            booking_id=new_document_id(),
            user_id=user_id,
            device_id=device_id,
            category=booking_request.category,
            plan_id=booking_request.plan_id or "DAILY",
            start_time=booking_request.start_date,
            end_time=booking_request.end_date,
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            stage=BookingStage.PERSISTED,
            total_price=quote.total,
            payable_now=quote.payable_now,
            deposit=quote.deposit,
            addons=booking_request.addons,
            extra_controllers=quote.extra_controllers,
            protection_plan=quote.protection_plan,
            delivery_type=booking_request.delivery_type,
            address=booking_request.address,
            order_id=new_document_id("order"),
        )
        stored = await self._allocation.reserve(booking)
        if stored is None:
            raise NoAvailabilityError()

        await self._set_device_status(stored.device_id, DeviceStatus.RENTED)
        await self._create_order(stored, quote, booking_request.shipping_city)
        logger.info(
            "Booking persisted booking_id=%s device_id=%s total=%s",
            stored.booking_id,
            stored.device_id,
            quote.total,
        )
        return BookingDecision(
            booking_id=stored.booking_id,
            device_id=stored.device_id,
            category=stored.category,
            stage=BookingStage.PERSISTED,
            quote=quote,
            order_id=stored.order_id,
        )

    async def _check_eligibility(self, user_id: str, delivery_type: DeliveryType) -> None:
        user = await self._guard.read("get_user", lambda: self._users.get_user(user_id))
        if user is None:
            logger.warning("User %s not found. Treating as unverified.", user_id)
            raise KycRequiredError()
        if not user.is_kyc_approved:
            raise KycRequiredError()
        if delivery_type == DeliveryType.PICKUP:
            prior_bookings = user.total_bookings
            if prior_bookings < 1:
                prior_bookings = await self._guard.read(
                    "count_user_bookings",
                    lambda: self._bookings.count_user_bookings(user_id),
                )
            if prior_bookings < 1:
                raise PickupRestrictedError()

    def _demo_decision(self, booking_request: BookingRequest) -> BookingDecision:
        device_id = self._policy.demo_device_for(booking_request.category)
        decision = BookingDecision(
            booking_id=new_document_id("demo"),
            device_id=device_id,
            category=booking_request.category,
            stage=BookingStage.ALLOCATED,
            demo=True,
        )
        logger.warning(
            "Storage unavailable, serving demo booking user_id=%s booking_id=%s device_id=%s",
            booking_request.user_id,
            decision.booking_id,
            device_id,
        )
        return decision

    async def _catalog_settings(self, category: str) -> Optional[CatalogSettingsModel]:
        return await self._guard.read("get_catalog_settings", lambda: self._catalog.get_catalog_settings(category))

    async def _set_device_status(self, device_id: str, status: DeviceStatus) -> None:
        """Best-effort device status flip; failures are logged, not rolled back."""
        try:
            await self._guard.write(
                "update_device_status",
                lambda: self._devices.update_device_status(device_id, status),
            )
        except (DependencyError, ModelError):
            logger.warning("Failed to update device status device_id=%s status=%s", device_id, status.value)

    async def _create_order(self, booking: BookingModel, quote: PriceQuote, shipping_city: Optional[str]) -> None:
        order = OrderModel(
            order_id=booking.order_id,
            customer_id=booking.user_id,
            booking_id=booking.booking_id,
            total_amount=quote.total,
            payment_status=PaymentStatus.PENDING,
            order_status=OrderStatus.PLACED,
            shipping_city=shipping_city,
        )
        try:
            await self._guard.write("create_order", lambda: self._orders.create_order(order))
        except (DependencyError, ModelError):
            logger.warning("Failed to create order order_id=%s booking_id=%s", order.order_id, booking.booking_id)

    # -- pricing and availability ------------------------------------------

    async def price(
        self,
        category: str,
        days: int,
        extra_controllers: int = 0,
        protection_plan_id: Optional[str] = "none",
        addons_total: Rupees = 0,
    ) -> PriceQuote:
        """Quote a rental against the stored catalog settings."""
        settings = await self._catalog_settings(category)
        return self._pricing.quote(
            category,
            days,
            extra_controllers=extra_controllers,
            protection_plan_id=protection_plan_id,
            addons_total=addons_total,
            settings=settings,
        )

    async def month_availability(self, category: str, year: int, month: int) -> List[Dict[str, str]]:
        return await self._allocation.get_month_availability(category, year, month)

    # -- payment webhook ---------------------------------------------------

    async def handle_payment_update(
        self,
        order_id: str,
        payment_status: Any,
        now: Optional[datetime] = None,
    ) -> Optional[RiskAssessmentModel]:
        """Apply a payment status update and score the order when it becomes paid.

        Returns the assessment, or ``None`` when no scoring was triggered
        (not a transition to paid, or the order already carries a decision).
        """
        new_status = PaymentStatus.parse(payment_status)
        if new_status is None:
            raise BookingValidationError("Unknown payment status: {0}".format(payment_status))
        order = await self._get_order(order_id)
        previous_status = order.payment_status

        if not should_score(previous_status, new_status) or order.has_risk_decision:
            if previous_status != new_status:
                await self._guard.write(
                    "update_order",
                    lambda: self._orders.update_order(order.copy_with(payment_status=new_status)),
                )
            logger.info(
                "Payment update without scoring order_id=%s before=%s after=%s scored=%s",
                order_id,
                previous_status.value,
                new_status.value,
                order.has_risk_decision,
            )
            return None

        paid_order = order.copy_with(payment_status=PaymentStatus.PAID)
        assessment = await self._risk.score(paid_order, now=now)
        changes: Dict[str, Any] = {
            "ai_risk_score": assessment.score,
            "ai_decision": assessment.decision,
            "ai_approval": assessment.approval_label,
            "risk_reasons": assessment.reasons,
        }
        if assessment.decision == RiskDecision.REJECT:
            # Refund execution belongs to the payment gateway; only the intent is recorded.
            changes.update(
                order_status=OrderStatus.CANCELLED,
                payment_status=PaymentStatus.REFUNDED,
                refund_requested=True,
            )
            logger.warning("Order %s rejected by risk model, refund requested", order_id)
        scored_order = paid_order.copy_with(**changes)
        await self._guard.write("update_order", lambda: self._orders.update_order(scored_order))

        if scored_order.booking_id:
            await self._apply_risk_to_booking(scored_order, assessment)
        return assessment

    async def _get_order(self, order_id: str) -> OrderModel:
        try:
            return await self._guard.read("get_order", lambda: self._orders.get_order(order_id))
        except ModelNotFoundError:
            raise BookingNotFoundError("Order not found.")

    async def _apply_risk_to_booking(self, order: OrderModel, assessment: RiskAssessmentModel) -> None:
        """Mirror the risk outcome onto the linked booking; failures are logged."""
        try:
            booking = await self._get_booking(order.booking_id)
            changes: Dict[str, Any] = {
                "risk_score": assessment.score,
                "risk_decision": assessment.decision,
                "stage": _STAGE_BY_DECISION[assessment.decision],
                "payment_status": order.payment_status,
            }
            rejected = assessment.decision == RiskDecision.REJECT and not booking.is_terminal
            if rejected:
                changes["status"] = BookingStatus.CANCELLED
            elif assessment.decision == RiskDecision.APPROVE and booking.status == BookingStatus.PENDING:
                changes["status"] = BookingStatus.ACTIVE
            updated = booking.copy_with(**changes)
            await self._guard.write("update_booking", lambda: self._bookings.update_booking(updated))
        except (BookingNotFoundError, DependencyError, ModelError):
            logger.exception("Failed to apply risk decision to booking_id=%s", order.booking_id)
            return
        if rejected:
            await self._set_device_status(booking.device_id, DeviceStatus.AVAILABLE)

    # -- lifecycle ---------------------------------------------------------

    async def _get_booking(self, booking_id: str) -> BookingModel:
        try:
            return await self._guard.read("get_booking", lambda: self._bookings.get_booking(booking_id))
        except ModelNotFoundError:
            raise BookingNotFoundError()

    async def activate_booking(self, booking_id: str) -> BookingModel:
        """Approve a pending booking by hand and mark its device rented.

        Used for bookings held in ManualReview or approved outside the
        payment webhook.

        Raises:
            BookingStateError: If the booking is not Pending.
        """
        booking = await self._get_booking(booking_id)
        if booking.status != BookingStatus.PENDING:
            raise BookingStateError("Booking {0} is {1}, not Pending.".format(booking_id, booking.status.value))
        activated = booking.copy_with(status=BookingStatus.ACTIVE, stage=BookingStage.APPROVED)
        await self._guard.write("update_booking", lambda: self._bookings.update_booking(activated))
        await self._set_device_status(booking.device_id, DeviceStatus.RENTED)
        logger.info("Booking activated booking_id=%s device_id=%s", booking_id, booking.device_id)
        return activated

    async def cancel_booking(self, booking_id: str) -> BookingModel:
        """Cancel a booking and release its device.

        Raises:
            BookingStateError: If the booking is already completed or cancelled.
        """
        booking = await self._get_booking(booking_id)
        if booking.is_terminal:
            raise BookingStateError("Booking {0} is already {1}.".format(booking_id, booking.status.value))
        cancelled = booking.copy_with(status=BookingStatus.CANCELLED)
        await self._guard.write("update_booking", lambda: self._bookings.update_booking(cancelled))
        await self._set_device_status(booking.device_id, DeviceStatus.AVAILABLE)
        logger.info("Booking cancelled booking_id=%s", booking_id)
        return cancelled

    async def extend_booking(self, booking_id: str, new_end: datetime) -> Tuple[BookingModel, PriceQuote]:
        """Move the end of a booking later if its device stays free, then re-quote.

        Raises:
            BookingStateError: If the booking is terminal.
            BookingValidationError: If ``new_end`` does not extend the booking.
            NoAvailabilityError: If the extended range collides with another booking.
        """
        booking = await self._get_booking(booking_id)
        if booking.is_terminal:
            raise BookingStateError("Booking {0} is already {1}.".format(booking_id, booking.status.value))
        new_end = ensure_utc(new_end)
        if new_end <= booking.end_time:
            raise BookingValidationError("New end date must be after the current end date.")

        settings = await self._catalog_settings(booking.category)
        quote = self._pricing.quote_for_range(
            booking.category,
            booking.start_time,
            new_end,
            addons=booking.addons,
            protection_plan_id=booking.protection_plan,
            settings=settings,
        )
        extended = booking.copy_with(
            end_time=new_end,
            total_price=quote.total,
            payable_now=quote.payable_now,
            deposit=quote.deposit,
        )
        stored = await self._guard.write("save_if_free", lambda: self._bookings.save_if_free(extended))
        if not stored:
            raise NoAvailabilityError("Console is booked by someone else during the extension.")
        logger.info("Booking extended booking_id=%s end=%s days=%s", booking_id, new_end, quote.days)
        return extended, quote

    async def complete_booking(
        self,
        booking_id: str,
        damage_type: Optional[DamageType] = None,
        damage_cost: Optional[Rupees] = None,
        notes: str = "",
    ) -> Tuple[BookingModel, Optional[DamageAssessment]]:
        """Record the console's return, release the device and assess any damage."""
        booking = await self._get_booking(booking_id)
        if booking.is_terminal:
            raise BookingStateError("Booking {0} is already {1}.".format(booking_id, booking.status.value))
        assessment = None
        if damage_type is not None:
            try:
                assessment = self._protection.assess_damage(
                    booking_id,
                    booking.protection_plan,
                    damage_type,
                    estimated_cost=damage_cost,
                    notes=notes,
                )
            except ValueError as exc:
                raise BookingValidationError(str(exc))
        completed = booking.copy_with(status=BookingStatus.COMPLETED)
        await self._guard.write("update_booking", lambda: self._bookings.update_booking(completed))
        await self._set_device_status(booking.device_id, DeviceStatus.AVAILABLE)
        logger.info("Booking completed booking_id=%s damage=%s", booking_id, bool(assessment))
        return completed, assessment

    async def mark_overdue(self, now: Optional[datetime] = None) -> int:
        """Flip Active bookings whose end has passed to Overdue; return how many changed."""
        cutoff = ensure_utc(now) if now is not None else utc_now()
        candidates = await self._guard.read(
            "list_overdue_candidates",
            lambda: self._bookings.list_overdue_candidates(cutoff),
        )
        processed = 0
        for booking in candidates:
            overdue = booking.copy_with(status=BookingStatus.OVERDUE)
            await self._guard.write("update_booking", lambda: self._bookings.update_booking(overdue))
            processed += 1
        logger.info("Overdue check completed processed=%d", processed)
        return processed


__all__ = [
    "BookingDecision",
    "BookingOrchestrator",
    "BookingRequest",
]

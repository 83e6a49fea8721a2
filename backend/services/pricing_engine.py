"""Tiered rental pricing with add-ons, protection, GST and refundable deposit."""

from __future__ import annotations

from datetime import datetime
import logging
import math
from typing import Dict, Iterable, Optional

from pydantic import BaseModel, Field

from common.common_functions import round_half_up
from common.protection_catalog import ProtectionLedger
from models.base import Rupees, ensure_utc
from models.bookings import AddonItem
from models.catalog import CatalogSettingsModel
from models.enums import PricingTier
from models.exceptions import BookingValidationError


logger = logging.getLogger(__name__)

MONTHLY_TIER_MIN_DAYS = 28
WEEKLY_TIER_MIN_DAYS = 7
SECONDS_PER_DAY = 24 * 60 * 60


class PriceQuote(BaseModel):
    """Price breakdown for one rental.

    ``total`` includes the refundable deposit; ``payable_now`` leaves it out
    for callers that collect the deposit as a separate hold.
    """

    category: str
    tier: PricingTier
    days: int = Field(..., ge=1)
    extra_controllers: int = Field(default=0, ge=0)
    protection_plan: str = Field(default="none")
    base_price: Rupees
    controller_price: Rupees
    protection_cost: Rupees
    addons_price: Rupees
    subtotal: Rupees
    gst: Rupees
    deposit: Rupees
    total: Rupees
    payable_now: Rupees

    def to_response(self) -> Dict[str, object]:
        """Return the camelCase body used by the booking API."""
        return {
            "category": self.category,
            "tier": self.tier.value,
            "days": self.days,
            "extraControllers": self.extra_controllers,
            "protectionPlan": self.protection_plan,
            "basePrice": self.base_price,
            "controllerPrice": self.controller_price,
            "protectionCost": self.protection_cost,
            "addonsPrice": self.addons_price,
            "subtotal": self.subtotal,
            "gst": self.gst,
            "deposit": self.deposit,
            "total": self.total,
            "payableNow": self.payable_now,
        }


def rental_days(start: datetime, end: datetime) -> int:
    """Return billable days: partial days round up and the minimum is one."""
    seconds = (ensure_utc(end) - ensure_utc(start)).total_seconds()
    return max(1, math.ceil(seconds / SECONDS_PER_DAY))


def split_addons(addons: Iterable[AddonItem]) -> tuple:
    """Return ``(extra_controllers, flat_addons_total)`` for a list of add-ons."""
    controllers = 0
    flat_total = 0
    for addon in addons:
        if addon.is_extra_controller:
            controllers += int(addon.quantity)
        else:
            flat_total += addon.line_total
    return controllers, flat_total


class PricingEngine:
    """Compute rental quotes from catalog settings and protection plans."""

    def __init__(
        self,
        protection_ledger: ProtectionLedger,
        gst_rate: float = 0.18,
        deposit_rate: float = 0.5,
    ) -> None:
        if gst_rate < 0 or deposit_rate < 0:
            raise ValueError("gst_rate and deposit_rate must be non-negative")
        self._protection_ledger = protection_ledger
        self._gst_rate = gst_rate
        self._deposit_rate = deposit_rate

    @staticmethod
    def select_tier(days: int) -> PricingTier:
        if days >= MONTHLY_TIER_MIN_DAYS:
            return PricingTier.MONTHLY
        if days >= WEEKLY_TIER_MIN_DAYS:
            return PricingTier.WEEKLY
        return PricingTier.DAILY

    def quote(
        self,
        category: str,
        days: int,
        extra_controllers: int = 0,
        protection_plan_id: Optional[str] = "none",
        addons_total: Rupees = 0,
        settings: Optional[CatalogSettingsModel] = None,
    ) -> PriceQuote:
        """Price a rental of ``days`` days.

        Raises:
            BookingValidationError: If inputs are out of range, the category is
                not configured or disabled, or too many controllers are requested.
        """
        if days < 1:
            raise BookingValidationError("Rental must last at least one day.")
        if extra_controllers < 0 or addons_total < 0:
            raise BookingValidationError("Add-on quantities and prices cannot be negative.")
        if settings is None:
            raise BookingValidationError("Pricing is not configured for category {0}.".format(category))
        if not settings.enabled:
            raise BookingValidationError("Category {0} is not available for rent.".format(category))
        if extra_controllers:
            if not settings.extra_controller_enabled:
                raise BookingValidationError("Extra controllers are not offered for {0}.".format(category))
            if extra_controllers > settings.max_controllers:
                raise BookingValidationError(
                    "At most {0} extra controllers allowed for {1}.".format(settings.max_controllers, category)
                )

        tier = self.select_tier(days)
        if tier == PricingTier.MONTHLY:
            base_price = settings.monthly_rate
            controller_price = extra_controllers * settings.controller_weekly_rate * 4
        elif tier == PricingTier.WEEKLY:
            weeks = math.ceil(days / 7)
            base_price = settings.weekly_rate * weeks
            controller_price = extra_controllers * settings.controller_weekly_rate * weeks
        else:
            base_price = settings.daily_rate * days
            controller_price = extra_controllers * settings.controller_daily_rate * days

        plan = self._protection_ledger.get_plan(protection_plan_id)
        protection_cost = self._protection_ledger.protection_cost(plan.plan_id, days)
        subtotal = base_price + controller_price + protection_cost + int(addons_total)
        gst = round_half_up(subtotal * self._gst_rate)
        deposit = round_half_up(subtotal * self._deposit_rate)

        quote = PriceQuote(
            category=category,
            tier=tier,
            days=days,
            extra_controllers=extra_controllers,
            protection_plan=plan.plan_id,
            base_price=base_price,
            controller_price=controller_price,
            protection_cost=protection_cost,
            addons_price=int(addons_total),
            subtotal=subtotal,
            gst=gst,
            deposit=deposit,
            total=subtotal + gst + deposit,
            payable_now=subtotal + gst,
        )
        logger.debug(
            "Quoted category=%s days=%s tier=%s subtotal=%s total=%s",
            category,
            days,
            tier.value,
            subtotal,
            quote.total,
        )
        return quote

    def quote_for_range(
        self,
        category: str,
        start: datetime,
        end: datetime,
        addons: Iterable[AddonItem] = (),
        protection_plan_id: Optional[str] = "none",
        settings: Optional[CatalogSettingsModel] = None,
    ) -> PriceQuote:
        """Price a rental given its date range and add-on lines."""
        extra_controllers, addons_total = split_addons(addons)
        return self.quote(
            category=category,
            days=rental_days(start, end),
            extra_controllers=extra_controllers,
            protection_plan_id=protection_plan_id,
            addons_total=addons_total,
            settings=settings,
        )

"""Payment order model scored by the risk pipeline."""

import logging
from typing import List, Optional

from pydantic import Field, validator

from .base import BaseDocumentModel, Rupees
from .enums import OrderStatus, PaymentStatus, RiskDecision


logger = logging.getLogger(__name__)


class OrderModel(BaseDocumentModel):
    """Payment record for a booking, written back with the risk decision."""

    order_id: str = Field(..., min_length=1)
    customer_id: str = Field(..., min_length=1)
    booking_id: Optional[str] = Field(default=None)
    total_amount: Rupees = Field(default=0, ge=0)
    payment_status: PaymentStatus = Field(default=PaymentStatus.PENDING)
    order_status: OrderStatus = Field(default=OrderStatus.PLACED)
    shipping_city: Optional[str] = Field(default=None)

    ai_risk_score: Optional[int] = Field(default=None, ge=0, le=100)
    ai_decision: Optional[RiskDecision] = Field(default=None)
    ai_approval: Optional[str] = Field(default=None)
    risk_reasons: List[str] = Field(default_factory=list)
    refund_requested: bool = Field(default=False)

    @validator("payment_status", pre=True)
    def _normalize_payment_status(cls, value):
        """Accept gateway spellings such as ``PAID`` or ``SUCCESS``."""
        parsed = PaymentStatus.parse(value)
        if parsed is None:
            raise ValueError("Unknown payment status: {0}".format(value))
        return parsed

    @validator("shipping_city")
    def _normalize_city(cls, value: Optional[str]) -> Optional[str]:
        """Strip blank city names to ``None``."""
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @property
    def has_risk_decision(self) -> bool:
        """Return whether the order was already scored."""
        return self.ai_decision is not None

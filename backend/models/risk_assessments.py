"""Risk assessment snapshot written onto a paid order."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .base import BaseDocumentModel, utc_now
from .enums import RiskDecision


class RiskAssessmentModel(BaseDocumentModel):
    """Explainable outcome of the additive payment risk model."""

    order_id: str = Field(..., min_length=1)
    customer_id: Optional[str] = Field(default=None)
    score: int = Field(..., ge=0, le=100)
    raw_score: int = Field(default=0, ge=0)
    decision: RiskDecision = Field(...)
    reasons: List[str] = Field(default_factory=list)
    degraded_factors: List[str] = Field(default_factory=list)
    model_name: str = Field(default="additive_risk")
    model_version: str = Field(default="v1")
    evaluated_at: datetime = Field(default_factory=utc_now)

    @property
    def approval_label(self) -> str:
        """Return the lower-case approval flag stored on order documents."""
        if self.decision == RiskDecision.APPROVE:
            return "approved"
        if self.decision == RiskDecision.REJECT:
            return "rejected"
        return "manual_review"

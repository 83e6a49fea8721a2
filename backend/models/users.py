"""Customer profile model used for booking eligibility and risk checks."""

import logging
from typing import Optional

from pydantic import Field, validator

from .base import BaseDocumentModel
from .enums import KycStatus


logger = logging.getLogger(__name__)


class UserModel(BaseDocumentModel):
    """Represents a renting customer."""

    user_id: str = Field(..., min_length=1)
    email: str = Field(default="")
    phone: str = Field(default="")
    full_name: str = Field(default="")
    kyc_status: KycStatus = Field(default=KycStatus.NOT_STARTED)
    total_bookings: int = Field(default=0, ge=0)
    city: Optional[str] = Field(default=None)

    @validator("kyc_status", pre=True, always=True)
    def _normalize_kyc_status(cls, value):
        """Accept both ``approved`` and ``APPROVED`` spellings used by older records."""
        parsed = KycStatus.parse(value)
        if parsed is None:
            if value not in (None, ""):
                logger.warning("Unknown kyc_status=%s, treating as NOT_STARTED", value)
            return KycStatus.NOT_STARTED
        return parsed

    @validator("total_bookings", pre=True, always=True)
    def _normalize_total_bookings(cls, value):
        """Coerce missing booking counters to zero."""
        try:
            return max(0, int(value or 0))
        except (TypeError, ValueError):
            logger.warning("Invalid total_bookings=%s, using 0", value)
            return 0

    @property
    def is_kyc_approved(self) -> bool:
        """Return whether identity verification has passed."""
        return self.kyc_status == KycStatus.APPROVED

"""Device model for individual rentable console units."""

import logging

from pydantic import Field, validator

from .base import BaseDocumentModel
from .enums import UNALLOCATABLE_DEVICE_STATUSES, DeviceStatus


logger = logging.getLogger(__name__)


class DeviceModel(BaseDocumentModel):
    """One physical console in the fleet inventory."""

    device_id: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    status: DeviceStatus = Field(default=DeviceStatus.AVAILABLE)
    serial_number: str = Field(default="")

    @validator("status", pre=True)
    def _normalize_status(cls, value):
        """Accept lower-case or legacy status strings from storage."""
        parsed = DeviceStatus.parse(value)
        if parsed is None:
            logger.warning("Unknown device status=%s, treating as MAINTENANCE", value)
            return DeviceStatus.MAINTENANCE
        return parsed

    @property
    def is_allocatable(self) -> bool:
        """Return whether the unit may receive new bookings."""
        return self.status not in UNALLOCATABLE_DEVICE_STATUSES

    def sort_key(self) -> tuple:
        """Stable first-fit ordering: numeric ids numerically, then lexically."""
        raw = self.device_id.strip()
        if raw.isdigit():
            return (0, int(raw), raw)
        return (1, 0, raw)

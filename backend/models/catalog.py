"""Per-category pricing configuration consumed by the pricing engine."""

import logging

from pydantic import Field, root_validator

from .base import BaseDocumentModel, Rupees


logger = logging.getLogger(__name__)


class CatalogSettingsModel(BaseDocumentModel):
    """Rates and limits for one device category."""

    category: str = Field(..., min_length=1)
    enabled: bool = Field(default=True)
    featured: bool = Field(default=False)
    max_controllers: int = Field(default=4, ge=0)
    extra_controller_enabled: bool = Field(default=True)

    daily_rate: Rupees = Field(default=0, ge=0)
    weekly_rate: Rupees = Field(default=0, ge=0)
    monthly_rate: Rupees = Field(default=0, ge=0)
    controller_daily_rate: Rupees = Field(default=0, ge=0)
    controller_weekly_rate: Rupees = Field(default=0, ge=0)
    controller_monthly_rate: Rupees = Field(default=0, ge=0)
    display_order: int = Field(default=0)

    @root_validator(pre=True)
    def _accept_legacy_keys(cls, values):
        """Map ``device_category``/``is_enabled``/``is_featured`` storage keys."""
        if not isinstance(values, dict):
            return values
        payload = dict(values)
        if "category" not in payload and "device_category" in payload:
            payload["category"] = payload.pop("device_category")
        if "enabled" not in payload and "is_enabled" in payload:
            payload["enabled"] = payload.pop("is_enabled")
        if "featured" not in payload and "is_featured" in payload:
            payload["featured"] = payload.pop("is_featured")
        return payload

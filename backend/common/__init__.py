"""Common reusable utility exports."""

from .common_functions import iter_month_days, new_document_id, parse_month, round_half_up
from .protection_catalog import (
    DamageAssessment,
    DamageLiability,
    ProtectionLedger,
    ProtectionPlanModel,
    get_default_protection_ledger,
)

__all__ = [
    "round_half_up",
    "parse_month",
    "iter_month_days",
    "new_document_id",
    "DamageAssessment",
    "DamageLiability",
    "ProtectionLedger",
    "ProtectionPlanModel",
    "get_default_protection_ledger",
]

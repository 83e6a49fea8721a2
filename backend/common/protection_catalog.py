"""Protection plan catalog and damage liability calculations."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError, validator

from models.base import Rupees
from models.enums import DamageType

from .common_functions import round_half_up


logger = logging.getLogger(__name__)

_DEFAULT_PLANS_PATH = Path(__file__).resolve().parents[1] / "settings" / "protection_plans.json"
_DEFAULT_LEDGER_LOCK = RLock()
_DEFAULT_LEDGER_INSTANCE: Optional["ProtectionLedger"] = None

DEFAULT_PLAN_ID = "none"

# Rental value thresholds, highest first.
RECOMMENDATION_THRESHOLDS: Tuple[Tuple[int, str], ...] = (
    (10000, "elite"),
    (5000, "premium"),
    (2000, "basic"),
)

DAMAGE_COST_RANGES: Dict[DamageType, Dict[str, int]] = {
    DamageType.COSMETIC: {"min": 500, "max": 2000, "typical": 1000},
    DamageType.FUNCTIONAL: {"min": 2000, "max": 8000, "typical": 4000},
    DamageType.SEVERE: {"min": 8000, "max": 25000, "typical": 15000},
}

COVERAGE_KINDS: Dict[str, str] = {
    "accidental": "accidental_damage",
    "theft": "theft",
    "data": "loss_of_data",
}

_FALLBACK_NONE_PLAN = {
    "plan_id": DEFAULT_PLAN_ID,
    "name": "No Protection",
    "daily_rate": 0,
    "max_coverage": 0,
    "coverage_percentage": 0,
}


class PlanCoverage(BaseModel):
    """What kinds of loss a plan covers."""

    accidental_damage: bool = Field(default=False)
    theft: bool = Field(default=False)
    loss_of_data: bool = Field(default=False)
    priority_support: bool = Field(default=False)


class ProtectionPlanModel(BaseModel):
    """Protection plan definition loaded from `protection_plans.json`."""

    plan_id: str = Field(..., min_length=1)
    name: str = Field(default="")
    daily_rate: Rupees = Field(default=0, ge=0)
    description: str = Field(default="")
    badge: Optional[str] = Field(default=None)
    coverage: PlanCoverage = Field(default_factory=PlanCoverage)
    max_coverage: Rupees = Field(default=0, ge=0)
    coverage_percentage: int = Field(default=0, ge=0, le=100)
    features: List[str] = Field(default_factory=list)

    @validator("plan_id", pre=True)
    def _normalize_plan_id(cls, value: Any) -> str:
        """Plan ids are matched case-insensitively."""
        return str(value or "").strip().lower()


class DamageLiability(BaseModel):
    """Split of a damage cost between the protection plan and the customer."""

    plan_id: str
    total_damage: Rupees
    coverage_amount: Rupees
    customer_liability: Rupees
    protection_savings: Rupees


class DamageAssessment(BaseModel):
    """Damage report outcome for a returned booking."""

    booking_id: str
    plan_id: str
    damage_type: DamageType
    estimated_cost: Rupees
    covered: bool
    liability: DamageLiability
    notes: str = Field(default="")


class ProtectionLedger:
    """Loader and calculator for protection plans."""

    def __init__(self, path: Optional[str] = None) -> None:
        self._path = Path(path).resolve() if path else _DEFAULT_PLANS_PATH
        self._lock = RLock()
        self._plans: List[ProtectionPlanModel] = []
        self._plan_map: Dict[str, ProtectionPlanModel] = {}
        self._load_plans(force=True)

    @property
    def path(self) -> str:
        """Return plans JSON path."""
        return str(self._path)

    def _load_plans(self, force: bool = False) -> None:
        """Load and validate plans from file; the ``none`` plan always exists."""
        with self._lock:
            if self._plans and not force:
                return

            loaded_plans: List[ProtectionPlanModel] = []
            loaded_map: Dict[str, ProtectionPlanModel] = {}
            if self._path.exists():
                try:
                    raw = json.loads(self._path.read_text(encoding="utf-8"))
                    if not isinstance(raw, list):
                        raise ValueError("Protection plans file must contain a JSON array.")
                    for row in raw:
                        try:
                            plan = ProtectionPlanModel.model_validate(row)
                        except ValidationError:
                            logger.exception("Invalid protection plan row skipped row=%s", row)
                            continue
                        if plan.plan_id in loaded_map:
                            logger.warning("Duplicate protection plan id skipped plan_id=%s", plan.plan_id)
                            continue
                        loaded_plans.append(plan)
                        loaded_map[plan.plan_id] = plan
                except (OSError, ValueError):
                    logger.exception("Failed loading protection plans from path=%s", self._path)
                    loaded_plans, loaded_map = [], {}
            else:
                logger.warning("Protection plans file not found at path=%s", self._path)

            if DEFAULT_PLAN_ID not in loaded_map:
                fallback = ProtectionPlanModel.model_validate(_FALLBACK_NONE_PLAN)
                loaded_plans.insert(0, fallback)
                loaded_map[DEFAULT_PLAN_ID] = fallback

            self._plans = loaded_plans
            self._plan_map = loaded_map
            logger.info("Loaded protection plans count=%d from path=%s", len(self._plans), self._path)

    def list_plans(self) -> List[ProtectionPlanModel]:
        """Return all plans in file order."""
        self._load_plans(force=False)
        return list(self._plans)

    def get_plan(self, plan_id: Optional[str]) -> ProtectionPlanModel:
        """Return a plan by id; unknown or empty ids resolve to ``none``."""
        self._load_plans(force=False)
        normalized = str(plan_id or "").strip().lower()
        plan = self._plan_map.get(normalized)
        if plan is None:
            if normalized and normalized != DEFAULT_PLAN_ID:
                logger.warning("Unknown protection plan_id=%s, using %s", plan_id, DEFAULT_PLAN_ID)
            return self._plan_map[DEFAULT_PLAN_ID]
        return plan

    def protection_cost(self, plan_id: Optional[str], days: int) -> Rupees:
        """Return the premium for ``days`` rental days."""
        return self.get_plan(plan_id).daily_rate * max(0, int(days))

    def calculate_damage_liability(self, damage_cost: Rupees, plan_id: Optional[str]) -> DamageLiability:
        """Split ``damage_cost`` into covered amount and customer liability.

        Coverage is ``min(cost * pct / 100, max_coverage)`` rounded half-up,
        so the two parts always add back up to the damage cost.
        """
        if damage_cost < 0:
            raise ValueError("damage_cost cannot be negative")
        plan = self.get_plan(plan_id)
        uncapped = round_half_up(damage_cost * plan.coverage_percentage / 100)
        coverage_amount = min(uncapped, plan.max_coverage, int(damage_cost))
        customer_liability = max(0, int(damage_cost) - coverage_amount)
        return DamageLiability(
            plan_id=plan.plan_id,
            total_damage=int(damage_cost),
            coverage_amount=coverage_amount,
            customer_liability=customer_liability,
            protection_savings=coverage_amount,
        )

    def recommend(self, rental_value: Rupees) -> ProtectionPlanModel:
        """Suggest a plan for a rental of ``rental_value``; advisory only."""
        for threshold, plan_id in RECOMMENDATION_THRESHOLDS:
            if rental_value >= threshold:
                return self.get_plan(plan_id)
        return self.get_plan(DEFAULT_PLAN_ID)

    def is_damage_covered(self, plan_id: Optional[str], coverage_kind: str) -> bool:
        """Return whether the plan covers ``accidental``, ``theft`` or ``data`` loss."""
        flag = COVERAGE_KINDS.get(str(coverage_kind or "").strip().lower())
        if flag is None:
            return False
        return bool(getattr(self.get_plan(plan_id).coverage, flag))

    @staticmethod
    def estimated_cost_range(damage_type: DamageType) -> Dict[str, int]:
        return dict(DAMAGE_COST_RANGES[DamageType(damage_type)])

    def assess_damage(
        self,
        booking_id: str,
        plan_id: Optional[str],
        damage_type: DamageType,
        estimated_cost: Optional[Rupees] = None,
        notes: str = "",
    ) -> DamageAssessment:
        """Build a damage assessment for a returned booking.

        Without an explicit estimate the typical cost of the damage type is used.
        """
        parsed_type = DamageType.parse(damage_type)
        if parsed_type is None:
            raise ValueError("Unknown damage type: {0}".format(damage_type))
        cost = int(estimated_cost) if estimated_cost is not None else DAMAGE_COST_RANGES[parsed_type]["typical"]
        covered = self.is_damage_covered(plan_id, "accidental")
        liability = self.calculate_damage_liability(cost, plan_id)
        logger.info(
            "Damage assessed booking_id=%s plan_id=%s type=%s cost=%s liability=%s",
            booking_id,
            plan_id,
            parsed_type.value,
            cost,
            liability.customer_liability,
        )
        return DamageAssessment(
            booking_id=booking_id,
            plan_id=self.get_plan(plan_id).plan_id,
            damage_type=parsed_type,
            estimated_cost=cost,
            covered=covered,
            liability=liability,
            notes=notes,
        )


def get_default_protection_ledger() -> ProtectionLedger:
    """Return singleton protection ledger for modules that do not use DI."""
    global _DEFAULT_LEDGER_INSTANCE
    with _DEFAULT_LEDGER_LOCK:
        if _DEFAULT_LEDGER_INSTANCE is None:
            _DEFAULT_LEDGER_INSTANCE = ProtectionLedger()
        return _DEFAULT_LEDGER_INSTANCE

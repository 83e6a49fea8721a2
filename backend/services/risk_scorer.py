"""Additive payment risk model run when an order becomes paid."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import List, Optional

from models.base import ensure_utc, utc_now
from models.enums import PaymentStatus, RiskDecision
from models.exceptions import ScoringDegradation
from models.orders import OrderModel
from models.repositories import OrderRepository, UserRepository
from models.risk_assessments import RiskAssessmentModel

from .storage_guard import StorageGuard


logger = logging.getLogger(__name__)

MIN_SCORE = 0
MAX_SCORE = 100


@dataclass(frozen=True)
class RiskWeights:
    """Points and thresholds of the additive model."""

    very_high_amount: int = 100000
    very_high_amount_points: int = 30
    high_amount: int = 50000
    high_amount_points: int = 15
    kyc_points: int = 10
    new_user_max_orders: int = 3
    new_user_points: int = 20
    history_failure_points: int = 10
    velocity_window_sec: int = 600
    velocity_max_orders: int = 3
    velocity_points: int = 30
    home_city: str = "Chennai"
    geo_amount_threshold: int = 20000
    geo_points: int = 5
    review_above: int = 40
    reject_above: int = 70

    @classmethod
    def from_settings(cls, settings) -> "RiskWeights":
        return cls(
            velocity_window_sec=settings.risk_velocity_window_sec,
            velocity_max_orders=settings.risk_velocity_max_orders,
            home_city=settings.risk_home_city,
            geo_amount_threshold=settings.risk_geo_amount_threshold,
            review_above=settings.risk_review_above,
            reject_above=settings.risk_reject_above,
        )


def should_score(before: Optional[PaymentStatus], after: Optional[PaymentStatus]) -> bool:
    """Return ``True`` only on the edge where payment becomes paid."""
    before_status = PaymentStatus.parse(before)
    after_status = PaymentStatus.parse(after)
    return after_status == PaymentStatus.PAID and before_status != PaymentStatus.PAID


def clamp_score(value: int) -> int:
    return max(MIN_SCORE, min(MAX_SCORE, int(value)))


class RiskScorer:
    """Score paid orders and map the score to an approval decision."""

    def __init__(
        self,
        user_repository: UserRepository,
        order_repository: OrderRepository,
        storage_guard: Optional[StorageGuard] = None,
        weights: Optional[RiskWeights] = None,
    ) -> None:
        self._users = user_repository
        self._orders = order_repository
        self._guard = storage_guard or StorageGuard()
        self._weights = weights or RiskWeights()

    def decide(self, score: int) -> RiskDecision:
        if score > self._weights.reject_above:
            return RiskDecision.REJECT
        if score > self._weights.review_above:
            return RiskDecision.MANUAL_REVIEW
        return RiskDecision.APPROVE

    def _amount_points(self, amount: int, reasons: List[str]) -> int:
        weights = self._weights
        if amount > weights.very_high_amount:
            reasons.append("High Order Value (>1L)")
            return weights.very_high_amount_points
        if amount > weights.high_amount:
            reasons.append("Elevated Order Value (>50K)")
            return weights.high_amount_points
        return 0

    async def _history_points(self, order: OrderModel, reasons: List[str]) -> int:
        """KYC and order-history factors; any lookup failure raises ``ScoringDegradation``."""
        weights = self._weights
        points = 0
        try:
            user = await self._guard.read("get_user", lambda: self._users.get_user(order.customer_id))
            if user is None or not user.is_kyc_approved:
                points += weights.kyc_points
                reasons.append("KYC Not Approved")
            previous_orders = await self._guard.read(
                "count_user_orders",
                lambda: self._orders.count_user_orders(order.customer_id, exclude_order_id=order.order_id),
            )
        except Exception as exc:
            raise ScoringDegradation("user_history", exc, partial_points=points) from exc
        if previous_orders < weights.new_user_max_orders:
            points += weights.new_user_points
            reasons.append("New User (Less than {0} orders)".format(weights.new_user_max_orders))
        return points

    async def _velocity_points(self, order: OrderModel, now: datetime, reasons: List[str]) -> int:
        weights = self._weights
        since = now - timedelta(seconds=weights.velocity_window_sec)
        try:
            recent = await self._guard.read(
                "count_recent_orders",
                lambda: self._orders.count_recent_orders(order.customer_id, since),
            )
        except Exception as exc:
            raise ScoringDegradation("velocity", exc) from exc
        if recent > weights.velocity_max_orders:
            reasons.append(
                "Velocity Check Failed (>{0} orders in {1}m)".format(
                    weights.velocity_max_orders,
                    weights.velocity_window_sec // 60,
                )
            )
            return weights.velocity_points
        return 0

    def _geo_points(self, order: OrderModel, reasons: List[str]) -> int:
        # Placeholder heuristic, not a real fraud signal.
        weights = self._weights
        city = (order.shipping_city or "").strip().lower()
        if city != weights.home_city.strip().lower() and order.total_amount > weights.geo_amount_threshold:
            reasons.append("Shipping Outside {0}".format(weights.home_city))
            return weights.geo_points
        return 0

    async def score(self, order: OrderModel, now: Optional[datetime] = None) -> RiskAssessmentModel:
        """Score ``order``; sub-computation failures degrade the score instead of aborting."""
        evaluated_at = ensure_utc(now) if now is not None else utc_now()
        reasons: List[str] = []
        degraded: List[str] = []
        raw = self._amount_points(order.total_amount, reasons)

        try:
            raw += await self._history_points(order, reasons)
        except ScoringDegradation as exc:
            logger.warning("Risk factor degraded order_id=%s factor=%s cause=%r", order.order_id, exc.factor, exc.cause)
            raw += exc.partial_points + self._weights.history_failure_points
            reasons.append("User History Unavailable")
            degraded.append(exc.factor)

        try:
            raw += await self._velocity_points(order, evaluated_at, reasons)
        except ScoringDegradation as exc:
            logger.warning("Risk factor degraded order_id=%s factor=%s cause=%r", order.order_id, exc.factor, exc.cause)
            degraded.append(exc.factor)

        raw += self._geo_points(order, reasons)

        score = clamp_score(raw)
        decision = self.decide(score)
        logger.info(
            "Risk scored order_id=%s score=%s decision=%s reasons=%s",
            order.order_id,
            score,
            decision.value,
            reasons,
        )
        return RiskAssessmentModel(
            order_id=order.order_id,
            customer_id=order.customer_id,
            score=score,
            raw_score=max(0, raw),
            decision=decision,
            reasons=reasons,
            degraded_factors=degraded,
            evaluated_at=evaluated_at,
        )

"""Unit tests for the additive payment risk model."""

from datetime import timedelta
import unittest

from booking_fixtures import FailingUserRepository, fast_guard, user, utc

from models.enums import KycStatus, PaymentStatus, RiskDecision
from models.orders import OrderModel
from repositories.memory_repositories import InMemoryOrderRepository, InMemoryUserRepository
from services.risk_scorer import RiskScorer, RiskWeights, clamp_score, should_score


NOW = utc(2026, 4, 1, 12)


def order(amount: int, city: str = "Chennai", customer_id: str = "usr_1", order_id: str = "ord_1") -> OrderModel:
    return OrderModel(
        order_id=order_id,
        customer_id=customer_id,
        total_amount=amount,
        payment_status=PaymentStatus.PAID,
        shipping_city=city,
        created_at=NOW,
    )


class FixedCountOrderRepository(InMemoryOrderRepository):
    """Order counters pinned to fixed values."""

    def __init__(self, previous: int, recent: int) -> None:
        super().__init__()
        self._previous = previous
        self._recent = recent

    async def count_user_orders(self, customer_id, exclude_order_id=None):
        return self._previous

    async def count_recent_orders(self, customer_id, since):
        return self._recent


class BrokenVelocityOrderRepository(FixedCountOrderRepository):
    async def count_recent_orders(self, customer_id, since):
        raise RuntimeError("index missing")


class BrokenHistoryOrderRepository(FixedCountOrderRepository):
    async def count_user_orders(self, customer_id, exclude_order_id=None):
        raise RuntimeError("count query rejected")


class RiskScorerTests(unittest.IsolatedAsyncioTestCase):
    """Factor points, thresholds and reasons."""

    def scorer(self, users, orders, guard=None) -> RiskScorer:
        return RiskScorer(users, orders, storage_guard=guard or fast_guard())

    async def test_high_value_unverified_burst_is_rejected(self) -> None:
        users = InMemoryUserRepository([user(kyc_status=KycStatus.PENDING)])
        scorer = self.scorer(users, FixedCountOrderRepository(previous=1, recent=4))

        assessment = await scorer.score(order(150000), now=NOW)

        self.assertEqual(assessment.score, 90)
        self.assertEqual(assessment.decision, RiskDecision.REJECT)
        self.assertEqual(
            assessment.reasons,
            [
                "High Order Value (>1L)",
                "KYC Not Approved",
                "New User (Less than 3 orders)",
                "Velocity Check Failed (>3 orders in 10m)",
            ],
        )
        self.assertEqual(assessment.degraded_factors, [])

    async def test_regular_customer_is_approved(self) -> None:
        users = InMemoryUserRepository([user()])
        scorer = self.scorer(users, FixedCountOrderRepository(previous=5, recent=1))

        assessment = await scorer.score(order(2000), now=NOW)

        self.assertEqual(assessment.score, 0)
        self.assertEqual(assessment.decision, RiskDecision.APPROVE)
        self.assertEqual(assessment.reasons, [])

    async def test_elevated_value_shipped_elsewhere(self) -> None:
        users = InMemoryUserRepository([user()])
        scorer = self.scorer(users, FixedCountOrderRepository(previous=5, recent=0))

        assessment = await scorer.score(order(60000, city="Mumbai"), now=NOW)

        self.assertEqual(assessment.score, 20)
        self.assertIn("Elevated Order Value (>50K)", assessment.reasons)
        self.assertIn("Shipping Outside Chennai", assessment.reasons)

    async def test_home_city_match_ignores_case(self) -> None:
        users = InMemoryUserRepository([user()])
        scorer = self.scorer(users, FixedCountOrderRepository(previous=5, recent=0))

        assessment = await scorer.score(order(30000, city=" chennai "), now=NOW)

        self.assertEqual(assessment.score, 0)

    async def test_missing_user_counts_as_unverified(self) -> None:
        scorer = self.scorer(InMemoryUserRepository(), FixedCountOrderRepository(previous=5, recent=0))

        assessment = await scorer.score(order(1000), now=NOW)

        self.assertEqual(assessment.score, 10)
        self.assertEqual(assessment.reasons, ["KYC Not Approved"])

    async def test_history_failure_adds_fixed_penalty(self) -> None:
        users = FailingUserRepository()
        scorer = self.scorer(users, FixedCountOrderRepository(previous=5, recent=0))

        assessment = await scorer.score(order(1000), now=NOW)

        self.assertEqual(assessment.score, 10)
        self.assertEqual(assessment.decision, RiskDecision.APPROVE)
        self.assertIn("User History Unavailable", assessment.reasons)
        self.assertIn("user_history", assessment.degraded_factors)
        self.assertEqual(users.calls, 2)

    async def test_history_failure_keeps_kyc_points(self) -> None:
        users = InMemoryUserRepository([user(kyc_status=KycStatus.PENDING)])
        scorer = self.scorer(users, BrokenHistoryOrderRepository(previous=5, recent=0))

        assessment = await scorer.score(order(1000), now=NOW)

        self.assertEqual(assessment.score, 20)
        self.assertEqual(assessment.reasons, ["KYC Not Approved", "User History Unavailable"])
        self.assertEqual(assessment.degraded_factors, ["user_history"])

    async def test_velocity_failure_contributes_nothing(self) -> None:
        users = InMemoryUserRepository([user()])
        scorer = self.scorer(users, BrokenVelocityOrderRepository(previous=5, recent=0))

        assessment = await scorer.score(order(1000), now=NOW)

        self.assertEqual(assessment.score, 0)
        self.assertEqual(assessment.degraded_factors, ["velocity"])

    async def test_current_order_counts_toward_velocity_but_not_history(self) -> None:
        orders = InMemoryOrderRepository(
            [
                order(500, order_id="ord_{0}".format(i)).copy_with(created_at=NOW - timedelta(minutes=i))
                for i in range(1, 4)
            ]
        )
        current = order(500, order_id="ord_now")
        orders.add(current)
        scorer = self.scorer(InMemoryUserRepository([user()]), orders)

        assessment = await scorer.score(current, now=NOW)

        # Three earlier orders: not a new user; four inside the window: velocity trips.
        self.assertEqual(assessment.score, 30)
        self.assertEqual(assessment.reasons, ["Velocity Check Failed (>3 orders in 10m)"])

    def test_decision_thresholds(self) -> None:
        scorer = self.scorer(InMemoryUserRepository(), InMemoryOrderRepository())
        self.assertEqual(scorer.decide(40), RiskDecision.APPROVE)
        self.assertEqual(scorer.decide(41), RiskDecision.MANUAL_REVIEW)
        self.assertEqual(scorer.decide(70), RiskDecision.MANUAL_REVIEW)
        self.assertEqual(scorer.decide(71), RiskDecision.REJECT)

    def test_custom_thresholds(self) -> None:
        scorer = RiskScorer(
            InMemoryUserRepository(),
            InMemoryOrderRepository(),
            weights=RiskWeights(review_above=10, reject_above=20),
        )
        self.assertEqual(scorer.decide(15), RiskDecision.MANUAL_REVIEW)
        self.assertEqual(scorer.decide(21), RiskDecision.REJECT)


class RiskHelperTests(unittest.TestCase):
    def test_clamp_score(self) -> None:
        self.assertEqual(clamp_score(130), 100)
        self.assertEqual(clamp_score(-5), 0)
        self.assertEqual(clamp_score(55), 55)

    def test_scores_only_on_transition_to_paid(self) -> None:
        self.assertTrue(should_score(PaymentStatus.PENDING, PaymentStatus.PAID))
        self.assertTrue(should_score(None, "PAID"))
        self.assertFalse(should_score(PaymentStatus.PAID, PaymentStatus.PAID))
        self.assertFalse(should_score(PaymentStatus.PENDING, PaymentStatus.FAILED))


if __name__ == "__main__":
    unittest.main()

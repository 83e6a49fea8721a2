"""Service layer exports."""

from .allocation_engine import AllocationEngine
from .booking_orchestrator import BookingDecision, BookingOrchestrator, BookingRequest
from .interval_index import IntervalIndex
from .pricing_engine import PriceQuote, PricingEngine, rental_days
from .risk_scorer import RiskScorer, RiskWeights, should_score
from .storage_guard import StorageGuard

__all__ = [
    "AllocationEngine",
    "BookingDecision",
    "BookingOrchestrator",
    "BookingRequest",
    "IntervalIndex",
    "PriceQuote",
    "PricingEngine",
    "rental_days",
    "RiskScorer",
    "RiskWeights",
    "should_score",
    "StorageGuard",
]

"""Application entrypoint for the console rental booking FastAPI backend."""

import sys
from pathlib import Path
from typing import Optional

# ---------------------------------------------------------------------------
# Ensure backend packages are importable
# ---------------------------------------------------------------------------
_BACKEND_DIR = Path(__file__).resolve().parent
if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from api.router import build_router
from common import ProtectionLedger
from core import AccessPolicy, AppSettings, FirebaseClientManager, HealthState, get_logger, load_settings, setup_logging
from models.repositories import RepositoryBundle
from repositories.firestore_repositories import build_firestore_repositories
from repositories.memory_repositories import build_memory_repositories
from services import AllocationEngine, BookingOrchestrator, PricingEngine, RiskScorer, RiskWeights, StorageGuard


setup_logging()
logger = get_logger(__name__)


def build_repositories(settings: AppSettings) -> RepositoryBundle:
    """Select Firestore or seeded in-memory storage from settings."""
    if settings.firebase_enabled:
        try:
            manager = FirebaseClientManager.from_settings(settings)
            return build_firestore_repositories(manager, settings)
        except Exception:
            logger.exception("Failed to initialize Firestore repositories.")
            if settings.is_production:
                raise
            logger.warning("Falling back to in-memory storage.")
    return build_memory_repositories(
        catalog_settings_path=settings.catalog_settings_path,
        demo_fleet_path=settings.demo_fleet_path,
    )


def build_orchestrator(
    settings: AppSettings,
    repositories: RepositoryBundle,
    health: HealthState,
    protection_ledger: ProtectionLedger,
) -> BookingOrchestrator:
    """Wire the booking pipeline components."""
    guard = StorageGuard.from_settings(settings, health)
    allocation = AllocationEngine(
        repositories.devices,
        repositories.bookings,
        storage_guard=guard,
        max_reserve_attempts=settings.max_reserve_attempts,
    )
    pricing = PricingEngine(protection_ledger, gst_rate=settings.gst_rate, deposit_rate=settings.deposit_rate)
    risk = RiskScorer(
        repositories.users,
        repositories.orders,
        storage_guard=guard,
        weights=RiskWeights.from_settings(settings),
    )
    return BookingOrchestrator(
        device_repository=repositories.devices,
        booking_repository=repositories.bookings,
        user_repository=repositories.users,
        order_repository=repositories.orders,
        catalog_repository=repositories.catalog,
        allocation_engine=allocation,
        pricing_engine=pricing,
        protection_ledger=protection_ledger,
        risk_scorer=risk,
        storage_guard=guard,
        access_policy=AccessPolicy.from_settings(settings),
    )


def create_app(
    settings: Optional[AppSettings] = None,
    repositories: Optional[RepositoryBundle] = None,
) -> FastAPI:
    """Create and configure a FastAPI application instance."""
    settings = settings or load_settings()
    setup_logging(settings.log_level)
    app = FastAPI(title=settings.app_name, debug=settings.debug)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    health = HealthState(recovery_after_sec=settings.storage_recovery_after_sec)
    protection_ledger = ProtectionLedger(settings.protection_plans_path)
    orchestrator = build_orchestrator(
        settings,
        repositories or build_repositories(settings),
        health,
        protection_ledger,
    )
    app.state.health = health
    app.state.orchestrator = orchestrator

    app.include_router(build_router(settings, orchestrator, protection_ledger, health))
    logger.info("Application initialized: %s environment=%s", settings.app_name, settings.environment)
    return app


app = create_app()


def run() -> None:
    """Start the ASGI server for local development."""
    settings = load_settings()
    try:
        uvicorn.run("main:app", host=settings.host, port=settings.port, reload=settings.debug)
    except Exception:
        logger.exception("Failed to start uvicorn server.")
        raise


if __name__ == "__main__":
    run()

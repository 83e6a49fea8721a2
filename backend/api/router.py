"""Primary API router for booking, pricing, protection and payment webhooks."""

from datetime import datetime
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, HTTPException, Query, status
from pydantic import BaseModel, Field

from common import ProtectionLedger, parse_month
from core.config import AppSettings
from core.health import HealthState
from models.enums import DamageType
from models.exceptions import BookingError, BookingValidationError
from services.booking_orchestrator import BookingOrchestrator, BookingRequest


logger = logging.getLogger(__name__)


class QuoteRequest(BaseModel):
    """Request payload for a standalone price quote."""

    category: str = Field(..., min_length=1)
    days: int = Field(..., ge=1)
    extra_controllers: int = Field(default=0, ge=0)
    protection_plan: str = Field(default="none")
    addons_total: int = Field(default=0, ge=0)


class LiabilityRequest(BaseModel):
    """Request payload for a damage liability split."""

    damage_cost: int = Field(..., ge=0)
    plan_id: str = Field(default="none")


class PaymentWebhookRequest(BaseModel):
    """Payment gateway notification for one order."""

    order_id: str = Field(..., min_length=1)
    payment_status: str = Field(..., min_length=1)


class ExtendBookingRequest(BaseModel):
    end_date: datetime


class CompleteBookingRequest(BaseModel):
    damage_type: Optional[DamageType] = None
    damage_cost: Optional[int] = Field(default=None, ge=0)
    notes: str = Field(default="")


def _error_to_http(exc: BookingError) -> HTTPException:
    return HTTPException(status_code=exc.http_status, detail=exc.to_payload())


def _internal_error(settings: AppSettings, exc: Exception) -> HTTPException:
    """Generic 500; internals are only echoed in non-production debug mode."""
    detail: Dict[str, Any] = {"error": "Internal System Error", "code": "INTERNAL_ERROR"}
    if settings.debug and not settings.is_production:
        detail["details"] = repr(exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


def build_router(
    settings: AppSettings,
    orchestrator: BookingOrchestrator,
    protection_ledger: ProtectionLedger,
    health: HealthState,
) -> APIRouter:
    """Build and return the top-level API router.

    Args:
        settings: Application settings payload.
        orchestrator: Booking pipeline shared by all endpoints.
        protection_ledger: Protection plan catalog.
        health: Storage dependency health state.

    Returns:
        APIRouter: Fully configured router with all endpoints.
    """
    router = APIRouter()

    @router.get("/", summary="Root endpoint")
    def read_root() -> dict:
        """Return a basic message confirming service availability."""
        return {"message": "{0} is running".format(settings.app_name)}

    @router.get("/health", summary="Health check")
    def health_check() -> dict:
        """Return service health and storage dependency status."""
        storage = health.snapshot()
        return {"status": "ok" if storage["available"] else "degraded", "storage": storage}

    @router.post("/book", summary="Request a console booking")
    async def book(payload: Dict[str, Any] = Body(...)) -> dict:
        try:
            booking_request = BookingRequest.from_payload(payload)
            decision = await orchestrator.request(booking_request)
            return decision.to_response()
        except BookingError as exc:
            logger.info("Booking rejected code=%s message=%s", exc.code, exc.message)
            raise _error_to_http(exc)
        except Exception as exc:
            logger.exception("Booking API error")
            raise _internal_error(settings, exc)

    @router.get("/availability", summary="Monthly availability calendar")
    async def availability(
        category: str = Query(..., min_length=1),
        month: str = Query(..., description="Month in YYYY-MM format"),
    ) -> dict:
        try:
            year, month_number = parse_month(month)
            days = await orchestrator.month_availability(category, year, month_number)
            return {"category": category, "month": month, "days": days}
        except ValueError as exc:
            raise _error_to_http(BookingValidationError(str(exc)))
        except BookingError as exc:
            raise _error_to_http(exc)
        except Exception as exc:
            logger.exception("Availability lookup failed category=%s month=%s", category, month)
            raise _internal_error(settings, exc)

    @router.post("/quote", summary="Price a rental")
    async def quote(payload: QuoteRequest) -> dict:
        try:
            price_quote = await orchestrator.price(
                payload.category,
                payload.days,
                extra_controllers=payload.extra_controllers,
                protection_plan_id=payload.protection_plan,
                addons_total=payload.addons_total,
            )
            return price_quote.to_response()
        except BookingError as exc:
            raise _error_to_http(exc)
        except Exception as exc:
            logger.exception("Quote failed category=%s days=%s", payload.category, payload.days)
            raise _internal_error(settings, exc)

    @router.get("/protection/plans", summary="List protection plans")
    def protection_plans() -> List[dict]:
        return [plan.model_dump() for plan in protection_ledger.list_plans()]

    @router.post("/protection/liability", summary="Split a damage cost by protection plan")
    def protection_liability(payload: LiabilityRequest) -> dict:
        return protection_ledger.calculate_damage_liability(payload.damage_cost, payload.plan_id).model_dump()

    @router.get("/protection/recommendation", summary="Suggest a protection plan")
    def protection_recommendation(rental_value: int = Query(..., ge=0)) -> dict:
        plan = protection_ledger.recommend(rental_value)
        return {"rental_value": rental_value, "plan": plan.model_dump()}

    @router.post("/webhooks/payment", summary="Payment status notification")
    async def payment_webhook(payload: PaymentWebhookRequest) -> dict:
        try:
            assessment = await orchestrator.handle_payment_update(payload.order_id, payload.payment_status)
        except BookingError as exc:
            raise _error_to_http(exc)
        except Exception as exc:
            logger.exception("Payment webhook failed order_id=%s", payload.order_id)
            raise _internal_error(settings, exc)
        if assessment is None:
            return {"order_id": payload.order_id, "scored": False}
        return {
            "order_id": payload.order_id,
            "scored": True,
            "riskScore": assessment.score,
            "decision": assessment.decision.value,
            "reasons": assessment.reasons,
        }

    @router.post("/bookings/{booking_id}/activate", summary="Hand over a pending booking")
    async def activate_booking(booking_id: str) -> dict:
        try:
            booking = await orchestrator.activate_booking(booking_id)
            return {"bookingId": booking.booking_id, "status": booking.status.value}
        except BookingError as exc:
            raise _error_to_http(exc)
        except Exception as exc:
            logger.exception("Activate failed booking_id=%s", booking_id)
            raise _internal_error(settings, exc)

    @router.post("/bookings/{booking_id}/cancel", summary="Cancel a booking")
    async def cancel_booking(booking_id: str) -> dict:
        try:
            booking = await orchestrator.cancel_booking(booking_id)
            return {"bookingId": booking.booking_id, "status": booking.status.value}
        except BookingError as exc:
            raise _error_to_http(exc)
        except Exception as exc:
            logger.exception("Cancel failed booking_id=%s", booking_id)
            raise _internal_error(settings, exc)

    @router.post("/bookings/{booking_id}/extend", summary="Extend a booking")
    async def extend_booking(booking_id: str, payload: ExtendBookingRequest) -> dict:
        try:
            booking, price_quote = await orchestrator.extend_booking(booking_id, payload.end_date)
            return {
                "bookingId": booking.booking_id,
                "endDate": booking.end_time.isoformat(),
                "quote": price_quote.to_response(),
            }
        except BookingError as exc:
            raise _error_to_http(exc)
        except Exception as exc:
            logger.exception("Extend failed booking_id=%s", booking_id)
            raise _internal_error(settings, exc)

    @router.post("/bookings/{booking_id}/complete", summary="Record a console return")
    async def complete_booking(booking_id: str, payload: Optional[CompleteBookingRequest] = None) -> dict:
        request_body = payload or CompleteBookingRequest()
        try:
            booking, assessment = await orchestrator.complete_booking(
                booking_id,
                damage_type=request_body.damage_type,
                damage_cost=request_body.damage_cost,
                notes=request_body.notes,
            )
        except BookingError as exc:
            raise _error_to_http(exc)
        except Exception as exc:
            logger.exception("Complete failed booking_id=%s", booking_id)
            raise _internal_error(settings, exc)
        return {
            "bookingId": booking.booking_id,
            "status": booking.status.value,
            "damage": assessment.model_dump(mode="json") if assessment else None,
        }

    @router.post("/maintenance/overdue", summary="Flag overdue rentals")
    async def mark_overdue() -> dict:
        try:
            processed = await orchestrator.mark_overdue()
        except BookingError as exc:
            raise _error_to_http(exc)
        except Exception as exc:
            logger.exception("Overdue check failed")
            raise _internal_error(settings, exc)
        return {"success": True, "processed": processed, "message": "Automation checks completed."}

    return router

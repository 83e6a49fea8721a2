"""HTTP-level tests for the booking API over in-memory storage."""

import unittest

from booking_fixtures import booking, catalog, device, memory_bundle, user, utc

from fastapi.testclient import TestClient

from core.config import load_settings
from main import create_app


BOOK_PAYLOAD = {
    "userId": "usr_1",
    "productCategory": "PS5",
    "startDate": "2026-05-01T00:00:00Z",
    "endDate": "2026-05-03T00:00:00Z",
    "protectionPlan": "premium",
}


class BookingApiTests(unittest.TestCase):
    """Status codes and bodies of the public endpoints."""

    def setUp(self) -> None:
        self.bundle = memory_bundle(
            devices=[device("101"), device("102")],
            bookings=[booking("b1", "102", utc(2026, 1, 1), utc(2026, 1, 3))],
            users=[user("usr_1")],
            settings=[catalog()],
        )
        self.client = TestClient(create_app(load_settings(), repositories=self.bundle))

    def test_root_and_health(self) -> None:
        self.assertEqual(self.client.get("/").status_code, 200)
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")
        self.assertTrue(response.json()["storage"]["available"])

    def test_book_success(self) -> None:
        response = self.client.post("/book", json=BOOK_PAYLOAD)
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["deviceId"], "101")
        self.assertEqual(body["quote"]["protectionCost"], 200)
        self.assertEqual(body["total"], body["quote"]["total"])

    def test_book_requires_login(self) -> None:
        response = self.client.post("/book", json=dict(BOOK_PAYLOAD, userId="guest"))
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"]["code"], "AUTH_REQUIRED")

    def test_book_missing_fields(self) -> None:
        response = self.client.post("/book", json={"userId": "usr_1"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"]["code"], "VALIDATION_ERROR")

    def test_book_unknown_user_needs_kyc(self) -> None:
        response = self.client.post("/book", json=dict(BOOK_PAYLOAD, userId="usr_x"))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["detail"]["code"], "KYC_REQUIRED")

    def test_availability_calendar(self) -> None:
        response = self.client.get("/availability", params={"category": "PS5", "month": "2026-02"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()["days"]), 28)

    def test_availability_rejects_bad_month(self) -> None:
        response = self.client.get("/availability", params={"category": "PS5", "month": "2026-13"})
        self.assertEqual(response.status_code, 400)

    def test_quote(self) -> None:
        response = self.client.post("/quote", json={"category": "PS5", "days": 10})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["tier"], "WEEKLY")
        self.assertEqual(response.json()["basePrice"], 8998)

    def test_quote_for_unknown_category(self) -> None:
        response = self.client.post("/quote", json={"category": "Switch", "days": 2})
        self.assertEqual(response.status_code, 400)

    def test_protection_endpoints(self) -> None:
        plans = self.client.get("/protection/plans").json()
        self.assertEqual([plan["plan_id"] for plan in plans], ["none", "basic", "premium", "elite"])

        liability = self.client.post("/protection/liability", json={"damage_cost": 10000, "plan_id": "premium"})
        self.assertEqual(liability.json()["customer_liability"], 0)

        recommendation = self.client.get("/protection/recommendation", params={"rental_value": 6000})
        self.assertEqual(recommendation.json()["plan"]["plan_id"], "premium")

    def test_payment_webhook_scores_paid_order(self) -> None:
        booked = self.client.post("/book", json=BOOK_PAYLOAD).json()

        response = self.client.post(
            "/webhooks/payment",
            json={"order_id": booked["orderId"], "payment_status": "SUCCESS"},
        )

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["scored"])
        self.assertEqual(response.json()["decision"], "APPROVE")

    def test_payment_webhook_unknown_order(self) -> None:
        response = self.client.post("/webhooks/payment", json={"order_id": "nope", "payment_status": "paid"})
        self.assertEqual(response.status_code, 404)

    def test_booking_lifecycle_endpoints(self) -> None:
        extended = self.client.post("/bookings/b1/extend", json={"end_date": "2026-01-04T00:00:00Z"})
        self.assertEqual(extended.status_code, 200)
        self.assertEqual(extended.json()["quote"]["days"], 3)

        completed = self.client.post(
            "/bookings/b1/complete",
            json={"damage_type": "cosmetic", "damage_cost": 800},
        )
        self.assertEqual(completed.status_code, 200)
        self.assertEqual(completed.json()["status"], "Completed")
        self.assertEqual(completed.json()["damage"]["liability"]["customer_liability"], 800)

        again = self.client.post("/bookings/b1/cancel")
        self.assertEqual(again.status_code, 409)
        self.assertEqual(self.client.post("/bookings/missing/cancel").status_code, 404)

    def test_activate_endpoint(self) -> None:
        body = {key: value for key, value in BOOK_PAYLOAD.items() if key != "productCategory"}
        booked = self.client.post("/book", json=dict(body, category="PS5")).json()

        response = self.client.post("/bookings/{0}/activate".format(booked["bookingId"]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "Active")

        again = self.client.post("/bookings/{0}/activate".format(booked["bookingId"]))
        self.assertEqual(again.status_code, 409)

    def test_overdue_sweep(self) -> None:
        response = self.client.post("/maintenance/overdue")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["processed"], 1)


if __name__ == "__main__":
    unittest.main()

"""Unit tests for storage timeouts, retries, health tracking and the fail-open policy."""

import asyncio
import unittest

from booking_fixtures import fast_guard

from google.api_core import exceptions as google_exceptions

from core.access_policy import DEFAULT_DEMO_DEVICE, AccessPolicy
from core.health import HealthState
from models.exceptions import DependencyError, ModelNotFoundError


class FlakyCall:
    """Fails with ``error`` for the first ``failures`` calls, then returns ``result``."""

    def __init__(self, failures: int, error: BaseException, result: object = "ok") -> None:
        self.failures = failures
        self.error = error
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.result


class StorageGuardTests(unittest.IsolatedAsyncioTestCase):
    """Timeout, retry and fail-fast behavior."""

    def setUp(self) -> None:
        self.health = HealthState(recovery_after_sec=60)
        self.guard = fast_guard(self.health)

    async def test_read_retried_once_after_transient_failure(self) -> None:
        call = FlakyCall(failures=1, error=ConnectionError("reset"))
        self.assertEqual(await self.guard.read("get_user", call), "ok")
        self.assertEqual(call.calls, 2)
        self.assertTrue(self.health.is_available())

    async def test_read_gives_up_after_second_failure(self) -> None:
        call = FlakyCall(failures=5, error=ConnectionError("reset"))
        with self.assertRaises(DependencyError):
            await self.guard.read("get_user", call)
        self.assertEqual(call.calls, 2)
        self.assertFalse(self.health.is_available())

    async def test_firestore_unavailable_is_retried_then_marks_offline(self) -> None:
        call = FlakyCall(failures=5, error=google_exceptions.ServiceUnavailable("backend down"))
        with self.assertRaises(DependencyError):
            await self.guard.read("list_devices", call)
        self.assertEqual(call.calls, 2)
        self.assertFalse(self.health.is_available())

    async def test_firestore_deadline_recovers_on_retry(self) -> None:
        call = FlakyCall(failures=1, error=google_exceptions.DeadlineExceeded("slow"))
        self.assertEqual(await self.guard.read("get_booking", call), "ok")
        self.assertEqual(call.calls, 2)
        self.assertTrue(self.health.is_available())

    async def test_write_is_never_retried(self) -> None:
        call = FlakyCall(failures=1, error=ConnectionError("reset"))
        with self.assertRaises(DependencyError):
            await self.guard.write("save_if_free", call)
        self.assertEqual(call.calls, 1)
        self.assertFalse(self.health.is_available())

    async def test_timeout_marks_storage_unavailable(self) -> None:
        async def slow():
            await asyncio.sleep(2)

        with self.assertRaises(DependencyError):
            await self.guard.write("update_booking", slow)
        snapshot = self.health.snapshot()
        self.assertFalse(snapshot["available"])
        self.assertIn("update_booking", snapshot["reason"])

    async def test_fails_fast_while_unavailable(self) -> None:
        self.health.mark_unavailable("earlier timeout")
        call = FlakyCall(failures=0, error=ConnectionError())
        with self.assertRaises(DependencyError):
            await self.guard.read("get_user", call)
        self.assertEqual(call.calls, 0)

    async def test_domain_errors_pass_through(self) -> None:
        call = FlakyCall(failures=1, error=ModelNotFoundError("Booking not found: x"))
        with self.assertRaises(ModelNotFoundError):
            await self.guard.read("get_booking", call)
        self.assertEqual(call.calls, 1)
        self.assertTrue(self.health.is_available())

    async def test_unexpected_error_does_not_mark_offline(self) -> None:
        call = FlakyCall(failures=1, error=KeyError("bad field"))
        with self.assertRaises(DependencyError):
            await self.guard.read("get_order", call)
        self.assertEqual(call.calls, 1)
        self.assertTrue(self.health.is_available())


class HealthStateTests(unittest.TestCase):
    def test_recovers_after_window(self) -> None:
        now = [100.0]
        health = HealthState(recovery_after_sec=30, clock=lambda: now[0])

        health.mark_unavailable("timeout")
        self.assertFalse(health.is_available())
        now[0] = 129.0
        self.assertFalse(health.is_available())
        now[0] = 130.0
        self.assertTrue(health.is_available())
        self.assertIsNone(health.snapshot()["reason"])

    def test_mark_available_clears_reason(self) -> None:
        health = HealthState()
        health.mark_unavailable("down")
        health.mark_available()
        snapshot = health.snapshot()
        self.assertTrue(snapshot["available"])
        self.assertIsNotNone(snapshot["last_changed_at"])


class AccessPolicyTests(unittest.TestCase):
    def test_privileged_identity_allowed_outside_production(self) -> None:
        policy = AccessPolicy.build(True, "development", ["Admin@Example.com"], {"PS5": "PS5-DEMO"})
        self.assertTrue(policy.allows_fail_open("admin@example.com"))
        self.assertFalse(policy.allows_fail_open("someone@example.com"))
        self.assertFalse(policy.allows_fail_open(None))
        self.assertEqual(policy.demo_device_for("ps5"), "PS5-DEMO")
        self.assertEqual(policy.demo_device_for("Xbox"), DEFAULT_DEMO_DEVICE)

    def test_production_never_fails_open(self) -> None:
        policy = AccessPolicy.build(True, "Production", ["admin@example.com"])
        self.assertFalse(policy.is_active)
        self.assertFalse(policy.allows_fail_open("admin@example.com"))

    def test_disabled_by_default(self) -> None:
        self.assertFalse(AccessPolicy().allows_fail_open("admin@example.com"))


if __name__ == "__main__":
    unittest.main()

"""Fail-open allow-list used when storage cannot answer eligibility checks."""

from dataclasses import dataclass, field
import logging
from typing import Dict, FrozenSet, Iterable, Optional


logger = logging.getLogger(__name__)

DEFAULT_DEMO_DEVICE = "demo-device"


@dataclass(frozen=True)
class AccessPolicy:
    """Privileged identities that may be served in demo mode while storage is down.

    The policy is inert unless ``fail_open_enabled`` is set and the
    environment is not production.
    """

    fail_open_enabled: bool = False
    environment: str = "development"
    privileged_identities: FrozenSet[str] = field(default_factory=frozenset)
    demo_devices: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings) -> "AccessPolicy":
        """Build the policy from ``AppSettings``."""
        return cls.build(
            fail_open_enabled=settings.fail_open_enabled,
            environment=settings.environment,
            privileged_identities=settings.privileged_identities,
            demo_devices=settings.demo_devices,
        )

    @classmethod
    def build(
        cls,
        fail_open_enabled: bool,
        environment: str,
        privileged_identities: Iterable[str],
        demo_devices: Optional[Dict[str, str]] = None,
    ) -> "AccessPolicy":
        """Normalize raw configuration values into a policy."""
        identities = frozenset(str(item).strip().lower() for item in privileged_identities if str(item).strip())
        return cls(
            fail_open_enabled=bool(fail_open_enabled),
            environment=str(environment or "development").strip().lower(),
            privileged_identities=identities,
            demo_devices=dict(demo_devices or {}),
        )

    @property
    def is_active(self) -> bool:
        """Return whether fail-open is allowed in this environment."""
        return self.fail_open_enabled and self.environment != "production"

    def allows_fail_open(self, user_id: Optional[str]) -> bool:
        """Return whether ``user_id`` may bypass a failed dependency check."""
        if not self.is_active or not user_id:
            return False
        allowed = str(user_id).strip().lower() in self.privileged_identities
        if allowed:
            logger.warning("Fail-open bypass granted user_id=%s environment=%s", user_id, self.environment)
        return allowed

    def demo_device_for(self, category: str) -> str:
        """Return the placeholder device id reported for demo-mode bookings."""
        normalized = str(category or "").strip().lower()
        for key, device_id in self.demo_devices.items():
            if key.strip().lower() == normalized:
                return device_id
        return DEFAULT_DEMO_DEVICE

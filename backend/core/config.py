"""Configuration loading utilities for YAML-based application settings."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .logging_config import get_logger


logger = get_logger(__name__)
_BASE_DIR = Path(__file__).resolve().parent.parent
_CONFIG_PATH = _BASE_DIR / "config.yml"
_SETTINGS_DIR = _BASE_DIR / "settings"


@dataclass(frozen=True)
class AppSettings:
    """Application settings loaded from YAML configuration file."""

    app_name: str
    debug: bool
    host: str
    port: int
    environment: str
    log_level: str
    firebase_enabled: bool
    firebase_project_id: Optional[str]
    firebase_credentials_path: Optional[str]
    devices_collection: str
    bookings_collection: str
    users_collection: str
    orders_collection: str
    catalog_collection: str
    device_locks_collection: str
    storage_timeout_sec: float
    storage_read_retry_backoff_sec: float
    storage_recovery_after_sec: float
    max_reserve_attempts: int
    gst_rate: float
    deposit_rate: float
    catalog_settings_path: str
    protection_plans_path: str
    risk_reject_above: int
    risk_review_above: int
    risk_velocity_window_sec: int
    risk_velocity_max_orders: int
    risk_home_city: str
    risk_geo_amount_threshold: int
    fail_open_enabled: bool
    privileged_identities: list[str]
    demo_devices: Dict[str, str] = field(default_factory=dict)
    demo_fleet_path: Optional[str] = None

    @property
    def is_production(self) -> bool:
        """Return whether the app runs with production safeguards."""
        return self.environment == "production"


def _to_bool(value: Any, default: bool = False) -> bool:
    """Convert value to bool with a default fallback."""
    try:
        if isinstance(value, bool):
            return value
        return value.strip().lower() in {"1", "true", "yes", "on"}
    except (AttributeError, ValueError):
        logger.warning("Invalid boolean value '%s'. Using default=%s", value, default)
        return default


def _to_int(value: Any, default: int) -> int:
    """Convert value to int with a default fallback."""
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid integer value '%s'. Using default=%s", value, default)
        return default


def _to_float(value: Any, default: float) -> float:
    """Convert value to float with a default fallback."""
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid float value '%s'. Using default=%s", value, default)
        return default


def _to_list(value: Any) -> list[str]:
    """Convert list-like or comma-separated value to list[str]."""
    if value is None:
        return []
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    return [item.strip() for item in str(value).split(",") if item.strip()]


def _to_str_map(value: Any) -> Dict[str, str]:
    """Convert a YAML mapping into a ``str -> str`` dictionary."""
    if not isinstance(value, dict):
        if value is not None:
            logger.warning("Invalid mapping value '%s'. Using empty mapping.", value)
        return {}
    return {str(key).strip(): str(item).strip() for key, item in value.items() if str(key).strip()}


def _resolve_path(value: Any, default_name: str) -> str:
    """Resolve a data-file path relative to the backend directory."""
    if not value:
        return str(_SETTINGS_DIR / default_name)
    candidate = Path(str(value))
    if not candidate.is_absolute():
        candidate = _BASE_DIR / candidate
    return str(candidate)


def _read_config(path: Optional[Path] = None) -> dict:
    """Read and parse YAML configuration."""
    config_path = path or _CONFIG_PATH
    try:
        with config_path.open("r", encoding="utf-8") as config_file:
            config_data = yaml.safe_load(config_file) or {}
        logger.info("Configuration loaded from %s", config_path)
        return config_data
    except FileNotFoundError:
        logger.warning("Config file not found at %s. Falling back to defaults.", config_path)
        return {}
    except Exception:
        logger.exception("Failed to load config file from %s", config_path)
        return {}


def load_settings(path: Optional[str] = None) -> AppSettings:
    """Load and validate application settings from ``config.yml``."""
    config = _read_config(Path(path) if path else None)
    app_cfg = config.get("app", {})
    firebase_cfg = config.get("firebase", {})
    storage_cfg = config.get("storage", {})
    pricing_cfg = config.get("pricing", {})
    protection_cfg = config.get("protection", {})
    risk_cfg = config.get("risk", {})
    policy_cfg = config.get("access_policy", {})
    seed_cfg = config.get("seed", {})

    environment = str(app_cfg.get("environment", "development")).strip().lower() or "development"
    privileged_identities = _to_list(policy_cfg.get("privileged_identities", []))
    fail_open_enabled = _to_bool(policy_cfg.get("fail_open_enabled", False), False)
    if fail_open_enabled and environment == "production":
        logger.warning("access_policy.fail_open_enabled is ignored in production.")
        fail_open_enabled = False

    demo_fleet = seed_cfg.get("demo_fleet_path")

    return AppSettings(
        app_name=str(app_cfg.get("name", "Console Rental Booking API")),
        debug=_to_bool(app_cfg.get("debug", False), False),
        host=str(app_cfg.get("host", "127.0.0.1")),
        port=_to_int(app_cfg.get("port", 8000), 8000),
        environment=environment,
        log_level=str(app_cfg.get("log_level", "INFO")),
        firebase_enabled=_to_bool(firebase_cfg.get("enabled", False), False),
        firebase_project_id=firebase_cfg.get("project_id"),
        firebase_credentials_path=firebase_cfg.get("credentials_path"),
        devices_collection=str(firebase_cfg.get("devices_collection", "devices")),
        bookings_collection=str(firebase_cfg.get("bookings_collection", "rentals")),
        users_collection=str(firebase_cfg.get("users_collection", "users")),
        orders_collection=str(firebase_cfg.get("orders_collection", "orders")),
        catalog_collection=str(firebase_cfg.get("catalog_collection", "catalog_settings")),
        device_locks_collection=str(firebase_cfg.get("device_locks_collection", "device_locks")),
        storage_timeout_sec=_to_float(storage_cfg.get("timeout_sec", 5.0), 5.0),
        storage_read_retry_backoff_sec=_to_float(storage_cfg.get("read_retry_backoff_sec", 0.2), 0.2),
        storage_recovery_after_sec=_to_float(storage_cfg.get("recovery_after_sec", 30.0), 30.0),
        max_reserve_attempts=max(1, _to_int(storage_cfg.get("max_reserve_attempts", 3), 3)),
        gst_rate=_to_float(pricing_cfg.get("gst_rate", 0.18), 0.18),
        deposit_rate=_to_float(pricing_cfg.get("deposit_rate", 0.5), 0.5),
        catalog_settings_path=_resolve_path(pricing_cfg.get("catalog_path"), "catalog_settings.json"),
        protection_plans_path=_resolve_path(protection_cfg.get("plans_path"), "protection_plans.json"),
        risk_reject_above=_to_int(risk_cfg.get("reject_above", 70), 70),
        risk_review_above=_to_int(risk_cfg.get("review_above", 40), 40),
        risk_velocity_window_sec=_to_int(risk_cfg.get("velocity_window_sec", 600), 600),
        risk_velocity_max_orders=_to_int(risk_cfg.get("velocity_max_orders", 3), 3),
        risk_home_city=str(risk_cfg.get("home_city", "Chennai")),
        risk_geo_amount_threshold=_to_int(risk_cfg.get("geo_amount_threshold", 20000), 20000),
        fail_open_enabled=fail_open_enabled,
        privileged_identities=privileged_identities,
        demo_devices=_to_str_map(policy_cfg.get("demo_devices", {})),
        demo_fleet_path=_resolve_path(demo_fleet, "demo_fleet.json") if demo_fleet else None,
    )

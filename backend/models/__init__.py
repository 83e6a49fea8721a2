"""Public model package exports for the console rental backend."""

from .base import BaseDocumentModel, Rupees, ensure_utc, utc_now
from .bookings import EXTRA_CONTROLLER_ADDON_ID, AddonItem, BookingModel
from .catalog import CatalogSettingsModel
from .devices import DeviceModel
from .enums import (
    BookingStage,
    BookingStatus,
    DamageType,
    DayAvailability,
    DeliveryType,
    DeviceStatus,
    KycStatus,
    OrderStatus,
    PaymentStatus,
    PricingTier,
    RiskDecision,
)
from .exceptions import (
    AllocationError,
    AuthRequiredError,
    BookingError,
    BookingNotFoundError,
    BookingStateError,
    BookingValidationError,
    DependencyError,
    EligibilityError,
    KycRequiredError,
    ModelError,
    ModelNotFoundError,
    ModelValidationError,
    NoAvailabilityError,
    PickupRestrictedError,
    ScoringDegradation,
    VersionConflictError,
)
from .orders import OrderModel
from .repositories import (
    BookingRepository,
    CatalogRepository,
    DeviceRepository,
    OrderRepository,
    RepositoryBundle,
    UserRepository,
)
from .risk_assessments import RiskAssessmentModel
from .users import UserModel

__all__ = [
    "BaseDocumentModel",
    "Rupees",
    "ensure_utc",
    "utc_now",
    "AddonItem",
    "BookingModel",
    "EXTRA_CONTROLLER_ADDON_ID",
    "CatalogSettingsModel",
    "DeviceModel",
    "OrderModel",
    "RiskAssessmentModel",
    "UserModel",
    "BookingStage",
    "BookingStatus",
    "DamageType",
    "DayAvailability",
    "DeliveryType",
    "DeviceStatus",
    "KycStatus",
    "OrderStatus",
    "PaymentStatus",
    "PricingTier",
    "RiskDecision",
    "ModelError",
    "ModelValidationError",
    "ModelNotFoundError",
    "VersionConflictError",
    "BookingError",
    "BookingValidationError",
    "EligibilityError",
    "AuthRequiredError",
    "KycRequiredError",
    "PickupRestrictedError",
    "AllocationError",
    "NoAvailabilityError",
    "BookingStateError",
    "BookingNotFoundError",
    "DependencyError",
    "ScoringDegradation",
    "DeviceRepository",
    "BookingRepository",
    "UserRepository",
    "OrderRepository",
    "CatalogRepository",
    "RepositoryBundle",
]

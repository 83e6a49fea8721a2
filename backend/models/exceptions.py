"""Custom exceptions for model, repository, and booking pipeline layers."""

from typing import Optional


class ModelError(Exception):
    """Base class for model-related failures."""


class ModelValidationError(ModelError):
    """Raised when model data fails custom business validation."""


class ModelNotFoundError(ModelError):
    """Raised when a requested document does not exist."""


class VersionConflictError(ModelError):
    """Raised when optimistic concurrency version checks fail."""


class BookingError(Exception):
    """Base class for failures surfaced to booking API callers."""

    code = "BOOKING_ERROR"
    http_status = 500
    default_message = "Booking request failed."

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict:
        """Return the client-facing error body."""
        return {"error": self.__class__.__name__, "code": self.code, "message": self.message}


class BookingValidationError(BookingError):
    """Missing or malformed request fields."""

    code = "VALIDATION_ERROR"
    http_status = 400
    default_message = "Missing or invalid booking fields."


class EligibilityError(BookingError):
    """User is not allowed to place this booking."""

    code = "NOT_ELIGIBLE"
    http_status = 403


class AuthRequiredError(EligibilityError):
    code = "AUTH_REQUIRED"
    http_status = 401
    default_message = "Please login and complete KYC verification to rent consoles."


class KycRequiredError(EligibilityError):
    code = "KYC_REQUIRED"
    http_status = 403
    default_message = "Your KYC is still pending or not submitted. Please complete verification in your profile."


class PickupRestrictedError(EligibilityError):
    code = "PICKUP_RESTRICTED"
    http_status = 403
    default_message = "Self-pickup is only available for verified users with a booking history."


class AllocationError(BookingError):
    """No unit could be allocated."""

    code = "ALLOCATION_FAILED"
    http_status = 409


class NoAvailabilityError(AllocationError):
    code = "NO_AVAILABILITY"
    http_status = 409
    default_message = "No consoles available for these dates."


class BookingStateError(BookingError):
    """Requested lifecycle transition is not allowed from the current state."""

    code = "INVALID_STATE"
    http_status = 409
    default_message = "Booking cannot change state from its current status."


class BookingNotFoundError(BookingError):
    code = "NOT_FOUND"
    http_status = 404
    default_message = "Booking not found."


class DependencyError(BookingError):
    """Storage failure or timeout; the client only sees a generic message."""

    code = "INTERNAL_ERROR"
    http_status = 500
    default_message = "Internal System Error"


class ScoringDegradation(Exception):
    """A risk factor could not be computed; absorbed as a fixed penalty.

    ``partial_points`` holds points the factor had already earned before the
    failing lookup and still count toward the score.
    """

    def __init__(self, factor: str, cause: Optional[BaseException] = None, partial_points: int = 0) -> None:
        self.factor = factor
        self.cause = cause
        self.partial_points = partial_points
        super().__init__("Risk factor degraded: {0}".format(factor))

"""Shared base models and common type aliases."""

from datetime import datetime, timezone
from enum import Enum
import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import ModelValidationError


logger = logging.getLogger(__name__)

Rupees = int


def utc_now() -> datetime:
    """Return current UTC timestamp."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _plain_values(value: Any) -> Any:
    """Replace enum members with their raw values, recursively."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _plain_values(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain_values(item) for item in value]
    return value


class BaseDocumentModel(BaseModel):
    """Base document schema for Firestore-backed domain models."""

    id: Optional[str] = Field(default=None, description="Firestore document ID.")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = Field(default=1, ge=1)

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        use_enum_values=False,
        protected_namespaces=(),
    )

    def to_firestore(self) -> Dict[str, Any]:
        """Serialize model into a Firestore-ready document dictionary.

        Raises:
            ModelValidationError: If serialization fails.
        """
        try:
            return _plain_values(self.model_dump(exclude_none=True))
        except Exception as exc:
            logger.exception("Failed to serialize %s with id=%s", self.__class__.__name__, self.id)
            raise ModelValidationError(str(exc))

    @classmethod
    def from_firestore(cls, data: Dict[str, Any], doc_id: Optional[str] = None):
        """Create model instance from Firestore document data.

        Raises:
            ModelValidationError: If payload parsing fails.
        """
        try:
            payload = dict(data)
            if doc_id is not None and "id" not in payload:
                payload["id"] = doc_id
            return cls.model_validate(payload)
        except Exception as exc:
            logger.exception("Failed to parse Firestore payload for %s doc_id=%s", cls.__name__, doc_id)
            raise ModelValidationError(str(exc))

    def copy_with(self, **changes: Any):
        """Return a validated copy with ``changes`` applied and ``updated_at`` bumped."""
        payload = self.model_dump()
        payload.update(changes)
        payload["updated_at"] = utc_now()
        return self.__class__.model_validate(payload)

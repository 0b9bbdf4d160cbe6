from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ...shared.exceptions import DataValidationError
from ...shared.models.alerts import AlertLocation, AlertSeverity, AlertType, PosterIdentity
from ...shared.models.base import BaseDocument, ensure_utc


logger = logging.getLogger(__name__)


class RecurrenceFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class RecurrencePattern(BaseModel):
    """How a scheduled alert repeats. Never mutated once attached to an alert.

    ``frequency`` and ``interval`` are kept as stored; the recurrence
    calculator rejects values it cannot step with ``InvalidRecurrence``.
    """
    frequency: str
    interval: int = Field(default=1, description="Every N units; validated by the recurrence calculator")
    end_date: Optional[datetime] = None

    # Carried for authoring clients; not used to compute occurrences
    occurrences: Optional[int] = None
    days_of_week: Optional[List[int]] = None
    day_of_month: Optional[int] = None
    week_of_month: Optional[int] = None

    model_config = {"frozen": True}

    @field_validator("frequency", mode="before")
    @classmethod
    def normalize_frequency(cls, v: Any) -> Any:
        if isinstance(v, Enum):
            v = v.value
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("end_date", mode="after")
    @classmethod
    def coerce_end_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class ScheduledAlert(BaseDocument):
    """Template for a future alert, stored in ``scheduled_alerts``"""
    title: str
    description: str = ""
    organization_id: str
    organization_name: str = ""
    group_id: Optional[str] = None
    group_name: Optional[str] = None
    type: AlertType = AlertType.OTHER
    severity: AlertSeverity = AlertSeverity.MEDIUM
    location: Optional[AlertLocation] = None
    scheduled_date: datetime
    is_recurring: bool = False
    recurrence_pattern: Optional[RecurrencePattern] = None
    posted_by: str = "Unknown"
    posted_by_user_id: str = "unknown"
    is_active: bool = True
    expires_at: Optional[datetime] = None
    image_urls: List[str] = Field(default_factory=list)
    calendar_event_id: Optional[str] = None

    model_config = {"populate_by_name": True, "use_enum_values": True, "validate_default": True}

    @model_validator(mode="before")
    @classmethod
    def lenient_recurrence_pattern(cls, data: Any) -> Any:
        """Bad pattern data never rejects the alert itself.

        A non-recurring alert ignores its pattern. A recurring alert whose
        pattern cannot be read loses it, so it is published once and retired.
        """
        if not isinstance(data, dict) or data.get("recurrence_pattern") is None:
            return data
        if not data.get("is_recurring"):
            return {**data, "recurrence_pattern": None}

        pattern = data["recurrence_pattern"]
        if isinstance(pattern, RecurrencePattern):
            return data
        try:
            RecurrencePattern.model_validate(pattern)
        except ValidationError as e:
            alert_id = data.get("id", data.get("_id"))
            logger.warning(
                f"Scheduled alert {alert_id} has an unreadable recurrence pattern "
                f"({e.error_count()} errors), it will not recur"
            )
            return {**data, "recurrence_pattern": None}
        return data

    @field_validator("scheduled_date", "expires_at", mode="after")
    @classmethod
    def coerce_instants(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @property
    def poster(self) -> PosterIdentity:
        return PosterIdentity(name=self.posted_by, user_id=self.posted_by_user_id)

    @property
    def recurs(self) -> bool:
        """Only a recurring alert that carries a pattern can be rescheduled"""
        return self.is_recurring and self.recurrence_pattern is not None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "ScheduledAlert":
        document_id = doc.get("_id", doc.get("id"))
        data = {k: v for k, v in doc.items() if k != "_id"}
        data["id"] = document_id
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            errors = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            ]
            raise DataValidationError(
                f"Malformed scheduled alert {document_id}",
                validation_errors=errors,
                document_id=str(document_id) if document_id is not None else None,
            ) from e

    def to_document(self) -> Dict[str, Any]:
        doc = self.model_dump(exclude={"id"})
        doc["_id"] = self.id
        return doc

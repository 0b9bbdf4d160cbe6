from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from ...shared.models.alerts import AlertLocation, AlertSeverity, AlertType, PosterIdentity
from ...shared.models.base import BaseDocument, ensure_utc, new_document_id
from ..scheduled_alerts.models import ScheduledAlert


class LiveAlert(BaseDocument):
    """Published, user-visible alert stored in ``organization_alerts``"""
    organization_id: str
    organization_name: str = ""
    group_id: Optional[str] = None
    group_name: Optional[str] = None
    title: str
    description: str = ""
    type: AlertType = AlertType.OTHER
    severity: AlertSeverity = AlertSeverity.MEDIUM
    location: Optional[AlertLocation] = None
    posted_by: str = "Unknown"
    posted_by_user_id: str = "unknown"
    posted_at: datetime
    is_active: bool = True
    expires_at: datetime
    image_urls: List[str] = Field(default_factory=list)
    scheduled_alert_id: Optional[str] = None

    model_config = {"populate_by_name": True, "use_enum_values": True, "validate_default": True}

    @field_validator("posted_at", "expires_at", mode="after")
    @classmethod
    def coerce_instants(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def poster(self) -> PosterIdentity:
        return PosterIdentity(name=self.posted_by, user_id=self.posted_by_user_id)

    @classmethod
    def from_scheduled(cls, scheduled: ScheduledAlert, now: datetime, ttl_days: int) -> "LiveAlert":
        """Snapshot a scheduled definition into a new live alert posted at ``now``"""
        posted_at = ensure_utc(now)
        return cls(
            id=new_document_id(),
            organization_id=scheduled.organization_id,
            organization_name=scheduled.organization_name,
            group_id=scheduled.group_id,
            group_name=scheduled.group_name,
            title=scheduled.title,
            description=scheduled.description,
            type=scheduled.type,
            severity=scheduled.severity,
            location=scheduled.location,
            posted_by=scheduled.posted_by,
            posted_by_user_id=scheduled.posted_by_user_id,
            posted_at=posted_at,
            is_active=True,
            expires_at=posted_at + timedelta(days=ttl_days),
            image_urls=list(scheduled.image_urls),
            scheduled_alert_id=scheduled.id,
            created_at=posted_at,
            updated_at=posted_at,
        )

    def to_document(self) -> Dict[str, Any]:
        doc = self.model_dump(exclude={"id"})
        doc["_id"] = self.id
        return doc

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ...core.interfaces import DocumentStore, QueryFilter, SERVER_TIMESTAMP
from ...shared.exceptions import NotFoundError
from ..notifications.models import FanoutReport
from .models import LiveAlert


logger = logging.getLogger(__name__)

ALERTS = "organization_alerts"
ORGANIZATIONS = "organizations"


class OrganizationAlertRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    async def insert(self, alert: LiveAlert) -> None:
        doc = alert.to_document()
        doc.pop("_id")
        await self.store.set(ALERTS, alert.id, doc)

    async def get(self, alert_id: str) -> Optional[Dict[str, Any]]:
        return await self.store.get(ALERTS, alert_id)

    async def increment_alert_count(self, organization_id: str, delta: int = 1) -> None:
        await self.store.atomic_increment(ORGANIZATIONS, organization_id, "alert_count", delta)

    async def record_delivery_summary(self, alert_id: str, report: FanoutReport) -> None:
        await self.store.update(ALERTS, alert_id, {
            "notifications_sent": True,
            "notification_count": report.delivered,
            "notification_failures": report.failed,
            "notification_skipped": report.skipped,
            "notification_sent_at": SERVER_TIMESTAMP,
        })

    async def record_delivery_error(self, alert_id: str, error: str) -> None:
        await self.store.update(ALERTS, alert_id, {
            "notifications_sent": False,
            "notification_error": error,
            "notification_sent_at": SERVER_TIMESTAMP,
        })

    async def count_for_organization(self, organization_id: str) -> int:
        return await self.store.count(ALERTS, QueryFilter().eq("organization_id", organization_id).to_dict())

    async def reconcile_alert_count(self, organization_id: str) -> Optional[int]:
        """Overwrite a drifted ``alert_count``. Returns the corrected value, or None if it was right."""
        organization = await self.store.get(ORGANIZATIONS, organization_id)
        if organization is None:
            raise NotFoundError("Organization", organization_id)

        actual = await self.count_for_organization(organization_id)
        if organization.get("alert_count") == actual:
            return None

        await self.store.update(ORGANIZATIONS, organization_id, {
            "alert_count": actual,
            "updated_at": SERVER_TIMESTAMP,
        })
        logger.info(
            "Reconciled alert_count for organization %s: %s -> %d",
            organization_id, organization.get("alert_count"), actual,
        )
        return actual

    async def organization_ids(self) -> List[str]:
        docs = await self.store.query(ORGANIZATIONS)
        return [doc["_id"] for doc in docs]

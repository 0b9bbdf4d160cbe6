from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List

from ...core.interfaces import DocumentStore, QueryFilter, SortOption, SERVER_TIMESTAMP
from ...shared.exceptions import DataValidationError, NotFoundError
from ...shared.models.base import ensure_utc
from .models import ScheduledAlert


logger = logging.getLogger(__name__)

COLLECTION = "scheduled_alerts"


class ScheduledAlertRepository:
    """Reads due/expired scheduled alerts and writes their next state.

    Every write touches only the owning record and only the fields named,
    so concurrent edits to unrelated fields survive.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    def _parse(self, docs: List[Dict[str, Any]]) -> List[ScheduledAlert]:
        alerts: List[ScheduledAlert] = []
        for doc in docs:
            try:
                alerts.append(ScheduledAlert.from_document(doc))
            except DataValidationError as e:
                details = "; ".join(e.validation_errors) or e.message
                logger.error(f"Skipping malformed scheduled alert {e.document_id}: {details}")
        return alerts

    async def due_alerts(self, now: datetime) -> List[ScheduledAlert]:
        """Active alerts with scheduled_date <= now, oldest due first"""
        query = QueryFilter().eq("is_active", True).lte("scheduled_date", ensure_utc(now))
        order = SortOption().asc("scheduled_date")
        docs = await self.store.query(COLLECTION, query.to_dict(), order.to_list())
        return self._parse(docs)

    async def expired_active_alerts(self, now: datetime) -> List[ScheduledAlert]:
        """Active alerts whose expires_at has passed"""
        query = QueryFilter().eq("is_active", True).lt("expires_at", ensure_utc(now))
        docs = await self.store.query(COLLECTION, query.to_dict(), SortOption().asc("expires_at").to_list())
        return self._parse(docs)

    async def persist_next_occurrence(self, alert: ScheduledAlert, next_date: datetime) -> None:
        """Advance scheduled_date in place; the alert stays active"""
        await self.store.update(
            COLLECTION,
            alert.id,
            {"scheduled_date": ensure_utc(next_date), "updated_at": SERVER_TIMESTAMP},
        )
        logger.info(f"Rescheduled alert {alert.id} to {next_date.isoformat()}")

    async def deactivate(self, alert_id: str) -> bool:
        """Set is_active=False. Returns False when the record was already inactive."""
        doc = await self.store.get(COLLECTION, alert_id)
        if doc is None:
            raise NotFoundError("ScheduledAlert", alert_id)
        if doc.get("is_active") is False:
            logger.debug(f"Scheduled alert {alert_id} already inactive")
            return False
        await self.store.update(
            COLLECTION, alert_id, {"is_active": False, "updated_at": SERVER_TIMESTAMP}
        )
        logger.info(f"Deactivated scheduled alert {alert_id}")
        return True

"""
Alert publisher.

Turns a scheduled definition into a persisted live alert, bumps the
organization's alert counter and fans out notifications. Only the live alert
write is on the critical path:

- live alert write fails -> PersistenceError, nothing else happens
- counter increment fails -> logged, the alert stays (reconcile_alert_counts fixes drift)
- fan-out fails -> logged and recorded on the alert, the alert stays
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from ...core.config import settings
from ...shared.exceptions import AlertPipelineError, NotFoundError, PersistenceError
from ...shared.identity import IdentityProvider
from ...shared.models.alerts import AlertSeverity, AlertType
from ...shared.models.base import new_document_id, utcnow
from ..followers.resolver import FollowerResolver
from ..notifications.dispatcher import NotificationDispatcher
from ..notifications.models import FanoutReport
from ..scheduled_alerts.models import ScheduledAlert
from .models import LiveAlert
from .repository import OrganizationAlertRepository


logger = logging.getLogger(__name__)


class AlertPublisher:
    def __init__(
        self,
        repository: OrganizationAlertRepository,
        resolver: FollowerResolver,
        dispatcher: NotificationDispatcher,
        identity_provider: Optional[IdentityProvider] = None,
        ttl_days: Optional[int] = None,
    ):
        self.repository = repository
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.identity_provider = identity_provider
        self.ttl_days = ttl_days or settings.alerts_live_alert_ttl_days

    async def publish(self, scheduled: ScheduledAlert, now: Optional[datetime] = None) -> LiveAlert:
        """Publish one execution of ``scheduled``; raises PersistenceError if the alert was not stored"""
        live_alert = LiveAlert.from_scheduled(scheduled, now or utcnow(), self.ttl_days)
        await self._publish_live_alert(live_alert)
        return live_alert

    async def _publish_live_alert(self, live_alert: LiveAlert) -> Optional[FanoutReport]:
        try:
            await self.repository.insert(live_alert)
        except PersistenceError as e:
            logger.error(f"Failed to store live alert for organization {live_alert.organization_id}: {e}")
            raise

        logger.info(f"Published alert {live_alert.id} '{live_alert.title}' for organization {live_alert.organization_id}")

        try:
            await self.repository.increment_alert_count(live_alert.organization_id)
        except AlertPipelineError as e:
            logger.warning(
                f"Alert count increment failed for organization {live_alert.organization_id} "
                f"(alert {live_alert.id} kept): {e}"
            )

        return await self._fan_out(live_alert)

    async def _fan_out(self, live_alert: LiveAlert) -> Optional[FanoutReport]:
        try:
            recipients = await self.resolver.eligible_recipients(
                live_alert.organization_id, live_alert.posted_by_user_id, live_alert.group_id
            )
            report = await self.dispatcher.fan_out(recipients, live_alert)
        except Exception as e:
            logger.exception(f"Fan-out failed for alert {live_alert.id}")
            try:
                await self.repository.record_delivery_error(live_alert.id, str(e))
            except AlertPipelineError as write_error:
                logger.warning(f"Could not record delivery error on alert {live_alert.id}: {write_error}")
            return None

        try:
            await self.repository.record_delivery_summary(live_alert.id, report)
        except AlertPipelineError as e:
            logger.warning(f"Could not record delivery summary on alert {live_alert.id}: {e}")
        return report

    async def publish_test_alert(self, organization_id: str, organization_name: str) -> LiveAlert:
        """Post a diagnostic alert authored by the current identity"""
        identity = await self.identity_provider.current_identity() if self.identity_provider else None
        if identity is None:
            raise NotFoundError("Identity", "current", message="No current identity to post a test alert")

        posted_at = utcnow()
        live_alert = LiveAlert(
            id=new_document_id(),
            organization_id=organization_id,
            organization_name=organization_name,
            title="Test Alert - Debug Push Notifications",
            description="This is a test alert to verify push notifications are working correctly.",
            type=AlertType.OTHER,
            severity=AlertSeverity.MEDIUM,
            posted_by=identity.display_name or identity.email or "Unknown",
            posted_by_user_id=identity.id,
            posted_at=posted_at,
            expires_at=posted_at + timedelta(days=self.ttl_days),
            created_at=posted_at,
            updated_at=posted_at,
        )
        await self._publish_live_alert(live_alert)
        return live_alert

    async def reconcile_alert_counts(self, organization_id: Optional[str] = None) -> Dict[str, int]:
        """Recompute drifted organization alert counters. Returns {organization_id: corrected count}."""
        if organization_id:
            organization_ids = [organization_id]
        else:
            organization_ids = await self.repository.organization_ids()

        corrected: Dict[str, int] = {}
        for org_id in organization_ids:
            try:
                value = await self.repository.reconcile_alert_count(org_id)
            except AlertPipelineError as e:
                logger.error(f"Alert count reconciliation failed for organization {org_id}: {e}")
                continue
            if value is not None:
                corrected[org_id] = value

        logger.info(
            f"Alert count reconciliation checked {len(organization_ids)} organizations, corrected {len(corrected)}"
        )
        return corrected

"""
Notification dispatcher.

Delivers one notification per eligible recipient over the push and email
gateways. Every recipient is attempted; a failure for one recipient never
stops delivery to the others and nothing is retried within a pass.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from ...core.config import settings
from ...core.interfaces import DocumentStore
from ...core.metrics import DELIVERIES_TOTAL
from ...shared.clients.push_client import PushClient
from ...shared.services.email_service import EmailService
from ..organization_alerts.models import LiveAlert
from .models import ChannelResult, DeliveryOutcome, DeliveryStatus, FanoutReport, SkipReason


logger = logging.getLogger(__name__)

SEVERITY_PREFIXES = {
    "critical": "🚨 ",
    "high": "⚠️ ",
    "medium": "📢 ",
    "low": "ℹ️ ",
}


def push_title(alert: LiveAlert) -> str:
    prefix = SEVERITY_PREFIXES.get(alert.severity, "")
    if alert.group_name:
        return f"{prefix}{alert.group_name}: {alert.title}"
    return f"{prefix}{alert.title}"


def push_data(alert: LiveAlert) -> Dict[str, str]:
    data = {
        "type": "organization_alert",
        "alert_id": alert.id,
        "organization_id": alert.organization_id,
        "organization_name": alert.organization_name,
        "alert_type": alert.type,
        "severity": alert.severity,
    }
    if alert.group_id:
        data["group_id"] = alert.group_id
    if alert.group_name:
        data["group_name"] = alert.group_name
    return data


class NotificationDispatcher:
    """Per-recipient delivery over push and email"""

    def __init__(
        self,
        store: DocumentStore,
        push_client: Optional[PushClient] = None,
        email_service: Optional[EmailService] = None,
        concurrency: Optional[int] = None,
    ):
        self.store = store
        self.push_client = push_client or PushClient.from_settings()
        self.email_service = email_service or EmailService()
        self.concurrency = concurrency or settings.alerts_fanout_concurrency

    def _push_token(self, user: Dict[str, Any]) -> Optional[str]:
        token = (user.get("fcm_token") or "").strip()
        if len(token) < settings.push_min_token_length:
            return None
        return token

    def _email_address(self, user: Dict[str, Any]) -> Optional[str]:
        email = (user.get("email") or "").strip()
        return email or None

    async def _send_push(self, token: str, alert: LiveAlert) -> ChannelResult:
        try:
            result = await self.push_client.send(
                token, push_title(alert), alert.description, data=push_data(alert)
            )
        except Exception as e:
            logger.error(f"Push gateway raised for alert {alert.id}: {e}")
            return ChannelResult(channel="push", ok=False, error=str(e))
        return ChannelResult(channel="push", ok=bool(result.get("ok")), error=result.get("error"))

    async def _send_email(self, address: str, alert: LiveAlert) -> ChannelResult:
        try:
            result = await self.email_service.send_alert_email(address, alert)
        except Exception as e:
            logger.error(f"Email gateway raised for alert {alert.id}: {e}")
            return ChannelResult(channel="email", ok=False, error=str(e))
        return ChannelResult(channel="email", ok=bool(result.get("ok")), error=result.get("error"))

    async def notify(self, recipient_id: str, live_alert: LiveAlert) -> DeliveryOutcome:
        """Deliver ``live_alert`` to one recipient on every channel they have an address for"""
        try:
            user = await self.store.get("users", recipient_id)
        except Exception as e:
            logger.warning(f"Recipient lookup failed for {recipient_id}: {e}")
            return DeliveryOutcome.failed(recipient_id, f"lookup_failed: {e}")

        if user is None:
            return DeliveryOutcome.skipped(recipient_id, SkipReason.NO_ADDRESS)
        if user.get("alerts_enabled") is False:
            return DeliveryOutcome.skipped(recipient_id, SkipReason.MUTED)

        sends = []
        token = self._push_token(user)
        if token:
            sends.append(self._send_push(token, live_alert))
        address = self._email_address(user)
        if address:
            sends.append(self._send_email(address, live_alert))

        if not sends:
            return DeliveryOutcome.skipped(recipient_id, SkipReason.NO_ADDRESS)

        channels: List[ChannelResult] = list(await asyncio.gather(*sends))
        if any(c.ok for c in channels):
            return DeliveryOutcome.delivered(recipient_id, channels)

        reason = "; ".join(f"{c.channel}: {c.error or 'failed'}" for c in channels)
        return DeliveryOutcome.failed(recipient_id, reason, channels)

    async def fan_out(self, recipients: Iterable[str], live_alert: LiveAlert) -> FanoutReport:
        """Notify every recipient, at most ``concurrency`` at a time, and aggregate outcomes"""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(recipient_id: str) -> DeliveryOutcome:
            async with semaphore:
                try:
                    return await self.notify(recipient_id, live_alert)
                except Exception as e:
                    logger.exception(f"Unexpected delivery error for recipient {recipient_id}")
                    return DeliveryOutcome.failed(recipient_id, f"unexpected: {e}")

        outcomes = list(await asyncio.gather(*(_bounded(r) for r in sorted(set(recipients)))))
        report = FanoutReport.from_outcomes(live_alert.id, outcomes)

        for outcome in outcomes:
            DELIVERIES_TOTAL.labels(status=outcome.status.value).inc()
            if outcome.status == DeliveryStatus.FAILED:
                logger.warning(f"Delivery to {outcome.recipient_id} failed: {outcome.reason}")
            elif outcome.status == DeliveryStatus.SKIPPED:
                logger.debug(f"Delivery to {outcome.recipient_id} skipped: {outcome.reason}")

        logger.info(
            f"Fan-out for alert {report.alert_id}: attempted={report.attempted} "
            f"delivered={report.delivered} failed={report.failed} skipped={report.skipped}"
        )
        return report

    async def aclose(self) -> None:
        await self.push_client.aclose()
        await self.email_service.client.aclose()

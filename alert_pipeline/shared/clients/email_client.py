from __future__ import annotations

import logging
from typing import Optional, Dict, Any

from ...core.config import settings
from .gateway import GatewayClient

logger = logging.getLogger(__name__)


class EmailClient(GatewayClient):
    """Email gateway client (dev logs, http posts to the mail relay)"""

    channel = "email"

    @classmethod
    def from_settings(cls) -> "EmailClient":
        return cls(
            provider=settings.email_provider,
            endpoint_url=settings.email_endpoint_url,
            api_key=settings.email_api_key,
            timeout=settings.gateway_timeout_seconds,
        )

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
        *,
        meta: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        if self.provider == "dev":
            logger.info("[DEV EMAIL] to=%s subject=%s meta=%s", to, subject, meta)
            return {"ok": True, "provider": "dev"}

        result = await self._post({
            "from": settings.email_from,
            "to": to,
            "subject": subject,
            "html": html,
            "text": text,
            "meta": meta or {},
        })
        if not result["ok"]:
            logger.warning("Email to %s failed: %s", to, result.get("error"))
        return result

from __future__ import annotations

import logging
from typing import Optional, Dict, Any

from ...core.config import settings
from .gateway import GatewayClient

logger = logging.getLogger(__name__)


class PushClient(GatewayClient):
    """Push gateway client addressed by device (FCM) token"""

    channel = "push"

    @classmethod
    def from_settings(cls) -> "PushClient":
        return cls(
            provider=settings.push_provider,
            endpoint_url=settings.push_endpoint_url,
            api_key=settings.push_api_key,
            timeout=settings.gateway_timeout_seconds,
        )

    async def send(
        self,
        token: str,
        title: str,
        body: str,
        *,
        data: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        if self.provider == "dev":
            logger.info("[DEV PUSH] token=%s... title=%s data=%s", token[:12], title, data)
            return {"ok": True, "provider": "dev"}

        result = await self._post({
            "token": token,
            "notification": {"title": title, "body": body},
            "data": data or {},
        })
        if not result["ok"]:
            logger.warning("Push to token %s... failed: %s", token[:12], result.get("error"))
        return result

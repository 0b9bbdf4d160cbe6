from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..exceptions import DeliveryError

logger = logging.getLogger(__name__)


class GatewayClient:
    """Base for notification gateways.

    - dev: logs instead of sending, always succeeds
    - http: POSTs a JSON payload to a configured endpoint

    ``send`` never raises for transport or gateway failures; callers get a
    result dict with ``ok`` set accordingly.
    """

    channel = "gateway"

    def __init__(
        self,
        provider: str = "dev",
        endpoint_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if provider not in ("dev", "http"):
            raise DeliveryError(f"Unknown {self.channel} provider '{provider}'", channel=self.channel)
        if provider == "http" and not endpoint_url:
            raise DeliveryError(f"{self.channel} provider 'http' requires an endpoint URL", channel=self.channel)

        self.provider = provider
        self.endpoint_url = endpoint_url
        self.api_key = api_key
        self.timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
            self._http_client = httpx.AsyncClient(timeout=self.timeout, headers=headers)
        return self._http_client

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._client().post(self.endpoint_url, json=payload)
        except httpx.TimeoutException:
            return {"ok": False, "error": "timeout", "provider": self.provider}
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return {"ok": False, "error": f"transport_error: {e}", "provider": self.provider}

        if response.is_success:
            return {"ok": True, "provider": self.provider, "status_code": response.status_code}
        return {
            "ok": False,
            "error": f"http_{response.status_code}",
            "provider": self.provider,
            "status_code": response.status_code,
        }

    async def aclose(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

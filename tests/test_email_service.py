import json
from datetime import timedelta

import httpx
import pytest

from alert_pipeline.domains.organization_alerts.models import LiveAlert
from alert_pipeline.shared.clients.email_client import EmailClient
from alert_pipeline.shared.clients.push_client import PushClient
from alert_pipeline.shared.exceptions import DeliveryError
from alert_pipeline.shared.models.alerts import AlertLocation
from alert_pipeline.shared.services.email_service import EmailService, html_to_text

from conftest import T0


@pytest.fixture
def live_alert():
    return LiveAlert(
        id="live-1",
        organization_id="org-1",
        organization_name="Denton Public Works",
        group_name="Road Closures",
        title="Elm St closed",
        description="Closed <between> 5th & 7th",
        type="road",
        severity="high",
        location=AlertLocation(latitude=33.2, longitude=-97.1, address="Elm St", city="Denton", state="TX"),
        posted_by="Pat Poster",
        posted_by_user_id="user-poster",
        posted_at=T0,
        expires_at=T0 + timedelta(days=14),
    )


def recording_transport(status_code=200):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, json={"id": "msg-1"})

    return httpx.MockTransport(handler), requests


class TestEmailService:
    """Alert email rendering"""

    def test_subject_and_bodies(self, live_alert):
        service = EmailService(client=EmailClient(provider="dev"))

        rendered = service.render_alert(live_alert)

        assert rendered["subject"] == "New Alert: Elm St closed - Denton Public Works"
        assert "Closed &lt;between&gt; 5th &amp; 7th" in rendered["html"]
        assert "Elm St, Denton, TX" in rendered["text"]
        assert "Closed <between> 5th & 7th" in rendered["text"]
        assert "<" not in rendered["text"].replace("<between>", "")

    def test_location_placeholder(self, live_alert):
        service = EmailService(client=EmailClient(provider="dev"))
        rendered = service.render_alert(live_alert.model_copy(update={"location": None}))
        assert "No specific location" in rendered["text"]

    def test_html_to_text_strips_markup(self):
        assert html_to_text("<p>Hello&nbsp;<b>there</b></p>\n\n<p>x</p>") == "Hello there x"

    @pytest.mark.asyncio
    async def test_dev_provider_always_succeeds(self, live_alert):
        service = EmailService(client=EmailClient(provider="dev"))
        result = await service.send_alert_email("a@example.com", live_alert)
        assert result == {"ok": True, "provider": "dev"}


class TestGatewayClients:
    """HTTP gateway providers"""

    @pytest.mark.asyncio
    async def test_email_http_posts_json(self, live_alert):
        transport, requests = recording_transport()
        client = EmailClient(
            provider="http",
            endpoint_url="https://mail.example/send",
            http_client=httpx.AsyncClient(transport=transport),
        )

        result = await EmailService(client=client).send_alert_email("a@example.com", live_alert)

        assert result["ok"] is True
        body = json.loads(requests[0].content)
        assert body["to"] == "a@example.com"
        assert body["subject"] == "New Alert: Elm St closed - Denton Public Works"
        assert body["meta"]["alert_id"] == "live-1"

    @pytest.mark.asyncio
    async def test_push_non_2xx_is_failure_not_exception(self):
        transport, _ = recording_transport(status_code=502)
        client = PushClient(
            provider="http",
            endpoint_url="https://push.example/send",
            http_client=httpx.AsyncClient(transport=transport),
        )

        result = await client.send("t" * 160, "title", "body", data={"alert_id": "live-1"})

        assert result["ok"] is False
        assert result["error"] == "http_502"

    @pytest.mark.asyncio
    async def test_transport_error_is_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = PushClient(
            provider="http",
            endpoint_url="https://push.example/send",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

        result = await client.send("t" * 160, "title", "body")

        assert result["ok"] is False
        assert result["error"].startswith("transport_error")

    def test_http_provider_requires_endpoint(self):
        with pytest.raises(DeliveryError):
            PushClient(provider="http")

    def test_unknown_provider_rejected(self):
        with pytest.raises(DeliveryError):
            EmailClient(provider="smtp")

"""
Tests for the email channel.

The SendGrid API is replaced by an httpx.MockTransport, so requests are
inspected without network access.
"""

import json

import httpx
import pytest

from alerting.alerts.enums import ChannelType
from alerting.channels import EmailChannel, Message
from alerting.core.errors import ConfigurationError, DeliveryError


def make_channel(handler, **kwargs) -> EmailChannel:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EmailChannel(
        api_key="SG.test",
        from_email="alerts@example.com",
        from_name="Trading Alerts",
        client=client,
        **kwargs,
    )


class Recorder:
    """MockTransport handler that records requests and answers with a status."""

    def __init__(self, status_code: int = 202, body: str = ""):
        self.status_code = status_code
        self.body = body
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, text=self.body)

    def payload(self, index: int = 0) -> dict:
        return json.loads(self.requests[index].content)


# =============================================================================
# CONSTRUCTION
# =============================================================================


class TestConstruction:
    """Tests for configuration checks."""

    def test_missing_api_key(self):
        with pytest.raises(ConfigurationError):
            EmailChannel(api_key="", from_email="alerts@example.com")

    def test_missing_from_address(self):
        with pytest.raises(ConfigurationError):
            EmailChannel(api_key="SG.test", from_email="")

    def test_type_is_email(self):
        assert make_channel(Recorder()).type is ChannelType.EMAIL


# =============================================================================
# SEND
# =============================================================================


class TestSend:
    """Tests for EmailChannel.send."""

    @pytest.mark.asyncio
    async def test_builds_sendgrid_payload(self):
        recorder = Recorder()
        channel = make_channel(recorder)

        await channel.send(Message(
            subject="Bot down",
            body="plain",
            html_body="<p>html</p>",
            recipients=["a@example.com", "b@example.com"],
            metadata={"rule_id": "r-1"},
        ))

        request = recorder.requests[0]
        assert request.headers["Authorization"] == "Bearer SG.test"
        payload = recorder.payload()
        assert payload["personalizations"][0]["to"] == [
            {"email": "a@example.com"}, {"email": "b@example.com"},
        ]
        assert payload["from"] == {"email": "alerts@example.com", "name": "Trading Alerts"}
        assert payload["subject"] == "Bot down"
        assert payload["content"] == [
            {"type": "text/plain", "value": "plain"},
            {"type": "text/html", "value": "<p>html</p>"},
        ]
        assert payload["custom_args"] == {"rule_id": "r-1"}

    @pytest.mark.asyncio
    async def test_empty_recipients_rejected(self):
        recorder = Recorder()
        with pytest.raises(DeliveryError):
            await make_channel(recorder).send(Message(subject="x", body="y"))
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_message_needs_a_body(self):
        with pytest.raises(DeliveryError):
            await make_channel(Recorder()).send(
                Message(subject="x", recipients=["a@example.com"])
            )

    @pytest.mark.asyncio
    async def test_provider_error_status(self):
        channel = make_channel(Recorder(status_code=401, body="bad key"))
        with pytest.raises(DeliveryError) as exc:
            await channel.send(Message(subject="x", body="y", recipients=["a@example.com"]))
        assert "401" in str(exc.value)

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(DeliveryError):
            await make_channel(handler).send(
                Message(subject="x", body="y", recipients=["a@example.com"])
            )


class TestTestMessage:
    """Tests for EmailChannel.test."""

    @pytest.mark.asyncio
    async def test_empty_recipient_goes_to_from_address(self):
        recorder = Recorder()
        await make_channel(recorder).test("")
        payload = recorder.payload()
        assert payload["personalizations"][0]["to"] == [{"email": "alerts@example.com"}]
        assert payload["subject"] == "Test notification"

    @pytest.mark.asyncio
    async def test_explicit_recipient(self):
        recorder = Recorder()
        await make_channel(recorder).test("me@example.com")
        assert recorder.payload()["personalizations"][0]["to"] == [{"email": "me@example.com"}]

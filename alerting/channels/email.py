"""
Email channel over the SendGrid v3 mail API.

Uses one shared httpx.AsyncClient. The provider answers 202 on success;
any status >= 400 is a delivery failure.
"""

import logging
from typing import Optional

import httpx

from alerting.alerts.enums import ChannelType
from alerting.channels.base import Channel, Message
from alerting.core.errors import ConfigurationError, DeliveryError

logger = logging.getLogger(__name__)

SENDGRID_API_URL = "https://api.sendgrid.com/v3/mail/send"


class EmailChannel(Channel):
    """
    Sends alerts as email.

    Args:
        api_key: SendGrid API key
        from_email: Sender address, also the default test recipient
        from_name: Sender display name
        api_url: Mail send endpoint
        client: Optional preconfigured client (tests pass one with a mock transport)

    Raises:
        ConfigurationError: api_key or from_email is empty
    """

    def __init__(
        self,
        api_key: str,
        from_email: str,
        from_name: str = "",
        api_url: str = SENDGRID_API_URL,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        if not api_key:
            raise ConfigurationError("email channel requires an API key")
        if not from_email:
            raise ConfigurationError("email channel requires a from address")

        self._api_key = api_key
        self._from_email = from_email
        self._from_name = from_name
        self._api_url = api_url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def type(self) -> ChannelType:
        return ChannelType.EMAIL

    @property
    def from_email(self) -> str:
        return self._from_email

    def _build_payload(self, message: Message) -> dict:
        content = []
        if message.body:
            content.append({"type": "text/plain", "value": message.body})
        if message.html_body:
            content.append({"type": "text/html", "value": message.html_body})

        sender = {"email": self._from_email}
        if self._from_name:
            sender["name"] = self._from_name

        payload = {
            "personalizations": [
                {"to": [{"email": address} for address in message.recipients]}
            ],
            "from": sender,
            "subject": message.subject,
            "content": content,
        }
        if message.metadata:
            payload["custom_args"] = {k: str(v) for k, v in message.metadata.items()}
        return payload

    async def send(self, message: Message) -> None:
        message.validate()

        try:
            response = await self._client.post(
                self._api_url,
                json=self._build_payload(message),
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        except httpx.HTTPError as e:
            raise DeliveryError(f"email request failed: {e}") from e

        if response.status_code >= 400:
            raise DeliveryError(
                f"email provider returned {response.status_code}: {response.text}"
            )

        logger.info(
            "Email sent to %d recipient(s): %s",
            len(message.recipients),
            message.subject,
        )

    async def test(self, recipient: str = "") -> None:
        to = recipient or self._from_email
        await self.send(
            Message(
                subject="Test notification",
                body=(
                    "This is a test message from the alerting service.\n\n"
                    "If you received this, email alerts are configured correctly."
                ),
                html_body=(
                    "<h2>Test notification</h2>"
                    "<p>This is a test message from the alerting service.</p>"
                    "<p>If you received this, email alerts are configured correctly.</p>"
                ),
                recipients=[to],
                metadata={"type": "test"},
            )
        )

    async def aclose(self) -> None:
        await self._client.aclose()

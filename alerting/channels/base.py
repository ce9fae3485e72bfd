"""
Delivery channel interface.

A channel is a capability: it knows its type, sends a rendered message to
its recipients, and can send a test message. Implementations raise
DeliveryError when the provider rejects a message.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from alerting.alerts.enums import ChannelType
from alerting.core.errors import DeliveryError


@dataclass
class Message:
    """A rendered message ready for delivery."""
    subject: str
    body: str = ""
    html_body: str = ""
    recipients: list[str] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)

    def validate(self) -> None:
        """
        Raises:
            DeliveryError: No recipients, or neither body is set
        """
        if not self.recipients:
            raise DeliveryError("message has no recipients")
        if not self.body and not self.html_body:
            raise DeliveryError("message has no body")


class Channel(ABC):
    """Base class for delivery channels."""

    @property
    @abstractmethod
    def type(self) -> ChannelType:
        ...

    @abstractmethod
    async def send(self, message: Message) -> None:
        """Deliver a message or raise DeliveryError."""

    @abstractmethod
    async def test(self, recipient: str = "") -> None:
        """Send a test message. An empty recipient means the channel's own address."""

    async def aclose(self) -> None:
        """Release network resources held by the channel."""


async def send_with_deadline(channel: Channel, message: Message, timeout: float) -> None:
    """
    Send through a channel with a bounded deadline.

    Raises:
        DeliveryError: The channel failed, raised unexpectedly, or timed out
    """
    try:
        await asyncio.wait_for(channel.send(message), timeout=timeout)
    except DeliveryError:
        raise
    except asyncio.TimeoutError as e:
        raise DeliveryError(f"{channel.type.value} send timed out after {timeout}s") from e
    except Exception as e:
        raise DeliveryError(f"{channel.type.value} channel error: {e}") from e

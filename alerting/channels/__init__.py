"""Delivery channels."""

from alerting.channels.base import Channel, Message
from alerting.channels.email import EmailChannel

__all__ = ["Channel", "Message", "EmailChannel"]

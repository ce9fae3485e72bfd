"""Rendered alert passed from the dispatcher to the batcher."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class Alert:
    """
    A rendered alert whose audit row has already been written.

    event_id points at that row so the final delivery status can be
    recorded once the alert leaves the process.
    """
    rule_id: uuid.UUID
    event_id: uuid.UUID
    resource_id: str
    severity: str
    subject: str
    body: str
    html_body: str
    recipients: list[str] = field(default_factory=list)
    created_at: datetime | None = None

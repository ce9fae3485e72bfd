"""
AlertEvent model - represents the 'alert_events' table (audit trail).

One row is written for every rule match, whatever the outcome. The payload
is never rewritten. Only the delivery status of a row written before
delivery moves on (sent -> failed, queued -> sent | failed).
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from alerting.core.db import Base

SUBJECT_MAX_LENGTH = 255


class AlertEvent(Base):
    """
    AlertEvent model - one audited rule match.

    Attributes:
        id: Primary key (UUID)
        rule_id: The rule that matched
        resource_id: Concrete resource the event concerned
        owner_id: Owning organization
        trigger_type / severity: Copied from the rule at match time
        timestamp: When the match was evaluated
        payload: Serialized domain event
        subject: Rendered subject line
        recipients: Recipients at match time
        delivery_status: queued, sent, suppressed or failed
        channel_type: Channel used for delivery
        error_message: Reason for suppression or failure
        sent_at: When the channel accepted the message
    """

    __tablename__ = "alert_events"

    __table_args__ = (
        # Cooldown lookups: latest row per (rule, resource)
        Index("ix_alert_events_rule_resource_ts", "rule_id", "resource_id", "timestamp"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    rule_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("alert_rules.id"),
        nullable=False,
    )

    resource_id: Mapped[str] = mapped_column(String(64), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    trigger_type: Mapped[str] = mapped_column(String(40), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    subject: Mapped[str] = mapped_column(String(SUBJECT_MAX_LENGTH), nullable=False, default="")
    recipients: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    delivery_status: Mapped[str] = mapped_column(String(20), nullable=False)
    channel_type: Mapped[str] = mapped_column(String(20), nullable=False, default="email")
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<AlertEvent id={self.id} rule={self.rule_id} "
            f"resource={self.resource_id} {self.delivery_status}>"
        )

"""
AlertRule model - represents the 'alert_rules' table in the database.

A rule is bound either to one concrete resource (resource_id set) or to
every resource of its owner of the given resource type (resource_id NULL).
Owner-wide rules with resource_type 'organization' apply to every resource
type the owner has.

Rules are soft-deleted so audit rows keep a valid rule reference.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Uuid, func, text
from sqlalchemy.orm import Mapped, mapped_column

from alerting.core.db import Base


class AlertRule(Base):
    """
    AlertRule model - defines when and how an alert is sent.

    Attributes:
        id: Primary key (UUID)
        name: Human readable rule name
        owner_id: Owning organization, always set
        resource_type: bot, strategy, runner or organization
        resource_id: Concrete resource, NULL for owner-wide rules
        trigger_type: Kind of event the rule reacts to
        conditions: Trigger-specific JSON conditions
        severity: critical, warning or info
        delivery_mode: immediate or batched
        cooldown_seconds: Minimum time between two delivered alerts per resource
        recipients: Ordered list of email addresses
        bot_mode_filter: all, live or dry_run
        enabled: Whether this rule is evaluated
        deleted_at: Soft delete marker
    """

    __tablename__ = "alert_rules"

    __table_args__ = (
        Index("ix_alert_rules_resource", "resource_id", "trigger_type"),
        Index("ix_alert_rules_owner", "owner_id", "resource_type", "trigger_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # BINDING
    # -------
    # owner_id is always set. resource_id NULL = owner-wide rule.

    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(20), nullable=False)
    resource_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # TRIGGER
    # -------
    # conditions are validated against the trigger type when saved.

    trigger_type: Mapped[str] = mapped_column(String(40), nullable=False)
    conditions: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    # DELIVERY
    # --------

    severity: Mapped[str] = mapped_column(String(20), nullable=False, default="info")
    delivery_mode: Mapped[str] = mapped_column(String(20), nullable=False, default="immediate")
    cooldown_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=300)
    recipients: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    bot_mode_filter: Mapped[str] = mapped_column(String(20), nullable=False, default="all")

    enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ==========================================================================
    # HELPER PROPERTIES
    # ==========================================================================

    @property
    def is_owner_wide(self) -> bool:
        """Check if this rule applies to every resource of its owner."""
        return self.resource_id is None

    @property
    def permission_resource_id(self) -> str:
        """Resource the authorization gateway checks for this rule."""
        if self.resource_type == "organization" or self.resource_id is None:
            return self.owner_id
        return self.resource_id

    def __repr__(self) -> str:
        scope = f"owner={self.owner_id}" if self.is_owner_wide else f"resource={self.resource_id}"
        status = "enabled" if self.enabled else "disabled"
        return f"<AlertRule id={self.id} name='{self.name}' {self.trigger_type} {scope} {status}>"

"""
Pydantic schemas for alert rule endpoints.

Conditions are validated against the rule's trigger type here, so a rule
that reaches the store always has well-formed conditions.
"""

import re
import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from alerting.alerts.conditions import parse_conditions
from alerting.alerts.enums import (
    BotModeFilter,
    DeliveryMode,
    ResourceType,
    Severity,
    TriggerType,
    default_delivery_mode,
    default_severity,
    is_trigger_allowed,
)
from alerting.core.errors import ValidationError

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _check_conditions(trigger_type: TriggerType, conditions: dict[str, Any]) -> None:
    try:
        parse_conditions(trigger_type, conditions)
    except ValidationError as e:
        # pydantic reports ValueError as a field error (422)
        raise ValueError(str(e)) from e


def _check_email(address: str) -> None:
    if not re.match(EMAIL_PATTERN, address):
        raise ValueError(f"invalid recipient address: {address!r}")


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================


class AlertRuleCreate(BaseModel):
    """
    Schema for creating a new alert rule.

    Example:
        {
            "name": "Bot error",
            "owner_id": "org-1",
            "resource_type": "bot",
            "resource_id": "bot-42",
            "trigger_type": "status_change",
            "conditions": {"trigger_on": ["error"]},
            "severity": "critical",
            "recipients": ["ops@example.com"]
        }
    """

    name: str = Field(..., min_length=1, max_length=100)

    owner_id: str = Field(..., min_length=1, max_length=64, description="Owning organization")

    resource_type: ResourceType

    resource_id: Optional[str] = Field(
        default=None,
        min_length=1,
        max_length=64,
        description="Concrete resource; omit for a rule covering all resources of the owner",
    )

    trigger_type: TriggerType

    conditions: dict[str, Any] = Field(default_factory=dict)

    severity: Optional[Severity] = Field(
        default=None, description="Defaults to the trigger type's default severity"
    )

    delivery_mode: Optional[DeliveryMode] = Field(
        default=None, description="Defaults to immediate for critical rules, batched otherwise"
    )

    cooldown_seconds: int = Field(default=300, ge=0, le=7 * 24 * 3600)

    recipients: list[str] = Field(default_factory=list, max_length=50)

    bot_mode_filter: BotModeFilter = BotModeFilter.ALL

    enabled: bool = True

    @model_validator(mode="after")
    def _validate_rule(self) -> "AlertRuleCreate":
        if self.resource_type is ResourceType.ORGANIZATION and self.resource_id is not None:
            raise ValueError("organization rules cannot be bound to a resource id")
        if not is_trigger_allowed(self.resource_type, self.trigger_type):
            raise ValueError(
                f"trigger {self.trigger_type.value} is not available for "
                f"{self.resource_type.value} rules"
            )
        _check_conditions(self.trigger_type, self.conditions)
        for address in self.recipients:
            _check_email(address)
        if self.severity is None:
            self.severity = default_severity(self.trigger_type)
        if self.delivery_mode is None:
            self.delivery_mode = default_delivery_mode(self.severity)
        return self


class AlertRuleUpdate(BaseModel):
    """
    Schema for updating an existing alert rule.
    All fields are optional - only provided fields will be updated.
    Binding and trigger type cannot change; conditions are checked against
    the stored trigger type by the service.
    """

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    conditions: Optional[dict[str, Any]] = None
    severity: Optional[Severity] = None
    delivery_mode: Optional[DeliveryMode] = None
    cooldown_seconds: Optional[int] = Field(default=None, ge=0, le=7 * 24 * 3600)
    recipients: Optional[list[str]] = Field(default=None, max_length=50)
    bot_mode_filter: Optional[BotModeFilter] = None
    enabled: Optional[bool] = None

    @model_validator(mode="after")
    def _validate_recipients(self) -> "AlertRuleUpdate":
        for address in self.recipients or []:
            _check_email(address)
        return self


class AlertRuleToggle(BaseModel):
    enabled: bool


class ChannelTestRequest(BaseModel):
    """Empty recipient sends to the channel's own from-address."""

    recipient: str = ""


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================


class AlertRuleResponse(BaseModel):
    """Alert rule data returned from API."""

    id: uuid.UUID
    name: str
    owner_id: str
    resource_type: str
    resource_id: Optional[str]
    trigger_type: str
    conditions: dict[str, Any]
    severity: str
    delivery_mode: str
    cooldown_seconds: int
    recipients: list[str]
    bot_mode_filter: str
    enabled: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AlertRuleListResponse(BaseModel):
    """
    List of alert rules (no pagination - rules are typically few).
    """

    items: list[AlertRuleResponse]
    total: int


class AlertEventResponse(BaseModel):
    """One audit row."""

    id: uuid.UUID
    rule_id: uuid.UUID
    resource_id: str
    trigger_type: str
    severity: str
    timestamp: datetime
    subject: str
    recipients: list[str]
    delivery_status: str
    channel_type: str
    error_message: Optional[str]
    sent_at: Optional[datetime]

    model_config = {"from_attributes": True}


class TriggerTypeInfo(BaseModel):
    type: str
    label: str
    description: str
    default_severity: str

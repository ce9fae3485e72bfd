"""
Default rules seeded for new bots.

Every bot gets the same three rules, without recipients, so they stay
inert until someone adds an address. Only the error rule starts enabled.
"""

import uuid

from alerting.alerts.enums import DeliveryMode, ResourceType, Severity, TriggerType
from alerting.models import AlertRule


DEFAULT_BOT_RULES = [
    {
        "name": "Bot Error Alert",
        "trigger_type": TriggerType.STATUS_CHANGE,
        "conditions": {"trigger_on": ["error"]},
        "severity": Severity.CRITICAL,
        "delivery_mode": DeliveryMode.IMMEDIATE,
        "enabled": True,
    },
    {
        "name": "Bot Stopped Alert",
        "trigger_type": TriggerType.STATUS_CHANGE,
        "conditions": {"trigger_on": ["stopped"]},
        "severity": Severity.WARNING,
        "delivery_mode": DeliveryMode.BATCHED,
        "enabled": False,
    },
    {
        "name": "Trade Alert",
        "trigger_type": TriggerType.TRADE_CLOSED,
        "conditions": {},
        "severity": Severity.INFO,
        "delivery_mode": DeliveryMode.BATCHED,
        "enabled": False,
    },
]


def build_default_bot_rules(bot_id: str, owner_id: str) -> list[AlertRule]:
    """Build (unsaved) default rules bound to one bot."""
    return [
        AlertRule(
            id=uuid.uuid4(),
            name=default["name"],
            owner_id=owner_id,
            resource_type=ResourceType.BOT.value,
            resource_id=bot_id,
            trigger_type=default["trigger_type"].value,
            conditions=dict(default["conditions"]),
            severity=default["severity"].value,
            delivery_mode=default["delivery_mode"].value,
            cooldown_seconds=300,
            recipients=[],
            bot_mode_filter="all",
            enabled=default["enabled"],
        )
        for default in DEFAULT_BOT_RULES
    ]

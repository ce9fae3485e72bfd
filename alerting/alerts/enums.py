"""
Enumerations shared by rules, events and the audit trail.

Values are stored as plain strings in the database, so every enum
subclasses str and compares equal to its stored value.
"""

from enum import Enum


class ResourceType(str, Enum):
    """Kind of monitored resource a rule is bound to."""
    ORGANIZATION = "organization"
    BOT = "bot"
    STRATEGY = "strategy"
    RUNNER = "runner"


class TriggerType(str, Enum):
    """Kind of domain event a rule reacts to."""
    STATUS_CHANGE = "status_change"
    TRADE_OPENED = "trade_opened"
    TRADE_CLOSED = "trade_closed"
    LARGE_PROFIT_LOSS = "large_profit_loss"
    DAILY_LOSS_LIMIT = "daily_loss_limit"
    DRAWDOWN_THRESHOLD = "drawdown_threshold"
    PROFIT_TARGET = "profit_target"
    CONNECTION_ISSUE = "connection_issue"
    BACKTEST_COMPLETED = "backtest_completed"
    BACKTEST_FAILED = "backtest_failed"


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class DeliveryMode(str, Enum):
    IMMEDIATE = "immediate"
    BATCHED = "batched"


class DeliveryStatus(str, Enum):
    """Outcome recorded on an audit row."""
    QUEUED = "queued"
    SENT = "sent"
    SUPPRESSED = "suppressed"
    FAILED = "failed"


class BotModeFilter(str, Enum):
    """Restricts a rule to live bots, dry-run bots, or both."""
    ALL = "all"
    LIVE = "live"
    DRY_RUN = "dry_run"

    def matches(self, dry_run: bool | None) -> bool:
        """
        Check whether a bot in the given mode passes this filter.

        An event that does not report its mode passes every filter.
        """
        if self is BotModeFilter.ALL or dry_run is None:
            return True
        if self is BotModeFilter.LIVE:
            return not dry_run
        return dry_run


class ChannelType(str, Enum):
    """Delivery channel kinds. Only email is implemented."""
    EMAIL = "email"
    WEBHOOK = "webhook"
    PUSH = "push"


# =============================================================================
# TRIGGER METADATA
# =============================================================================
# Labels and default severities shown by rule editors, and which triggers
# make sense for which resource type.

TRIGGER_METADATA: dict[TriggerType, dict[str, str]] = {
    TriggerType.STATUS_CHANGE: {
        "label": "Status Change",
        "description": "Bot status changes (running, stopped, error)",
        "default_severity": Severity.WARNING.value,
    },
    TriggerType.TRADE_OPENED: {
        "label": "Trade Opened",
        "description": "A new trade is opened",
        "default_severity": Severity.INFO.value,
    },
    TriggerType.TRADE_CLOSED: {
        "label": "Trade Closed",
        "description": "A trade is closed",
        "default_severity": Severity.INFO.value,
    },
    TriggerType.LARGE_PROFIT_LOSS: {
        "label": "Large Profit/Loss",
        "description": "A closed trade exceeds a profit or loss threshold",
        "default_severity": Severity.WARNING.value,
    },
    TriggerType.DAILY_LOSS_LIMIT: {
        "label": "Daily Loss Limit",
        "description": "Daily loss exceeds the configured limit",
        "default_severity": Severity.CRITICAL.value,
    },
    TriggerType.DRAWDOWN_THRESHOLD: {
        "label": "Drawdown Threshold",
        "description": "Drawdown exceeds the configured threshold",
        "default_severity": Severity.CRITICAL.value,
    },
    TriggerType.PROFIT_TARGET: {
        "label": "Profit Target",
        "description": "Cumulative profit reaches the target",
        "default_severity": Severity.INFO.value,
    },
    TriggerType.CONNECTION_ISSUE: {
        "label": "Connection Issue",
        "description": "Connection to the bot or exchange is failing",
        "default_severity": Severity.CRITICAL.value,
    },
    TriggerType.BACKTEST_COMPLETED: {
        "label": "Backtest Completed",
        "description": "A backtest finished successfully",
        "default_severity": Severity.INFO.value,
    },
    TriggerType.BACKTEST_FAILED: {
        "label": "Backtest Failed",
        "description": "A backtest failed",
        "default_severity": Severity.WARNING.value,
    },
}


_BOT_TRIGGERS = tuple(
    t for t in TriggerType
    if t not in (TriggerType.BACKTEST_COMPLETED, TriggerType.BACKTEST_FAILED)
)

ALLOWED_TRIGGERS: dict[ResourceType, tuple[TriggerType, ...]] = {
    ResourceType.ORGANIZATION: tuple(TriggerType),
    ResourceType.BOT: _BOT_TRIGGERS,
    ResourceType.STRATEGY: tuple(
        t for t in TriggerType if t is not TriggerType.CONNECTION_ISSUE
    ),
    ResourceType.RUNNER: (TriggerType.CONNECTION_ISSUE,),
}


def is_trigger_allowed(resource_type: ResourceType, trigger_type: TriggerType) -> bool:
    """Check whether a rule on this resource type may use the trigger."""
    return trigger_type in ALLOWED_TRIGGERS.get(resource_type, ())


def triggers_for_resource(resource_type: ResourceType) -> tuple[TriggerType, ...]:
    """Triggers a rule on this resource type may use, in declaration order."""
    return ALLOWED_TRIGGERS.get(resource_type, ())


def describe_trigger(trigger_type: TriggerType) -> dict[str, str]:
    """Editor-facing description of a trigger type."""
    return {"type": trigger_type.value, **TRIGGER_METADATA[trigger_type]}


def default_severity(trigger_type: TriggerType) -> Severity:
    return Severity(TRIGGER_METADATA[trigger_type]["default_severity"])


def default_delivery_mode(severity: Severity) -> DeliveryMode:
    """Critical alerts go out immediately; everything else is batched."""
    if severity is Severity.CRITICAL:
        return DeliveryMode.IMMEDIATE
    return DeliveryMode.BATCHED

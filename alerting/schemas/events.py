"""
Pydantic schemas for domain events reported by resource monitors.

Events are immutable values. Each one knows which resource it concerns,
which trigger types it can satisfy, and which fields feed the message
templates.
"""

from datetime import datetime, timezone
from typing import Any, ClassVar, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from alerting.alerts.enums import ResourceType, TriggerType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MonitorEvent(BaseModel):
    """Fields and helpers shared by every event kind."""

    model_config = ConfigDict(frozen=True)

    RESOURCE_TYPE: ClassVar[ResourceType]

    owner_id: str = Field(..., min_length=1, description="Owning organization")
    timestamp: datetime = Field(default_factory=_utcnow)

    @property
    def resource_type(self) -> ResourceType:
        return self.RESOURCE_TYPE

    @property
    def resource_id(self) -> str:
        raise NotImplementedError

    @property
    def dry_run(self) -> Optional[bool]:
        """Bot mode of the event, or None when the event has no bot mode."""
        return None

    def trigger_types(self) -> tuple[TriggerType, ...]:
        """Trigger types this event can possibly satisfy."""
        raise NotImplementedError

    def template_data(self) -> dict[str, Any]:
        """Flat mapping used to fill message templates."""
        return self.model_dump(mode="json")


# =============================================================================
# BOT EVENTS
# =============================================================================


class BotEvent(MonitorEvent):
    RESOURCE_TYPE: ClassVar[ResourceType] = ResourceType.BOT

    bot_id: str = Field(..., min_length=1)
    bot_name: str = ""
    is_dry_run: Optional[bool] = Field(
        default=None,
        description="True for paper trading bots, None when unknown",
    )

    @property
    def resource_id(self) -> str:
        return self.bot_id

    @property
    def dry_run(self) -> Optional[bool]:
        return self.is_dry_run


class BotStatusEvent(BotEvent):
    """
    A bot changed status.

    Example:
        {"bot_id": "b-1", "owner_id": "org-1", "bot_name": "grid",
         "old_status": "running", "new_status": "error",
         "error_message": "exchange timeout"}
    """

    old_status: str = ""
    new_status: str = Field(..., min_length=1)
    error_message: str = ""

    def trigger_types(self) -> tuple[TriggerType, ...]:
        return (TriggerType.STATUS_CHANGE,)


class TradeEvent(BotEvent):
    """
    A trade was opened or closed.

    Percentages are in percent (2.5 means 2.5%). The optional account-level
    metrics are reported by monitors that track them; a missing metric never
    satisfies a threshold rule.
    """

    trade_id: str = Field(..., min_length=1)
    pair: str = Field(..., min_length=1)
    is_open: bool = False
    profit_percent: float = 0.0
    profit_abs: float = 0.0
    stake_currency: str = "USDT"
    open_rate: Optional[float] = None
    close_rate: Optional[float] = None
    exit_reason: str = ""

    daily_profit_percent: Optional[float] = None
    drawdown_percent: Optional[float] = None
    cumulative_profit_percent: Optional[float] = None

    def trigger_types(self) -> tuple[TriggerType, ...]:
        if self.is_open:
            triggers = [TriggerType.TRADE_OPENED]
        else:
            triggers = [TriggerType.TRADE_CLOSED, TriggerType.LARGE_PROFIT_LOSS]
        if self.daily_profit_percent is not None:
            triggers.append(TriggerType.DAILY_LOSS_LIMIT)
        if self.drawdown_percent is not None:
            triggers.append(TriggerType.DRAWDOWN_THRESHOLD)
        if self.cumulative_profit_percent is not None:
            triggers.append(TriggerType.PROFIT_TARGET)
        return tuple(triggers)


class ConnectionIssueEvent(BotEvent):
    """The monitor could not reach a bot (or the bot its exchange)."""

    error_message: str = ""
    retry_count: int = Field(default=0, ge=0)

    def trigger_types(self) -> tuple[TriggerType, ...]:
        return (TriggerType.CONNECTION_ISSUE,)


class BotCreatedEvent(BaseModel):
    """A bot was created; used only to seed its default rules."""

    model_config = ConfigDict(frozen=True)

    bot_id: str = Field(..., min_length=1)
    owner_id: str = Field(..., min_length=1)


# =============================================================================
# BACKTEST EVENTS
# =============================================================================


class BacktestEvent(MonitorEvent):
    """
    A backtest reached a terminal state.

    Backtest alerts are bound to the strategy that was tested.
    """

    RESOURCE_TYPE: ClassVar[ResourceType] = ResourceType.STRATEGY

    backtest_id: str = Field(..., min_length=1)
    strategy_id: str = Field(..., min_length=1)
    strategy_name: str = ""
    status: Literal["completed", "failed"]
    error_message: str = ""
    total_trades: int = 0
    win_rate: float = Field(default=0.0, description="Win rate as a fraction 0..1")
    profit_total_percent: float = 0.0

    @property
    def resource_id(self) -> str:
        return self.strategy_id

    def trigger_types(self) -> tuple[TriggerType, ...]:
        if self.status == "completed":
            return (TriggerType.BACKTEST_COMPLETED,)
        return (TriggerType.BACKTEST_FAILED,)

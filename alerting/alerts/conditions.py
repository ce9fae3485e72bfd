"""
Per-trigger rule conditions.

Rule conditions are stored as JSON. Each trigger type has its own pydantic
model, and `parse_conditions` picks the model from the rule's trigger type,
so conditions form a tagged union keyed by trigger type. Unknown keys are
rejected, which catches typos when a rule is saved instead of silently
never matching.

Each model implements `matches(event)`. An event that lacks the attribute a
condition inspects never matches.
"""

from typing import Any, ClassVar, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from alerting.alerts.enums import TriggerType
from alerting.core.errors import ValidationError


class Conditions(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    def matches(self, event: Any) -> bool:
        raise NotImplementedError


# =============================================================================
# STATUS
# =============================================================================


class StatusChangeConditions(Conditions):
    """Match when the new status is one of `trigger_on` (empty = any)."""

    trigger_on: list[str] = Field(default_factory=list)

    def matches(self, event: Any) -> bool:
        new_status = getattr(event, "new_status", None)
        if new_status is None:
            return False
        if not self.trigger_on:
            return True
        return new_status.lower() in {s.lower() for s in self.trigger_on}


# =============================================================================
# THRESHOLDS
# =============================================================================


def _crosses(value: Optional[float], threshold: float, direction: str) -> bool:
    if value is None:
        return False
    if direction == "profit":
        return value >= threshold
    if direction == "loss":
        return value <= -threshold
    return value >= threshold or value <= -threshold


class _DirectionalThreshold(Conditions):
    threshold_percent: float = Field(..., gt=0)
    direction: Literal["profit", "loss", "both"] = "both"

    @field_validator("direction", mode="before")
    @classmethod
    def _gain_is_profit(cls, value: Any) -> Any:
        if value == "gain":
            return "profit"
        return value


class LargeProfitLossConditions(_DirectionalThreshold):
    """A single closed trade's profit crosses the threshold."""

    def matches(self, event: Any) -> bool:
        if getattr(event, "is_open", True):
            return False
        return _crosses(getattr(event, "profit_percent", None),
                        self.threshold_percent, self.direction)


class DailyLossLimitConditions(_DirectionalThreshold):
    """Today's profit crosses the threshold (loss side by default)."""

    direction: Literal["profit", "loss", "both"] = "loss"

    def matches(self, event: Any) -> bool:
        return _crosses(getattr(event, "daily_profit_percent", None),
                        self.threshold_percent, self.direction)


class DrawdownConditions(Conditions):
    max_drawdown_percent: float = Field(..., gt=0)

    def matches(self, event: Any) -> bool:
        drawdown = getattr(event, "drawdown_percent", None)
        return drawdown is not None and drawdown >= self.max_drawdown_percent


class ProfitTargetConditions(Conditions):
    target_percent: float = Field(..., gt=0)

    def matches(self, event: Any) -> bool:
        profit = getattr(event, "cumulative_profit_percent", None)
        return profit is not None and profit >= self.target_percent


# =============================================================================
# TRADES, CONNECTIONS, BACKTESTS
# =============================================================================


class _TradeConditions(Conditions):
    """Optional pair filter; empty means every pair."""

    pairs: list[str] = Field(default_factory=list)

    WANT_OPEN: ClassVar[bool] = True

    def matches(self, event: Any) -> bool:
        is_open = getattr(event, "is_open", None)
        if is_open is None or is_open is not self.WANT_OPEN:
            return False
        return not self.pairs or getattr(event, "pair", None) in self.pairs


class TradeOpenedConditions(_TradeConditions):
    WANT_OPEN: ClassVar[bool] = True


class TradeClosedConditions(_TradeConditions):
    WANT_OPEN: ClassVar[bool] = False


class ConnectionIssueConditions(Conditions):
    min_retry_count: int = Field(default=0, ge=0)

    def matches(self, event: Any) -> bool:
        retries = getattr(event, "retry_count", None)
        return retries is not None and retries >= self.min_retry_count


class BacktestCompletedConditions(Conditions):
    def matches(self, event: Any) -> bool:
        return getattr(event, "status", None) == "completed"


class BacktestFailedConditions(Conditions):
    def matches(self, event: Any) -> bool:
        return getattr(event, "status", None) == "failed"


CONDITION_MODELS: dict[TriggerType, type[Conditions]] = {
    TriggerType.STATUS_CHANGE: StatusChangeConditions,
    TriggerType.TRADE_OPENED: TradeOpenedConditions,
    TriggerType.TRADE_CLOSED: TradeClosedConditions,
    TriggerType.LARGE_PROFIT_LOSS: LargeProfitLossConditions,
    TriggerType.DAILY_LOSS_LIMIT: DailyLossLimitConditions,
    TriggerType.DRAWDOWN_THRESHOLD: DrawdownConditions,
    TriggerType.PROFIT_TARGET: ProfitTargetConditions,
    TriggerType.CONNECTION_ISSUE: ConnectionIssueConditions,
    TriggerType.BACKTEST_COMPLETED: BacktestCompletedConditions,
    TriggerType.BACKTEST_FAILED: BacktestFailedConditions,
}


def parse_conditions(trigger_type: str, raw: Optional[dict[str, Any]]) -> Conditions:
    """
    Validate raw rule conditions against the trigger's condition model.

    Args:
        trigger_type: The rule's trigger type (enum or stored string)
        raw: Conditions as stored on the rule; None is treated as {}

    Returns:
        The parsed conditions

    Raises:
        ValidationError: Unknown trigger type or malformed conditions
    """
    try:
        model = CONDITION_MODELS[TriggerType(trigger_type)]
    except (ValueError, KeyError):
        raise ValidationError(f"unknown trigger type: {trigger_type!r}")

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValidationError(f"conditions for {trigger_type} must be an object")

    try:
        return model.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError(f"invalid conditions for {trigger_type}: {e}") from e

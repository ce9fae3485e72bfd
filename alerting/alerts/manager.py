"""
Alert manager.

Owns one evaluator, dispatcher and batcher, and exposes one handler per
event kind. Monitors call the handlers directly; handlers never raise and
return the errors that occurred so callers can log them.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from alerting.alerts.batcher import Batcher
from alerting.alerts.dispatcher import Dispatcher
from alerting.alerts.evaluator import Clock, Evaluator
from alerting.alerts.templates import render_alert
from alerting.channels.base import Channel, Message, send_with_deadline
from alerting.core.errors import AlertingError, ConfigurationError, ValidationError
from alerting.models import AlertRule
from alerting.schemas.events import (
    BacktestEvent,
    BotStatusEvent,
    ConnectionIssueEvent,
    MonitorEvent,
    TradeEvent,
)
from alerting.store import AlertStore

logger = logging.getLogger(__name__)


@dataclass
class ManagerConfig:
    """
    Delivery tuning for one manager.

    batch_interval_seconds has no default: the digest cadence is always an
    explicit deployment decision.
    """
    batch_interval_seconds: float
    batch_max_attempts: int = 3
    send_timeout_seconds: float = 10.0
    shutdown_grace_seconds: float = 10.0


# Sample values used when sending a test alert for a rule
SAMPLE_DATA: dict[str, object] = {
    "bot_id": "sample-bot",
    "bot_name": "Sample Bot",
    "old_status": "running",
    "new_status": "error",
    "error_message": "This is a test alert",
    "pair": "BTC/USDT",
    "profit_percent": 5.25,
    "profit_abs": 52.5,
    "stake_currency": "USDT",
    "open_rate": 42000.0,
    "exit_reason": "roi",
    "daily_profit_percent": -5.0,
    "drawdown_percent": 12.5,
    "cumulative_profit_percent": 25.0,
    "retry_count": 3,
    "strategy_id": "sample-strategy",
    "strategy_name": "Sample Strategy",
    "total_trades": 120,
    "win_rate": 0.62,
    "profit_total_percent": 18.4,
}


class AlertManager:
    """
    Entry point for monitors.

    Args:
        store: Rule store and audit trail
        channel: Delivery channel; required to start
        config: Delivery tuning
        clock: Current time source (tests pin it)
    """

    def __init__(
        self,
        store: AlertStore,
        channel: Optional[Channel],
        config: ManagerConfig,
        clock: Optional[Clock] = None,
    ):
        self._store = store
        self._channel = channel
        self._config = config
        self._started = False

        self.evaluator = Evaluator(store, clock=clock)
        self.batcher: Optional[Batcher] = None
        self.dispatcher: Optional[Dispatcher] = None

        if channel is not None:
            self.batcher = Batcher(
                channel,
                store,
                interval_seconds=config.batch_interval_seconds,
                max_attempts=config.batch_max_attempts,
                send_timeout=config.send_timeout_seconds,
                clock=clock,
            )
            self.dispatcher = Dispatcher(
                store,
                channel,
                self.batcher,
                evaluator=self.evaluator,
                send_timeout=config.send_timeout_seconds,
            )

    @property
    def channel(self) -> Optional[Channel]:
        return self._channel

    @property
    def started(self) -> bool:
        return self._started

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        """
        Start the batch flush timer.

        Raises:
            ConfigurationError: No delivery channel is configured
        """
        if self._channel is None or self.batcher is None:
            raise ConfigurationError("alert manager requires a delivery channel")
        self.batcher.start()
        self._started = True
        logger.info(
            "Alert manager started (batch interval %ss)",
            self._config.batch_interval_seconds,
        )

    async def stop(self) -> None:
        """Stop the timer and flush pending digests within the grace period."""
        if self.batcher is not None:
            dropped = await self.batcher.stop(self._config.shutdown_grace_seconds)
            if dropped:
                logger.error("Alert manager stopped with %d undelivered alert(s)", dropped)
        self._started = False
        logger.info("Alert manager stopped")

    # =========================================================================
    # EVENT HANDLERS
    # =========================================================================

    async def handle_bot_status(self, event: BotStatusEvent) -> list[AlertingError]:
        return await self._handle(event)

    async def handle_trade(self, event: TradeEvent) -> list[AlertingError]:
        return await self._handle(event)

    async def handle_backtest(self, event: BacktestEvent) -> list[AlertingError]:
        return await self._handle(event)

    async def handle_connection_issue(self, event: ConnectionIssueEvent) -> list[AlertingError]:
        return await self._handle(event)

    async def _handle(self, event: MonitorEvent) -> list[AlertingError]:
        if self.dispatcher is None:
            return [ConfigurationError("alert manager has no delivery channel")]

        try:
            matches = await self.evaluator.match(event)
            if not matches:
                return []
            errors = await self.dispatcher.process(matches)
        except AlertingError as e:
            logger.error("Alert handling failed for %s: %s", type(event).__name__, e)
            return [e]
        except Exception as e:
            logger.exception("Unexpected error handling %s", type(event).__name__)
            return [AlertingError(f"unexpected error: {e}")]

        for error in errors:
            logger.warning("Alert delivery problem: %s", error)
        return errors

    # =========================================================================
    # TEST SENDS
    # =========================================================================

    async def test_rule(self, rule: AlertRule) -> None:
        """
        Send a sample alert for a rule to its recipients right away.

        Bypasses cooldown and batching and writes no audit row.

        Raises:
            ValidationError: The rule has no recipients
            ConfigurationError: No delivery channel is configured
            DeliveryError: The channel rejected the message
        """
        if self._channel is None:
            raise ConfigurationError("alert manager has no delivery channel")
        if not rule.recipients:
            raise ValidationError("rule has no recipients")

        subject, body, html_body = render_alert(rule.trigger_type, rule.severity, SAMPLE_DATA)
        await send_with_deadline(
            self._channel,
            Message(
                subject=f"[TEST] {subject}",
                body=body,
                html_body=html_body,
                recipients=list(rule.recipients),
                metadata={
                    "alert_id": str(uuid.uuid4()),
                    "rule_id": str(rule.id),
                    "alert_type": rule.trigger_type,
                    "severity": rule.severity,
                    "test": "true",
                },
            ),
            self._config.send_timeout_seconds,
        )
        logger.info("Test alert sent for rule %s", rule.id)

    async def test_channel(self, recipient: str = "") -> None:
        """
        Send the channel's test message.

        Raises:
            ConfigurationError: No delivery channel is configured
            DeliveryError: The channel rejected the message
        """
        if self._channel is None:
            raise ConfigurationError("alert manager has no delivery channel")
        await self._channel.test(recipient)

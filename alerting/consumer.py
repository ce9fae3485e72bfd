"""
RabbitMQ consumer for monitor events.

Monitors that run outside this process publish their events to a queue.
Each message is JSON of the form {"kind": "...", "data": {...}} and is
routed to the matching alert manager handler. Bot creation messages seed
the bot's default rules.
"""

import asyncio
import json
import logging
from typing import Optional

import aio_pika
from aio_pika.abc import AbstractIncomingMessage
from pydantic import ValidationError as PydanticValidationError

from alerting.alerts.manager import AlertManager
from alerting.alerts.service import AlertService
from alerting.context import get_manager, use_manager
from alerting.core.config import settings
from alerting.core.errors import AlertingError
from alerting.schemas.events import (
    BacktestEvent,
    BotCreatedEvent,
    BotStatusEvent,
    ConnectionIssueEvent,
    TradeEvent,
)

logger = logging.getLogger(__name__)


EVENT_KINDS = {
    "bot_status": BotStatusEvent,
    "trade": TradeEvent,
    "backtest": BacktestEvent,
    "connection_issue": ConnectionIssueEvent,
}


async def handle_event(
    kind: str,
    data: dict,
    service: Optional[AlertService] = None,
) -> list[AlertingError]:
    """
    Route one decoded event to the manager bound to the current context.

    Returns:
        Errors reported by the manager (empty when there were none)

    Raises:
        ValueError: Unknown kind
        pydantic.ValidationError: Data does not fit the event schema
    """
    if kind == "bot_created":
        created = BotCreatedEvent.model_validate(data)
        if service is not None:
            await service.seed_default_rules(created.bot_id, created.owner_id)
        return []

    event_class = EVENT_KINDS.get(kind)
    if event_class is None:
        raise ValueError(f"unknown event kind: {kind!r}")
    event = event_class.model_validate(data)

    manager = get_manager()
    if manager is None:
        logger.debug("Alerting disabled, ignoring %s event", kind)
        return []

    if isinstance(event, BotStatusEvent):
        return await manager.handle_bot_status(event)
    if isinstance(event, TradeEvent):
        return await manager.handle_trade(event)
    if isinstance(event, BacktestEvent):
        return await manager.handle_backtest(event)
    return await manager.handle_connection_issue(event)


async def process_message(
    message: AbstractIncomingMessage,
    service: Optional[AlertService] = None,
) -> None:
    """
    Process a single event message.

    Malformed messages are logged and acknowledged; retrying them would
    never succeed.
    """
    async with message.process():
        try:
            envelope = json.loads(message.body.decode())
            kind = envelope["kind"]
            data = envelope.get("data", {})
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Discarding undecodable event message: %s", e)
            return

        try:
            errors = await handle_event(kind, data, service)
        except (ValueError, PydanticValidationError) as e:
            logger.warning("Discarding invalid %s event: %s", kind, e)
            return
        except AlertingError as e:
            logger.error("Failed to handle %s event: %s", kind, e)
            return

        if errors:
            logger.warning("%s event produced %d alert error(s)", kind, len(errors))


async def start_consumer(manager: Optional[AlertManager], service: AlertService) -> None:
    """
    Start consuming monitor events from RabbitMQ.

    Runs until cancelled.
    """
    logger.info("Connecting to RabbitMQ at %s", settings.rabbitmq_url)

    connection = await aio_pika.connect_robust(settings.rabbitmq_url)
    try:
        channel = await connection.channel()

        # Process one message at a time
        await channel.set_qos(prefetch_count=1)

        queue = await channel.declare_queue(
            settings.alert_events_queue,
            durable=True,
        )
        logger.info("Consuming from queue '%s'", settings.alert_events_queue)

        async def on_message(message: AbstractIncomingMessage) -> None:
            with use_manager(manager):
                await process_message(message, service)

        await queue.consume(on_message)
        await asyncio.Future()  # Run until cancelled
    finally:
        await connection.close()

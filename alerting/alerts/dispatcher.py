"""
Dispatching of rule matches.

For each match the dispatcher renders the message, writes the audit row,
and either sends immediately or hands the alert to the batcher. A failure
on one match is recorded and returned; it never stops the others.
"""

import logging
import uuid
from typing import Optional

from alerting.alerts.alert import Alert
from alerting.alerts.batcher import Batcher
from alerting.alerts.enums import DeliveryMode, DeliveryStatus
from alerting.alerts.evaluator import Evaluator, RuleMatch
from alerting.alerts.templates import render_alert
from alerting.channels.base import Channel, Message, send_with_deadline
from alerting.core.errors import AlertingError, DeliveryError, PersistenceError
from alerting.models import AlertEvent
from alerting.models.alert_event import SUBJECT_MAX_LENGTH
from alerting.store import AlertStore

logger = logging.getLogger(__name__)


SUPPRESSED_REASON = "Rate limited by cooldown"


def _clip(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


class Dispatcher:
    """
    Routes matches to the channel or the batcher.

    Args:
        store: Audit trail
        channel: Channel for immediate alerts
        batcher: Receives alerts of batched rules
        evaluator: Owner of the cooldown claims released on failed sends
        send_timeout: Deadline for one immediate send
    """

    def __init__(
        self,
        store: AlertStore,
        channel: Channel,
        batcher: Batcher,
        evaluator: Optional[Evaluator] = None,
        send_timeout: float = 10.0,
    ):
        self._store = store
        self._channel = channel
        self._batcher = batcher
        self._evaluator = evaluator
        self._send_timeout = send_timeout

    async def process(self, matches: list[RuleMatch]) -> list[AlertingError]:
        """
        Dispatch matches in order.

        Returns:
            Errors for matches that could not be recorded or delivered
        """
        errors: list[AlertingError] = []
        for match in matches:
            error = await self._process_one(match)
            if error is not None:
                errors.append(error)
        return errors

    def _audit_row(self, match: RuleMatch, status: DeliveryStatus, subject: str) -> AlertEvent:
        rule = match.rule
        return AlertEvent(
            id=uuid.uuid4(),
            rule_id=rule.id,
            resource_id=match.resource_id,
            owner_id=match.event.owner_id,
            trigger_type=rule.trigger_type,
            severity=rule.severity,
            timestamp=match.matched_at,
            payload=match.event.model_dump(mode="json"),
            subject=_clip(subject, SUBJECT_MAX_LENGTH),
            recipients=list(rule.recipients),
            delivery_status=status.value,
            channel_type=self._channel.type.value,
        )

    async def _process_one(self, match: RuleMatch) -> Optional[AlertingError]:
        rule = match.rule
        subject, body, html_body = render_alert(
            rule.trigger_type, rule.severity, match.event.template_data()
        )

        # --- SUPPRESSED ---
        if match.suppressed:
            row = self._audit_row(match, DeliveryStatus.SUPPRESSED, subject)
            row.error_message = SUPPRESSED_REASON
            try:
                await self._store.add_event(row)
            except PersistenceError as e:
                logger.error("Could not record suppressed alert for rule %s: %s", rule.id, e)
                return e
            return None

        batched = rule.delivery_mode == DeliveryMode.BATCHED.value
        status = DeliveryStatus.QUEUED if batched else DeliveryStatus.SENT

        # --- AUDIT FIRST ---
        row = self._audit_row(match, status, subject)
        if not batched:
            row.sent_at = match.matched_at
        try:
            await self._store.add_event(row)
        except PersistenceError as e:
            logger.error("Dropping alert for rule %s: audit write failed: %s", rule.id, e)
            self._release(match)
            return e

        # --- BATCHED ---
        if batched:
            self._batcher.enqueue(
                rule,
                Alert(
                    rule_id=rule.id,
                    event_id=row.id,
                    resource_id=match.resource_id,
                    severity=rule.severity,
                    subject=subject,
                    body=body,
                    html_body=html_body,
                    recipients=list(rule.recipients),
                    created_at=match.matched_at,
                ),
            )
            return None

        # --- IMMEDIATE ---
        message = Message(
            subject=subject,
            body=body,
            html_body=html_body,
            recipients=list(rule.recipients),
            metadata={
                "alert_id": str(row.id),
                "rule_id": str(rule.id),
                "alert_type": rule.trigger_type,
                "severity": rule.severity,
            },
        )
        try:
            await send_with_deadline(self._channel, message, self._send_timeout)
        except DeliveryError as e:
            logger.warning("Alert for rule %s failed: %s", rule.id, e)
            self._release(match)
            try:
                await self._store.set_event_status(row.id, DeliveryStatus.FAILED, error_message=str(e))
            except PersistenceError as pe:
                logger.error("Could not mark audit row %s failed: %s", row.id, pe)
            return e

        return None

    def _release(self, match: RuleMatch) -> None:
        if self._evaluator is not None:
            self._evaluator.release_cooldown(match)

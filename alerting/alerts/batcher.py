"""
Digest batching for rules with batched delivery.

Alerts are grouped in buckets keyed by (rule_id, recipients). A timer task
flushes every bucket on a fixed interval and sends one digest per bucket.

The bucket map is the only state shared between the evaluating callers and
the timer. It is guarded by a single lock that is only held while
swapping lists in and out, never across a channel send.
"""

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from alerting.alerts.alert import Alert
from alerting.alerts.enums import DeliveryStatus
from alerting.alerts.templates import render_digest
from alerting.channels.base import Channel, Message, send_with_deadline
from alerting.core.errors import DeliveryError, PersistenceError
from alerting.models import AlertRule
from alerting.store import AlertStore

logger = logging.getLogger(__name__)


BucketKey = tuple[uuid.UUID, tuple[str, ...]]


@dataclass
class BatchEntry:
    alert: Alert
    attempts: int = 0


class Batcher:
    """
    Accumulates batched alerts and sends them as digests.

    Args:
        channel: Channel used for digests
        store: Audit trail, updated with each entry's final status
        interval_seconds: Time between two flushes
        max_attempts: Failed sends allowed per entry before it is dropped
        send_timeout: Deadline for one digest send
    """

    def __init__(
        self,
        channel: Channel,
        store: AlertStore,
        interval_seconds: float,
        max_attempts: int = 3,
        send_timeout: float = 10.0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if interval_seconds <= 0:
            raise ValueError("batch interval must be positive")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self._channel = channel
        self._store = store
        self._interval = interval_seconds
        self._max_attempts = max_attempts
        self._send_timeout = send_timeout
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._lock = threading.Lock()
        self._buckets: dict[BucketKey, list[BatchEntry]] = {}
        self._task: Optional[asyncio.Task] = None

    @property
    def interval_seconds(self) -> float:
        return self._interval

    # =========================================================================
    # QUEUEING
    # =========================================================================

    def enqueue(self, rule: AlertRule, alert: Alert) -> None:
        """Add an alert to its rule's bucket. Never performs I/O."""
        key: BucketKey = (rule.id, tuple(alert.recipients))
        with self._lock:
            self._buckets.setdefault(key, []).append(BatchEntry(alert))

    def pending_count(self, rule_id: Optional[uuid.UUID] = None) -> int:
        """Number of queued alerts, optionally for one rule."""
        with self._lock:
            return sum(
                len(entries)
                for (bucket_rule, _), entries in self._buckets.items()
                if rule_id is None or bucket_rule == rule_id
            )

    def _take_all(self) -> dict[BucketKey, list[BatchEntry]]:
        with self._lock:
            taken = {key: entries for key, entries in self._buckets.items() if entries}
            self._buckets = {}
        return taken

    def _put_back(self, key: BucketKey, entries: list[BatchEntry]) -> None:
        with self._lock:
            self._buckets[key] = entries + self._buckets.get(key, [])

    # =========================================================================
    # FLUSHING
    # =========================================================================

    async def flush(self) -> list[DeliveryError]:
        """
        Send one digest per non-empty bucket.

        Failed buckets go back to the front of their queue with one more
        attempt counted. Entries that used up their attempts are marked
        failed and dropped.

        Returns:
            One DeliveryError per bucket that could not be sent
        """
        buckets = self._take_all()
        errors: list[DeliveryError] = []

        for index, (key, entries) in enumerate(buckets.items()):
            try:
                error = await self._flush_bucket(key, entries)
            except asyncio.CancelledError:
                # Keep everything not yet delivered for the shutdown report
                self._put_back(key, entries)
                for later_key, later_entries in list(buckets.items())[index + 1:]:
                    self._put_back(later_key, later_entries)
                raise
            if error is not None:
                errors.append(error)

        return errors

    async def _flush_bucket(
        self, key: BucketKey, entries: list[BatchEntry]
    ) -> Optional[DeliveryError]:
        rule_id, recipients = key
        subject, body, html_body = render_digest(
            [(entry.alert.severity, entry.alert.subject) for entry in entries]
        )
        message = Message(
            subject=subject,
            body=body,
            html_body=html_body,
            recipients=list(recipients),
            metadata={"rule_id": str(rule_id), "batch_size": str(len(entries))},
        )

        try:
            await send_with_deadline(self._channel, message, self._send_timeout)
        except DeliveryError as e:
            await self._handle_failure(key, entries, e)
            return e

        sent_at = self._clock()
        for entry in entries:
            await self._record(entry.alert.event_id, DeliveryStatus.SENT, sent_at=sent_at)
        logger.info("Digest for rule %s sent with %d alert(s)", rule_id, len(entries))
        return None

    async def _handle_failure(
        self, key: BucketKey, entries: list[BatchEntry], error: DeliveryError
    ) -> None:
        retry: list[BatchEntry] = []
        expired: list[BatchEntry] = []
        for entry in entries:
            entry.attempts += 1
            (retry if entry.attempts < self._max_attempts else expired).append(entry)

        if retry:
            self._put_back(key, retry)
            logger.warning(
                "Digest for rule %s failed (%s); %d alert(s) requeued",
                key[0], error, len(retry),
            )

        for entry in expired:
            logger.error(
                "Dropping batched alert %s for rule %s after %d attempts: %s",
                entry.alert.event_id, key[0], entry.attempts, error,
            )
            await self._record(entry.alert.event_id, DeliveryStatus.FAILED, error_message=str(error))

    async def _record(self, event_id: uuid.UUID, status: DeliveryStatus, **kwargs) -> None:
        try:
            await self._store.set_event_status(event_id, status, **kwargs)
        except PersistenceError as e:
            logger.error("Could not record %s for audit row %s: %s", status.value, event_id, e)

    # =========================================================================
    # TIMER
    # =========================================================================

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            errors = await self.flush()
            if errors:
                logger.warning("Batch flush finished with %d failed digest(s)", len(errors))

    def start(self) -> None:
        """Start the flush timer on the running event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="alert-batcher")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def stop(self, grace_seconds: float) -> int:
        """
        Stop the timer and flush once more within the grace period.

        Alerts still pending afterwards are marked failed in the audit trail
        so they never count towards a cooldown.

        Returns:
            Number of alerts left undelivered (logged as dropped)
        """
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        try:
            await asyncio.wait_for(self.flush(), timeout=grace_seconds)
        except asyncio.TimeoutError:
            logger.error("Final batch flush did not finish within %ss", grace_seconds)

        leftover = self._take_all()
        dropped = 0
        for (rule_id, _), entries in leftover.items():
            for entry in entries:
                dropped += 1
                logger.error(
                    "Dropping undelivered batched alert %s for rule %s at shutdown",
                    entry.alert.event_id, rule_id,
                )
                await self._record(
                    entry.alert.event_id, DeliveryStatus.FAILED, error_message="dropped at shutdown"
                )
        return dropped

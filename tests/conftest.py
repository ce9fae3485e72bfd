"""
Pytest configuration and fixtures.

The alerting components talk to the database only through AlertStore, so
tests use an in-memory store with the same behaviour instead of Postgres.
Channels and the authorization gateway are replaced by recording fakes.
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from alerting.alerts.enums import ChannelType, DeliveryStatus, ResourceType
from alerting.authz.gateway import AuthorizationGateway
from alerting.channels.base import Channel, Message
from alerting.core.errors import AuthorizationGatewayError, DeliveryError, PersistenceError
from alerting.models import AlertEvent, AlertRule


T0 = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# CLOCK
# =============================================================================


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


# =============================================================================
# IN-MEMORY STORE
# =============================================================================


class InMemoryAlertStore:
    """Same interface and query semantics as AlertStore, backed by lists."""

    def __init__(self):
        self.rules: list[AlertRule] = []
        self.events: list[AlertEvent] = []
        self.fail_event_writes = False
        self._tick = 0

    def _stamp(self) -> datetime:
        # Strictly increasing creation times keep insertion order
        self._tick += 1
        return T0 + timedelta(microseconds=self._tick)

    async def create_rule(self, rule: AlertRule) -> AlertRule:
        if rule.id is None:
            rule.id = uuid.uuid4()
        rule.created_at = rule.created_at or self._stamp()
        rule.updated_at = rule.updated_at or rule.created_at
        self.rules.append(rule)
        return rule

    async def create_rules(self, rules: list[AlertRule]) -> list[AlertRule]:
        return [await self.create_rule(rule) for rule in rules]

    async def get_rule(self, rule_id: uuid.UUID) -> Optional[AlertRule]:
        for rule in self.rules:
            if rule.id == rule_id and rule.deleted_at is None:
                return rule
        return None

    async def save_rule(self, rule: AlertRule) -> AlertRule:
        return rule

    async def list_rules(self, owner_id=None, resource_id=None) -> list[AlertRule]:
        return [
            r for r in self._ordered()
            if r.deleted_at is None
            and (owner_id is None or r.owner_id == owner_id)
            and (resource_id is None or r.resource_id == resource_id)
        ]

    async def find_candidate_rules(self, owner_id, resource_type, resource_id, trigger_types):
        wanted = {t.value for t in trigger_types}
        types = {resource_type.value, ResourceType.ORGANIZATION.value}
        return [
            r for r in self._ordered()
            if r.enabled
            and r.deleted_at is None
            and r.trigger_type in wanted
            and (
                r.resource_id == resource_id
                or (r.resource_id is None and r.owner_id == owner_id and r.resource_type in types)
            )
        ]

    def _ordered(self) -> list[AlertRule]:
        return sorted(self.rules, key=lambda r: (r.created_at, str(r.id)))

    async def latest_event(self, rule_id, resource_id) -> Optional[AlertEvent]:
        rows = [
            e for e in self.events
            if e.rule_id == rule_id
            and e.resource_id == resource_id
            and e.delivery_status in (DeliveryStatus.SENT.value, DeliveryStatus.QUEUED.value)
        ]
        return max(rows, key=lambda e: e.timestamp) if rows else None

    async def add_event(self, event: AlertEvent) -> AlertEvent:
        if self.fail_event_writes:
            raise PersistenceError("database unavailable")
        if event.id is None:
            event.id = uuid.uuid4()
        self.events.append(event)
        return event

    async def set_event_status(self, event_id, status, error_message=None, sent_at=None) -> None:
        for event in self.events:
            if event.id == event_id:
                event.delivery_status = status.value
                if error_message is not None:
                    event.error_message = error_message
                if sent_at is not None:
                    event.sent_at = sent_at
                return

    async def list_events(self, rule_id, limit=50) -> list[AlertEvent]:
        rows = [e for e in self.events if e.rule_id == rule_id]
        return sorted(rows, key=lambda e: e.timestamp, reverse=True)[:limit]

    def statuses(self, rule_id=None) -> list[str]:
        return [
            e.delivery_status for e in self.events
            if rule_id is None or e.rule_id == rule_id
        ]


# =============================================================================
# FAKE CHANNEL & GATEWAY
# =============================================================================


class FakeChannel(Channel):
    """Records sent messages; can fail a number of times or hang."""

    def __init__(self, failures: int = 0, delay: float = 0.0):
        self.sent: list[Message] = []
        self.tests: list[str] = []
        self.failures = failures
        self.delay = delay

    @property
    def type(self) -> ChannelType:
        return ChannelType.EMAIL

    async def send(self, message: Message) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures > 0:
            self.failures -= 1
            raise DeliveryError("provider returned 500")
        message.validate()
        self.sent.append(message)

    async def test(self, recipient: str = "") -> None:
        self.tests.append(recipient or "alerts@example.com")


class FakeGateway(AuthorizationGateway):
    """
    Scripted gateway.

    `decisions` is consumed one per check: True/False for a decision, or a
    string to raise AuthorizationGatewayError with that message.
    """

    def __init__(self, decisions=None, sync_error: Optional[str] = None):
        self.decisions = list(decisions or [True])
        self.sync_error = sync_error
        self.checks: list[tuple[str, str]] = []
        self.syncs: list[str] = []

    async def check_permission(self, token: str, resource_id: str, scope: str) -> bool:
        self.checks.append((resource_id, scope))
        decision = self.decisions.pop(0) if len(self.decisions) > 1 else self.decisions[0]
        if isinstance(decision, str):
            raise AuthorizationGatewayError(decision)
        return decision

    async def sync_resource_permissions(self, resource_id: str) -> None:
        self.syncs.append(resource_id)
        if self.sync_error:
            raise AuthorizationGatewayError(self.sync_error)


# =============================================================================
# HELPERS
# =============================================================================


def make_rule(**overrides) -> AlertRule:
    """Build a fully populated rule; keyword arguments override fields."""
    values = dict(
        id=uuid.uuid4(),
        name="Bot error",
        owner_id="org-1",
        resource_type="bot",
        resource_id="bot-1",
        trigger_type="status_change",
        conditions={"trigger_on": ["error"]},
        severity="critical",
        delivery_mode="immediate",
        cooldown_seconds=300,
        recipients=["ops@example.com"],
        bot_mode_filter="all",
        enabled=True,
        created_at=None,
        updated_at=None,
        deleted_at=None,
    )
    values.update(overrides)
    return AlertRule(**values)


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryAlertStore:
    return InMemoryAlertStore()


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()

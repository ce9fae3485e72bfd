"""
Tests for dispatching matches to the channel and the batcher.
"""

import pytest

from alerting.alerts.batcher import Batcher
from alerting.alerts.dispatcher import SUPPRESSED_REASON, Dispatcher
from alerting.alerts.evaluator import Evaluator, RuleMatch
from alerting.core.errors import DeliveryError, PersistenceError
from alerting.models.alert_event import SUBJECT_MAX_LENGTH
from alerting.schemas.events import BotStatusEvent

from conftest import T0, FakeChannel, make_rule


EVENT = BotStatusEvent(
    bot_id="bot-1", owner_id="org-1", bot_name="grid",
    old_status="running", new_status="error",
)


def build(store, channel, clock):
    evaluator = Evaluator(store, clock=clock)
    batcher = Batcher(channel, store, interval_seconds=60, clock=clock)
    dispatcher = Dispatcher(store, channel, batcher, evaluator=evaluator, send_timeout=1.0)
    return evaluator, batcher, dispatcher


class TestImmediate:
    """Tests for immediate delivery."""

    @pytest.mark.asyncio
    async def test_sends_and_records_sent(self, store, channel, clock):
        rule = await store.create_rule(make_rule())
        _, _, dispatcher = build(store, channel, clock)

        errors = await dispatcher.process([RuleMatch(rule, EVENT, T0)])

        assert errors == []
        assert len(channel.sent) == 1
        message = channel.sent[0]
        assert message.recipients == ["ops@example.com"]
        assert message.subject == "[CRITICAL] grid: status changed to error"
        assert message.metadata["rule_id"] == str(rule.id)
        assert message.metadata["alert_id"] == str(store.events[0].id)
        assert store.statuses() == ["sent"]
        assert store.events[0].payload["new_status"] == "error"

    @pytest.mark.asyncio
    async def test_long_subject_is_clipped_in_audit_row(self, store, channel, clock):
        rule = await store.create_rule(make_rule())
        event = BotStatusEvent(
            bot_id="bot-1", owner_id="org-1", bot_name="g" * 400,
            old_status="running", new_status="error",
        )
        _, _, dispatcher = build(store, channel, clock)

        assert await dispatcher.process([RuleMatch(rule, event, T0)]) == []

        row = store.events[0]
        assert len(row.subject) == SUBJECT_MAX_LENGTH
        assert row.subject.startswith("[CRITICAL] ggg")
        assert row.subject.endswith("...")
        assert channel.sent[0].subject.startswith("[CRITICAL] " + "g" * 400)

    @pytest.mark.asyncio
    async def test_failure_marks_row_failed_and_continues(self, store, clock):
        """One failing send must not stop the next match."""
        channel = FakeChannel(failures=1)
        first = await store.create_rule(make_rule(name="first"))
        second = await store.create_rule(make_rule(name="second"))
        _, _, dispatcher = build(store, channel, clock)

        errors = await dispatcher.process([
            RuleMatch(first, EVENT, T0),
            RuleMatch(second, EVENT, T0),
        ])

        assert len(errors) == 1
        assert isinstance(errors[0], DeliveryError)
        assert store.statuses(first.id) == ["failed"]
        assert "500" in store.events[0].error_message
        assert store.statuses(second.id) == ["sent"]
        assert len(channel.sent) == 1

    @pytest.mark.asyncio
    async def test_failed_send_releases_cooldown(self, store, clock):
        channel = FakeChannel(failures=1)
        await store.create_rule(make_rule())
        evaluator, _, dispatcher = build(store, channel, clock)

        await dispatcher.process(await evaluator.match(EVENT))
        retry = await evaluator.match(EVENT)

        assert retry[0].suppressed is False

    @pytest.mark.asyncio
    async def test_slow_channel_times_out(self, store, clock):
        channel = FakeChannel(delay=5.0)
        rule = await store.create_rule(make_rule())
        evaluator = Evaluator(store, clock=clock)
        batcher = Batcher(channel, store, interval_seconds=60)
        dispatcher = Dispatcher(store, channel, batcher, evaluator=evaluator, send_timeout=0.01)

        errors = await dispatcher.process([RuleMatch(rule, EVENT, T0)])

        assert len(errors) == 1
        assert "timed out" in str(errors[0])
        assert store.statuses() == ["failed"]


class TestSuppressedAndBatched:
    """Tests for suppressed and batched matches."""

    @pytest.mark.asyncio
    async def test_suppressed_match_is_recorded_not_sent(self, store, channel, clock):
        rule = await store.create_rule(make_rule())
        _, _, dispatcher = build(store, channel, clock)

        errors = await dispatcher.process([RuleMatch(rule, EVENT, T0, suppressed=True)])

        assert errors == []
        assert channel.sent == []
        assert store.statuses() == ["suppressed"]
        assert store.events[0].error_message == SUPPRESSED_REASON

    @pytest.mark.asyncio
    async def test_batched_match_is_queued(self, store, channel, clock):
        rule = await store.create_rule(make_rule(delivery_mode="batched"))
        _, batcher, dispatcher = build(store, channel, clock)

        errors = await dispatcher.process([RuleMatch(rule, EVENT, T0)])

        assert errors == []
        assert channel.sent == []
        assert store.statuses() == ["queued"]
        assert batcher.pending_count(rule.id) == 1

    @pytest.mark.asyncio
    async def test_audit_failure_drops_match(self, store, channel, clock):
        """Without an audit row nothing is delivered."""
        rule = await store.create_rule(make_rule())
        store.fail_event_writes = True
        _, _, dispatcher = build(store, channel, clock)

        errors = await dispatcher.process([RuleMatch(rule, EVENT, T0)])

        assert len(errors) == 1
        assert isinstance(errors[0], PersistenceError)
        assert channel.sent == []

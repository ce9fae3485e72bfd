"""
Rule evaluation.

For each incoming event the evaluator loads the candidate rules, checks
each rule's conditions, and applies the per-(rule, resource) cooldown.
Matches inside a cooldown window are still returned, flagged as
suppressed, so the dispatcher can audit them.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from alerting.alerts.conditions import parse_conditions
from alerting.alerts.enums import BotModeFilter
from alerting.core.errors import PersistenceError, ValidationError
from alerting.models import AlertRule
from alerting.schemas.events import MonitorEvent
from alerting.store import AlertStore

logger = logging.getLogger(__name__)


Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RuleMatch:
    """A rule whose conditions matched an event."""
    rule: AlertRule
    event: MonitorEvent
    matched_at: datetime
    suppressed: bool = False

    @property
    def resource_id(self) -> str:
        return self.event.resource_id


# =============================================================================
# COOLDOWN CLAIMS
# =============================================================================


class CooldownGuard:
    """
    In-process cooldown claims keyed by (rule_id, resource_id).

    The audit trail is the source of truth for cooldowns, but two
    evaluations of the same rule can both read it before either writes.
    `try_claim` runs without awaiting between the check and the write, so
    on one event loop only the first of them passes.
    """

    PRUNE_THRESHOLD = 1024

    def __init__(self) -> None:
        # key -> (claimed_at, expires_at)
        self._claims: dict[tuple[uuid.UUID, str], tuple[datetime, datetime]] = {}

    def try_claim(
        self,
        key: tuple[uuid.UUID, str],
        now: datetime,
        last_sent: Optional[datetime],
        cooldown_seconds: int,
    ) -> bool:
        """
        Claim the cooldown window for key, unless one is still running.

        Returns:
            True if the caller may deliver, False if it is suppressed
        """
        if len(self._claims) > self.PRUNE_THRESHOLD:
            self._prune(now)

        latest = last_sent
        claim = self._claims.get(key)
        if claim is not None and (latest is None or claim[0] > latest):
            latest = claim[0]

        if cooldown_seconds > 0 and latest is not None:
            if (now - latest).total_seconds() < cooldown_seconds:
                return False

        expires_at = now + timedelta(seconds=cooldown_seconds)
        self._claims[key] = (now, expires_at)
        return True

    def release(self, key: tuple[uuid.UUID, str], claimed_at: datetime) -> None:
        """Drop a claim after its delivery failed, if it is still the current one."""
        claim = self._claims.get(key)
        if claim is not None and claim[0] == claimed_at:
            del self._claims[key]

    def _prune(self, now: datetime) -> None:
        expired = [k for k, (_, expires_at) in self._claims.items() if expires_at <= now]
        for key in expired:
            del self._claims[key]

    def __len__(self) -> int:
        return len(self._claims)


# =============================================================================
# EVALUATOR
# =============================================================================


def _bot_mode_filter(rule: AlertRule) -> BotModeFilter:
    try:
        return BotModeFilter(rule.bot_mode_filter or BotModeFilter.ALL.value)
    except ValueError:
        # Unknown stored values behave like "all"
        return BotModeFilter.ALL


class Evaluator:
    """
    Matches events against alert rules.

    Args:
        store: Rule store and audit trail
        clock: Returns the current time (UTC)
    """

    def __init__(self, store: AlertStore, clock: Optional[Clock] = None):
        self._store = store
        self._clock = clock or utcnow
        self._cooldowns = CooldownGuard()

    @property
    def cooldowns(self) -> CooldownGuard:
        return self._cooldowns

    async def match(self, event: MonitorEvent) -> list[RuleMatch]:
        """
        Evaluate every candidate rule against one event.

        Rules with malformed conditions are logged and skipped; they never
        stop other rules from being evaluated.

        Args:
            event: The domain event

        Returns:
            Matches in rule creation order, suppressed ones flagged

        Raises:
            PersistenceError: Candidate rules could not be loaded
        """
        trigger_types = event.trigger_types()
        rules = await self._store.find_candidate_rules(
            owner_id=event.owner_id,
            resource_type=event.resource_type,
            resource_id=event.resource_id,
            trigger_types=trigger_types,
        )

        allowed = {t.value for t in trigger_types}
        matches: list[RuleMatch] = []

        for rule in rules:
            if rule.trigger_type not in allowed:
                continue

            if not rule.recipients:
                logger.debug("Skipping rule %s: no recipients configured", rule.id)
                continue

            if not _bot_mode_filter(rule).matches(event.dry_run):
                continue

            try:
                conditions = parse_conditions(rule.trigger_type, rule.conditions)
            except ValidationError as e:
                logger.warning("Skipping rule %s with invalid conditions: %s", rule.id, e)
                continue

            if not conditions.matches(event):
                continue

            try:
                match = await self._apply_cooldown(rule, event)
            except PersistenceError as e:
                logger.error("Skipping rule %s: cooldown lookup failed: %s", rule.id, e)
                continue

            matches.append(match)

        return matches

    async def _apply_cooldown(self, rule: AlertRule, event: MonitorEvent) -> RuleMatch:
        last = await self._store.latest_event(rule.id, event.resource_id)
        now = self._clock()
        passed = self._cooldowns.try_claim(
            (rule.id, event.resource_id),
            now,
            last.timestamp if last is not None else None,
            rule.cooldown_seconds or 0,
        )
        if not passed:
            logger.info(
                "Rule %s suppressed for resource %s (cooldown %ss)",
                rule.id, event.resource_id, rule.cooldown_seconds,
            )
        return RuleMatch(rule=rule, event=event, matched_at=now, suppressed=not passed)

    def release_cooldown(self, match: RuleMatch) -> None:
        """Give back the cooldown claim of a match whose delivery failed."""
        self._cooldowns.release((match.rule.id, match.resource_id), match.matched_at)

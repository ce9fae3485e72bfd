"""
Rule store and audit trail backed by SQLAlchemy.

Every method opens its own session, the same way the event consumer does
per message, and returns detached instances (the session factory keeps
them loaded after commit). Database errors are wrapped in
PersistenceError.
"""

import uuid
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from alerting.alerts.enums import DeliveryStatus, ResourceType, TriggerType
from alerting.core.errors import PersistenceError
from alerting.models import AlertEvent, AlertRule

# Rows that start a cooldown window
COOLDOWN_STATUSES = (DeliveryStatus.SENT.value, DeliveryStatus.QUEUED.value)


class AlertStore:
    """Persistence for alert rules and audit rows."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # =========================================================================
    # RULES
    # =========================================================================

    async def create_rule(self, rule: AlertRule) -> AlertRule:
        try:
            async with self._session_factory() as db:
                db.add(rule)
                await db.commit()
                await db.refresh(rule)
                return rule
        except SQLAlchemyError as e:
            raise PersistenceError(f"failed to create rule: {e}") from e

    async def create_rules(self, rules: list[AlertRule]) -> list[AlertRule]:
        """Insert several rules in one transaction."""
        try:
            async with self._session_factory() as db:
                db.add_all(rules)
                await db.commit()
                for rule in rules:
                    await db.refresh(rule)
                return rules
        except SQLAlchemyError as e:
            raise PersistenceError(f"failed to create rules: {e}") from e

    async def get_rule(self, rule_id: uuid.UUID) -> Optional[AlertRule]:
        """Fetch a live (not deleted) rule by id."""
        query = select(AlertRule).where(
            AlertRule.id == rule_id,
            AlertRule.deleted_at.is_(None),
        )
        try:
            async with self._session_factory() as db:
                result = await db.execute(query)
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"failed to load rule {rule_id}: {e}") from e

    async def save_rule(self, rule: AlertRule) -> AlertRule:
        """Persist changes made to a detached rule."""
        try:
            async with self._session_factory() as db:
                merged = await db.merge(rule)
                await db.commit()
                await db.refresh(merged)
                return merged
        except SQLAlchemyError as e:
            raise PersistenceError(f"failed to save rule {rule.id}: {e}") from e

    async def list_rules(
        self,
        owner_id: Optional[str] = None,
        resource_id: Optional[str] = None,
    ) -> list[AlertRule]:
        query = select(AlertRule).where(AlertRule.deleted_at.is_(None))
        if owner_id is not None:
            query = query.where(AlertRule.owner_id == owner_id)
        if resource_id is not None:
            query = query.where(AlertRule.resource_id == resource_id)
        query = query.order_by(AlertRule.created_at, AlertRule.id)
        try:
            async with self._session_factory() as db:
                result = await db.execute(query)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"failed to list rules: {e}") from e

    async def find_candidate_rules(
        self,
        owner_id: str,
        resource_type: ResourceType,
        resource_id: str,
        trigger_types: Iterable[TriggerType],
    ) -> list[AlertRule]:
        """
        Fetch enabled rules that may apply to one event.

        Resource-bound rules match on resource_id. Owner-wide rules match
        on owner and resource type, or on owner alone for organization rules.
        Ordered by creation time, then id.
        """
        query = (
            select(AlertRule)
            .where(
                AlertRule.enabled == True,  # noqa: E712
                AlertRule.deleted_at.is_(None),
                AlertRule.trigger_type.in_([t.value for t in trigger_types]),
                or_(
                    AlertRule.resource_id == resource_id,
                    and_(
                        AlertRule.resource_id.is_(None),
                        AlertRule.owner_id == owner_id,
                        AlertRule.resource_type.in_(
                            [resource_type.value, ResourceType.ORGANIZATION.value]
                        ),
                    ),
                ),
            )
            .order_by(AlertRule.created_at, AlertRule.id)
        )
        try:
            async with self._session_factory() as db:
                result = await db.execute(query)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"failed to load candidate rules: {e}") from e

    # =========================================================================
    # AUDIT TRAIL
    # =========================================================================

    async def latest_event(self, rule_id: uuid.UUID, resource_id: str) -> Optional[AlertEvent]:
        """Most recent row for (rule, resource) that starts a cooldown window."""
        query = (
            select(AlertEvent)
            .where(
                AlertEvent.rule_id == rule_id,
                AlertEvent.resource_id == resource_id,
                AlertEvent.delivery_status.in_(COOLDOWN_STATUSES),
            )
            .order_by(AlertEvent.timestamp.desc())
            .limit(1)
        )
        try:
            async with self._session_factory() as db:
                result = await db.execute(query)
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"failed to read audit trail: {e}") from e

    async def add_event(self, event: AlertEvent) -> AlertEvent:
        try:
            async with self._session_factory() as db:
                db.add(event)
                await db.commit()
                return event
        except SQLAlchemyError as e:
            raise PersistenceError(f"failed to write audit row: {e}") from e

    async def set_event_status(
        self,
        event_id: uuid.UUID,
        status: DeliveryStatus,
        error_message: Optional[str] = None,
        sent_at: Optional[datetime] = None,
    ) -> None:
        """Move an audit row to its final delivery status."""
        values: dict = {"delivery_status": status.value}
        if error_message is not None:
            values["error_message"] = error_message
        if sent_at is not None:
            values["sent_at"] = sent_at
        try:
            async with self._session_factory() as db:
                await db.execute(
                    update(AlertEvent).where(AlertEvent.id == event_id).values(**values)
                )
                await db.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"failed to update audit row {event_id}: {e}") from e

    async def list_events(self, rule_id: uuid.UUID, limit: int = 50) -> list[AlertEvent]:
        query = (
            select(AlertEvent)
            .where(AlertEvent.rule_id == rule_id)
            .order_by(AlertEvent.timestamp.desc())
            .limit(limit)
        )
        try:
            async with self._session_factory() as db:
                result = await db.execute(query)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"failed to list audit rows: {e}") from e

"""
Alert rule management.

Every create, update and delete is gated by a permission check on the
rule's resource (the owner for organization-wide rules). Checks go
through the self-healing path so resources registered before the alert
scopes existed recover on first use.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from alerting.alerts.conditions import parse_conditions
from alerting.alerts.defaults import build_default_bot_rules
from alerting.authz.gateway import (
    SCOPE_CREATE_RULE,
    SCOPE_DELETE_RULE,
    SCOPE_UPDATE_RULE,
    AuthorizationGateway,
)
from alerting.authz.self_heal import check_permission_with_self_healing
from alerting.core.errors import RuleNotFoundError
from alerting.models import AlertEvent, AlertRule
from alerting.schemas.alert_rule import AlertRuleCreate, AlertRuleUpdate
from alerting.store import AlertStore

logger = logging.getLogger(__name__)


def _enum_value(value):
    return getattr(value, "value", value)


class AlertService:
    """
    CRUD for alert rules.

    Args:
        store: Rule store
        gateway: Authorization gateway
    """

    def __init__(self, store: AlertStore, gateway: AuthorizationGateway):
        self._store = store
        self._gateway = gateway

    async def _require(self, token: str, resource_id: str, scope: str) -> None:
        await check_permission_with_self_healing(self._gateway, token, resource_id, scope)

    # =========================================================================
    # READ
    # =========================================================================

    async def get_rule(self, rule_id: uuid.UUID) -> AlertRule:
        """
        Raises:
            RuleNotFoundError: No live rule with this id
        """
        rule = await self._store.get_rule(rule_id)
        if rule is None:
            raise RuleNotFoundError(f"alert rule {rule_id} not found")
        return rule

    async def list_rules(
        self,
        owner_id: Optional[str] = None,
        resource_id: Optional[str] = None,
    ) -> list[AlertRule]:
        return await self._store.list_rules(owner_id=owner_id, resource_id=resource_id)

    async def list_events(self, rule_id: uuid.UUID, limit: int = 50) -> list[AlertEvent]:
        await self.get_rule(rule_id)
        return await self._store.list_events(rule_id, limit=limit)

    # =========================================================================
    # WRITE
    # =========================================================================

    async def create_rule(self, token: str, data: AlertRuleCreate) -> AlertRule:
        """
        Create a rule after checking the create scope.

        Raises:
            PermissionDeniedError: Scope not granted
            PersistenceError: The rule could not be stored
        """
        rule = AlertRule(
            id=uuid.uuid4(),
            name=data.name,
            owner_id=data.owner_id,
            resource_type=data.resource_type.value,
            resource_id=data.resource_id,
            trigger_type=data.trigger_type.value,
            conditions=dict(data.conditions),
            severity=data.severity.value,
            delivery_mode=data.delivery_mode.value,
            cooldown_seconds=data.cooldown_seconds,
            recipients=list(data.recipients),
            bot_mode_filter=data.bot_mode_filter.value,
            enabled=data.enabled,
        )
        await self._require(token, rule.permission_resource_id, SCOPE_CREATE_RULE)

        rule = await self._store.create_rule(rule)
        logger.info("Created alert rule %s (%s) for %s", rule.id, rule.trigger_type,
                    rule.permission_resource_id)
        return rule

    async def get_rule_for_update(self, token: str, rule_id: uuid.UUID) -> AlertRule:
        """Load a rule and require the update scope on it."""
        rule = await self.get_rule(rule_id)
        await self._require(token, rule.permission_resource_id, SCOPE_UPDATE_RULE)
        return rule

    async def update_rule(
        self, token: str, rule_id: uuid.UUID, data: AlertRuleUpdate
    ) -> AlertRule:
        """
        Apply a partial update.

        Raises:
            RuleNotFoundError: No live rule with this id
            PermissionDeniedError: Scope not granted
            ValidationError: New conditions do not fit the trigger type
        """
        rule = await self.get_rule_for_update(token, rule_id)

        update_data = data.model_dump(exclude_unset=True)
        if update_data.get("conditions") is not None:
            parse_conditions(rule.trigger_type, update_data["conditions"])

        for field, value in update_data.items():
            if value is None:
                continue
            setattr(rule, field, _enum_value(value))
        rule.updated_at = datetime.now(timezone.utc)

        return await self._store.save_rule(rule)

    async def toggle_rule(self, token: str, rule_id: uuid.UUID, enabled: bool) -> AlertRule:
        rule = await self.get_rule_for_update(token, rule_id)
        rule.enabled = enabled
        rule.updated_at = datetime.now(timezone.utc)
        return await self._store.save_rule(rule)

    async def delete_rule(self, token: str, rule_id: uuid.UUID) -> None:
        """Soft-delete a rule; its audit rows are kept."""
        rule = await self.get_rule(rule_id)
        await self._require(token, rule.permission_resource_id, SCOPE_DELETE_RULE)

        rule.deleted_at = datetime.now(timezone.utc)
        rule.enabled = False
        await self._store.save_rule(rule)
        logger.info("Deleted alert rule %s", rule.id)

    # =========================================================================
    # SEEDING
    # =========================================================================

    async def seed_default_rules(self, bot_id: str, owner_id: str) -> list[AlertRule]:
        """
        Create the default rules for a newly created bot.

        Called by the bot creation hook, not by users, so no permission
        check is made. Bots that already have rules are left alone, so a
        redelivered creation event does not duplicate them.
        """
        if await self._store.list_rules(resource_id=bot_id):
            logger.info("Bot %s already has alert rules, skipping defaults", bot_id)
            return []

        rules = await self._store.create_rules(build_default_bot_rules(bot_id, owner_id))
        logger.info("Seeded %d default alert rules for bot %s", len(rules), bot_id)
        return rules

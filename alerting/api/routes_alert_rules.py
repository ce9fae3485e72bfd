"""
Alert rule management routes.

CRUD for alert rules plus test sends and the audit trail of each rule.
Permission checks happen in the service; service errors are mapped to
HTTP responses by the handlers registered in main.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from alerting.alerts.enums import (
    ResourceType,
    TriggerType,
    describe_trigger,
    triggers_for_resource,
)
from alerting.alerts.manager import AlertManager
from alerting.alerts.service import AlertService
from alerting.api.deps import (
    Principal,
    get_alert_manager,
    get_alert_service,
    get_current_principal,
)
from alerting.schemas.alert_rule import (
    AlertEventResponse,
    AlertRuleCreate,
    AlertRuleListResponse,
    AlertRuleResponse,
    AlertRuleToggle,
    AlertRuleUpdate,
    ChannelTestRequest,
    TriggerTypeInfo,
)


router = APIRouter(
    prefix="/alert-rules",
    tags=["Alert Rules"],
)

channels_router = APIRouter(
    prefix="/alert-channels",
    tags=["Alert Channels"],
)


# =============================================================================
# RULES
# =============================================================================


@router.get(
    "",
    response_model=AlertRuleListResponse,
    summary="List alert rules",
)
async def list_rules(
    owner_id: Optional[str] = Query(default=None),
    resource_id: Optional[str] = Query(default=None),
    principal: Principal = Depends(get_current_principal),
    service: AlertService = Depends(get_alert_service),
) -> AlertRuleListResponse:
    """List live rules, optionally filtered by owner or resource."""
    rules = await service.list_rules(owner_id=owner_id, resource_id=resource_id)
    return AlertRuleListResponse(items=rules, total=len(rules))


@router.get(
    "/trigger-types",
    response_model=list[TriggerTypeInfo],
    summary="Describe available trigger types",
)
async def list_trigger_types(
    resource_type: Optional[ResourceType] = Query(default=None),
    principal: Principal = Depends(get_current_principal),
) -> list[TriggerTypeInfo]:
    """All trigger types, or only those a rule on `resource_type` may use."""
    triggers = TriggerType if resource_type is None else triggers_for_resource(resource_type)
    return [TriggerTypeInfo(**describe_trigger(t)) for t in triggers]


@router.post(
    "",
    response_model=AlertRuleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an alert rule",
)
async def create_rule(
    data: AlertRuleCreate,
    principal: Principal = Depends(get_current_principal),
    service: AlertService = Depends(get_alert_service),
) -> AlertRuleResponse:
    rule = await service.create_rule(principal.token, data)
    return AlertRuleResponse.model_validate(rule)


@router.get(
    "/{rule_id}",
    response_model=AlertRuleResponse,
    summary="Get an alert rule",
)
async def get_rule(
    rule_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    service: AlertService = Depends(get_alert_service),
) -> AlertRuleResponse:
    rule = await service.get_rule(rule_id)
    return AlertRuleResponse.model_validate(rule)


@router.put(
    "/{rule_id}",
    response_model=AlertRuleResponse,
    summary="Update an alert rule",
)
async def update_rule(
    rule_id: uuid.UUID,
    data: AlertRuleUpdate,
    principal: Principal = Depends(get_current_principal),
    service: AlertService = Depends(get_alert_service),
) -> AlertRuleResponse:
    """Only provided fields are updated."""
    rule = await service.update_rule(principal.token, rule_id, data)
    return AlertRuleResponse.model_validate(rule)


@router.patch(
    "/{rule_id}/toggle",
    response_model=AlertRuleResponse,
    summary="Enable or disable an alert rule",
)
async def toggle_rule(
    rule_id: uuid.UUID,
    data: AlertRuleToggle,
    principal: Principal = Depends(get_current_principal),
    service: AlertService = Depends(get_alert_service),
) -> AlertRuleResponse:
    rule = await service.toggle_rule(principal.token, rule_id, data.enabled)
    return AlertRuleResponse.model_validate(rule)


@router.delete(
    "/{rule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an alert rule",
)
async def delete_rule(
    rule_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    service: AlertService = Depends(get_alert_service),
) -> None:
    await service.delete_rule(principal.token, rule_id)


# =============================================================================
# TEST SENDS & AUDIT TRAIL
# =============================================================================


@router.post(
    "/{rule_id}/test",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Send a test alert for a rule",
)
async def test_rule(
    rule_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    service: AlertService = Depends(get_alert_service),
    manager: AlertManager = Depends(get_alert_manager),
) -> dict:
    """Sends a sample alert to the rule's recipients, skipping cooldown and batching."""
    rule = await service.get_rule_for_update(principal.token, rule_id)
    await manager.test_rule(rule)
    return {"status": "sent", "recipients": rule.recipients}


@router.get(
    "/{rule_id}/events",
    response_model=list[AlertEventResponse],
    summary="List audit rows of a rule",
)
async def list_rule_events(
    rule_id: uuid.UUID,
    limit: int = Query(default=50, ge=1, le=500),
    principal: Principal = Depends(get_current_principal),
    service: AlertService = Depends(get_alert_service),
) -> list[AlertEventResponse]:
    events = await service.list_events(rule_id, limit=limit)
    return [AlertEventResponse.model_validate(e) for e in events]


@channels_router.post(
    "/test",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Send a test message through the email channel",
)
async def test_channel(
    data: ChannelTestRequest,
    principal: Principal = Depends(get_current_principal),
    manager: AlertManager = Depends(get_alert_manager),
) -> dict:
    await manager.test_channel(data.recipient)
    return {"status": "sent"}

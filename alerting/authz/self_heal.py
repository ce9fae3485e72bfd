"""
Permission checks that repair stale resource scopes.

A resource created before a scope existed (or before it was registered
with the gateway at all) is denied with an invalid scope or invalid
resource error. In that case the resource is synchronized once and the
check is repeated once. Every other denial stands as returned.
"""

import logging
from typing import Optional

from alerting.authz.gateway import AuthorizationGateway
from alerting.core.errors import AuthorizationGatewayError, PermissionDeniedError

logger = logging.getLogger(__name__)


STALE_SCOPE_MARKERS = (
    "invalid_scope",
    "invalid scope",
    "invalid_resource",
    "does not exist",
)


def is_invalid_scope_error(error: Optional[BaseException]) -> bool:
    """Check whether a gateway error means the resource's scopes are stale."""
    if error is None:
        return False
    text = str(error).lower()
    return any(marker in text for marker in STALE_SCOPE_MARKERS)


def should_trigger_self_healing(error: Optional[BaseException]) -> bool:
    """A resource sync is worth trying only for stale scope errors."""
    return is_invalid_scope_error(error)


async def _check(
    gateway: AuthorizationGateway, token: str, resource_id: str, scope: str
) -> tuple[bool, Optional[AuthorizationGatewayError]]:
    try:
        return await gateway.check_permission(token, resource_id, scope), None
    except AuthorizationGatewayError as e:
        return False, e


async def check_permission_with_self_healing(
    gateway: AuthorizationGateway,
    token: str,
    resource_id: str,
    scope: str,
) -> None:
    """
    Require a scope on a resource, healing stale scopes at most once.

    Args:
        gateway: Authorization gateway
        token: Caller's bearer token
        resource_id: Resource the scope is checked on
        scope: Required scope

    Raises:
        PermissionDeniedError: The scope is not granted
    """
    granted, error = await _check(gateway, token, resource_id, scope)

    if not granted and should_trigger_self_healing(error):
        logger.info(
            "Stale scope for resource %s (%s), synchronizing permissions", resource_id, error
        )
        try:
            await gateway.sync_resource_permissions(resource_id)
        except AuthorizationGatewayError as sync_error:
            logger.warning("Permission sync for resource %s failed: %s", resource_id, sync_error)
        else:
            granted, error = await _check(gateway, token, resource_id, scope)

    if granted:
        return
    if error is not None and not is_invalid_scope_error(error):
        raise PermissionDeniedError(f"permission check failed: {error}")
    raise PermissionDeniedError(f"missing scope {scope} on resource {resource_id}")

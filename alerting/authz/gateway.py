"""
Authorization gateway clients.

The gateway decides whether the caller holds a scope on a resource. The
production implementation talks to Keycloak: decisions come from the UMA
token endpoint, and resource scopes are synchronized through the
protection API with the service's own client credentials.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from alerting.core.errors import AuthorizationGatewayError, ConfigurationError

logger = logging.getLogger(__name__)


# Scopes gated by rule CRUD
SCOPE_CREATE_RULE = "create-alert-rule"
SCOPE_UPDATE_RULE = "update-alert-rule"
SCOPE_DELETE_RULE = "delete-alert-rule"

ALERT_RULE_SCOPES = (SCOPE_CREATE_RULE, SCOPE_UPDATE_RULE, SCOPE_DELETE_RULE)

UMA_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:uma-ticket"


class AuthorizationGateway(ABC):
    """Decides permissions and repairs stale resource scopes."""

    @abstractmethod
    async def check_permission(self, token: str, resource_id: str, scope: str) -> bool:
        """
        Returns:
            True if granted, False if denied

        Raises:
            AuthorizationGatewayError: The gateway answered with an error
        """

    @abstractmethod
    async def sync_resource_permissions(self, resource_id: str) -> None:
        """
        Register the resource and its scopes with the gateway.

        Raises:
            AuthorizationGatewayError: The sync failed
        """

    async def aclose(self) -> None:
        pass


class AllowAllGateway(AuthorizationGateway):
    """Grants every scope. Only for local development with authz disabled."""

    async def check_permission(self, token: str, resource_id: str, scope: str) -> bool:
        return True

    async def sync_resource_permissions(self, resource_id: str) -> None:
        return None


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        error = body.get("error", "")
        description = body.get("error_description", "")
        text = f"{error}: {description}" if error and description else error or description
        if text:
            return text
    return response.text or f"HTTP {response.status_code}"


class KeycloakGateway(AuthorizationGateway):
    """
    Keycloak UMA gateway.

    Args:
        base_url: Keycloak base URL, e.g. https://auth.example.com
        realm: Realm name
        client_id: Resource server client (the UMA audience)
        client_secret: Secret used for protection API calls
        client: Optional preconfigured httpx client
    """

    def __init__(
        self,
        base_url: str,
        realm: str,
        client_id: str,
        client_secret: str,
        scopes: tuple[str, ...] = ALERT_RULE_SCOPES,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        if not base_url or not realm or not client_id:
            raise ConfigurationError("Keycloak URL, realm and client id are required")

        realm_url = f"{base_url.rstrip('/')}/realms/{realm}"
        self._token_url = f"{realm_url}/protocol/openid-connect/token"
        self._resource_url = f"{realm_url}/authz/protection/resource_set"
        self._client_id = client_id
        self._client_secret = client_secret
        self._scopes = scopes
        self._client = client or httpx.AsyncClient(timeout=timeout)

    # =========================================================================
    # DECISIONS
    # =========================================================================

    async def check_permission(self, token: str, resource_id: str, scope: str) -> bool:
        try:
            response = await self._client.post(
                self._token_url,
                data={
                    "grant_type": UMA_GRANT_TYPE,
                    "audience": self._client_id,
                    "permission": f"{resource_id}#{scope}",
                    "response_mode": "decision",
                },
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            raise AuthorizationGatewayError(f"authorization gateway unreachable: {e}") from e

        if response.status_code == 200:
            try:
                return bool(response.json().get("result", False))
            except (ValueError, AttributeError) as e:
                raise AuthorizationGatewayError(f"malformed decision response: {e}") from e
        if response.status_code in (401, 403):
            return False
        raise AuthorizationGatewayError(_error_text(response))

    # =========================================================================
    # RESOURCE SYNC
    # =========================================================================

    async def _service_token(self) -> str:
        response = await self._client.post(
            self._token_url,
            data={
                "grant_type": "client_credentials",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
            },
        )
        if response.status_code != 200:
            raise AuthorizationGatewayError(
                f"service token request failed: {_error_text(response)}"
            )
        return response.json()["access_token"]

    async def sync_resource_permissions(self, resource_id: str) -> None:
        try:
            await self._sync(resource_id)
        except httpx.HTTPError as e:
            raise AuthorizationGatewayError(f"resource sync failed: {e}") from e
        except (ValueError, KeyError, TypeError) as e:
            raise AuthorizationGatewayError(f"malformed protection API response: {e!r}") from e

    async def _sync(self, resource_id: str) -> None:
        headers = {"Authorization": f"Bearer {await self._service_token()}"}

        response = await self._client.get(
            self._resource_url,
            params={"name": resource_id, "exactName": "true"},
            headers=headers,
        )
        if response.status_code != 200:
            raise AuthorizationGatewayError(f"resource lookup failed: {_error_text(response)}")
        ids: list[str] = response.json()

        if not ids:
            response = await self._client.post(
                self._resource_url,
                json={"name": resource_id, "scopes": [{"name": s} for s in self._scopes]},
                headers=headers,
            )
            if response.status_code >= 400:
                raise AuthorizationGatewayError(f"resource create failed: {_error_text(response)}")
            logger.info("Registered resource %s with the authorization gateway", resource_id)
            return

        for kc_id in ids:
            response = await self._client.get(f"{self._resource_url}/{kc_id}", headers=headers)
            if response.status_code != 200:
                raise AuthorizationGatewayError(f"resource read failed: {_error_text(response)}")
            resource: dict[str, Any] = response.json()
            existing = {
                s["name"] if isinstance(s, dict) else s
                for s in resource.get("resource_scopes", resource.get("scopes", []))
            }
            merged = sorted(existing | set(self._scopes))
            response = await self._client.put(
                f"{self._resource_url}/{kc_id}",
                json={**resource, "scopes": [{"name": s} for s in merged]},
                headers=headers,
            )
            if response.status_code >= 400:
                raise AuthorizationGatewayError(f"resource update failed: {_error_text(response)}")
        logger.info("Synchronized scopes of resource %s", resource_id)

    async def aclose(self) -> None:
        await self._client.aclose()

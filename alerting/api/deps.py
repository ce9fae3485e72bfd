"""
FastAPI dependencies for route handlers.

Callers authenticate with a bearer token issued by the identity provider.
The raw token is kept so permission checks can be made on the caller's
behalf.
"""

from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from alerting.alerts.manager import AlertManager
from alerting.alerts.service import AlertService
from alerting.context import get_manager
from alerting.core.security import get_token_subject


# =============================================================================
# HTTP BEARER SCHEME
# =============================================================================

security = HTTPBearer()


@dataclass
class Principal:
    """The authenticated caller."""
    subject: str
    token: str


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Principal:
    """
    Validate the bearer token and return the caller.

    Raises:
        401 Unauthorized: If the token is invalid or has no subject
    """
    token = credentials.credentials
    subject = get_token_subject(token)

    if subject is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return Principal(subject=subject, token=token)


# =============================================================================
# SERVICES
# =============================================================================


def get_alert_service(request: Request) -> AlertService:
    return request.app.state.alert_service


async def get_alert_manager() -> AlertManager:
    """
    The manager bound to this request's context.

    Raises:
        503 Service Unavailable: Alert delivery is not configured
    """
    manager = get_manager()
    if manager is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Alert delivery is not configured",
        )
    return manager

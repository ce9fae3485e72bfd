"""
FastAPI application entry point.

This is where:
- The FastAPI app is created
- Routes and error handlers are registered
- The alert manager is started and stopped with the app
- The monitor event consumer runs in the background
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from alerting.alerts.manager import AlertManager, ManagerConfig
from alerting.alerts.service import AlertService
from alerting.api.routes_alert_rules import channels_router, router as alert_rules_router
from alerting.authz.gateway import AllowAllGateway, AuthorizationGateway, KeycloakGateway
from alerting.channels.email import EmailChannel
from alerting.consumer import start_consumer
from alerting.context import reset_manager, set_manager
from alerting.core.config import Settings, settings
from alerting.core.db import AsyncSessionLocal, create_tables, engine
from alerting.core.errors import (
    AlertingError,
    ConfigurationError,
    DeliveryError,
    PermissionDeniedError,
    PersistenceError,
    RuleNotFoundError,
    ValidationError,
)
from alerting.store import AlertStore

logger = logging.getLogger("alerting")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


# =============================================================================
# COMPONENT FACTORIES
# =============================================================================


def build_gateway(config: Settings) -> AuthorizationGateway:
    """
    Raises:
        ConfigurationError: Authorization is enabled but Keycloak is not configured
    """
    if config.authz_disabled:
        logger.warning("Authorization is disabled; every rule change is allowed")
        return AllowAllGateway()
    return KeycloakGateway(
        base_url=config.keycloak_url,
        realm=config.keycloak_realm,
        client_id=config.keycloak_client_id,
        client_secret=config.keycloak_client_secret,
    )


def build_manager(config: Settings, store: AlertStore) -> Optional[AlertManager]:
    """
    Build the alert manager, or None when no email API key is configured.

    Raises:
        ConfigurationError: An API key is set but the from address is missing
    """
    if not config.sendgrid_api_key:
        logger.warning("SENDGRID_API_KEY not set; alert delivery is disabled")
        return None

    channel = EmailChannel(
        api_key=config.sendgrid_api_key,
        from_email=config.alert_from_email,
        from_name=config.alert_from_name,
        api_url=config.sendgrid_api_url,
        timeout=config.alert_send_timeout_seconds,
    )
    return AlertManager(
        store,
        channel,
        ManagerConfig(
            batch_interval_seconds=config.alert_batch_interval_seconds,
            batch_max_attempts=config.alert_batch_max_attempts,
            send_timeout_seconds=config.alert_send_timeout_seconds,
            shutdown_grace_seconds=config.alert_shutdown_grace_seconds,
        ),
    )


# =============================================================================
# LIFESPAN MANAGEMENT
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: create tables, wire the service and manager, start the consumer.
    Shutdown: stop the consumer, flush pending digests, close clients.
    """
    # --- STARTUP ---
    configure_logging(settings.log_level)
    logger.info("Starting alerting service")

    if settings.create_tables:
        await create_tables()

    store = AlertStore(AsyncSessionLocal)
    gateway = build_gateway(settings)
    manager = build_manager(settings, store)

    app.state.alert_service = AlertService(store, gateway)
    app.state.alert_manager = manager

    if manager is not None:
        await manager.start()

    consumer_task: Optional[asyncio.Task] = None
    if settings.consume_events:
        consumer_task = asyncio.create_task(start_consumer(manager, app.state.alert_service))

    yield

    # --- SHUTDOWN ---
    logger.info("Shutting down alerting service")

    if consumer_task is not None:
        consumer_task.cancel()
        try:
            await consumer_task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Event consumer stopped with an error")

    if manager is not None:
        await manager.stop()
        if manager.channel is not None:
            await manager.channel.aclose()

    await gateway.aclose()
    await engine.dispose()


# =============================================================================
# CREATE APPLICATION
# =============================================================================


app = FastAPI(
    title="Alerting Service",
    description="Rule-based alerts for trading bots, strategies and runners",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


@app.middleware("http")
async def bind_alert_manager(request: Request, call_next):
    """Expose the app's alert manager to this request's context."""
    token = set_manager(getattr(request.app.state, "alert_manager", None))
    try:
        return await call_next(request)
    finally:
        reset_manager(token)


# =============================================================================
# ERROR HANDLERS
# =============================================================================
# Service errors carry no HTTP knowledge; map them here.

ERROR_STATUS = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    PermissionDeniedError: status.HTTP_403_FORBIDDEN,
    RuleNotFoundError: status.HTTP_404_NOT_FOUND,
    DeliveryError: status.HTTP_502_BAD_GATEWAY,
    PersistenceError: status.HTTP_503_SERVICE_UNAVAILABLE,
    ConfigurationError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@app.exception_handler(AlertingError)
async def alerting_error_handler(request: Request, exc: AlertingError) -> JSONResponse:
    for error_class, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_class):
            break
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


# =============================================================================
# REGISTER ROUTERS
# =============================================================================

app.include_router(
    alert_rules_router,
    prefix="/api/v1",  # Full path: /api/v1/alert-rules, etc.
)

app.include_router(
    channels_router,
    prefix="/api/v1",  # Full path: /api/v1/alert-channels/test
)


# =============================================================================
# HEALTH CHECK
# =============================================================================


@app.get(
    "/api/v1/health",
    tags=["Health"],
    summary="Health check",
)
async def health_check(request: Request):
    """
    Check if the service is running.

    Returns:
        Status object including whether alert delivery is active
    """
    manager = getattr(request.app.state, "alert_manager", None)
    return {
        "status": "healthy",
        "service": "alerting_service",
        "alert_delivery": manager is not None and manager.started,
    }

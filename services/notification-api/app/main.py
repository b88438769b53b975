"""Notification Dispatch API - Main application."""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List
from fastapi import Body, Depends, FastAPI, Header, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .devices import DeviceManager
from .dispatch import DispatchEngine
from .errors import (
    InvalidPayload,
    MalformedSubscription,
    NotFound,
    NotificationServiceError,
    StorageUnavailable,
    Unauthorized,
)
from .models import (
    DeviceRegisterRequest,
    DeviceRegistration,
    DeviceUnregisterResponse,
    DispatchResponse,
    VapidKeyResponse,
)
from .reconciler import FailureReconciler
from .registry import DeviceRegistry, InMemoryDeviceRegistry, MongoDeviceRegistry
from .transport import WebPushTransport
from common.database.mongodb import connect_to_mongo, close_database_connection, get_collection
from common.auth.keycloak import KeycloakConfig, get_current_user, has_role
from common.health.checks import health_check, readiness_check, liveness_check

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.debug else logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

_ERROR_STATUS = {
    InvalidPayload: status.HTTP_400_BAD_REQUEST,
    MalformedSubscription: status.HTTP_400_BAD_REQUEST,
    Unauthorized: status.HTTP_403_FORBIDDEN,
    NotFound: status.HTTP_404_NOT_FOUND,
    StorageUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _http_error(error: NotificationServiceError) -> HTTPException:
    status_code = _ERROR_STATUS.get(type(error), status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        logger.error(f"{type(error).__name__}: {error}")
    return HTTPException(status_code=status_code, detail=str(error))


def build_services(app: FastAPI, registry: DeviceRegistry, transport: WebPushTransport) -> None:
    """Wire registry, transport, engine and device manager onto the application."""
    app.state.registry = registry
    app.state.transport = transport
    app.state.device_manager = DeviceManager(registry)
    app.state.dispatch_engine = DispatchEngine(
        registry=registry,
        transport=transport,
        reconciler=FailureReconciler(registry),
        max_concurrent_sends=settings.max_concurrent_sends,
        default_icon=settings.default_icon,
        default_tag=settings.default_tag,
        default_url=settings.default_url,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    KeycloakConfig.initialize(
        server_url=settings.keycloak_server_url,
        realm=settings.keycloak_realm,
        client_id=settings.keycloak_client_id
    )

    if settings.storage_backend == "memory":
        logger.warning("Using in-memory device registry - registrations are lost on restart")
        registry: DeviceRegistry = InMemoryDeviceRegistry()
    else:
        await connect_to_mongo(
            mongo_uri=settings.mongodb_uri,
            database_name=settings.mongodb_database
        )
        registry = MongoDeviceRegistry(get_collection(settings.device_collection))
        await registry.ensure_indexes()

    transport = WebPushTransport(
        vapid_private_key=settings.vapid_private_key,
        vapid_subject=settings.vapid_subject,
        ttl=settings.push_ttl,
        timeout=settings.push_timeout,
    )
    build_services(app, registry, transport)

    logger.info(f"{settings.app_name} started successfully")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}")
    await close_database_connection()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Registers push devices and dispatches notifications to them",
    lifespan=lifespan
)

cors_origins = [origin.strip() for origin in settings.cors_origins.split(',')]
logger.info(f"CORS origins configured: {cors_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
    max_age=3600,
)


def get_device_manager(request: Request) -> DeviceManager:
    return request.app.state.device_manager


def get_dispatch_engine(request: Request) -> DispatchEngine:
    return request.app.state.dispatch_engine


# Health check endpoints
@app.get("/health", include_in_schema=False)
async def health():
    """Health check endpoint."""
    return await health_check(service_name=settings.app_name, version=settings.app_version)


@app.get("/ready", include_in_schema=False)
async def ready(request: Request):
    """Readiness check endpoint."""
    async def push_configured() -> None:
        if not request.app.state.transport.is_configured:
            raise RuntimeError("VAPID keys are not configured")

    return await readiness_check({
        "registry": request.app.state.registry.ping,
        "push": push_configured,
    })


@app.get("/live", include_in_schema=False)
async def live():
    """Liveness check endpoint."""
    return await liveness_check()


# API Endpoints
@app.get(
    "/push/vapid-public-key",
    response_model=VapidKeyResponse,
    summary="Get the VAPID public key",
    tags=["Push"]
)
async def get_vapid_public_key() -> VapidKeyResponse:
    """Public key browsers need as applicationServerKey when subscribing."""
    if not settings.vapid_public_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Server is not configured for push notifications",
        )
    return VapidKeyResponse(publicKey=settings.vapid_public_key)


@app.post(
    "/notifications/devices",
    response_model=DeviceRegistration,
    status_code=status.HTTP_201_CREATED,
    summary="Register a device",
    tags=["Devices"]
)
async def register_device(
    registration: DeviceRegisterRequest,
    response: Response,
    user_agent: str = Header(default=""),
    current_user: dict = Depends(get_current_user),
    manager: DeviceManager = Depends(get_device_manager),
) -> DeviceRegistration:
    """
    Register the caller's device for push notifications.

    Re-registering an existing endpoint updates the stored device in place
    and returns 200 instead of 201. deviceType is detected from the
    User-Agent header when omitted.
    """
    try:
        device, created = await manager.register(
            owner_id=current_user["sub"],
            subscription=registration.subscription,
            device_name=registration.deviceName,
            device_type=registration.deviceType,
            user_agent=user_agent,
        )
    except NotificationServiceError as e:
        raise _http_error(e)

    if not created:
        response.status_code = status.HTTP_200_OK
    return device


@app.get(
    "/notifications/devices",
    response_model=List[DeviceRegistration],
    summary="List the caller's devices",
    tags=["Devices"]
)
async def list_devices(
    current_user: dict = Depends(get_current_user),
    manager: DeviceManager = Depends(get_device_manager),
) -> List[DeviceRegistration]:
    """All devices of the caller, active and inactive."""
    try:
        return await manager.list(current_user["sub"])
    except NotificationServiceError as e:
        raise _http_error(e)


@app.delete(
    "/notifications/devices/{device_id}",
    response_model=DeviceUnregisterResponse,
    summary="Unregister a device",
    tags=["Devices"]
)
async def unregister_device(
    device_id: str,
    current_user: dict = Depends(get_current_user),
    manager: DeviceManager = Depends(get_device_manager),
) -> DeviceUnregisterResponse:
    """
    Delete one of the caller's devices.

    Missing devices and devices owned by someone else both answer 404.
    """
    try:
        await manager.unregister(device_id, current_user["sub"])
    except NotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Device not found or you are not authorized to delete this device",
        )
    except NotificationServiceError as e:
        raise _http_error(e)

    return DeviceUnregisterResponse(success=True, message="Device unregistered successfully")


@app.post(
    "/notifications/push",
    response_model=DispatchResponse,
    summary="Send a push notification",
    tags=["Push"]
)
async def send_push_notification(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    current_user: dict = Depends(get_current_user),
    engine: DispatchEngine = Depends(get_dispatch_engine),
) -> DispatchResponse:
    """
    Notify every active device of a user.

    The body is the notification (title, body or message, url, icon, tag,
    data) plus an optional userId. Only callers with the dispatcher role may
    target a userId other than their own.
    """
    if not request.app.state.transport.is_configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Server is not configured for push notifications",
        )

    payload = dict(payload)
    owner_id = payload.pop("userId", None) or current_user["sub"]

    if owner_id != current_user["sub"] and not has_role(current_user, settings.dispatcher_role):
        logger.warning(f"User {current_user['sub']} attempted to notify {owner_id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to send notifications to another user",
        )

    try:
        result = await engine.dispatch(owner_id, payload)
    except NotificationServiceError as e:
        raise _http_error(e)

    if result.total == 0:
        message = "No active devices registered for this user"
    else:
        message = f"{result.sent} of {result.total} devices notified"

    return DispatchResponse(
        success=True,
        message=message,
        sent=result.sent,
        total=result.total,
        outcomes=result.outcomes,
    )


@app.get("/", include_in_schema=False)
async def root():
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "status": "running"
    }

"""
FastAPI Application Entry Point

Canteen Vendor Dashboard API.

Endpoints:
    - POST /vendor/register, POST /vendor/login: vendor accounts
    - GET/POST /menu, PUT/DELETE /menu/{id}: canteen menu
    - POST /order, GET /orders, PUT /order/{id}/status: student orders
    - GET /analytics: dashboard statistics
    - POST /sms: Twilio reply webhook (student cancellation)
    - GET /health: System health check

Run with:
    uvicorn canteen.main:app --port 3000

Version: 1.0.0
"""

import logging
from datetime import datetime
from typing import Any, List, Optional
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Form
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import redis.asyncio as aioredis

from canteen.core.config import DispatchMode, Settings, get_settings, setup_logging
from canteen.core.errors import install_error_handlers
from canteen.core.security import TokenService, VendorIdentity, get_current_vendor, get_token_service
from canteen.database import get_db, init_db, engine
from canteen.schemas import (
    AnalyticsResponse,
    ErrorResponse,
    HealthResponse,
    LoginResponse,
    MenuItemCreate,
    MenuItemEnvelope,
    MenuItemResponse,
    MenuItemUpdate,
    MessageResponse,
    OrderCreate,
    OrderCreateResponse,
    OrderStatusResponse,
    OrderStatusUpdate,
    OrderWithItemsResponse,
    RegisterResponse,
    VendorLogin,
    VendorRegister,
)
from canteen.services import AnalyticsService, MenuService, OrderLifecycleManager, VendorAuthService
from canteen.services.notifications import (
    NotificationDispatcher,
    get_notification_dispatcher,
    get_notification_service,
)

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

TWIML_ACK = "<Response></Response>"


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.

    Refuses to start when a required credential is missing.
    """
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    missing = settings.validate_required_config()
    if missing:
        logger.critical(f"❌ Missing required environment variables: {missing}")
        raise RuntimeError(f"Missing required configuration: {', '.join(missing)}")

    await init_db()
    logger.info("✅ Database initialized")

    dispatcher = get_notification_dispatcher()
    logger.info(f"✅ SMS Service: {dispatcher.service.provider_name} ({dispatcher.mode.value} delivery)")

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    logger.info("Shutting down...")
    await dispatcher.drain()
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Canteen vendor dashboard: menu management, student orders with "
        "SMS status updates, and daily sales analytics."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # The dashboard is served from a different origin
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_order_manager(
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    config: Settings = Depends(get_settings),
) -> OrderLifecycleManager:
    return OrderLifecycleManager(db, dispatcher, config)


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    config: Settings = Depends(get_settings),
) -> VendorAuthService:
    return VendorAuthService(db, config)


def get_menu_service(db: AsyncSession = Depends(get_db)) -> MenuService:
    return MenuService(db)


def get_analytics_service(db: AsyncSession = Depends(get_db)) -> AnalyticsService:
    return AnalyticsService(db)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🍽️ Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db),
    config: Settings = Depends(get_settings),
) -> HealthResponse:
    """Verify all system components are operational."""

    db_status = "healthy"
    try:
        await db.execute(select(func.now()))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    broker_status = "not used"
    if config.sms_dispatch_mode == DispatchMode.CELERY:
        broker_status = "healthy"
        try:
            r = aioredis.from_url(config.redis_url, socket_timeout=2)
            await r.ping()
            await r.aclose()
        except Exception as e:
            broker_status = f"unhealthy: {str(e)}"
            logger.error(f"Redis health check failed: {e}")

    notification_service = get_notification_service()
    try:
        sms_ok = await notification_service.health_check()
    except Exception as e:
        logger.error(f"SMS health check failed: {e}")
        sms_ok = False
    sms_status = "healthy" if sms_ok else "unhealthy"

    overall = "operational" if all(
        s in ("healthy", "not used") for s in [db_status, broker_status, sms_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        broker=broker_status,
        notification_service=sms_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# VENDOR AUTH ENDPOINTS
# =============================================================================

@app.post(
    "/vendor/register",
    response_model=RegisterResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Vendor"],
)
async def register_vendor(
    data: VendorRegister,
    auth: VendorAuthService = Depends(get_auth_service),
) -> Any:
    vendor = await auth.register(
        canteen_id=data.canteen_id,
        username=data.username,
        password=data.password,
        name=data.name,
    )
    return {"message": "Vendor registered successfully", "vendor": vendor}


@app.post(
    "/vendor/login",
    response_model=LoginResponse,
    responses=ERROR_RESPONSES,
    tags=["Vendor"],
)
async def login_vendor(
    data: VendorLogin,
    auth: VendorAuthService = Depends(get_auth_service),
    tokens: TokenService = Depends(get_token_service),
) -> LoginResponse:
    token = await auth.login(data.username, data.password, tokens)
    return LoginResponse(message="Login successful", token=token)


# =============================================================================
# MENU ENDPOINTS
# =============================================================================

@app.get(
    "/menu",
    response_model=List[MenuItemResponse],
    responses=ERROR_RESPONSES,
    tags=["Menu"],
)
async def list_menu(
    vendor: VendorIdentity = Depends(get_current_vendor),
    menu: MenuService = Depends(get_menu_service),
) -> Any:
    """Menu of the caller's canteen, by name."""
    return await menu.list_items(vendor)


@app.post(
    "/menu",
    response_model=MenuItemEnvelope,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Menu"],
)
async def add_menu_item(
    data: MenuItemCreate,
    vendor: VendorIdentity = Depends(get_current_vendor),
    menu: MenuService = Depends(get_menu_service),
) -> Any:
    item = await menu.create_item(vendor, data)
    return {"message": "Item added to menu", "item": item}


@app.put(
    "/menu/{item_id}",
    response_model=MenuItemEnvelope,
    responses=ERROR_RESPONSES,
    tags=["Menu"],
)
async def update_menu_item(
    item_id: int,
    data: MenuItemUpdate,
    vendor: VendorIdentity = Depends(get_current_vendor),
    menu: MenuService = Depends(get_menu_service),
) -> Any:
    """Change price, availability, name or description of an item."""
    item = await menu.update_item(vendor, item_id, data)
    return {"message": "Item updated successfully", "item": item}


@app.delete(
    "/menu/{item_id}",
    response_model=MessageResponse,
    responses=ERROR_RESPONSES,
    tags=["Menu"],
)
async def delete_menu_item(
    item_id: int,
    vendor: VendorIdentity = Depends(get_current_vendor),
    menu: MenuService = Depends(get_menu_service),
) -> MessageResponse:
    await menu.delete_item(vendor, item_id)
    return MessageResponse(message="Item deleted successfully")


# =============================================================================
# ORDER ENDPOINTS
# =============================================================================

@app.post(
    "/order",
    response_model=OrderCreateResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Create Order",
)
async def create_order(
    data: OrderCreate,
    vendor: VendorIdentity = Depends(get_current_vendor),
    orders: OrderLifecycleManager = Depends(get_order_manager),
) -> OrderCreateResponse:
    """
    Take a student's order at the counter.

    Prices come from the current menu; the student gets an SMS with their
    queue position.
    """
    logger.info(f"Creating order for: {data.student_name}")
    order = await orders.create_order(vendor, data.student_name, data.phone_no, data.items)
    return OrderCreateResponse(
        order_id=order.id,
        status=order.status,
        queue_position=order.queue_position,
    )


@app.get(
    "/orders",
    response_model=List[OrderWithItemsResponse],
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    vendor: VendorIdentity = Depends(get_current_vendor),
    orders: OrderLifecycleManager = Depends(get_order_manager),
) -> Any:
    """The caller's orders, newest first."""
    return await orders.list_orders(vendor)


@app.put(
    "/order/{order_id}/status",
    response_model=OrderStatusResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Update Order Status",
)
async def update_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    vendor: VendorIdentity = Depends(get_current_vendor),
    orders: OrderLifecycleManager = Depends(get_order_manager),
) -> Any:
    order = await orders.update_status(vendor, order_id, data.status)
    return {"message": "Status updated successfully", "order": order}


# =============================================================================
# ANALYTICS
# =============================================================================

@app.get(
    "/analytics",
    response_model=AnalyticsResponse,
    responses=ERROR_RESPONSES,
    tags=["Analytics"],
)
async def get_analytics(
    vendor: VendorIdentity = Depends(get_current_vendor),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> AnalyticsResponse:
    return await analytics.dashboard(vendor)


# =============================================================================
# TWILIO WEBHOOK
# =============================================================================

@app.post(
    "/sms",
    response_class=Response,
    tags=["Twilio Webhook"],
    summary="Student SMS Reply",
)
async def sms_webhook(
    from_phone: Optional[str] = Form(None, alias="From"),
    body: Optional[str] = Form(None, alias="Body"),
    orders: OrderLifecycleManager = Depends(get_order_manager),
) -> Response:
    """
    Incoming SMS from students.

    Replying with the cancel keyword drops the sender's latest pending
    order. Twilio always gets an empty TwiML response back.
    """
    try:
        await orders.handle_inbound_sms(from_phone, body)
    except Exception as e:
        logger.exception(f"Error processing SMS webhook: {e}")

    return Response(content=TWIML_ACK, media_type="text/xml")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("canteen.main:app", host=settings.api_host, port=settings.api_port)

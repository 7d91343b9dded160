"""
Stripe Access Webhook - Main FastAPI Application
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.routes import router as api_router
from app.core.config import get_settings
from app.core.logging import get_logger, setup_logging
from app.core.middleware import setup_exception_handlers, setup_middleware
from app.core.redis_client import close_redis, create_redis
from app.domain.services.fulfillment_client import FulfillmentClient
from app.domain.services.health_service import check_readiness
from app.domain.services.stripe_provider import StripeProvider

settings = get_settings()

# Setup logging before anything else
setup_logging(
    level="DEBUG" if settings.DEBUG else "INFO",
    json_format=not settings.DEBUG,
    app_name=settings.APP_NAME
)

logger = get_logger(__name__)


_OPENAPI_TAGS = [
    {"name": "Webhooks", "description": "Signed Stripe events that drive customer access."},
    {"name": "Customers", "description": "Read-only export of reconciled customer records."},
    {"name": "Health", "description": "Liveness and readiness checks."},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the process-wide clients on startup and release them on shutdown"""
    logger.info("Starting application", extra_data={"app_name": settings.APP_NAME})

    missing = settings.missing_webhook_config()
    if missing:
        # The webhook answers 500 until these are set; other routes keep working
        logger.error("Webhook configuration incomplete", extra_data={"missing": missing})

    app.state.redis = await create_redis(settings)
    app.state.stripe_provider = StripeProvider(settings)
    app.state.fulfillment_client = FulfillmentClient(settings)
    try:
        yield
    finally:
        logger.info("Shutting down application")
        await app.state.stripe_provider.aclose()
        await close_redis(app.state.redis)


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description=(
        "Ingests signed Stripe webhook events, reconciles each customer's "
        "access state in Redis, records orders and triggers onboarding in "
        "the Fulfillment Service."
    ),
    openapi_tags=_OPENAPI_TAGS,
    lifespan=lifespan,
)

# Setup middleware (correlation ID, request logging, security headers)
setup_middleware(app, settings)
setup_exception_handlers(app)

app.include_router(api_router, prefix="/api")


@app.get(
    "/health",
    summary="Liveness check",
    description="The process is up. Dependencies are not checked, to avoid needless restarts.",
    tags=["Health"],
)
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}


@app.get(
    "/health/ready",
    summary="Readiness check",
    description="Pings Redis and reports the Fulfillment circuit state.",
    responses={
        200: {
            "description": "Redis reachable",
            "content": {
                "application/json": {
                    "example": {"status": "healthy", "redis": "ok", "fulfillment_circuit": "closed"}
                }
            },
        },
        503: {
            "description": "Redis unavailable",
            "content": {
                "application/json": {
                    "example": {
                        "status": "degraded",
                        "redis": "error: redis_unavailable",
                        "fulfillment_circuit": "closed",
                    }
                }
            },
        },
    },
    tags=["Health"],
)
async def readiness_check(request: Request) -> JSONResponse:
    fulfillment = getattr(request.app.state, "fulfillment_client", None)
    result = await check_readiness(
        getattr(request.app.state, "redis", None),
        fulfillment.circuit_breaker if fulfillment is not None else None,
    )
    status_code = 200 if result["status"] == "healthy" else 503
    return JSONResponse(content=result, status_code=status_code)

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.api.v1.router import router as api_v1_router
from app.core.cache import CacheService
from app.core.config import settings as app_settings
from app.core.exceptions import (
    AdvisorNotFoundError,
    AlreadyConvertedError,
    CollaboratorUnavailableError,
    InvalidRuleConfigError,
    LeadNotFoundError,
    PersistenceConflictError,
    PoolExhaustedError,
    QualificationNotMetError,
    RoutingEngineError,
    RoutingRuleNotFoundError,
    TargetAtCapacityError,
)
from app.core.rate_limit import limiter
from app.dependencies import build_automation_engine
from app.services.automation_scheduler import start_automation_loop

# Configure logging
logging.basicConfig(level=app_settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


async def _connect_redis():
    client = Redis.from_url(app_settings.REDIS_URL, decode_responses=True)
    try:
        await client.ping()
    except Exception:
        logger.warning("Redis unavailable, automation locks and round-robin counters disabled")
        await client.aclose()
        return None
    return client


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage the automation background loop."""
    redis_client = await _connect_redis()
    app.state.automation_engine = build_automation_engine(CacheService(redis_client))
    stop_event = asyncio.Event()
    automation_task = None
    if app_settings.AUTOMATION_LOOP_ENABLED:
        automation_task = asyncio.create_task(
            start_automation_loop(app.state.automation_engine, stop_event)
        )
        logger.info("Background automation task scheduled")
    yield
    # Shutdown: let the current lead finish, then stop
    stop_event.set()
    if automation_task is not None:
        try:
            await asyncio.wait_for(automation_task, timeout=30)
        except asyncio.TimeoutError:
            automation_task.cancel()
            logger.warning("Background automation task cancelled after timeout")
    if redis_client is not None:
        await redis_client.aclose()


app = FastAPI(
    title="Admissions Lead Routing Engine",
    description="Rule-based lead routing, capacity-aware assignment, automation and student handover",
    version="0.1.0",
    lifespan=lifespan,
)

# Attach rate limiter state so slowapi middleware can find it
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS restricted to the configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in app_settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router)


# Domain errors map to (status, type tag, log level). Capacity and pool
# conflicts are 409 so the caller can retry or route manually.
_ERROR_RESPONSES = {
    LeadNotFoundError: (404, "lead_not_found", logging.WARNING),
    AdvisorNotFoundError: (404, "advisor_not_found", logging.WARNING),
    RoutingRuleNotFoundError: (404, "rule_not_found", logging.WARNING),
    InvalidRuleConfigError: (422, "invalid_rule_config", logging.WARNING),
    TargetAtCapacityError: (409, "target_at_capacity", logging.WARNING),
    PoolExhaustedError: (409, "pool_exhausted", logging.WARNING),
    PersistenceConflictError: (409, "persistence_conflict", logging.ERROR),
    QualificationNotMetError: (422, "qualification_not_met", logging.WARNING),
    AlreadyConvertedError: (200, "already_converted", logging.INFO),
    CollaboratorUnavailableError: (503, "collaborator_unavailable", logging.ERROR),
}


async def routing_error_handler(request: Request, exc: RoutingEngineError):
    status_code, error_type, level = _ERROR_RESPONSES[type(exc)]
    logger.log(level, "%s on %s: %s", error_type, request.url.path, exc.detail)
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.detail, "type": error_type},
    )


for _error_class in _ERROR_RESPONSES:
    app.add_exception_handler(_error_class, routing_error_handler)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Request validation error: %s", exc.errors())
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Request validation failed",
            "errors": jsonable_encoder(exc.errors()),
            "type": "validation_error",
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Catch-all handler for unexpected/unhandled exceptions.

    Returns a generic 500 response so that raw stack traces are never
    leaked to the client.
    """
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected internal error occurred. Please try again later.",
            "type": "internal_server_error",
        },
    )

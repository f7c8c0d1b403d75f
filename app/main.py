import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.aggregator.service import build_container
from app.api.v1.router import api_v1_router
from app.core.config import settings, validate_settings_for_production
from app.core.exceptions import AppError, RateLimitError
from app.core.logging import setup_logging
from app.core.metrics import PrometheusMiddleware, metrics_response
from app.core.rate_limit import limiter
from app.core.sentry import init_sentry
from app.core.tracing import TRACE_HEADER, TraceIdMiddleware

# Configure logging before anything else
setup_logging()
init_sentry()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    validate_settings_for_production()
    logger.info("Starting Bridge Router...")
    app.state.container = await build_container(settings)

    yield

    # Shutdown
    from app.db.postgres import engine

    await app.state.container.close()
    await engine.dispose()
    logger.info("Bridge Router shut down")


app = FastAPI(
    title="Bridge Router",
    description="Cross-chain bridge route aggregator: cost, speed and security compared",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.app_debug else None,
    redoc_url="/api/redoc" if settings.app_debug else None,
)


@app.exception_handler(AppError)
async def _app_error_handler(request: Request, exc: AppError):
    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": str(max(1, int(exc.retry_after + 0.999)))}
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)


# Log unhandled exceptions with the traceback; clients only get a generic message
@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
    logger.error("Unhandled %s on %s %s:\n%s", type(exc).__name__, request.method, request.url.path, "".join(tb))
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Admin endpoint throttling
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(PrometheusMiddleware)

# CORS: parse allowed_origins from settings (comma-separated)
_origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=_origins != ["*"],
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
    expose_headers=[TRACE_HEADER],
)

# Added last so it wraps the others and every log line of a request carries its trace id
app.add_middleware(TraceIdMiddleware)

# API routes
app.include_router(api_v1_router)


@app.get("/api/v1/health")
async def health(request: Request):
    from app.db.postgres import check_database

    container = getattr(request.app.state, "container", None)
    cache_ok = await container.cache.healthy() if container else False
    try:
        db_ok = await check_database()
    except Exception as e:
        logger.warning("Database health check failed: %s", e)
        db_ok = False
    return {
        "status": "ok" if cache_ok and db_ok else "degraded",
        "cache": cache_ok,
        "postgres": db_ok,
    }


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return metrics_response()

import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings, validate_settings_for_production
from app.core.logging import setup_logging
from app.core.metrics import APP_INFO, PrometheusMiddleware, metrics_response
from app.core.sentry import init_sentry
from app.db.postgres import engine

# Configure logging before anything else
setup_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    validate_settings_for_production()
    init_sentry(component="api")
    APP_INFO.info({"version": app.version, "env": settings.app_env})
    logger.info("Starting Brand Visibility Tracker ops service...")

    yield

    # Shutdown
    await engine.dispose()
    logger.info("Brand Visibility Tracker ops service shut down")


app = FastAPI(
    title="Brand Visibility Tracker",
    description="Ops surface for the brand AI-visibility workers",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.app_debug else None,
    redoc_url="/api/redoc" if settings.app_debug else None,
)


# Log unhandled exceptions so they appear in worker/container logs
@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
    logger.error("Unhandled %s on %s %s:\n%s", type(exc).__name__, request.method, request.url.path, "".join(tb))
    return JSONResponse(status_code=500, content={"detail": f"{type(exc).__name__}: {exc}"})


app.add_middleware(PrometheusMiddleware)


@app.get("/api/v1/health")
async def health():
    postgres_ok = True
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning("Postgres health check failed: %s", e)
        postgres_ok = False

    return JSONResponse(
        status_code=200 if postgres_ok else 503,
        content={"status": "ok" if postgres_ok else "degraded", "postgres": postgres_ok},
    )


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return metrics_response()

"""ASGI entry point for the fleet listing API."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.api.v1 import api_router
from app.config import settings
from app.core.error_handlers import register_error_handlers
from app.core.middleware import RequestIDMiddleware, SecurityHeadersMiddleware
from app.database import async_session_factory, engine
from app.services.fleet import FLEET_CATALOG
from app.services.pm_dot import DOT_CATALOG, PM_CATALOG
from app.services.workorder import WORKORDER_CATALOG

logger = logging.getLogger(__name__)

CATALOGS = (FLEET_CATALOG, PM_CATALOG, DOT_CATALOG, WORKORDER_CATALOG)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Catalog paths are checked at import, so a bad path never gets this far.
    logger.info("Serving listings for %s", ", ".join(c.name for c in CATALOGS))
    yield
    await engine.dispose()


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        docs_url="/api/docs",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )
    # Added last runs first: CORS, then request ids, then security headers.
    application.add_middleware(SecurityHeadersMiddleware, enable_hsts=not settings.DEBUG)
    application.add_middleware(RequestIDMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["Content-Disposition", "X-Request-ID"],
    )
    register_error_handlers(application)
    application.include_router(api_router)
    application.add_api_route("/api/health", health_check, methods=["GET"])
    return application


async def health_check():
    """Report database reachability and round-trip time."""
    started = time.monotonic()
    try:
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("Health check could not reach the database: %s", exc)
        database = {"status": "error", "detail": str(exc)[:200]}
    else:
        database = {"status": "ok", "latency_ms": round((time.monotonic() - started) * 1000, 1)}

    healthy = database["status"] == "ok"
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "degraded",
            "version": settings.APP_VERSION,
            "database": database,
        },
    )


app = create_app()

"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from linktrack.api import router
from linktrack.core.config import Settings, get_settings
from linktrack.core.database import close_db, init_db
from linktrack.core.errors import StorageError
from linktrack.core.middleware import SecurityHeadersMiddleware
from linktrack.core.observability import (
    REQUEST_ID_HEADER,
    RequestContextMiddleware,
    report_exception,
    setup_observability,
)
from linktrack.core.rate_limit import limiter
from linktrack.core.redis import close_redis
from linktrack.services.geoip import close_geoip_service
from linktrack.storage import build_store

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings: Settings = app.state.settings
    logger.info(
        "Starting Link Tracker",
        version=settings.app_version,
        environment=settings.environment,
        storage_backend=settings.storage_backend,
    )
    if settings.storage_backend == "sql" and settings.auto_create_tables:
        await init_db()

    yield

    logger.info("Shutting down Link Tracker")
    await app.state.store.close()
    await close_redis()
    await close_geoip_service()
    await close_db()


async def request_validation_error_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Malformed bodies and parameters are client errors (400)."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    """Full detail to logs and Sentry, a generic message to the client."""
    logger.error("Storage failure", error=str(exc), exc_info=exc)
    report_exception(exc, path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application and its link store."""
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Link shortener with click analytics",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = build_store(settings)

    setup_observability(app)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(StorageError, storage_error_handler)

    # Last added runs first: request context wraps everything else.
    # SlowAPIMiddleware applies the default limit to routes without their own.
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )
    app.add_middleware(
        SecurityHeadersMiddleware,
        hsts_max_age=None if settings.debug else settings.hsts_max_age,
    )
    app.add_middleware(RequestContextMiddleware)

    app.include_router(router)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, str]:
        return {"message": "Welcome to Link Tracker", "version": settings.app_version}

    return app


app = create_app()


def run() -> None:
    """Serve the application with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "linktrack.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=None,  # keep the structlog handler installed at startup
    )


if __name__ == "__main__":
    run()

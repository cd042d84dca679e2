"""Rehydration service FastAPI application entry point."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from rehydration import __version__
from rehydration.api.dependencies import get_idempotency_store, get_runner, get_tracking_store
from rehydration.config import get_settings
from rehydration.db import close_db, init_db
from rehydration.errors import RehydrationError, ValidationError
from rehydration.logging import configure_logging
from rehydration.services.expiration.lifecycle import (
    init_expiration_scheduler,
    shutdown_expiration_scheduler,
)

logger = structlog.get_logger()


def _configured_tables():
    tables = [get_idempotency_store().table]
    tracking = get_tracking_store()
    if tracking is not None:
        tables.append(tracking.table)
    return tables


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    configure_logging(settings.logging.level, settings.logging.json_logs)

    # Startup
    logger.info("rehydration.startup", version=__version__, env=settings.env)
    await init_db(_configured_tables())

    await init_expiration_scheduler()

    yield

    # Shutdown
    logger.info("rehydration.shutdown")

    await shutdown_expiration_scheduler()

    await get_runner().close()

    await close_db()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title="Rehydration Service",
        description="Copies published dataset versions to a rehydration bucket",
        version=__version__,
        lifespan=lifespan,
    )

    # Request ID middleware
    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Add request ID to all requests."""
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response

    @app.exception_handler(RehydrationError)
    async def rehydration_error_handler(request: Request, exc: RehydrationError):
        """Handle service errors with consistent format."""
        request_id = getattr(request.state, "request_id", None)
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(request_id),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        """Malformed bodies are bad requests, in the same error format."""
        request_id = getattr(request.state, "request_id", None)
        error = ValidationError(
            "invalid request body",
            details={
                "errors": [
                    {"loc": [str(p) for p in err.get("loc", ())], "msg": err.get("msg", "")}
                    for err in exc.errors()
                ]
            },
        )
        return JSONResponse(status_code=error.status_code, content=error.to_dict(request_id))

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "version": __version__}

    from rehydration.api.v1 import router as v1_router

    app.include_router(v1_router, prefix="/v1")

    return app


# Create default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "rehydration.main:app",
        host=settings.server.host,
        port=settings.server.port,
    )

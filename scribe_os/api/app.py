"""FastAPI application for ScribeOS."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from scribe_os import __version__
from scribe_os.api.middleware import RequestLoggingMiddleware
from scribe_os.api.routes import documents, exports, health, sessions
from scribe_os.config import get_settings
from scribe_os.core.errors import (
    AccessDeniedError,
    CipherError,
    ExportFormatError,
    ExternalServiceError,
    InvalidStateError,
    NotFoundError,
)
from scribe_os.service import ScribeService, create_service_from_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting ScribeOS API")

    if getattr(app.state, "service", None) is None:
        from scribe_os.core.database import init_db

        settings = get_settings()
        if settings.database_url.startswith("sqlite"):
            await init_db()
        app.state.service = create_service_from_settings()

    logger.info("ScribeOS API started successfully")

    yield

    logger.info("Shutting down ScribeOS API")
    await app.state.service.pipeline.drain()


def _error(status_code: int, error: str, detail: Optional[str]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "detail": detail})


def create_app(service: Optional[ScribeService] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="ScribeOS API",
        description="Clinical encounter transcription, structuring and export",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health.router, tags=["health"])
    app.include_router(sessions.router, prefix="/api/v1", tags=["sessions"])
    app.include_router(exports.router, prefix="/api/v1", tags=["exports"])
    app.include_router(documents.router, prefix="/api/v1", tags=["documents"])

    # Ownership failures look like missing records to the caller.
    @app.exception_handler(NotFoundError)
    @app.exception_handler(AccessDeniedError)
    async def not_found_handler(request: Request, exc: Exception):
        return _error(404, "Not found", str(exc) if isinstance(exc, NotFoundError) else "Resource not found")

    @app.exception_handler(InvalidStateError)
    async def invalid_state_handler(request: Request, exc: InvalidStateError):
        return _error(409, "Invalid state", str(exc))

    @app.exception_handler(ExportFormatError)
    async def export_format_handler(request: Request, exc: ExportFormatError):
        return _error(422, "Unsupported export format", str(exc))

    @app.exception_handler(ExternalServiceError)
    async def external_service_handler(request: Request, exc: ExternalServiceError):
        logger.warning("%s failed: %s (retryable=%s)", exc.operation, exc.reason, exc.retryable)
        if exc.retryable:
            return _error(503, f"{exc.operation} temporarily unavailable", exc.reason)
        return _error(502, f"{exc.operation} failed", exc.reason)

    @app.exception_handler(CipherError)
    async def cipher_handler(request: Request, exc: CipherError):
        logger.error("Cipher failure on %s %s", request.method, request.url.path)
        return _error(500, "Stored data could not be decrypted", None)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return _error(500, "Internal server error", str(exc) if settings.debug_mode else None)

    return app

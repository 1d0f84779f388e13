"""FastAPI app for intake finalization service."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError

from .config import get_settings
from .context import ServiceContext, build_context
from .errors import RenderingError, StorageError, error_response
from .observability import configure_logging
from .routes import router


_STATUS_CODES = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    409: "CONFLICT",
    422: "UNPROCESSABLE_ENTITY",
}


def create_app(context: ServiceContext | None = None) -> FastAPI:
    """Build the app; a context passed in is used as-is and not closed on shutdown."""

    settings = context.settings if context is not None else get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = context is None
        app.state.context = build_context(settings) if owned else context
        try:
            yield
        finally:
            if owned:
                app.state.context.close()

    app = FastAPI(title=settings.service_name, version=settings.service_version, lifespan=lifespan)
    app.include_router(router)

    @app.exception_handler(RenderingError)
    async def handle_rendering_error(request: Request, exc: RenderingError):
        return error_response(
            status_code=500,
            code="RENDERING_FAILED",
            message="The intake document could not be rendered.",
        )

    @app.exception_handler(StorageError)
    async def handle_storage_error(request: Request, exc: StorageError):
        return error_response(
            status_code=500,
            code="STORAGE_UNAVAILABLE",
            message="The document archive is unavailable.",
        )

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException):
        return error_response(
            status_code=exc.status_code,
            code=_STATUS_CODES.get(exc.status_code, "INTERNAL_SERVER_ERROR"),
            message=str(exc.detail),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        details = [
            {
                "field": ".".join(str(part) for part in err.get("loc", [])),
                "issue": err.get("msg", "invalid value"),
            }
            for err in exc.errors()
        ]
        return error_response(
            status_code=422,
            code="UNPROCESSABLE_ENTITY",
            message="Validation failed.",
            details=details,
        )

    return app


app = create_app()

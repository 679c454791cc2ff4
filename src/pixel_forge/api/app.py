"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from pixel_forge.api.images import router as images_router
from pixel_forge.app_logging import configure_logging
from pixel_forge.config import parse_allowed_origins
from pixel_forge.containers import AppContainer
from pixel_forge.errors import (
    NotFoundError,
    PixelForgeError,
    TransformValidationError,
    UploadValidationError,
)

_CLIENT_ERRORS: dict[type[PixelForgeError], int] = {
    UploadValidationError: status.HTTP_400_BAD_REQUEST,
    TransformValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
}


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)
    settings = container.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        if state_container.settings.cleanup_enabled:
            state_container.cleanup_scheduler.start()
        yield
        await state_container.close_resources()

    app = FastAPI(title="Pixel Forge", lifespan=lifespan)
    app.state.container = container

    origins = parse_allowed_origins(settings.cors_allowed_origins)
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
            allow_headers=["Content-Type", "X-Session-Id"],
        )

    @app.exception_handler(PixelForgeError)
    async def handle_pixel_forge_error(
        request: Request, exc: PixelForgeError
    ) -> JSONResponse:
        status_code = _status_for(exc)
        if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error(
                "Request failed: %s",
                exc,
                exc_info=exc,
                extra={"path": request.url.path},
            )
        return JSONResponse(status_code=status_code, content={"message": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": _describe_validation_error(exc)},
        )

    app.include_router(images_router)
    app.mount(
        "/uploads",
        StaticFiles(directory=settings.upload_dir, check_dir=False),
        name="uploads",
    )

    @app.get("/health")
    async def health(request: Request) -> dict[str, object]:
        """Simple health check endpoint."""
        state_container: AppContainer = request.app.state.container
        return {
            "status": "ok",
            "activeSessions": state_container.registry.get_active_sessions_count(),
        }

    return app


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"Invalid request: {location}: {first.get('msg', 'invalid value')}"


def _status_for(exc: PixelForgeError) -> int:
    for error_type, status_code in _CLIENT_ERRORS.items():
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR

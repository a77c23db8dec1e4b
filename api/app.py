"""FastAPI application for the VoxNest extension manager."""

from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.routes import configs_router, extensions_router
from api.schemas import error_response
from extensions.errors import ExtensionError
from extensions.services import ExtensionServices
from settings.config import Config, get_config

logger = logging.getLogger(__name__)


def create_app(config: Config | None = None, services: ExtensionServices | None = None) -> FastAPI:
    """Create the API application.

    Args:
        config: Configuration; the global configuration when omitted.
        services: Prebuilt services; built from ``config`` when omitted.

    Returns:
        Configured FastAPI app.
    """
    config = config or get_config()
    services = services or ExtensionServices.from_config(config)

    app = FastAPI(title="VoxNest Extension Manager", debug=config.server.debug)
    app.state.config = config
    app.state.services = services

    if not config.server.admin_token:
        logger.warning("No admin token configured; extension admin routes are unauthenticated")

    if config.server.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.server.cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Configs first so /configs is never taken for an extension id
    app.include_router(configs_router, prefix=config.server.api_prefix)
    app.include_router(extensions_router, prefix=config.server.api_prefix)

    _register_exception_handlers(app, debug=config.server.debug)
    return app


def _register_exception_handlers(app: FastAPI, debug: bool) -> None:
    @app.exception_handler(ExtensionError)
    async def extension_error_handler(request: Request, exc: ExtensionError) -> JSONResponse:
        """Translate core errors into the response envelope."""
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        else:
            logger.warning("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind, exc.message)
        return error_response(exc.status_code, exc.message, exc.kind, exc.errors)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        logger.warning("HTTP %d on %s: %s", exc.status_code, request.url.path, exc.detail)
        code = "unauthorized" if exc.status_code == status.HTTP_401_UNAUTHORIZED else f"http_{exc.status_code}"
        return error_response(exc.status_code, str(exc.detail), code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}" for error in exc.errors()
        ]
        logger.warning("Invalid request to %s: %s", request.url.path, errors)
        return error_response(status.HTTP_400_BAD_REQUEST, "Invalid request", "validation_error", errors)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception: %s", request.url.path)
        message = traceback.format_exc() if debug else "An internal error occurred"
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, message, "internal_error")

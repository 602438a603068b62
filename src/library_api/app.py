"""
FastAPI application factory for the Library Lending API.

``create_app`` wires the database manager, configuration and clock onto
``app.state``, mounts every router under ``/api/v1`` and installs the
exception handlers that turn repository errors into HTTP responses:

    NotFoundError          -> 404
    ForbiddenError         -> 403
    ConflictError          -> 400 (DuplicateError included)
    InvalidArgumentError   -> 400
    request validation     -> 400
    anything else          -> 500, logged with traceback, no details leaked

Every error body has the shape ``{"message": "..."}``.
"""

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import ServerConfig, get_config
from .database import (
    ConflictError,
    DatabaseManager,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
    RepositoryException,
)
from .routes import build_api_router

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

_ERROR_STATUS: list[tuple[type[RepositoryException], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (ConflictError, status.HTTP_400_BAD_REQUEST),
    (InvalidArgumentError, status.HTTP_400_BAD_REQUEST),
]


def _status_for(exc: RepositoryException) -> int | None:
    for error_type, code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return code
    return None


def _internal_error() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Internal server error"},
    )


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RepositoryException)
    async def repository_error_handler(request: Request, exc: RepositoryException):
        code = _status_for(exc)
        if code is None:
            logger.exception("Repository failure on %s %s", request.method, request.url.path)
            return _internal_error()
        logger.info("%s %s rejected (%d): %s", request.method, request.url.path, code, exc)
        return JSONResponse(status_code=code, content={"message": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.info("%s %s failed validation", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": "Validation error", "errors": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):  # noqa: ARG001
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):  # noqa: ARG001
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _internal_error()


def create_app(
    db_manager: DatabaseManager | None = None,
    config: ServerConfig | None = None,
    clock: Callable[[], datetime] | None = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        db_manager: Database to serve; created from configuration when omitted
            (and then also initialized and closed with the app)
        config: Settings; the process-wide configuration when omitted
        clock: Source of the current local time, ``datetime.now`` by default
    """
    config = config or get_config()
    owns_db = db_manager is None
    db_manager = db_manager or DatabaseManager(config.get_database_url())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if owns_db:
            db_manager.init_database()
        logger.info("%s v%s ready", config.server_name, config.server_version)
        try:
            yield
        finally:
            if owns_db:
                db_manager.close()

    app = FastAPI(
        title="Library Lending API",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.db_manager = db_manager
    app.state.clock = clock or datetime.now

    install_exception_handlers(app)

    @app.get(f"{API_PREFIX}/health", tags=["health"])
    def health(request: Request):
        database_ok = request.app.state.db_manager.verify_connection()
        return JSONResponse(
            status_code=status.HTTP_200_OK if database_ok else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "ok" if database_ok else "degraded",
                "service": config.server_name,
                "version": config.server_version,
                "database": "connected" if database_ok else "unavailable",
            },
        )

    app.include_router(build_api_router(), prefix=API_PREFIX)
    return app

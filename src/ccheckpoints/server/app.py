"""FastAPI application for the local checkpoint server."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from ..config import CheckpointsConfig
from ..exceptions import CheckpointNotFoundError, CheckpointsError, NoPriorCheckpointError
from ..manager import CheckpointManager
from .routes import router as api_router
from .websocket import ConnectionManager
from .websocket import router as websocket_router

logger = structlog.get_logger()


def _error_response(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


async def _checkpoints_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if isinstance(exc, CheckpointNotFoundError | NoPriorCheckpointError):
        logger.info("Checkpoint lookup failed", path=str(request.url.path), error=str(exc))
        return _error_response(404, str(exc))
    logger.error(
        "Checkpoint operation failed",
        path=str(request.url.path),
        method=request.method,
        error=str(exc),
    )
    return _error_response(500, str(exc))


async def _http_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, StarletteHTTPException):
        raise exc
    return _error_response(exc.status_code, str(exc.detail))


async def _validation_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, RequestValidationError):
        raise exc
    return _error_response(422, f"Invalid request: {exc.errors()}")


async def _global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unhandled exceptions become a generic 500 envelope; details only go to the log."""
    logger.exception(
        "Unhandled exception",
        path=str(request.url.path),
        method=request.method,
        exc_type=type(exc).__name__,
    )
    return _error_response(500, "An internal error occurred")


def create_app(
    manager: CheckpointManager | None = None,
    config: CheckpointsConfig | None = None,
) -> FastAPI:
    """Build the application around a checkpoint manager.

    A manager created here from ``config`` is closed on shutdown; a manager
    passed in stays owned by the caller.
    """
    owns_manager = manager is None
    checkpoint_manager = manager or CheckpointManager(config)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info(
            "Starting checkpoint server",
            database=str(checkpoint_manager.config.database_path),
        )
        yield
        logger.info("Shutting down checkpoint server")
        if owns_manager:
            checkpoint_manager.close()

    app = FastAPI(
        title="CCheckpoints",
        description="Local checkpoint server for editor sessions",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.manager = checkpoint_manager
    app.state.connections = ConnectionManager()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(CheckpointsError, _checkpoints_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(Exception, _global_exception_handler)

    app.include_router(api_router)
    app.include_router(websocket_router)
    return app

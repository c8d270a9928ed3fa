"""
Main FastAPI application.
"""
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from assessment.api.v1.api import api_router
from assessment.core.cat.db_session_store import SQLAlchemySessionStore
from assessment.core.cat.engine import CATSessionManager
from assessment.core.cat.errors import CATEngineError
from assessment.core.cat.item_pool import InMemoryItemPoolProvider, load_items_from_json
from assessment.core.cat.session_store import InMemorySessionStore, SessionStore
from assessment.core.config import settings
from assessment.core.error_responses import (
    ERROR_STATUS_CODES,
    ErrorCodes,
    ErrorMessages,
)
from assessment.core.logging_config import setup_logging
from assessment.models.base import create_session_factory

# Initialize logging configuration at startup
setup_logging()

logger = logging.getLogger(__name__)


def create_session_store() -> SessionStore:
    """Build the session store selected by settings.SESSION_STORE."""
    if settings.SESSION_STORE == "database":
        logger.info("Using database session store")
        return SQLAlchemySessionStore(create_session_factory(settings.DATABASE_URL))
    return InMemorySessionStore()


def create_default_session_manager() -> CATSessionManager:
    """Build a session manager from settings."""
    pool = InMemoryItemPoolProvider()
    if settings.ITEM_POOL_PATH:
        pool = InMemoryItemPoolProvider(load_items_from_json(settings.ITEM_POOL_PATH))
    else:
        logger.warning("ITEM_POOL_PATH is not set; starting with an empty item pool")
    return CATSessionManager(pool_provider=pool, store=create_session_store())


def create_application(
    session_manager: Optional[CATSessionManager] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        session_manager: Manager to serve. Built from settings on startup when
            omitted.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if getattr(app.state, "session_manager", None) is None:
            app.state.session_manager = create_default_session_manager()
        logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} started")
        yield
        logger.info(f"{settings.APP_NAME} shutting down")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan,
        description=(
            "Computerized adaptive testing sessions: item selection from a live "
            "ability estimate, positive/negative marking and percentile results."
        ),
        docs_url=f"{settings.API_V1_PREFIX}/docs",
        redoc_url=f"{settings.API_V1_PREFIX}/redoc",
    )
    app.state.session_manager = session_manager

    # Include API router
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """
        Render HTTP errors as {"detail", "code"}.
        """
        code = getattr(exc, "code", ErrorCodes.HTTP_ERROR)
        if exc.status_code >= 500:
            logger.error(
                f"{request.method} {request.url.path} failed: {exc.detail}",
                extra={
                    "method": request.method,
                    "path": str(request.url.path),
                    "status_code": exc.status_code,
                },
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "code": code},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(CATEngineError)
    async def engine_exception_handler(request: Request, exc: CATEngineError):
        """
        Handle engine errors that reached the app without route-level conversion.
        """
        return JSONResponse(
            status_code=ERROR_STATUS_CODES.get(
                exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR
            ),
            content={"detail": exc.message, "code": exc.code},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        """
        Handle request validation errors.
        """
        errors = [
            {
                "loc": list(error.get("loc", [])),
                "msg": str(error.get("msg", "")),
                "type": str(error.get("type", "")),
            }
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": ErrorMessages.VALIDATION_FAILED,
                "code": ErrorCodes.VALIDATION_ERROR,
                "errors": errors,
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """
        Handle unexpected exceptions.

        Generates a unique error_id for each exception so a response can be
        matched to its log entry.
        """
        error_id = str(uuid.uuid4())
        logger.exception(
            f"Unhandled exception [error_id={error_id}]: {exc}",
            extra={"method": request.method, "path": str(request.url.path)},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": ErrorMessages.INTERNAL_ERROR,
                "code": ErrorCodes.INTERNAL_ERROR,
                "error_id": error_id,
            },
        )

    return app


app = create_application()

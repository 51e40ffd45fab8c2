"""Error Handlers — global exception handlers producing the {error, detail?} envelope.

Invariants:
    - HeraError -> its own http_status and to_response(); detail is already sanitized
    - SQLAlchemyError escaping a route -> StoreError envelope (503)
    - RequestValidationError -> ValidationError envelope naming fields only, never values
    - Exception (catch-all) -> 500 InternalError, never leaks internal details
    - Client errors are fed back to the rate limiter's error-rate tracking

Design Decisions:
    - Four-layer handler: domain (HeraError), store (SQLAlchemy), validation
      (Pydantic), catch-all (Exception)
    - Extracted from main.py to keep its import fan-out small
"""

import logging
import math

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError

from hera_core.api.dependencies import get_rate_limiter
from hera_core.core.errors import HeraError, RateLimitedError
from hera_core.infrastructure.database import to_store_error

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    _register_hera_error_handler(app)
    _register_store_error_handler(app)
    _register_validation_error_handler(app)
    _register_generic_error_handler(app)


def _record_client_error(request: Request, http_status: int) -> None:
    identity = getattr(request.state, "identity", None)
    if identity and 400 <= http_status < 500 and http_status != 429:
        get_rate_limiter().record_error(identity)


def _error_response(request: Request, exc: HeraError) -> JSONResponse:
    log = logger.error if exc.http_status >= 500 else logger.warning
    log(
        "Request failed",
        extra={"error_kind": exc.kind, "path": request.url.path},
    )
    _record_client_error(request, exc.http_status)
    headers = None
    if isinstance(exc, RateLimitedError) and exc.context.retry_after_seconds is not None:
        headers = {"Retry-After": str(max(1, math.ceil(exc.context.retry_after_seconds)))}
    return JSONResponse(
        status_code=exc.http_status, content=exc.to_response(), headers=headers,
    )


def _register_hera_error_handler(app: FastAPI) -> None:
    """Register domain/infrastructure error handler."""

    @app.exception_handler(HeraError)
    async def hera_error_handler(request: Request, exc: HeraError):
        return _error_response(request, exc)


def _register_store_error_handler(app: FastAPI) -> None:
    """Register handler for store failures not mapped inside a route."""

    @app.exception_handler(SQLAlchemyError)
    async def store_error_handler(request: Request, exc: SQLAlchemyError):
        return _error_response(request, to_store_error(exc))


def _register_validation_error_handler(app: FastAPI) -> None:
    """Register Pydantic validation error handler."""

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError,
    ):
        fields = sorted({
            ".".join(str(loc) for loc in e["loc"] if loc != "body")
            for e in exc.errors()
        })
        logger.warning(
            "Validation error",
            extra={"error_kind": "ValidationError", "path": request.url.path},
        )
        _record_client_error(request, status.HTTP_400_BAD_REQUEST)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "ValidationError",
                "detail": "invalid fields: " + ", ".join(f for f in fields if f),
            },
        )


def _register_generic_error_handler(app: FastAPI) -> None:
    """Register catch-all error handler."""

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        """Catch-all — never leaks internal details."""
        logger.error(
            "Unhandled exception",
            extra={"error_kind": type(exc).__name__, "path": request.url.path},
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "InternalError"},
        )

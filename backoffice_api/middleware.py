"""
HTTP plumbing shared by every back-office route: CORS for the admin UI,
per-request logging with a request id, and the error envelope

    {"success": false, "error": ..., "message"?: ..., "errors"?: [...]}

that every failure path returns.
"""

import time
import logging
from typing import Callable, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from backoffice_db.repositories import (
    RepositoryError,
    EntityNotFoundError,
    DuplicateEntityError,
)
from validation_utils import InputValidationError, sanitize_for_logging

logger = logging.getLogger(__name__)

# Admin UI dev servers (CRA on 3000, Vite on 5173)
DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]


def setup_cors(app: FastAPI, allowed_origins: Optional[List[str]] = None) -> None:
    """Allow the admin UI origins. `allowed_origins` normally comes from
    `api.cors_origins`, which already honours CORS_ORIGINS."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or DEFAULT_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Processing-Time-MS"],
    )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with an id (the caller's X-Request-ID, or a fresh
    one), logs the request and response lines, and stamps
    X-Request-ID / X-Processing-Time-MS on the response.
    """

    async def dispatch(self, request: Request, call_next: Callable):
        started = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or str(time.time_ns())
        request.state.request_id = request_id

        def elapsed_ms() -> int:
            return int((time.perf_counter() - started) * 1000)

        logger.info(
            "%s %s request_id=%s",
            request.method,
            sanitize_for_logging(request.url.path),
            request_id,
        )
        if request.query_params:
            logger.debug(
                "query=%s request_id=%s",
                sanitize_for_logging(str(dict(request.query_params))),
                request_id,
            )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "%s %s failed after %dms: %s request_id=%s",
                request.method,
                sanitize_for_logging(request.url.path),
                elapsed_ms(),
                sanitize_for_logging(str(exc)),
                request_id,
            )
            raise

        duration = elapsed_ms()
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Processing-Time-MS"] = str(duration)
        logger.info("-> %d in %dms request_id=%s", response.status_code, duration, request_id)
        return response


def create_error_response(
    error: str,
    status_code: int = 500,
    message: Optional[str] = None,
    errors: Optional[list] = None,
) -> JSONResponse:
    """Build the error envelope; `message` and `errors` are omitted when empty."""
    content = {"success": False, "error": error}
    if message:
        content["message"] = message
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=status_code, content=content)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request body/query/path validation failures become a 400."""
    errors = []
    for err in exc.errors():
        location = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "form")]
        errors.append({
            "field": ".".join(location) or "request",
            "code": err.get("type", "VALIDATION_ERROR"),
            "message": err.get("msg", "Invalid value"),
        })

    logger.warning(
        "Validation failed: path=%s errors=%d request_id=%s",
        sanitize_for_logging(str(request.url.path)),
        len(errors),
        _request_id(request),
    )
    return create_error_response("Validation failed", status_code=400, errors=errors)


async def input_validation_exception_handler(request: Request, exc: InputValidationError) -> JSONResponse:
    logger.warning(
        "Input validation error: field=%s code=%s request_id=%s",
        exc.field,
        exc.code,
        _request_id(request),
    )
    return create_error_response(exc.message, status_code=400, errors=[exc.to_dict()])


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """HTTPExceptions raised by routes keep their status code."""
    logger.warning(
        "HTTP exception: status=%d detail=%s request_id=%s",
        exc.status_code,
        sanitize_for_logging(str(exc.detail)),
        _request_id(request),
    )
    return create_error_response(
        exc.detail if isinstance(exc.detail, str) else str(exc.detail),
        status_code=exc.status_code,
    )


async def repository_exception_handler(request: Request, exc: RepositoryError) -> JSONResponse:
    """Repository errors: not found is a 404, conflicts and FK restrictions a 400."""
    status_code = 404 if isinstance(exc, EntityNotFoundError) else 400
    logger.warning(
        "Repository error: type=%s message=%s request_id=%s",
        type(exc).__name__,
        sanitize_for_logging(str(exc)),
        _request_id(request),
    )
    if isinstance(exc, DuplicateEntityError):
        return create_error_response("Duplicate entry", status_code=status_code, message=str(exc))
    return create_error_response(str(exc), status_code=status_code)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything else is a 500 whose message is the exception text."""
    logger.error(
        "Unhandled exception: type=%s message=%s request_id=%s",
        type(exc).__name__,
        sanitize_for_logging(str(exc)),
        _request_id(request),
        exc_info=exc,
    )
    return create_error_response("Internal server error", status_code=500, message=str(exc))


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the envelope handlers, most specific first."""
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(InputValidationError, input_validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RepositoryError, repository_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

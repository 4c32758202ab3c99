"""
FastAPI Middleware for the Blacklist Registry API

Provides CORS configuration, request logging, and error mapping from the
domain exceptions to the standardized error response.
"""

import os
import time
import logging
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Type

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from access_scope import NoCompanyError, UnknownPrincipalError
from config_manager import ConfigurationError
from database.blacklist_service import EntryNotFoundOrDenied
from log_utils import sanitize_for_logging
from security_logger import get_security_logger

logger = logging.getLogger(__name__)

# Default allowed origins for localhost development
DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]

EXPOSED_HEADERS = ["X-Request-ID", "X-Processing-Time-MS"]


def setup_cors(app: FastAPI, allowed_origins: Optional[List[str]] = None) -> None:
    """Configure CORS middleware for the application.

    Origins come from the CORS_ORIGINS environment variable (comma-separated)
    when set, then from configuration, then from the localhost defaults.
    """
    cors_origins_env = os.getenv("CORS_ORIGINS", "")
    if cors_origins_env:
        allowed_origins = [origin.strip() for origin in cors_origins_env.split(",") if origin.strip()]
    elif not allowed_origins:
        allowed_origins = DEFAULT_CORS_ORIGINS

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=EXPOSED_HEADERS,
    )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging all requests with sanitized inputs.

    Also binds the request id, caller and client address to the security
    logger so every security event of the request can be correlated.
    """

    async def dispatch(self, request: Request, call_next: Callable):
        """Process request and log details."""
        start_time = time.time()
        request_id = request.headers.get("X-Request-ID", str(time.time_ns()))

        request.state.request_id = request_id
        request.state.start_time = start_time

        security_log = get_security_logger()
        security_log.set_request_context(
            request_id=request_id,
            user_id=sanitize_for_logging(request.headers.get("X-User-ID", ""), max_length=50),
            source_ip=request.client.host if request.client else "",
        )

        sanitized_path = sanitize_for_logging(str(request.url.path))
        logger.info(
            "Request: method=%s path=%s request_id=%s",
            request.method,
            sanitized_path,
            request_id,
        )

        try:
            response = await call_next(request)

            processing_time_ms = int((time.time() - start_time) * 1000)

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Processing-Time-MS"] = str(processing_time_ms)

            logger.info(
                "Response: status=%d processing_time_ms=%d request_id=%s",
                response.status_code,
                processing_time_ms,
                request_id,
            )
            return response

        except Exception as exc:
            processing_time_ms = int((time.time() - start_time) * 1000)
            logger.error(
                "Request failed: error=%s processing_time_ms=%d request_id=%s",
                sanitize_for_logging(str(exc)),
                processing_time_ms,
                request_id,
            )
            raise
        finally:
            security_log.clear_request_context()


def create_error_response(
    code: str,
    message: str,
    status_code: int = 500,
    field: Optional[str] = None,
    suggestion: Optional[str] = None,
) -> JSONResponse:
    """Build the ``{"error": {...}}`` body every failure shares.

    ``field`` and ``suggestion`` are omitted from the body when empty.
    """
    error_detail = {
        "code": code,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if field:
        error_detail["field"] = field
    if suggestion:
        error_detail["suggestion"] = suggestion
    return JSONResponse(status_code=status_code, content={"error": error_detail})


@dataclass(frozen=True)
class ErrorMapping:
    status_code: int
    code: str
    message: str
    suggestion: Optional[str] = None
    log_level: Optional[int] = None


# Looked up along the exception's MRO, most specific class first.
# Messages are fixed so storage and configuration details never reach the caller.
ERROR_MAPPINGS: Dict[Type[BaseException], ErrorMapping] = {
    EntryNotFoundOrDenied: ErrorMapping(404, "NOT_FOUND", EntryNotFoundOrDenied.MESSAGE),
    NoCompanyError: ErrorMapping(
        403,
        "NO_COMPANY",
        "User has no associated company",
        suggestion="Register a company before managing blacklist entries",
    ),
    UnknownPrincipalError: ErrorMapping(401, "UNAUTHORIZED", "User not found"),
    SQLAlchemyError: ErrorMapping(
        503,
        "STORAGE_UNAVAILABLE",
        "The record store is unavailable. Please try again later.",
        log_level=logging.ERROR,
    ),
    ConfigurationError: ErrorMapping(
        503,
        "CONFIGURATION_ERROR",
        "Service configuration is invalid. Please contact administrator.",
        log_level=logging.ERROR,
    ),
}

UNEXPECTED_ERROR = ErrorMapping(
    500,
    "INTERNAL_ERROR",
    "An unexpected error occurred. Please try again later.",
    log_level=logging.ERROR,
)


def mapping_for(exc: BaseException) -> ErrorMapping:
    for exc_class in type(exc).__mro__:
        if exc_class in ERROR_MAPPINGS:
            return ERROR_MAPPINGS[exc_class]
    return UNEXPECTED_ERROR


async def domain_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Translate core and storage exceptions into error responses."""
    mapping = mapping_for(exc)
    if mapping.log_level is not None:
        logger.log(
            mapping.log_level,
            "Request failed: type=%s message=%s request_id=%s",
            type(exc).__name__,
            sanitize_for_logging(str(exc)),
            getattr(request.state, "request_id", "unknown"),
            exc_info=mapping is UNEXPECTED_ERROR,
        )
    return create_error_response(
        code=mapping.code,
        message=mapping.message,
        status_code=mapping.status_code,
        suggestion=mapping.suggestion,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """HTTPExceptions raised by dependencies (missing caller, API key, no database)."""
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    logger.warning(
        "HTTP %d: %s request_id=%s",
        exc.status_code,
        sanitize_for_logging(detail),
        getattr(request.state, "request_id", "unknown"),
    )
    return create_error_response(code=f"HTTP_{exc.status_code}", message=detail, status_code=exc.status_code)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 for bodies and query parameters that fail the pydantic schema.

    Only the first error is reported; all of them are counted in the security log.
    """
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    field = ".".join(location) or None

    get_security_logger().log_validation_failure(
        field=field or "",
        error_code="VALIDATION_ERROR",
        input_value=str(first.get("input", ""))[:100],
        source=sanitize_for_logging(str(request.url.path)),
        additional_context={"error_count": len(errors)},
    )

    return create_error_response(
        code="VALIDATION_ERROR",
        message=first.get("msg", "Invalid request"),
        status_code=422,
        field=field,
        suggestion="Check the request against the API schema",
    )


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    for exc_class in (*ERROR_MAPPINGS, Exception):
        app.add_exception_handler(exc_class, domain_exception_handler)

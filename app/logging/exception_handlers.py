# app/logging/exception_handlers.py
"""Exception handlers: log the failure to the request-log table and answer with ``{"detail": ...}``."""

import json
import logging
import socket
import traceback
from datetime import datetime

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError, ResponseValidationError
from fastapi.responses import JSONResponse

from app.core.config import get_settings
from app.core.database import SessionLocal
from app.logging.service import persist_log
from app.reporting.exceptions import ReportError

logger = logging.getLogger(__name__)

HOSTNAME = socket.gethostname() or "unknown_host"
REDACTED_PATHS = ("/api/global-report",)


def safe_json_dumps(obj) -> str:
    return json.dumps(obj, indent=2, default=str)


def get_request_body_safely(request: Request) -> str:
    """Body captured by the logging middleware, if it ran for this request."""
    return getattr(request.state, "body", None) or "Request body not captured"


def _log_failure(request: Request, status_code: int, response_body: str, error_type: str) -> None:
    session_factory = getattr(request.app.state, "log_session_factory", SessionLocal)
    persist_log(
        session_factory,
        timestamp=datetime.now(),
        method=request.method,
        path=str(request.url.path),
        status_code=status_code,
        client_ip=request.client.host if request.client else None,
        request_body=get_request_body_safely(request),
        response_body=response_body,
        user_agent=request.headers.get("user-agent"),
        user_id=request.headers.get("x-user-id"),
        user_role=request.headers.get("x-user-role"),
        error_type=error_type,
        hostname=HOSTNAME,
        application_id=get_settings().application_id,
    )
    request.state.error_logged = True


async def report_error_handler(request: Request, exc: ReportError):
    """Validation (400), authorization (403) and store (502) failures of the global report."""
    if exc.status_code >= 500:
        logger.error("Report request %s failed: %s", request.url.path, exc.message)
    else:
        logger.info("Report request %s rejected (%d): %s", request.url.path, exc.status_code, exc.message)

    _log_failure(request, exc.status_code, safe_json_dumps({"detail": exc.message}), type(exc).__name__)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors"""

    # Convert errors to a safe format for JSON response
    def convert_error(error):
        if isinstance(error, dict):
            return {k: convert_error(v) for k, v in error.items()}
        elif isinstance(error, list):
            return [convert_error(item) for item in error]
        else:
            return str(error)

    safe_errors = convert_error(exc.errors())
    _log_failure(request, 422, safe_json_dumps(safe_errors), type(exc).__name__)
    return JSONResponse(status_code=422, content={"detail": safe_errors})


async def response_validation_exception_handler(request: Request, exc: ResponseValidationError):
    logger.error("Response validation failed for %s", request.url.path)
    body = "[redacted]" if str(request.url.path).startswith(REDACTED_PATHS) else safe_json_dumps(exc.errors())
    _log_failure(request, 500, body, type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error: Response validation failed."},
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions and log 4xx/5xx errors"""
    if exc.status_code >= 400:
        _log_failure(
            request,
            exc.status_code,
            safe_json_dumps({"detail": exc.detail, "headers": getattr(exc, "headers", None)}),
            type(exc).__name__,
        )

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def general_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions and log them to database"""
    logger.exception("Unhandled error on %s", request.url.path)
    error_traceback = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    _log_failure(
        request,
        500,
        safe_json_dumps({"error": str(exc), "type": type(exc).__name__, "traceback": error_traceback}),
        type(exc).__name__,
    )
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})

"""FastAPI application entry point for the global audit report service."""

from typing import Callable, Optional

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError, ResponseValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.core.database import SessionLocal, init_db
from app.core.router import register_routes
from app.logging.exception_handlers import (
    general_exception_handler,
    http_exception_handler,
    report_error_handler,
    request_validation_exception_handler,
    response_validation_exception_handler,
)
from app.logging.middleware import LoggingMiddleware
from app.reporting.exceptions import ReportError


def create_app(log_session_factory: Optional[Callable] = None) -> FastAPI:
    """Build the application. ``log_session_factory`` overrides where request logs are written."""

    app = FastAPI(
        title="Global Audit Report",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )
    if log_session_factory is None:
        init_db()
        log_session_factory = SessionLocal
    app.state.log_session_factory = log_session_factory

    # Add request logger middleware
    app.add_middleware(LoggingMiddleware, session_factory=log_session_factory)

    app.add_exception_handler(ReportError, report_error_handler)
    app.add_exception_handler(ResponseValidationError, response_validation_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, replace with specific origins
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app)
    return app

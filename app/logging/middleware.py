"""Request logging middleware: every API request is written to the log table."""

import logging
import socket
import time
from typing import Callable, Optional

from fastapi import Request
from starlette.background import BackgroundTask
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from app.core.config import get_settings
from app.core.database import SessionLocal
from app.logging.service import persist_log

logger = logging.getLogger(__name__)

EXCLUDED_PATHS = ("/api/logs", "/api/docs", "/api/redoc", "/api/openapi.json")

# Responses on these paths carry decrypted credentials
REDACTED_PATHS = ("/api/global-report",)
REDACTED_BODY = "[redacted]"


class LoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, session_factory: Optional[Callable] = None):
        super().__init__(app)
        self.session_factory = session_factory or SessionLocal
        self.hostname = socket.gethostname() or "unknown_host"
        self.application_id = get_settings().application_id
        logger.info("Logging middleware initialized on host %s, app id %s", self.hostname, self.application_id)

    async def dispatch(self, request: Request, call_next: Callable):
        path = request.url.path
        if any(path.startswith(excluded) for excluded in EXCLUDED_PATHS):
            return await call_next(request)

        start_time = time.time()

        body_bytes = await request.body()
        request_body = body_bytes.decode("utf-8", errors="ignore")
        request.state.body = request_body

        # Reconstruct stream for the downstream app
        async def receive() -> dict:
            return {"type": "http.request", "body": body_bytes}

        request = Request(request.scope, receive=receive)

        response = await call_next(request)
        duration_ms = (time.time() - start_time) * 1000

        # Failures already written by an exception handler
        if getattr(request.state, "error_logged", False):
            return response

        redact = any(path.startswith(prefix) for prefix in REDACTED_PATHS)
        chunks = []

        if not redact and hasattr(response, "body_iterator"):
            original_iterator = response.body_iterator

            async def buffer_iterator():
                async for chunk in original_iterator:
                    chunks.append(chunk)
                    yield chunk

            response.body_iterator = buffer_iterator()

        log_data = dict(
            method=request.method,
            path=path,
            status_code=response.status_code,
            client_ip=request.client.host if request.client else None,
            request_body=request_body,
            processing_time=duration_ms,
            user_agent=request.headers.get("user-agent"),
            user_id=request.headers.get("x-user-id"),
            user_role=request.headers.get("x-user-role"),
            hostname=self.hostname,
            application_id=self.application_id,
        )

        def log_to_db():
            body = REDACTED_BODY if redact else b"".join(chunks).decode("utf-8", errors="ignore")
            persist_log(self.session_factory, response_body=body, **log_data)

        response.background = BackgroundTask(log_to_db)
        return response

"""Request logging middleware.

One line per request: ``method path status duration request_id``. Uploads
also log their declared size. The dashboard polls the analysis status
endpoint every few seconds, so successful polls are logged at DEBUG to keep
INFO readable during a run.
"""
from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from .config import settings

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
QUIET_PATHS = frozenset({"/analysis/status", "/health"})


def request_id_for(request: Request) -> str:
    """Reuse the caller's request id when it sent one, else mint a new one."""
    incoming = request.headers.get(REQUEST_ID_HEADER, "").strip()
    return incoming[:64] if incoming else uuid.uuid4().hex


def log_level_for(method: str, path: str, status_code: int, duration_ms: float) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400 or duration_ms > settings.logging.slow_request_ms:
        return logging.WARNING
    if method == "GET" and path in QUIET_PATHS:
        return logging.DEBUG
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request_id_for(request)
        request.state.request_id = request_id

        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - start) * 1000, 1)
        response.headers[REQUEST_ID_HEADER] = request_id

        path = request.url.path
        msg = (
            f"{request.method} {path} "
            f"status={response.status_code} "
            f"duration={duration_ms}ms "
            f"request_id={request_id}"
        )
        if request.method == "POST" and path == "/upload":
            msg += f" bytes={request.headers.get('content-length', 'unknown')}"

        logger.log(log_level_for(request.method, path, response.status_code, duration_ms), msg)
        return response

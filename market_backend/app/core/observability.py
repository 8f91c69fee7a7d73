"""
Observability: logging setup and request middleware.

Adds correlation IDs and structured logging context to requests.
"""

import sys
import time
import uuid
import logging
from contextvars import ContextVar
from pythonjsonlogger import jsonlogger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from market_backend.app.core.config import settings

# Correlation ID of the request being handled (None outside a request)
CORRELATION_ID_CTX: ContextVar[str] = ContextVar("correlation_id", default=None)

logger = logging.getLogger("market")


class CorrelationIdFilter(logging.Filter):
    """Stamp every record with the current correlation id."""

    def filter(self, record):
        if getattr(record, "correlation_id", None) is None:
            record.correlation_id = CORRELATION_ID_CTX.get(None)
        return True


def setup_logging(level: str = None, json_output: bool = None):
    """
    Configure the root logger.

    JSON lines on stdout by default; plain text when log_json is off
    (local development).
    """
    level = level or settings.log_level
    json_output = settings.log_json if json_output is None else json_output

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        fmt = jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s %(correlation_id)s"
        )
    else:
        fmt = logging.Formatter(
            "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"
        )
    handler.setFormatter(fmt)
    handler.addFilter(CorrelationIdFilter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = []
    root.addHandler(handler)


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        # 1. Generate or extract Correlation ID
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))
        token = CORRELATION_ID_CTX.set(correlation_id)

        # 2. Start Timer
        start_time = time.time()

        try:
            # 3. Process Request
            response = await call_next(request)
        finally:
            CORRELATION_ID_CTX.reset(token)

        # 4. Calculate Duration
        process_time = (time.time() - start_time) * 1000  # ms

        # 5. Add Header to Response
        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Process-Time"] = str(process_time)

        # 6. Structured Log
        log_data = {
            "correlation_id": correlation_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(process_time, 2),
            "ip": request.client.host if request.client else "unknown"
        }

        # Log level based on status
        if response.status_code >= 500:
            logger.error("Request Failed", extra=log_data)
        elif response.status_code >= 400:
            logger.warning("Request Error", extra=log_data)
        else:
            logger.info("Request API", extra=log_data)

        return response

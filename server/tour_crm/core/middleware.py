"""Custom middleware for request correlation, tracing, logging and request metrics."""

import logging
import re
import time
import uuid
from typing import Callable, Optional

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .config import settings
from .observability import REQUEST_COUNT, REQUEST_DURATION

logger = logging.getLogger(__name__)

TRACEPARENT_PATTERN = re.compile(r"^([0-9a-f]{2})-([0-9a-f]{32})-([0-9a-f]{16})-([0-9a-f]{2})$")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with an ID from ``X-Request-ID`` or a fresh UUID.

    The ID is echoed in the response and bound into the structlog context,
    so booking audit events can be correlated with the request that caused them.
    """

    def __init__(self, app: ASGIApp, header_name: str = "X-Request-ID"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(self.header_name) or str(uuid.uuid4())
        request.state.request_id = request_id

        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers[self.header_name] = request_id
        return response


def parse_traceparent(traceparent: str) -> Optional[dict]:
    """Parse a W3C ``traceparent`` header; None when it is malformed or all zeros."""
    match = TRACEPARENT_PATTERN.match(traceparent)
    if not match:
        return None

    version, trace_id, parent_id, flags = match.groups()
    if version != "00" or trace_id == "0" * 32 or parent_id == "0" * 16:
        return None

    return {"trace_id": trace_id, "parent_id": parent_id, "flags": flags}


class TraceContextMiddleware(BaseHTTPMiddleware):
    """
    Continues or starts a W3C Trace Context for each request.

    https://www.w3.org/TR/trace-context/
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        tracestate = request.headers.get("tracestate")
        incoming = parse_traceparent(request.headers.get("traceparent", ""))

        if incoming:
            trace_id = incoming["trace_id"]
            parent_span_id = incoming["parent_id"]
            flags = incoming["flags"]
        else:
            trace_id = uuid.uuid4().hex
            parent_span_id = None
            flags = "01"

        span_id = uuid.uuid4().hex[:16]
        request.state.trace_context = {
            "trace_id": trace_id,
            "span_id": span_id,
            "parent_span_id": parent_span_id,
            "flags": flags,
        }

        response = await call_next(request)

        response.headers["traceparent"] = f"00-{trace_id}-{span_id}-{flags}"
        if tracestate:
            response.headers["tracestate"] = tracestate
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs each request and records the request count and duration metrics.

    Metrics are labelled with the matched route template rather than the raw
    path so IDs never end up as label values.
    """

    def __init__(self, app: ASGIApp, skip_paths: Optional[list] = None):
        super().__init__(app)
        self.skip_paths = skip_paths or ["/health", "/metrics", "/favicon.ico"]

    def _get_client_ip(self, request: Request) -> str:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        if request.client:
            return request.client.host
        return "unknown"

    def _endpoint(self, request: Request) -> str:
        route = request.scope.get("route")
        return getattr(route, "path", None) or "unmatched"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.skip_paths:
            return await call_next(request)

        start_time = time.perf_counter()
        trace_context = getattr(request.state, "trace_context", {})
        log_data = {
            "request_id": getattr(request.state, "request_id", "unknown"),
            "trace_id": trace_context.get("trace_id", "unknown"),
            "method": request.method,
            "path": request.url.path,
            "client_ip": self._get_client_ip(request),
        }
        logger.debug("HTTP request started", extra=log_data)

        error = None
        try:
            response = await call_next(request)
        except Exception as e:
            error = str(e)
            response = JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "request_id": log_data["request_id"]}
            )

        duration = time.perf_counter() - start_time
        endpoint = self._endpoint(request)
        REQUEST_COUNT.labels(
            method=request.method, endpoint=endpoint, status_code=str(response.status_code)
        ).inc()
        REQUEST_DURATION.labels(method=request.method, endpoint=endpoint).observe(duration)

        log_data.update({
            "status_code": response.status_code,
            "duration_ms": round(duration * 1000, 2),
        })
        if error:
            log_data["error"] = error

        if response.status_code >= 500:
            logger.error("HTTP request completed with server error", extra=log_data)
        elif response.status_code >= 400:
            logger.warning("HTTP request completed with client error", extra=log_data)
        else:
            logger.info("HTTP request completed successfully", extra=log_data)

        return response


def setup_middleware(app, enable_logging: bool = True) -> None:
    """
    Install the middleware stack; the last one added runs first.

    Args:
        app: FastAPI application instance
        enable_logging: Whether to enable request logging middleware
    """
    if enable_logging:
        app.add_middleware(
            LoggingMiddleware,
            skip_paths=None if settings.is_production else ["/metrics", "/favicon.ico"],
        )
    app.add_middleware(TraceContextMiddleware)
    app.add_middleware(RequestIDMiddleware)

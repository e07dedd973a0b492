"""Request ID tracing: one short ID per request, echoed back and logged."""
import logging
import time
import uuid
from contextvars import ContextVar

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger("tokenmill.api.requests")

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestTracingMiddleware(BaseHTTPMiddleware):
    """Tag each request with X-Request-ID and log method, path, status and duration."""

    def __init__(self, app, header_name: str = "X-Request-ID"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(self.header_name) or uuid.uuid4().hex[:8]
        token = request_id_var.set(request_id)
        request.state.request_id = request_id
        started = time.monotonic()
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        elapsed = time.monotonic() - started
        response.headers[self.header_name] = request_id
        logger.info(f"[{request_id}] {request.method} {request.url.path} -> {response.status_code} ({elapsed:.3f}s)")
        return response


def get_request_id() -> str:
    return request_id_var.get()

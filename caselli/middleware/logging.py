"""
Request logging for the Caselli API.

Every request gets an id (taken from X-Request-ID when the caller sends
one) that is bound into the structlog context and echoed on the response.
Health probes log at debug so load balancer polling does not drown out
chat traffic.
"""

import time
import uuid
from typing import Callable, FrozenSet

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from caselli.utils.logging import clear_request_context, get_logger, set_request_context

logger = get_logger(__name__)

REDACTED_HEADERS = frozenset({"authorization", "cookie", "apikey", "x-api-key"})
HEALTH_PATHS = frozenset({"/healthz", "/healthz/ready"})


def loggable_headers(request: Request) -> dict:
    return {k: v for k, v in request.headers.items() if k.lower() not in REDACTED_HEADERS}


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Binds request context and logs one line when a request arrives and one
    when its response starts.

    Chat responses are event streams: call_next returns as soon as headers
    are ready, so their second line is "Stream opened" and its duration is
    time to first byte, not turn length.
    """

    def __init__(self, app: ASGIApp, quiet_paths: FrozenSet[str] = HEALTH_PATHS):
        super().__init__(app)
        self.quiet_paths = quiet_paths

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        path = request.url.path
        log = logger.debug if path in self.quiet_paths else logger.info

        set_request_context(
            request_id=request_id,
            method=request.method,
            path=path,
            client_ip=request.client.host if request.client else None,
        )
        started = time.perf_counter()
        log(
            "Request started",
            query_params=dict(request.query_params),
            headers=loggable_headers(request),
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed with exception",
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
                exc_info=True,
            )
            raise
        finally:
            clear_request_context()

        duration_ms = (time.perf_counter() - started) * 1000
        streaming = response.headers.get("content-type", "").startswith("text/event-stream")
        log(
            "Stream opened" if streaming else "Request completed",
            request_id=request_id,
            path=path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        return response

"""Request middleware: correlation ids and caller context for logs."""

import time
import uuid
from collections.abc import Awaitable, Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from stitchlab.core.logging import get_logger, request_id_ctx

logger = get_logger(__name__)

# Probes are polled constantly; their access logs stay at debug
QUIET_PATHS = frozenset({"/health", "/health/ready"})


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Propagate ``X-Request-ID`` and tag every log line with the caller.

    The caller role and tenant asserted by the authentication layer
    (``X-User-Role``/``X-Tenant-Id``) are bound to structlog context vars for
    the duration of the request, so scope decisions can be traced per tenant.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        token = request_id_ctx.set(request_id)
        structlog.contextvars.bind_contextvars(
            caller_role=request.headers.get("X-User-Role"),
            caller_tenant_id=request.headers.get("X-Tenant-Id"),
        )

        path = request.url.path
        log = logger.debug if path in QUIET_PATHS else logger.info
        start = time.perf_counter()
        try:
            log(
                "http.request_started",
                method=request.method,
                path=path,
                query=str(request.url.query) or None,
            )
            response = await call_next(request)
            log(
                "http.request_completed",
                method=request.method,
                path=path,
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            structlog.contextvars.unbind_contextvars("caller_role", "caller_tenant_id")
            request_id_ctx.reset(token)

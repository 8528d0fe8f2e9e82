"""
Request middleware: request id, ledger route context, timing.

Ids found in the path (/bookings/12, /purchase-orders/3, ...) are bound to
the structlog context, so a booking's reconcile and PO events can be found
from the request that caused them.
"""

import re
import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from venue_ledger.core.logging import get_logger
from venue_ledger.core.metrics import request_latency

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

_ROUTE_IDS = re.compile(r"/(venues|bookings|transactions|purchase-orders)/(\d+)")
_ID_FIELDS = {
    "venues": "venue_id",
    "bookings": "booking_id",
    "transactions": "transaction_id",
    "purchase-orders": "purchase_order_id",
}
_QUIET_PATHS = {"/health", "/metrics"}


def route_context(path: str) -> dict:
    return {_ID_FIELDS[resource]: int(value) for resource, value in _ROUTE_IDS.findall(path)}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())[:8]
        path = request.url.path
        start_time = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=path,
            **route_context(path),
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request_failed",
                error=str(e),
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            raise

        elapsed = time.perf_counter() - start_time
        duration_ms = round(elapsed * 1000, 2)
        request_latency.labels(method=request.method, status_code=response.status_code).observe(elapsed)

        if path in _QUIET_PATHS:
            log = logger.debug
        elif response.status_code >= 500:
            log = logger.error
        elif response.status_code >= 400:
            log = logger.warning
        else:
            log = logger.info
        log("request_completed", status_code=response.status_code, duration_ms=duration_ms)

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"
        return response

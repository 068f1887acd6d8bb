import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.metrics import REQUEST_COUNT, REQUEST_ERRORS, REQUEST_LATENCY

logger = logging.getLogger(__name__)


def _request_path(request: Request) -> str:
    route = request.scope.get("route")
    if route and hasattr(route, "path"):
        return route.path
    return request.url.path


def _record(request: Request, status_code: int, duration_ms: float) -> dict:
    path = _request_path(request)
    REQUEST_COUNT.labels(request.method, path, str(status_code)).inc()
    REQUEST_LATENCY.labels(request.method, path, str(status_code)).observe(
        duration_ms / 1000.0
    )
    if status_code >= 500:
        REQUEST_ERRORS.labels(request.method, path, str(status_code)).inc()
    return {
        "request_id": request.state.request_id,
        # Set by the caller dependency once the bearer token is verified.
        "actor_id": getattr(request.state, "actor_id", None),
        "path": path,
        "method": request.method,
        "status": status_code,
        "duration_ms": round(duration_ms, 2),
    }


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.monotonic() - start) * 1000.0
            logger.exception("request_failed", extra=_record(request, 500, duration_ms))
            raise
        duration_ms = (time.monotonic() - start) * 1000.0
        logger.info(
            "request_completed",
            extra=_record(request, response.status_code, duration_ms),
        )
        response.headers["x-request-id"] = request_id
        return response

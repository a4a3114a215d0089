"""Telemetry middleware for request instrumentation."""

from __future__ import annotations

import time
from typing import Any

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from voxmemo.telemetry import observe_request

# Prometheus scrapes are not counted.
_EXCLUDED_ROUTES = frozenset({"/metrics"})


class TelemetryMiddleware(BaseHTTPMiddleware):
    """Collect request count and latency for Prometheus."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            self._record(request, 500, start_time)
            raise

        self._record(request, response.status_code, start_time)
        return response

    def _record(self, request: Request, status_code: int, start_time: float) -> None:
        route = self._resolve_route(request)
        if route in _EXCLUDED_ROUTES:
            return
        observe_request(request.method, route, status_code, time.perf_counter() - start_time)

    @staticmethod
    def _resolve_route(request: Request) -> str:
        """Return the route template so ids do not explode label cardinality."""

        scope_route: Any = request.scope.get("route")
        path = getattr(scope_route, "path", None) if scope_route is not None else None
        return path or request.url.path

"""Prometheus request instrumentation."""

from __future__ import annotations

import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from oralassess.telemetry import observe_request

from .logging import route_template


class TelemetryMiddleware(BaseHTTPMiddleware):
    """Count and time requests, labelled by route template rather than raw path."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            observe_request(request.method, route_template(request), 500, time.perf_counter() - start_time)
            raise

        observe_request(
            request.method,
            route_template(request),
            response.status_code,
            time.perf_counter() - start_time,
        )
        return response

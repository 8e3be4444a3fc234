from __future__ import annotations
import logging
import time
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from insurer_consent.core.correlation import set_correlation_id, get_correlation_id

log = logging.getLogger("access")

class CorrelationMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable):
        # Ingest or mint X-Request-ID
        inbound = request.headers.get("X-Request-ID")
        cid = set_correlation_id(inbound)

        # Make available to route handlers
        request.state.correlation_id = cid

        start = time.perf_counter()
        status_code = 500
        try:
            response: Response = await call_next(request)
            status_code = response.status_code
        finally:
            duration_ms = int((time.perf_counter() - start) * 1000)
            log.info(
                "request handled",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": status_code,
                    "duration_ms": duration_ms,
                },
            )
        # Ensure header on every response
        response.headers["X-Request-ID"] = get_correlation_id(cid) or cid
        response.headers.setdefault("Cache-Control", "no-store")
        return response

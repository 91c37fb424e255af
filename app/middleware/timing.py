"""
Request id and duration for every response.

The id comes from an incoming X-Request-ID header or is generated; it is
echoed back and stored on ``g`` where the logging filter picks it up.
Only slow and 5xx approval calls are logged above DEBUG.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

SLOW_THRESHOLD_MS = 1000


def init_request_timing(app: Flask):
    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish(response):
        start = g.pop("request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"

        if response.status_code >= 500:
            level = logging.ERROR
        elif duration_ms > SLOW_THRESHOLD_MS:
            level = logging.WARNING
        else:
            level = logging.DEBUG
        logger.log(
            level, "%s %s -> %d", request.method, request.path, response.status_code,
            extra={"method": request.method, "path": request.path,
                   "status": response.status_code, "duration_ms": round(duration_ms, 1)},
        )
        return response

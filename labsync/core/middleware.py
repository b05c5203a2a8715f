"""HTTP middleware for request correlation and access logging.

The middleware:
- Accepts incoming X-Request-ID header or generates a UUID
- Stores request_id in contextvars for access throughout the request lifecycle
- Logs request start (method, path, sanitized headers) and completion
  (status, duration)
- Injects request_id and duration into response headers
- Clears context after request completion to prevent context leaks

The request id correlates access logs for one request. It is distinct from
the per-error ``traceId`` minted by the error normalizer.

Usage:
    app.middleware("http")(request_logging_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from labsync.core.logging import clear_request_id, sanitize_headers, set_request_id

logger = logging.getLogger(__name__)


async def request_logging_middleware(request: Request, call_next) -> Response:
    """HTTP middleware for request ID propagation and access logging.

    If the client provides an X-Request-ID header (configurable via
    LOG_REQUEST_ID_HEADER), that value is used. Otherwise, a new UUID is
    generated. The ID is propagated back in the response headers and stored
    in contextvars for log correlation.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The response from the next handler with request_id and
            duration headers added.

    Side Effects:
        - Sets request_id in contextvars (accessible via get_request_id())
        - Emits ``request.started`` and ``request.completed`` log records
        - Clears request_id from contextvars after request completes
    """

    app_settings = getattr(request.app.state, "settings", None)
    header_name = app_settings.log.request_id_header if app_settings else "X-Request-ID"
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()

    logger.info(
        "request.started",
        extra={
            "method": request.method,
            "path": request.url.path,
            "headers": sanitize_headers(request.headers),
            "client_ip": request.client.host if request.client else None,
        },
    )

    try:
        response: Response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "request.completed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
    except Exception:
        logger.exception(
            "request.failed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        raise
    finally:
        clear_request_id()

    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response

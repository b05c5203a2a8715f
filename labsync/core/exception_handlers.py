"""Global exception handlers for consistent error responses.

Routes wrapped by the request pipeline normalize their own errors. These
handlers cover everything else (unmatched paths, methods the router rejects,
routes outside the pipeline) so that no raw, untyped error ever reaches a
client.

Design:
- Every handler delegates to the app's ErrorNormalizer
- Responses use the ``{"success": false, "error": {...}}`` envelope
- Every response carries a traceId that also appears in the server log
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from labsync.adapters.persistence.base import PersistenceError
from labsync.core.config import settings
from labsync.core.error_normalizer import ErrorNormalizer
from labsync.core.errors import AppError
from labsync.core.versioning import apply_version_headers, get_api_version


def _normalizer_for(request: Request) -> ErrorNormalizer:
    normalizer = getattr(request.app.state, "error_normalizer", None)
    if normalizer is None:
        normalizer = ErrorNormalizer(production=settings.is_production)
    return normalizer


def _error_response(request: Request, exc: Exception) -> JSONResponse:
    response = _normalizer_for(request).to_response(exc)
    apply_version_headers(response, get_api_version(request))
    return response


async def app_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle domain, validation, persistence and HTTP errors.

    Args:
        request: FastAPI request object.
        exc: Any recognized exception type.

    Returns:
        JSONResponse with the status mapped from the error code and the
        resolved API version headers.
    """
    return _error_response(request, exc)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    The normalizer logs the full error keyed by traceId while the client only
    sees a generic message in production.

    Args:
        request: FastAPI request object.
        exc: Exception instance (unexpected).

    Returns:
        JSONResponse with INTERNAL_ERROR.
    """
    return _error_response(request, exc)


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with FastAPI app.

    Must be called during app initialization, before route registration.

    Args:
        app: FastAPI application instance.

    Example:
        >>> from fastapi import FastAPI
        >>> from labsync.core.exception_handlers import setup_exception_handlers
        >>> app = FastAPI()
        >>> setup_exception_handlers(app)
        >>> # Now all errors are handled consistently
    """
    for exc_type in (
        AppError,
        RequestValidationError,
        ValidationError,
        PersistenceError,
        StarletteHTTPException,
    ):
        app.exception_handler(exc_type)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)

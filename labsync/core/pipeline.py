"""Request pipeline wrapped around every API route.

Order of operations (each step may short-circuit):

0. Resolve the API version; reject suspicious paths and oversize bodies.
1. CORS origin check and preflight answer.
2. HTTP method allow-list.
3. Rate limit, budget chosen from the HTTP method.
4. Authentication (and CSRF on unsafe methods when enabled).
5. Endpoint.
6. Any exception from the steps above or the endpoint is caught once here
   and shaped by the ErrorNormalizer.

Every response leaves with version headers and security headers. Responses
produced after the rate limit step also carry X-RateLimit-* headers so
clients can watch their remaining budget.

Routers opt in with ``APIRouter(route_class=pipeline_route_class(config))``;
the pipeline instance itself is injected through ``app.state.pipeline``.
CORS preflights reach the pipeline through a catch-all OPTIONS route kept out
of the OpenAPI schema.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from fastapi.routing import APIRoute
from starlette.requests import Request
from starlette.responses import Response

from labsync.adapters.rate_limit.base import RateLimitResult
from labsync.core.auth import AuthProvider, Principal
from labsync.core.config import ApiSettings
from labsync.core.error_normalizer import ErrorNormalizer
from labsync.core.errors import (
    AppError,
    AuthenticationAppError,
    ErrorCode,
    RateLimitExceededError,
)
from labsync.core.rate_limit import (
    RateLimiter,
    build_rate_limit_identifier,
    operation_class_for_method,
    rate_limit_headers,
)
from labsync.core.security import (
    SECURITY_HEADERS,
    is_request_too_large,
    is_suspicious_path,
    validate_csrf,
)
from labsync.core.versioning import ApiVersion, VersionNegotiator, apply_version_headers

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Awaitable[Response]]


@dataclass(frozen=True)
class CorsConfig:
    origins: tuple[str, ...] = ("*",)
    methods: tuple[str, ...] = ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")

    @classmethod
    def from_settings(cls, api_settings: ApiSettings) -> "CorsConfig":
        return cls(
            origins=tuple(o.strip() for o in api_settings.cors_origins.split(",") if o.strip()),
            methods=tuple(
                m.strip().upper() for m in api_settings.cors_methods.split(",") if m.strip()
            ),
        )

    def allows(self, origin: str) -> bool:
        return "*" in self.origins or origin in self.origins


@dataclass(frozen=True)
class RouteConfig:
    """Per-router pipeline options.

    Attributes:
        require_auth: Reject requests without a principal (UNAUTHORIZED).
        allowed_methods: Methods accepted by the route; None accepts all.
        cors: Apply the pipeline's CORS origin policy and answer preflights.
        rate_limit: Apply the per-operation-class rate limit.
        csrf_protect: Require a double-submit CSRF token on unsafe methods.
    """

    require_auth: bool = True
    allowed_methods: tuple[str, ...] | None = None
    cors: bool = False
    rate_limit: bool = True
    csrf_protect: bool = False


class ApiPipeline:
    """Runs the fixed middleware sequence around a route handler."""

    def __init__(
        self,
        *,
        limiter: RateLimiter,
        negotiator: VersionNegotiator,
        normalizer: ErrorNormalizer,
        auth_provider: AuthProvider,
        api_settings: ApiSettings,
    ) -> None:
        self.limiter = limiter
        self.negotiator = negotiator
        self.normalizer = normalizer
        self.auth_provider = auth_provider
        self._settings = api_settings
        self.cors = CorsConfig.from_settings(api_settings)
        self._max_request_bytes = api_settings.max_request_size_mb * 1024 * 1024

    async def run(self, request: Request, call_handler: Handler, config: RouteConfig) -> Response:
        """Process ``request`` through every pipeline step and return the response."""
        version = self.negotiator.resolve(request)
        request.state.api_version = version
        rate_result: RateLimitResult | None = None
        origin = request.headers.get("origin")

        try:
            self._check_request_shape(request)

            if config.cors:
                preflight = self._handle_cors(request, origin, self.cors)
                if preflight is not None:
                    return self._finalize(preflight, version, None)

            if config.allowed_methods is not None and request.method not in config.allowed_methods:
                raise AppError(
                    code=ErrorCode.BAD_REQUEST,
                    message=f"Method {request.method} not allowed",
                )

            principal = await self._resolve_principal(request)

            if config.rate_limit and self._settings.rate_limit_enabled:
                rate_result = self._check_rate_limit(request, principal)

            if config.require_auth and self._settings.api_key_required and principal is None:
                raise AuthenticationAppError()

            if config.csrf_protect and not validate_csrf(
                request.method, request.headers, request.cookies
            ):
                raise AppError(code=ErrorCode.FORBIDDEN, message="Invalid CSRF token")

            response = await call_handler(request)
        except Exception as exc:  # noqa: BLE001
            response = self.normalizer.to_response(exc)

        if config.cors and origin and self.cors.allows(origin):
            response.headers.setdefault("Access-Control-Allow-Origin", origin)
        return self._finalize(response, version, rate_result)

    def _check_request_shape(self, request: Request) -> None:
        if is_suspicious_path(request.url.path):
            logger.error(
                "pipeline.suspicious_path",
                extra={"path": request.url.path, "method": request.method},
            )
            raise AppError(code=ErrorCode.BAD_REQUEST, message="Invalid request")
        if is_request_too_large(request.headers, self._max_request_bytes):
            raise AppError(
                code=ErrorCode.BAD_REQUEST,
                message="Request payload too large",
                details={"max_bytes": self._max_request_bytes},
            )

    def _handle_cors(self, request: Request, origin: str | None, cors: CorsConfig) -> Response | None:
        if origin and not cors.allows(origin):
            raise AppError(code=ErrorCode.FORBIDDEN, message="CORS: Origin not allowed")
        if request.method != "OPTIONS":
            return None
        return Response(
            status_code=200,
            headers={
                "Access-Control-Allow-Origin": origin or "*",
                "Access-Control-Allow-Methods": ", ".join(cors.methods),
                "Access-Control-Allow-Headers": "Content-Type, Authorization, X-API-Key, X-CSRF-Token",
                "Access-Control-Max-Age": "86400",
            },
        )

    async def _resolve_principal(self, request: Request) -> Principal | None:
        try:
            principal = await self.auth_provider(request)
        except Exception as exc:
            raise AuthenticationAppError(message="Invalid authentication") from exc
        request.state.principal = principal
        return principal

    def _check_rate_limit(self, request: Request, principal: Principal | None) -> RateLimitResult:
        identifier = build_rate_limit_identifier(request, principal.id if principal else None)
        result = self.limiter.check(identifier, operation_class_for_method(request.method))
        if not result.allowed:
            raise RateLimitExceededError(result=result)
        return result

    def _finalize(
        self,
        response: Response,
        version: ApiVersion,
        rate_result: RateLimitResult | None,
    ) -> Response:
        apply_version_headers(response, version)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        if rate_result is not None and self._settings.rate_limit_include_headers:
            for name, value in rate_limit_headers(rate_result).items():
                response.headers.setdefault(name, value)
        return response


def pipeline_route_class(config: RouteConfig) -> type[APIRoute]:
    """Build an APIRoute subclass that runs every endpoint through the pipeline.

    Example:
        >>> router = APIRouter(route_class=pipeline_route_class(RouteConfig()))
    """

    class PipelineRoute(APIRoute):
        route_config = config

        def get_route_handler(self) -> Handler:
            original_handler = super().get_route_handler()

            async def pipeline_handler(request: Request) -> Response:
                pipeline: ApiPipeline = request.app.state.pipeline
                return await pipeline.run(request, original_handler, config)

            return pipeline_handler

    return PipelineRoute

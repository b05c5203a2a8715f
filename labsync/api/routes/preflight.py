from __future__ import annotations

from fastapi import APIRouter
from starlette.responses import Response

from labsync.core.pipeline import RouteConfig, pipeline_route_class

router = APIRouter(
    route_class=pipeline_route_class(
        RouteConfig(require_auth=False, rate_limit=False, cors=True, allowed_methods=("OPTIONS",))
    ),
)


@router.options("/{path:path}", include_in_schema=False)
async def preflight(path: str) -> Response:
    """Catch-all target for CORS preflights.

    The pipeline answers OPTIONS before the endpoint runs, so this body only
    executes if CORS handling is switched off for the route.
    """
    return Response(status_code=204)

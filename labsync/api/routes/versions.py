from __future__ import annotations

from fastapi import APIRouter, Depends

from labsync.core.pipeline import RouteConfig, pipeline_route_class
from labsync.core.versioning import (
    LATEST_API_VERSION,
    ApiVersion,
    get_api_version,
    supported_versions,
)
from labsync.schemas.envelope import success_response

router = APIRouter(
    tags=["Versions"],
    route_class=pipeline_route_class(
        RouteConfig(require_auth=False, cors=True, allowed_methods=("GET",))
    ),
)


@router.get("/versions")
async def list_versions(version: ApiVersion = Depends(get_api_version)):
    """Describe the supported API versions and which one this request resolved to."""

    return success_response(
        {
            "current": version.value,
            "latest": LATEST_API_VERSION.value,
            "versions": supported_versions(),
        }
    )

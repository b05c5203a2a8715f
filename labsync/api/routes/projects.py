from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query

from labsync.adapters.persistence.base import AbstractProjectRepository, Project
from labsync.api.deps import (
    get_negotiator,
    get_pagination,
    get_project_repository,
    get_response_cache,
)
from labsync.core.auth import Principal, get_principal
from labsync.core.pipeline import RouteConfig, pipeline_route_class
from labsync.core.versioning import ApiVersion, VersionNegotiator, get_api_version
from labsync.schemas.envelope import pagination_meta, success_response
from labsync.schemas.projects import PaginationParams, ProjectCreate
from labsync.utils.simple_cache import SimpleTTLCache, cached

CACHE_PREFIX = "projects:"

router = APIRouter(
    tags=["Projects"],
    route_class=pipeline_route_class(
        RouteConfig(cors=True, allowed_methods=("GET", "POST", "DELETE"))
    ),
)


@router.get("/projects")
async def list_projects(
    lab_id: str | None = Query(None, alias="labId", description="Only projects of this lab"),
    pagination: PaginationParams = Depends(get_pagination),
    version: ApiVersion = Depends(get_api_version),
    repository: AbstractProjectRepository = Depends(get_project_repository),
    cache: SimpleTTLCache = Depends(get_response_cache),
    negotiator: VersionNegotiator = Depends(get_negotiator),
):
    """List projects, one page at a time.

    Pages are cached briefly per (lab, page, limit); any write to projects
    invalidates them. Cached entries hold the unversioned rows so one entry
    serves every API version.
    """

    async def load_page() -> tuple[list[dict], int]:
        projects, total = await repository.find_page(
            lab_id=lab_id, offset=pagination.offset, limit=pagination.limit
        )
        return [asdict(p) for p in projects], total

    key = f"{CACHE_PREFIX}{lab_id or '*'}:{pagination.page}:{pagination.limit}"
    rows, total = await cached(cache, key, load_page)
    return success_response(
        negotiator.transform(version, "project", rows),
        meta=pagination_meta(pagination.page, pagination.limit, total),
    )


@router.post("/projects", status_code=201)
async def create_project(
    payload: ProjectCreate,
    version: ApiVersion = Depends(get_api_version),
    principal: Principal | None = Depends(get_principal),
    repository: AbstractProjectRepository = Depends(get_project_repository),
    cache: SimpleTTLCache = Depends(get_response_cache),
    negotiator: VersionNegotiator = Depends(get_negotiator),
):
    project = await repository.create(
        Project(
            id="",
            name=payload.name,
            lab_id=payload.lab_id,
            description=payload.description,
            status=payload.status,
            priority=payload.priority,
            ora_number=payload.ora_number,
            project_type=payload.project_type,
            study_type=payload.study_type,
            bucket=payload.bucket,
            members=tuple(payload.members),
            created_by=principal.id if principal else None,
        )
    )
    cache.invalidate(CACHE_PREFIX)
    return success_response(
        negotiator.transform(version, "project", asdict(project)),
        status_code=201,
    )


@router.get("/projects/{project_id}")
async def get_project(
    project_id: str,
    version: ApiVersion = Depends(get_api_version),
    repository: AbstractProjectRepository = Depends(get_project_repository),
    negotiator: VersionNegotiator = Depends(get_negotiator),
):
    project = await repository.get(project_id)
    return success_response(negotiator.transform(version, "project", asdict(project)))


@router.delete("/projects/{project_id}")
async def delete_project(
    project_id: str,
    repository: AbstractProjectRepository = Depends(get_project_repository),
    cache: SimpleTTLCache = Depends(get_response_cache),
):
    project = await repository.delete(project_id)
    cache.invalidate(CACHE_PREFIX)
    return success_response({"id": project.id, "deleted": True})

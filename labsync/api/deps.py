"""FastAPI dependencies resolving collaborators built by the app factory."""

from __future__ import annotations

from fastapi import Query, Request

from labsync.adapters.persistence.base import (
    AbstractLabMemberRepository,
    AbstractProjectRepository,
)
from labsync.core.versioning import VersionNegotiator
from labsync.schemas.projects import PaginationParams
from labsync.utils.simple_cache import SimpleTTLCache


def get_project_repository(request: Request) -> AbstractProjectRepository:
    return request.app.state.project_repository


def get_lab_member_repository(request: Request) -> AbstractLabMemberRepository:
    return request.app.state.lab_member_repository


def get_response_cache(request: Request) -> SimpleTTLCache:
    return request.app.state.response_cache


def get_negotiator(request: Request) -> VersionNegotiator:
    return request.app.state.pipeline.negotiator


def get_pagination(
    page: int = Query(1, ge=1, description="1-based page number"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
) -> PaginationParams:
    return PaginationParams(page=page, limit=limit)

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends

from labsync.adapters.persistence.base import AbstractLabMemberRepository, LabMember
from labsync.api.deps import get_lab_member_repository, get_negotiator
from labsync.core.pipeline import RouteConfig, pipeline_route_class
from labsync.core.versioning import ApiVersion, VersionNegotiator, get_api_version
from labsync.schemas.envelope import success_response
from labsync.schemas.projects import LabMemberCreate

router = APIRouter(
    tags=["Labs"],
    route_class=pipeline_route_class(
        RouteConfig(cors=True, allowed_methods=("GET", "POST", "DELETE"))
    ),
)


@router.get("/labs/{lab_id}/members")
async def list_lab_members(
    lab_id: str,
    version: ApiVersion = Depends(get_api_version),
    repository: AbstractLabMemberRepository = Depends(get_lab_member_repository),
    negotiator: VersionNegotiator = Depends(get_negotiator),
):
    members = await repository.for_lab(lab_id)
    return success_response(
        negotiator.transform(version, "lab_member", [asdict(m) for m in members])
    )


@router.post("/labs/{lab_id}/members", status_code=201)
async def add_lab_member(
    lab_id: str,
    payload: LabMemberCreate,
    version: ApiVersion = Depends(get_api_version),
    repository: AbstractLabMemberRepository = Depends(get_lab_member_repository),
    negotiator: VersionNegotiator = Depends(get_negotiator),
):
    """Add a member to a lab.

    Adding the same user twice is rejected with CONFLICT.
    """
    member = await repository.add(
        LabMember(
            lab_id=lab_id,
            user_id=payload.resolved_user_id,
            email=payload.email,
            role=payload.resolved_role,
        )
    )
    return success_response(
        negotiator.transform(version, "lab_member", asdict(member)),
        status_code=201,
    )


@router.delete("/labs/{lab_id}/members/{user_id}")
async def remove_lab_member(
    lab_id: str,
    user_id: str,
    repository: AbstractLabMemberRepository = Depends(get_lab_member_repository),
):
    member = await repository.remove(lab_id, user_id)
    return success_response({"labId": member.lab_id, "userId": member.user_id, "removed": True})

"""In-memory repositories.

Used for local development and tests. They enforce the same constraints a
relational schema would (unique membership, existing lab, existing row) and
raise ``PersistenceError`` with the matching kind.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import replace
from datetime import datetime, timezone

from labsync.adapters.persistence.base import (
    AbstractLabMemberRepository,
    AbstractProjectRepository,
    Lab,
    LabMember,
    PersistenceError,
    PersistenceErrorKind,
    Project,
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryLabRegistry:
    """Known labs, shared by repositories for foreign-key checks."""

    def __init__(self, labs: list[Lab] | None = None) -> None:
        self._labs: dict[str, Lab] = {lab.id: lab for lab in labs or []}

    def add(self, lab: Lab) -> None:
        self._labs[lab.id] = lab

    def require(self, lab_id: str, *, field: str = "lab_id") -> Lab:
        lab = self._labs.get(lab_id)
        if lab is None:
            raise PersistenceError(
                kind=PersistenceErrorKind.FOREIGN_KEY_VIOLATION,
                message=f"Foreign key constraint failed on the field: {field}",
                meta={"field_name": field},
            )
        return lab


class InMemoryProjectRepository(AbstractProjectRepository):
    def __init__(self, labs: InMemoryLabRegistry) -> None:
        self._labs = labs
        self._projects: dict[str, Project] = {}
        self._lock = asyncio.Lock()

    async def create(self, project: Project) -> Project:
        async with self._lock:
            self._labs.require(project.lab_id)
            if any(
                p.lab_id == project.lab_id and p.name == project.name
                for p in self._projects.values()
            ):
                raise PersistenceError(
                    kind=PersistenceErrorKind.UNIQUE_VIOLATION,
                    message="Unique constraint failed on the fields: (lab_id, name)",
                    meta={"target": ["lab_id", "name"]},
                )
            now = _now_iso()
            stored = replace(
                project,
                id=project.id or uuid.uuid4().hex,
                created_at=project.created_at or now,
                updated_at=now,
            )
            self._projects[stored.id] = stored
            return stored

    async def get(self, project_id: str) -> Project:
        project = self._projects.get(project_id)
        if project is None:
            raise PersistenceError(
                kind=PersistenceErrorKind.RECORD_NOT_FOUND,
                message=f"No Project found for id {project_id}",
                meta={"model": "Project"},
            )
        return project

    async def find_page(
        self,
        *,
        lab_id: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Project], int]:
        matches = [
            p for p in self._projects.values() if lab_id is None or p.lab_id == lab_id
        ]
        matches.sort(key=lambda p: p.created_at)
        return matches[offset : offset + limit], len(matches)

    async def delete(self, project_id: str) -> Project:
        async with self._lock:
            project = await self.get(project_id)
            del self._projects[project_id]
            return project


class InMemoryLabMemberRepository(AbstractLabMemberRepository):
    def __init__(self, labs: InMemoryLabRegistry) -> None:
        self._labs = labs
        self._members: dict[tuple[str, str], LabMember] = {}
        self._lock = asyncio.Lock()

    async def add(self, member: LabMember) -> LabMember:
        async with self._lock:
            self._labs.require(member.lab_id)
            key = (member.lab_id, member.user_id)
            if key in self._members:
                raise PersistenceError(
                    kind=PersistenceErrorKind.UNIQUE_VIOLATION,
                    message="Unique constraint failed on the fields: (lab_id, user_id)",
                    meta={"target": ["lab_id", "user_id"]},
                )
            stored = replace(member, joined_at=member.joined_at or _now_iso())
            self._members[key] = stored
            return stored

    async def for_lab(self, lab_id: str) -> list[LabMember]:
        self._labs.require(lab_id)
        return [m for (lab, _), m in self._members.items() if lab == lab_id]

    async def remove(self, lab_id: str, user_id: str) -> LabMember:
        async with self._lock:
            member = self._members.pop((lab_id, user_id), None)
            if member is None:
                raise PersistenceError(
                    kind=PersistenceErrorKind.RECORD_NOT_FOUND,
                    message=f"No LabMember found for ({lab_id}, {user_id})",
                    meta={"model": "LabMember"},
                )
            return member

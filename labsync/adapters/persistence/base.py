"""Persistence interfaces and the error signals they raise.

Route handlers talk to repositories through these abstractions. Concrete
backends translate their native failures (driver error codes, ORM exceptions)
into ``PersistenceError`` so the HTTP layer maps them uniformly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any


class PersistenceErrorKind(str, Enum):
    """Known failure signals from the persistence layer."""

    UNIQUE_VIOLATION = "unique_violation"
    RECORD_NOT_FOUND = "record_not_found"
    FOREIGN_KEY_VIOLATION = "foreign_key_violation"
    INVALID_DATA = "invalid_data"
    UNKNOWN = "unknown"


@dataclass
class PersistenceError(Exception):
    """Raised by repositories when a storage operation fails.

    Attributes:
        kind: Which known failure this is (``UNKNOWN`` for anything else).
        message: Raw backend message; never shown to clients in production.
        meta: Backend context such as the violated constraint or target fields.
    """

    kind: PersistenceErrorKind
    message: str
    meta: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)


@dataclass(frozen=True)
class Project:
    id: str
    name: str
    lab_id: str
    description: str | None = None
    status: str = "PLANNING"
    priority: str = "MEDIUM"
    ora_number: str | None = None
    project_type: str | None = None
    study_type: str | None = None
    bucket: str | None = None
    members: tuple[str, ...] = ()
    tasks: tuple[str, ...] = ()
    created_by: str | None = None
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class Lab:
    id: str
    name: str


@dataclass(frozen=True)
class LabMember:
    lab_id: str
    user_id: str
    email: str
    role: str = "RESEARCH_MEMBER"
    is_active: bool = True
    joined_at: str = ""


class AbstractProjectRepository(ABC):
    """Project storage."""

    @abstractmethod
    async def create(self, project: Project) -> Project:
        raise NotImplementedError

    @abstractmethod
    async def get(self, project_id: str) -> Project:
        """Raises PersistenceError(RECORD_NOT_FOUND) when missing."""
        raise NotImplementedError

    @abstractmethod
    async def find_page(
        self,
        *,
        lab_id: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Project], int]:
        """Return one page of projects and the total count."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, project_id: str) -> Project:
        raise NotImplementedError


class AbstractLabMemberRepository(ABC):
    """Lab membership storage; ``(lab_id, user_id)`` is unique."""

    @abstractmethod
    async def add(self, member: LabMember) -> LabMember:
        raise NotImplementedError

    @abstractmethod
    async def for_lab(self, lab_id: str) -> list[LabMember]:
        raise NotImplementedError

    @abstractmethod
    async def remove(self, lab_id: str, user_id: str) -> LabMember:
        raise NotImplementedError

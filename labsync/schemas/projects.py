"""Request schemas for project and lab membership endpoints."""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import PydanticCustomError

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

ProjectStatus = Literal[
    "PLANNING",
    "IRB_SUBMISSION",
    "IRB_APPROVED",
    "DATA_COLLECTION",
    "ANALYSIS",
    "MANUSCRIPT",
    "UNDER_REVIEW",
    "PUBLISHED",
    "ON_HOLD",
    "CANCELLED",
]
ProjectPriority = Literal["LOW", "MEDIUM", "HIGH", "CRITICAL"]
LabRole = Literal[
    "PRINCIPAL_INVESTIGATOR",
    "CO_PRINCIPAL_INVESTIGATOR",
    "RESEARCH_MEMBER",
    "LAB_ADMINISTRATOR",
    "EXTERNAL_COLLABORATOR",
    "GUEST",
]


class ProjectCreate(BaseModel):
    """Payload for creating a project inside a lab."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200, description="Project name, unique per lab.")
    lab_id: str = Field(..., alias="labId", min_length=1, description="Owning lab id.")
    description: str | None = Field(default=None, max_length=2000)
    status: ProjectStatus = "PLANNING"
    priority: ProjectPriority = "MEDIUM"
    ora_number: str | None = Field(default=None, alias="oraNumber", max_length=50)
    project_type: str | None = Field(default=None, alias="projectType")
    study_type: str | None = Field(default=None, alias="studyType")
    bucket: str | None = None
    members: list[str] = Field(default_factory=list, description="User ids assigned to the project.")


class LabMemberCreate(BaseModel):
    """Payload for adding a member to a lab.

    ``userId`` defaults to the normalized email when omitted.
    """

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    email: str = Field(..., description="Member email address.")
    user_id: str | None = Field(default=None, alias="userId")
    role: LabRole = "RESEARCH_MEMBER"
    is_admin: bool = Field(default=False, alias="isAdmin")

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        if not _EMAIL_PATTERN.match(value):
            raise PydanticCustomError("invalid_email", "Invalid email address")
        return value.lower()

    @property
    def resolved_user_id(self) -> str:
        return self.user_id or self.email

    @property
    def resolved_role(self) -> str:
        # isAdmin is the older shorthand for the administrator role
        if self.is_admin and self.role == "RESEARCH_MEMBER":
            return "LAB_ADMINISTRATOR"
        return self.role


class PaginationParams(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

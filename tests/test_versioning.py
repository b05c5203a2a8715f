"""Tests for API version resolution and payload shaping."""

from __future__ import annotations

import pytest
from starlette.responses import Response

from labsync.core.versioning import (
    DEFAULT_API_VERSION,
    ApiVersion,
    VersionNegotiator,
    apply_version_headers,
    parse_version,
    resolve_version,
    supported_versions,
)

PROJECT_ROW = {
    "id": "p-1",
    "name": "Sepsis cohort",
    "lab_id": "riccc",
    "description": None,
    "status": "PLANNING",
    "priority": "HIGH",
    "ora_number": "ORA-2024-01",
    "project_type": "Retrospective",
    "study_type": "Observational",
    "bucket": None,
    "members": ["u1", "u2"],
    "tasks": [],
    "created_by": "42",
    "created_at": "2024-01-01T00:00:00+00:00",
    "updated_at": "2024-01-02T00:00:00+00:00",
}


class TestParseVersion:
    @pytest.mark.parametrize("value", ["v2", "V2", "2", "2.0", " v2 "])
    def test_accepts_common_spellings(self, value: str) -> None:
        assert parse_version(value) is ApiVersion.V2

    @pytest.mark.parametrize("value", [None, "", "v9", "latest", "vx"])
    def test_rejects_unknown(self, value: str | None) -> None:
        assert parse_version(value) is None


class TestResolveVersion:
    def test_path_segment(self) -> None:
        assert resolve_version("/api/v2/projects", {}) is ApiVersion.V2
        assert resolve_version("/api/v1/projects", {}) is ApiVersion.V1

    def test_path_wins_over_headers(self) -> None:
        headers = {
            "Accept": "application/vnd.labsync.v2+json",
            "X-Api-Version": "2",
        }

        assert resolve_version("/api/v1/projects", headers) is ApiVersion.V1

    def test_accept_media_type_wins_over_version_header(self) -> None:
        headers = {"accept": "application/vnd.labsync.v2+json", "x-api-version": "1"}

        assert resolve_version("/api/projects", headers) is ApiVersion.V2

    def test_version_header(self) -> None:
        assert resolve_version("/api/projects", {"X-API-Version": "2.0"}) is ApiVersion.V2

    def test_default_without_signal(self) -> None:
        assert resolve_version("/api/projects", {}) is DEFAULT_API_VERSION

    def test_unknown_path_version_falls_through(self) -> None:
        assert resolve_version("/api/v7/projects", {"X-Api-Version": "v2"}) is ApiVersion.V2

    def test_vendor_is_configurable(self) -> None:
        headers = {"accept": "application/vnd.acme.v2+json"}

        assert resolve_version("/api/projects", headers, vendor="acme") is ApiVersion.V2
        assert resolve_version("/api/projects", headers) is DEFAULT_API_VERSION


class TestVersionHeaders:
    def test_deprecated_version_gets_deprecation_headers(self) -> None:
        response = apply_version_headers(Response(), ApiVersion.V1)

        assert response.headers["X-Api-Version"] == "1.0"
        assert response.headers["X-Api-Latest"] == "2.0"
        assert "deprecated" in response.headers["X-Api-Deprecation"]
        assert response.headers["X-Api-Deprecation-Date"] == "2025-06-01"

    def test_current_version_has_no_deprecation_headers(self) -> None:
        response = apply_version_headers(Response(), ApiVersion.V2)

        assert response.headers["X-Api-Version"] == "2.0"
        assert "X-Api-Deprecation" not in response.headers
        assert "X-Api-Deprecation-Date" not in response.headers

    def test_supported_versions(self) -> None:
        versions = {v["version"]: v for v in supported_versions()}

        assert versions["v1"]["isDeprecated"] is True
        assert versions["v1"]["isDefault"] is True
        assert versions["v2"]["isLatest"] is True


class TestTransform:
    def test_v1_project_shape(self) -> None:
        shaped = VersionNegotiator().transform(ApiVersion.V1, "project", PROJECT_ROW)

        assert shaped["assignees"] == ["u1", "u2"]
        assert shaped["createdAt"] == PROJECT_ROW["created_at"]
        assert "oraNumber" not in shaped
        assert "metadata" not in shaped

    def test_v2_project_shape(self) -> None:
        shaped = VersionNegotiator().transform(ApiVersion.V2, "project", PROJECT_ROW)

        assert shaped["oraNumber"] == "ORA-2024-01"
        assert shaped["members"] == ["u1", "u2"]
        assert shaped["metadata"] == {
            "createdAt": PROJECT_ROW["created_at"],
            "updatedAt": PROJECT_ROW["updated_at"],
            "createdBy": "42",
        }

    def test_lists_are_transformed_in_order(self) -> None:
        rows = [{**PROJECT_ROW, "id": f"p-{i}"} for i in range(3)]

        shaped = VersionNegotiator().transform(ApiVersion.V2, "project", rows)

        assert [item["id"] for item in shaped] == ["p-0", "p-1", "p-2"]

    def test_lab_member_v2_nests_user(self) -> None:
        member = {
            "lab_id": "riccc",
            "user_id": "u1",
            "email": "a@rush.edu",
            "role": "GUEST",
            "is_active": True,
            "joined_at": "2024-01-01",
        }

        shaped = VersionNegotiator().transform(ApiVersion.V2, "lab_member", member)

        assert shaped["user"] == {"id": "u1", "email": "a@rush.edu"}
        assert shaped["isActive"] is True

    def test_unregistered_resource_is_identity(self) -> None:
        data = {"anything": 1}

        assert VersionNegotiator().transform(ApiVersion.V2, "unknown", data) is data

    def test_custom_transformers(self) -> None:
        negotiator = VersionNegotiator({ApiVersion.V2: {"thing": lambda d: {"n": d["x"]}}})

        assert negotiator.transform(ApiVersion.V2, "thing", {"x": 1}) == {"n": 1}
        assert negotiator.transform(ApiVersion.V1, "thing", {"x": 1}) == {"x": 1}

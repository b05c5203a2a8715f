"""API version negotiation and version-specific payload shaping.

Resolution precedence (first match wins):
1. ``/api/v<n>/`` path segment
2. ``Accept: application/vnd.<vendor>.v<n>+json``
3. ``X-Api-Version`` header (``v2``, ``2`` or ``2.0``)
4. ``DEFAULT_API_VERSION``

Unknown versions in any signal are ignored and resolution falls through, so
resolving never fails. Version metadata is static: deprecation status is
decided at import time, not at runtime.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping

from starlette.requests import Request
from starlette.responses import Response


class ApiVersion(str, Enum):
    V1 = "v1"
    V2 = "v2"


@dataclass(frozen=True)
class VersionInfo:
    number: str
    deprecated: bool = False
    deprecation_notice: str | None = None
    removal_date: str | None = None


VERSION_INFO: Mapping[ApiVersion, VersionInfo] = MappingProxyType(
    {
        ApiVersion.V1: VersionInfo(
            number="1.0",
            deprecated=True,
            deprecation_notice=(
                "API v1 is deprecated and will be removed in future versions. "
                "Please migrate to v2."
            ),
            removal_date="2025-06-01",
        ),
        ApiVersion.V2: VersionInfo(number="2.0"),
    }
)

DEFAULT_API_VERSION = ApiVersion.V1
LATEST_API_VERSION = ApiVersion.V2

VERSION_HEADER = "X-Api-Version"
LATEST_HEADER = "X-Api-Latest"
DEPRECATION_HEADER = "X-Api-Deprecation"
DEPRECATION_DATE_HEADER = "X-Api-Deprecation-Date"

_PATH_PATTERN = re.compile(r"/api/(v\d+)(?:/|$)")


def parse_version(value: str | None) -> ApiVersion | None:
    """Parse ``v2``, ``2`` or ``2.0`` into a supported ApiVersion, else None."""
    if not value:
        return None
    candidate = value.strip().lower().removeprefix("v").split(".", 1)[0]
    try:
        return ApiVersion(f"v{candidate}")
    except ValueError:
        return None


def resolve_version(
    path: str,
    headers: Mapping[str, str],
    *,
    vendor: str = "labsync",
) -> ApiVersion:
    """Resolve the API version a request expects.

    Args:
        path: Request URL path.
        headers: Request headers (case-insensitive mapping or lower-cased dict).
        vendor: Vendor name used in the versioned media type.

    Returns:
        The resolved ApiVersion (never fails; falls back to the default).
    """

    headers = {key.lower(): value for key, value in headers.items()}

    match = _PATH_PATTERN.search(path)
    if match:
        version = parse_version(match.group(1))
        if version is not None:
            return version

    accept = headers.get("accept")
    if accept:
        media = re.search(
            rf"application/vnd\.{re.escape(vendor)}\.(v\d+)\+json", accept, re.IGNORECASE
        )
        if media:
            version = parse_version(media.group(1))
            if version is not None:
                return version

    version = parse_version(headers.get(VERSION_HEADER.lower()))
    if version is not None:
        return version

    return DEFAULT_API_VERSION


Transformer = Callable[[dict[str, Any]], dict[str, Any]]


def _project_v1(data: dict[str, Any]) -> dict[str, Any]:
    # v1 clients still call members "assignees"
    return {
        "id": data.get("id"),
        "name": data.get("name"),
        "description": data.get("description"),
        "status": data.get("status"),
        "priority": data.get("priority"),
        "bucket": data.get("bucket"),
        "lab": data.get("lab_id"),
        "assignees": data.get("members"),
        "createdAt": data.get("created_at"),
        "updatedAt": data.get("updated_at"),
    }


def _project_v2(data: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": data.get("id"),
        "name": data.get("name"),
        "description": data.get("description"),
        "oraNumber": data.get("ora_number"),
        "status": data.get("status"),
        "priority": data.get("priority"),
        "projectType": data.get("project_type"),
        "studyType": data.get("study_type"),
        "bucket": data.get("bucket"),
        "lab": data.get("lab_id"),
        "members": data.get("members"),
        "tasks": data.get("tasks"),
        "metadata": {
            "createdAt": data.get("created_at"),
            "updatedAt": data.get("updated_at"),
            "createdBy": data.get("created_by"),
        },
    }


def _lab_member_v1(data: dict[str, Any]) -> dict[str, Any]:
    return {
        "labId": data.get("lab_id"),
        "userId": data.get("user_id"),
        "email": data.get("email"),
        "role": data.get("role"),
        "joinedAt": data.get("joined_at"),
    }


def _lab_member_v2(data: dict[str, Any]) -> dict[str, Any]:
    return {
        "labId": data.get("lab_id"),
        "user": {"id": data.get("user_id"), "email": data.get("email")},
        "role": data.get("role"),
        "isActive": data.get("is_active"),
        "joinedAt": data.get("joined_at"),
    }


DEFAULT_TRANSFORMERS: Mapping[ApiVersion, Mapping[str, Transformer]] = MappingProxyType(
    {
        ApiVersion.V1: MappingProxyType({"project": _project_v1, "lab_member": _lab_member_v1}),
        ApiVersion.V2: MappingProxyType({"project": _project_v2, "lab_member": _lab_member_v2}),
    }
)


class VersionNegotiator:
    """Resolves request versions and reshapes payloads per version."""

    def __init__(
        self,
        transformers: Mapping[ApiVersion, Mapping[str, Transformer]] | None = None,
        *,
        vendor: str = "labsync",
    ) -> None:
        self._transformers = DEFAULT_TRANSFORMERS if transformers is None else transformers
        self.vendor = vendor

    def resolve(self, request: Request) -> ApiVersion:
        return resolve_version(request.url.path, request.headers, vendor=self.vendor)

    def transform(self, version: ApiVersion, resource_type: str, data: Any) -> Any:
        """Apply ``version``'s transformer for ``resource_type``.

        Lists and tuples are transformed element-wise in order. Data is returned
        unchanged when no transformer is registered for the pair.
        """
        transformer = self._transformers.get(version, {}).get(resource_type)
        if transformer is None:
            return data
        if isinstance(data, (list, tuple)):
            return [transformer(item) for item in data]
        return transformer(data)


def apply_version_headers(response: Response, version: ApiVersion) -> Response:
    """Attach version headers, plus deprecation headers for deprecated versions."""
    info = VERSION_INFO[version]
    response.headers[VERSION_HEADER] = info.number
    response.headers[LATEST_HEADER] = VERSION_INFO[LATEST_API_VERSION].number
    if info.deprecated:
        response.headers[DEPRECATION_HEADER] = info.deprecation_notice or "deprecated"
        if info.removal_date:
            response.headers[DEPRECATION_DATE_HEADER] = info.removal_date
    return response


def supported_versions() -> list[dict[str, Any]]:
    """Describe every supported version for discovery endpoints."""
    return [
        {
            "version": version.value,
            "number": info.number,
            "isDefault": version is DEFAULT_API_VERSION,
            "isLatest": version is LATEST_API_VERSION,
            "isDeprecated": info.deprecated,
            "removalDate": info.removal_date,
        }
        for version, info in VERSION_INFO.items()
    ]


def get_api_version(request: Request) -> ApiVersion:
    """FastAPI dependency returning the version resolved by the pipeline."""
    version = getattr(request.state, "api_version", None)
    if isinstance(version, ApiVersion):
        return version
    app_settings = getattr(request.app.state, "settings", None)
    vendor = app_settings.api.vendor_media_name if app_settings is not None else "labsync"
    return resolve_version(request.url.path, request.headers, vendor=vendor)

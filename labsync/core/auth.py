"""API key authentication stub.

This module resolves the calling principal from the ``X-API-Key`` header.
Keys are validated against a comma-separated list from environment variables;
each entry may bind the key to a principal id (``key:principal_id``).

Design principles:
- Single Responsibility: Only resolves principals, never shapes responses
- Non-raising: unknown or missing keys resolve to ``None``; the request
  pipeline decides whether that is an UNAUTHORIZED error
- Configuration-driven: Keys managed via env vars, not hardcoded
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Protocol

from starlette.requests import Request

from labsync.core.config import ApiSettings

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller."""

    id: str
    api_key_hash: str


class AuthProvider(Protocol):
    async def __call__(self, request: Request) -> Principal | None: ...


def _hash_key(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def parse_api_keys(keys_string: str | None) -> dict[str, str]:
    """Parse comma-separated API keys into a key -> principal id mapping.

    Entries without an explicit principal id are bound to a hash of the key,
    so the raw key never ends up in rate limit identifiers or logs.

    Args:
        keys_string: Comma-separated ``key`` or ``key:principal_id`` entries, or None.

    Returns:
        Mapping of trimmed, non-empty API keys to principal ids.

    Examples:
        >>> parse_api_keys("key1:42, key2:7")
        {'key1': '42', 'key2': '7'}
        >>> parse_api_keys(None)
        {}
        >>> parse_api_keys("")
        {}
    """
    if not keys_string:
        return {}

    keys: dict[str, str] = {}
    for entry in keys_string.split(","):
        entry = entry.strip()
        if not entry:
            continue
        key, _, principal_id = entry.partition(":")
        key = key.strip()
        if not key:
            continue
        keys[key] = principal_id.strip() or _hash_key(key)
    return keys


class ApiKeyAuthProvider:
    """Resolves a Principal from the X-API-Key header."""

    def __init__(self, api_settings: ApiSettings) -> None:
        self._required = api_settings.api_key_required
        self._keys = parse_api_keys(api_settings.api_keys)
        if self._required and not self._keys:
            logger.error(
                "auth.api_keys_not_configured",
                extra={"auth_required": True},
            )

    def resolve(self, provided_key: str | None) -> Principal | None:
        """Map a raw API key to its principal.

        Pure lookup without request objects for easy testing.

        Args:
            provided_key: API key value, possibly None.

        Returns:
            Principal for known keys, otherwise None.
        """
        if not provided_key:
            return None

        principal_id = self._keys.get(provided_key)
        key_hash = _hash_key(provided_key)
        if principal_id is None:
            logger.warning(
                "auth.invalid_key",
                extra={"api_key_hash": key_hash, "auth_required": self._required},
            )
            return None

        logger.debug("auth.success", extra={"api_key_hash": key_hash})
        return Principal(id=principal_id, api_key_hash=key_hash)

    async def __call__(self, request: Request) -> Principal | None:
        return self.resolve(request.headers.get(API_KEY_HEADER))

    @property
    def required(self) -> bool:
        return self._required


def get_principal(request: Request) -> Principal | None:
    """FastAPI dependency returning the principal resolved by the pipeline."""
    return getattr(request.state, "principal", None)

"""Request hygiene helpers: security headers, size/path checks and CSRF.

CSRF uses the double-submit pattern: the token issued in the ``csrf-token``
cookie must be echoed in the ``X-CSRF-Token`` header on unsafe methods.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from typing import Mapping

logger = logging.getLogger(__name__)

SECURITY_HEADERS: Mapping[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
}

CSRF_HEADER = "X-CSRF-Token"
CSRF_COOKIE = "csrf-token"
CSRF_TOKEN_BYTES = 32

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def is_request_too_large(headers: Mapping[str, str], max_bytes: int) -> bool:
    """True when the declared Content-Length exceeds ``max_bytes``.

    A missing or malformed Content-Length is not treated as oversize.
    """
    raw = headers.get("content-length")
    if not raw:
        return False
    try:
        return int(raw) > max_bytes
    except ValueError:
        return False


def is_suspicious_path(path: str) -> bool:
    """Flag traversal-looking paths (``..`` segments or empty ``//`` segments)."""
    return ".." in path or "//" in path


def generate_csrf_token() -> str:
    return secrets.token_hex(CSRF_TOKEN_BYTES)


def validate_csrf(
    method: str,
    headers: Mapping[str, str],
    cookies: Mapping[str, str],
) -> bool:
    """Check the double-submit CSRF token for unsafe methods.

    Args:
        method: HTTP method of the request.
        headers: Request headers.
        cookies: Parsed request cookies.

    Returns:
        True when the method is safe or the header matches the cookie.
    """
    if method.upper() in SAFE_METHODS:
        return True

    header_token = headers.get(CSRF_HEADER.lower()) or headers.get(CSRF_HEADER)
    cookie_token = cookies.get(CSRF_COOKIE)
    if not header_token or not cookie_token:
        logger.warning(
            "csrf.token_missing",
            extra={
                "method": method,
                "has_header_token": bool(header_token),
                "has_cookie_token": bool(cookie_token),
            },
        )
        return False

    if not hmac.compare_digest(header_token.encode(), cookie_token.encode()):
        logger.warning("csrf.token_mismatch", extra={"method": method})
        return False
    return True

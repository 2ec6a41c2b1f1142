"""Allow-lists and validation for build-time and per-request options."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional

from .errors import InvalidMethod, InvalidRequestOptions

SUPPORTED_METHODS: tuple[str, ...] = ("HEAD", "GET", "DELETE", "OPTIONS", "PATCH", "POST", "PUT")

# Keyword arguments accepted by httpx.Client.request().
REQUEST_OPTIONS: frozenset[str] = frozenset(
    {
        "params",
        "headers",
        "cookies",
        "content",
        "data",
        "files",
        "json",
        "auth",
        "follow_redirects",
        "timeout",
        "extensions",
    }
)

# Keyword arguments accepted when constructing the httpx.Client and its transport.
BUILD_OPTIONS: frozenset[str] = frozenset(
    {
        "headers",
        "cookies",
        "auth",
        "timeout",
        "follow_redirects",
        "max_redirects",
        "event_hooks",
        "verify",
        "cert",
        "proxy",
        "trust_env",
        "default_encoding",
    }
)

PERSISTENT_HEADERS = "persistent_headers"
HTTP_ERRORS = "http_errors"
PSEUDO_OPTIONS: frozenset[str] = frozenset({PERSISTENT_HEADERS, HTTP_ERRORS})

# Always controlled by the client, never by the caller.
RESERVED_OPTIONS: frozenset[str] = frozenset({"base_url", HTTP_ERRORS})


def verify_method(method: str) -> str:
    normalized = method.strip().upper()
    if normalized not in SUPPORTED_METHODS:
        raise InvalidMethod(
            f"Invalid request method specified, must be one of {', '.join(SUPPORTED_METHODS)}."
        )
    return normalized


def verify_options(options: Mapping[str, Any], allowed: Iterable[str] = REQUEST_OPTIONS) -> None:
    """Raise :class:`InvalidRequestOptions` naming every key outside ``allowed``."""
    allowed_set = frozenset(allowed) | PSEUDO_OPTIONS
    invalid = [key for key in options if key not in allowed_set]
    if invalid:
        raise InvalidRequestOptions(
            f"Invalid option(s) specified: {', '.join(str(key) for key in invalid)}",
            keys=invalid,
        )


def verify_persistent_headers(value: Any) -> Dict[str, str]:
    if not isinstance(value, Mapping):
        raise InvalidRequestOptions(
            "persistent_headers must map header names to values.", keys=[PERSISTENT_HEADERS]
        )
    headers: Dict[str, str] = {}
    for name, header_value in value.items():
        if not isinstance(name, str) or not name.strip():
            raise InvalidRequestOptions(
                "persistent_headers must map header names to values.", keys=[PERSISTENT_HEADERS]
            )
        if not isinstance(header_value, str):
            raise InvalidRequestOptions(
                f"persistent header {name!r} must have a string value.", keys=[PERSISTENT_HEADERS]
            )
        headers[name.strip()] = header_value
    return headers


def strip_reserved(options: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Copy per-request options without reserved and library-only keys."""
    if not options:
        return {}
    return {
        key: value
        for key, value in options.items()
        if key not in RESERVED_OPTIONS and key not in PSEUDO_OPTIONS
    }


__all__ = [
    "BUILD_OPTIONS",
    "HTTP_ERRORS",
    "PERSISTENT_HEADERS",
    "PSEUDO_OPTIONS",
    "REQUEST_OPTIONS",
    "RESERVED_OPTIONS",
    "SUPPORTED_METHODS",
    "strip_reserved",
    "verify_method",
    "verify_options",
    "verify_persistent_headers",
]

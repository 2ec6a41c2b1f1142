"""Joining endpoint paths onto the configured API URL."""

from __future__ import annotations

from typing import Optional


def normalize_endpoint(endpoint: Optional[str], base_url: str) -> str:
    """Return ``endpoint`` shaped so that ``base_url + endpoint`` has exactly one slash at the join."""
    path = (endpoint or "").lstrip("/")
    if not base_url.endswith("/"):
        path = "/" + path
    return path


__all__ = ["normalize_endpoint"]

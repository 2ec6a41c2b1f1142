"""Helpers for reading JSON API responses."""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any

import httpx

from .errors import ResponseDecodeError


def raw(response: httpx.Response) -> bytes:
    """Return the response body exactly as received (after content decoding)."""
    return response.read()


def _loads(response: httpx.Response, **kwargs: Any) -> Any:
    body = raw(response)
    try:
        return json.loads(body, **kwargs)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ResponseDecodeError(f"Response body is not valid JSON: {exc}") from exc


def to_dict(response: httpx.Response) -> Any:
    """Decode the JSON body into plain dicts and lists."""
    return _loads(response)


def to_object(response: httpx.Response) -> Any:
    """Decode the JSON body with objects as :class:`types.SimpleNamespace` for attribute access."""
    return _loads(response, object_hook=lambda data: SimpleNamespace(**data))


class JsonResponseMixin:
    """Adds :func:`raw`, :func:`to_dict` and :func:`to_object` as methods."""

    def raw(self, response: httpx.Response) -> bytes:
        return raw(response)

    def to_dict(self, response: httpx.Response) -> Any:
        return to_dict(response)

    def to_object(self, response: httpx.Response) -> Any:
        return to_object(response)


__all__ = ["JsonResponseMixin", "raw", "to_dict", "to_object"]

"""API key injection and request middleware."""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Mapping

import httpx

from .config import ClientConfig

RequestMiddleware = Callable[[httpx.Request], httpx.Request]

REDACTED = "[REDACTED]"


def inject_auth(config: ClientConfig, options: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``options`` carrying the API key when it travels in the query string.

    A caller-supplied value for the key parameter is left in place.
    """
    outgoing = dict(options)
    if not config.api_requires_query:
        return outgoing

    name = config.api_param_name
    key = config.api_key.get_secret_value()
    params = outgoing.get("params")
    if params is None:
        outgoing["params"] = {name: key}
    elif isinstance(params, Mapping):
        merged = dict(params)
        merged.setdefault(name, key)
        outgoing["params"] = merged
    else:
        # lists of pairs, strings and QueryParams keep their repeated keys
        items = list(httpx.QueryParams(params).multi_items())
        if not any(item_name == name for item_name, _ in items):
            items.append((name, key))
        outgoing["params"] = items
    return outgoing


def header_setter(name: str, value: str) -> RequestMiddleware:
    def _set_header(request: httpx.Request) -> httpx.Request:
        request.headers[name] = value
        return request

    _set_header.__name__ = f"set_header[{name}]"
    return _set_header


def persistent_header_middleware(headers: Mapping[str, str]) -> List[RequestMiddleware]:
    return [header_setter(name, value) for name, value in headers.items()]


def apply_middleware(request: httpx.Request, middleware: Iterable[RequestMiddleware]) -> httpx.Request:
    for step in middleware:
        request = step(request)
    return request


def redact_url(url: httpx.URL, config: ClientConfig) -> str:
    if not config.api_requires_query or config.api_param_name not in url.params:
        return str(url)
    return str(url.copy_set_param(config.api_param_name, REDACTED))


__all__ = [
    "RequestMiddleware",
    "apply_middleware",
    "header_setter",
    "inject_auth",
    "persistent_header_middleware",
    "redact_url",
]

"""HTTP response caching backed by :mod:`diskcache`.

:class:`ResponseCache` decides what may be stored and for how long, using
the response's ``Cache-Control``/``Expires`` headers, and keeps entries in
two scopes: a private one tied to the client's credential and an optional
shared one. :class:`CachingTransport` plugs it into an :class:`httpx.Client`
underneath the retry loop, so each attempt consults the cache first.

Cache storage is best-effort. Any error reading or writing the store,
including entries that no longer unpickle, is logged and the request goes
to the network instead.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple

import diskcache
import httpx

logger = logging.getLogger(__name__)

CACHEABLE_METHODS = frozenset({"GET", "HEAD"})
# Status codes a cache may store without an explicit opt-in beyond freshness.
CACHEABLE_STATUSES = frozenset({200, 203, 204, 300, 301, 308, 404, 405, 410, 414, 501})
KEY_HEADERS = ("accept", "accept-language")
# Headers that no longer describe the decoded body we store.
DROPPED_HEADERS = frozenset({"content-encoding", "content-length", "transfer-encoding"})

PRIVATE = "private"
SHARED = "shared"


class CacheStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any, expire: Optional[float] = None) -> bool: ...


@dataclass
class CacheEntry:
    status_code: int
    headers: List[Tuple[str, str]]
    content: bytes
    stored_at: float
    ttl: float
    vary: Dict[str, Optional[str]] = field(default_factory=dict)

    def is_fresh(self, now: Optional[float] = None) -> bool:
        current = time.time() if now is None else now
        return current - self.stored_at < self.ttl

    def to_response(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            self.status_code,
            headers=self.headers,
            content=self.content,
            request=request,
            extensions={"from_cache": True},
        )


def parse_cache_control(value: Optional[str]) -> Dict[str, Optional[str]]:
    directives: Dict[str, Optional[str]] = {}
    if not value:
        return directives
    for part in value.split(","):
        name, sep, argument = part.strip().partition("=")
        name = name.strip().lower()
        if not name:
            continue
        directives[name] = argument.strip().strip('"') if sep else None
    return directives


def _seconds(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return max(0, int(value))
    except ValueError:
        return None


def _http_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def freshness_lifetime(response: httpx.Response, shared: bool) -> Optional[int]:
    """Seconds the response stays fresh, or None when it carries no explicit lifetime."""
    directives = parse_cache_control(response.headers.get("Cache-Control"))
    if shared:
        s_maxage = _seconds(directives.get("s-maxage"))
        if s_maxage is not None:
            return s_maxage
    max_age = _seconds(directives.get("max-age"))
    if max_age is not None:
        return max_age
    if "Expires" in response.headers:
        expires = _http_date(response.headers["Expires"])
        if expires is None:
            # an invalid Expires means already expired
            return 0
        date = _http_date(response.headers.get("Date")) or datetime.now(timezone.utc)
        return max(0, int((expires - date).total_seconds()))
    return None


def is_storable(request: httpx.Request, response: httpx.Response, shared: bool) -> bool:
    if request.method not in CACHEABLE_METHODS:
        return False
    if response.status_code not in CACHEABLE_STATUSES:
        return False
    request_cc = parse_cache_control(request.headers.get("Cache-Control"))
    response_cc = parse_cache_control(response.headers.get("Cache-Control"))
    if "no-store" in request_cc or "no-store" in response_cc or "no-cache" in response_cc:
        return False
    if response.headers.get("Vary", "").strip() == "*":
        return False
    if shared:
        if "private" in response_cc:
            return False
        if "authorization" in request.headers and not (
            "public" in response_cc or "s-maxage" in response_cc or "must-revalidate" in response_cc
        ):
            return False
    lifetime = freshness_lifetime(response, shared)
    return lifetime is not None and lifetime > 0


class ResponseCache:
    """Private and shared response scopes over a key/value store with expiry."""

    def __init__(
        self,
        store: CacheStore,
        fingerprint: str,
        *,
        private: bool = True,
        shared: bool = False,
        default_ttl: int = 300,
    ) -> None:
        self._store = store
        self._fingerprint = fingerprint
        self._scopes = tuple(scope for scope, on in ((PRIVATE, private), (SHARED, shared)) if on)
        self._default_ttl = default_ttl

    @classmethod
    def open(cls, directory: Path, fingerprint: str, **kwargs: Any) -> "ResponseCache":
        return cls(diskcache.Cache(str(directory)), fingerprint, **kwargs)

    @property
    def scopes(self) -> tuple[str, ...]:
        return self._scopes

    def key_for(self, request: httpx.Request, scope: str) -> str:
        parts = [scope]
        if scope == PRIVATE:
            parts.append(self._fingerprint)
        parts.append(request.method)
        parts.append(str(request.url))
        for name in KEY_HEADERS:
            parts.append(f"{name}={request.headers.get(name, '')}")
        return hashlib.sha256("\n".join(parts).encode("utf-8")).hexdigest()

    def lookup(self, request: httpx.Request) -> Optional[httpx.Response]:
        if request.method not in CACHEABLE_METHODS:
            return None
        request_cc = parse_cache_control(request.headers.get("Cache-Control"))
        if "no-cache" in request_cc or "no-store" in request_cc:
            return None
        for scope in self._scopes:
            entry = self._read(self.key_for(request, scope))
            if entry is None or not entry.is_fresh():
                continue
            if any(request.headers.get(name) != value for name, value in entry.vary.items()):
                continue
            logger.debug("Cache hit (%s) for %s %s", scope, request.method, request.url.path)
            return entry.to_response(request)
        return None

    def store(self, request: httpx.Request, response: httpx.Response) -> int:
        """Store a read response in every scope that accepts it; return how many did."""
        stored = 0
        for scope in self._scopes:
            shared = scope == SHARED
            if not is_storable(request, response, shared):
                continue
            lifetime = min(freshness_lifetime(response, shared) or 0, self._default_ttl)
            entry = CacheEntry(
                status_code=response.status_code,
                headers=[
                    (name, value)
                    for name, value in response.headers.multi_items()
                    if name.lower() not in DROPPED_HEADERS
                ],
                content=response.content,
                stored_at=time.time(),
                ttl=lifetime,
                vary={
                    name.strip().lower(): request.headers.get(name.strip())
                    for name in response.headers.get("Vary", "").split(",")
                    if name.strip()
                },
            )
            if self._write(self.key_for(request, scope), entry, lifetime):
                stored += 1
        return stored

    def wants(self, request: httpx.Request, response: httpx.Response) -> bool:
        return any(is_storable(request, response, scope == SHARED) for scope in self._scopes)

    def close(self) -> None:
        close = getattr(self._store, "close", None)
        if close is not None:
            close()

    def _read(self, key: str) -> Optional[CacheEntry]:
        try:
            entry = self._store.get(key, None)
        except Exception as exc:
            logger.warning("Cache read failed, falling back to a live request: %s", exc)
            return None
        if not isinstance(entry, CacheEntry):
            return None
        return entry

    def _write(self, key: str, entry: CacheEntry, expire: float) -> bool:
        try:
            self._store.set(key, entry, expire=expire)
        except Exception as exc:
            logger.warning("Cache write failed, response not cached: %s", exc)
            return False
        return True


class CachingTransport(httpx.BaseTransport):
    """Serves fresh cached responses and records cacheable ones from ``transport``."""

    def __init__(self, transport: httpx.BaseTransport, cache: ResponseCache) -> None:
        self._transport = transport
        self._cache = cache

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        cached = self._cache.lookup(request)
        if cached is not None:
            return cached

        response = self._transport.handle_request(request)
        if not self._cache.wants(request, response):
            return response

        # the returned response stays unread so httpx can wrap and time its stream
        try:
            body = b"".join(response.iter_raw())
        finally:
            response.close()
        stored = self._replay(response, request, body)
        stored.read()
        self._cache.store(request, stored)
        return self._replay(response, request, body)

    @staticmethod
    def _replay(response: httpx.Response, request: httpx.Request, body: bytes) -> httpx.Response:
        return httpx.Response(
            response.status_code,
            headers=response.headers,
            stream=httpx.ByteStream(body),
            request=request,
            extensions=dict(response.extensions),
        )

    def close(self) -> None:
        try:
            self._transport.close()
        finally:
            self._cache.close()


__all__ = [
    "CacheEntry",
    "CacheStore",
    "CachingTransport",
    "ResponseCache",
    "freshness_lifetime",
    "is_storable",
    "parse_cache_control",
]

"""Configurable HTTP API client built on httpx."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx

from .auth import RequestMiddleware, apply_middleware, inject_auth, persistent_header_middleware, redact_url
from .cache import CacheStore, CachingTransport, ResponseCache
from .config import ClientConfig
from .endpoint import normalize_endpoint
from .errors import ClientNotBuilt, ConfigurationError, InvalidRequestOptions, RateLimitExceeded
from .options import (
    BUILD_OPTIONS,
    PERSISTENT_HEADERS,
    PSEUDO_OPTIONS,
    REQUEST_OPTIONS,
    strip_reserved,
    verify_method,
    verify_options,
    verify_persistent_headers,
)
from .responses import JsonResponseMixin
from .retry import RetryController, RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0

# Build options that configure the transport rather than the client.
TRANSPORT_OPTIONS = frozenset({"verify", "cert", "proxy", "trust_env"})
# Request options httpx takes on send() instead of build_request().
SEND_OPTIONS = frozenset({"auth", "follow_redirects"})


class ApiClient(JsonResponseMixin):
    """Thin wrapper that turns a base URL and API key into a ready httpx client.

    Typical use::

        config = ClientConfig.create("https://api.example.com", "my-key", cache_path="/var/tmp/api")
        client = ApiClient(config)
        client.build({"persistent_headers": {"Accept": "application/json"}})
        data = client.to_dict(client.get("/items", {"params": {"page": 2}}))

    Requests go through auth injection, option validation and endpoint
    normalization, then the retry loop (when enabled) and the response cache
    (when a cache directory is configured) before reaching the network.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        cache_store: Optional[CacheStore] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._cache_store = cache_store
        self._sleep = sleep
        self._retry = RetryPolicy()
        self._client: Optional[httpx.Client] = None
        self._middleware: List[RequestMiddleware] = []
        self._active_transport: Optional[httpx.BaseTransport] = None

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def client(self) -> Optional[httpx.Client]:
        return self._client

    @property
    def middleware(self) -> tuple[RequestMiddleware, ...]:
        return tuple(self._middleware)

    @property
    def retry_enabled(self) -> bool:
        return self._retry.enabled

    @property
    def max_retries(self) -> int:
        return self._retry.max_retries

    def enable_retry_attempts(self) -> "ApiClient":
        self._retry.enabled = True
        return self

    def disable_retry_attempts(self) -> "ApiClient":
        self._retry.enabled = False
        return self

    def set_max_retry_attempts(self, max_retries: int) -> "ApiClient":
        if isinstance(max_retries, bool) or not isinstance(max_retries, int):
            raise ConfigurationError(f"max_retries must be an integer, got {max_retries!r}")
        if max_retries < 0:
            raise ConfigurationError(f"max_retries must not be negative, got {max_retries}")
        self._retry.max_retries = max_retries
        return self

    def build(self, options: Optional[Mapping[str, Any]] = None) -> httpx.Client:
        """Create the underlying :class:`httpx.Client`, replacing any previous one.

        ``options`` takes httpx client arguments from
        :data:`apiwrap.options.BUILD_OPTIONS` plus ``persistent_headers``, a
        mapping of headers set on every outgoing request. Query parameters
        belong on :meth:`send`; passing ``params`` here is rejected.
        """
        options = dict(options or {})
        middleware: List[RequestMiddleware] = []
        if PERSISTENT_HEADERS in options:
            middleware = persistent_header_middleware(verify_persistent_headers(options[PERSISTENT_HEADERS]))
        if "params" in options:
            raise InvalidRequestOptions("Please only specify params when calling send().", keys=["params"])
        verify_options(options, BUILD_OPTIONS)

        client_kwargs: Dict[str, Any] = {
            key: value
            for key, value in options.items()
            if key not in PSEUDO_OPTIONS and (key not in TRANSPORT_OPTIONS or key == "trust_env")
        }
        client_kwargs.setdefault("timeout", DEFAULT_TIMEOUT)
        transport_kwargs = {key: value for key, value in options.items() if key in TRANSPORT_OPTIONS}

        transport = self._make_transport(transport_kwargs)
        client = httpx.Client(base_url=self._config.api_url, transport=transport, **client_kwargs)
        self._release_previous()
        self._client = client
        self._active_transport = transport
        self._middleware = middleware
        logger.info(
            "Built API client for %s (cache=%s, retries=%s, persistent_headers=%s)",
            self._config.api_url,
            self._config.cache_enabled,
            self._retry.enabled,
            len(middleware),
        )
        return client

    def _make_transport(self, transport_kwargs: Dict[str, Any]) -> httpx.BaseTransport:
        if self._transport is not None:
            transport = self._transport
            if transport_kwargs:
                logger.debug("Ignoring transport options %s for injected transport", sorted(transport_kwargs))
        else:
            transport = httpx.HTTPTransport(**transport_kwargs)
        if not self._config.cache_enabled:
            return transport
        fingerprint = self._config.credential_fingerprint()
        scopes = dict(
            private=self._config.cache_private,
            shared=self._config.cache_shared,
            default_ttl=self._config.cache_default_ttl,
        )
        if self._cache_store is not None:
            cache = ResponseCache(self._cache_store, fingerprint, **scopes)
        else:
            cache = ResponseCache.open(self._config.cache_path, fingerprint, **scopes)
        return CachingTransport(transport, cache)

    def _release_previous(self) -> None:
        if self._client is None:
            return
        if self._transport is None:
            self._client.close()
        elif isinstance(self._active_transport, CachingTransport):
            # the injected transport stays open for the next client
            self._active_transport.cache.close()

    def send(
        self,
        method: str,
        endpoint: Optional[str] = None,
        options: Optional[Mapping[str, Any]] = None,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> httpx.Response:
        """Perform one request, retrying it when retries are enabled.

        The number of retries made is recorded in ``response.extensions["retries"]``
        and, when an error is raised, in ``exc.request.extensions["retries"]``.

        Raises:
            InvalidMethod: unsupported HTTP method.
            InvalidRequestOptions: unknown option keys.
            ClientNotBuilt: :meth:`build` has not been called.
            RateLimitExceeded: the final response was a 429.
            httpx.HTTPStatusError: any other 4xx/5xx final response.
            httpx.TransportError: the final attempt failed before a response.
            RetryCancelled: ``cancel`` was set while waiting to retry.
        """
        method = verify_method(method)
        request_options = strip_reserved(options)
        verify_options(request_options, REQUEST_OPTIONS)
        request_options = inject_auth(self._config, request_options)
        path = normalize_endpoint(endpoint, self._config.api_url)

        client = self._client
        if client is None:
            raise ClientNotBuilt(
                f'No valid httpx client detected, a client must be built with the "build" method of '
                f'"{type(self).__name__}" first.'
            )

        send_kwargs = {key: value for key, value in request_options.items() if key in SEND_OPTIONS}
        build_kwargs = {key: value for key, value in request_options.items() if key not in SEND_OPTIONS}
        request = apply_middleware(client.build_request(method, path, **build_kwargs), self._middleware)
        logger.debug("Sending %s %s", method, redact_url(request.url, self._config))

        def attempt() -> httpx.Response:
            response = client.send(request, **send_kwargs)
            if response.is_error:
                response.raise_for_status()
            return response

        controller = RetryController(self._retry, sleep=self._sleep)
        try:
            response, retries = controller.run(attempt, request, cancel=cancel)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 429:
                raise RateLimitExceeded("API rate limit exceeded.", response=exc.response) from exc
            raise
        if retries:
            logger.info("%s %s succeeded after %s retries", method, request.url.path, retries)
        return response

    def build_and_send(
        self,
        method: str,
        endpoint: Optional[str] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> httpx.Response:
        """Build the client from ``options`` and send one request with the same options.

        ``params`` and request-only options are held back for the send step;
        client options are used only for the build.
        """
        options = dict(options or {})
        verify_options(options, BUILD_OPTIONS | REQUEST_OPTIONS)
        params = options.pop("params", None)
        self.build({key: value for key, value in options.items() if key in BUILD_OPTIONS or key in PSEUDO_OPTIONS})

        request_options = {key: value for key, value in options.items() if key in REQUEST_OPTIONS}
        if params:
            request_options["params"] = params
        return self.send(method, endpoint, request_options)

    def get(self, endpoint: Optional[str] = None, options: Optional[Mapping[str, Any]] = None) -> httpx.Response:
        return self.send("GET", endpoint, options)

    def post(self, endpoint: Optional[str] = None, options: Optional[Mapping[str, Any]] = None) -> httpx.Response:
        return self.send("POST", endpoint, options)

    def put(self, endpoint: Optional[str] = None, options: Optional[Mapping[str, Any]] = None) -> httpx.Response:
        return self.send("PUT", endpoint, options)

    def patch(self, endpoint: Optional[str] = None, options: Optional[Mapping[str, Any]] = None) -> httpx.Response:
        return self.send("PATCH", endpoint, options)

    def delete(self, endpoint: Optional[str] = None, options: Optional[Mapping[str, Any]] = None) -> httpx.Response:
        return self.send("DELETE", endpoint, options)

    def head(self, endpoint: Optional[str] = None, options: Optional[Mapping[str, Any]] = None) -> httpx.Response:
        return self.send("HEAD", endpoint, options)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            self._active_transport = None


__all__ = ["ApiClient", "DEFAULT_TIMEOUT"]

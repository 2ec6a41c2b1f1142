"""Exception types raised by the apiwrap client."""

from __future__ import annotations

from typing import Iterable, Optional

import httpx


class ApiClientError(Exception):
    """Base class for errors raised by apiwrap itself."""


class ConfigurationError(ApiClientError, ValueError):
    pass


class InvalidRequestOptions(ApiClientError, ValueError):
    def __init__(self, message: str, keys: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.keys = tuple(keys)


class InvalidMethod(ApiClientError, ValueError):
    pass


class ClientNotBuilt(ApiClientError, RuntimeError):
    pass


class RateLimitExceeded(ApiClientError):
    """The API kept answering 429 after every permitted retry."""

    def __init__(self, message: str, response: httpx.Response) -> None:
        super().__init__(message)
        self.response = response

    @property
    def request(self) -> httpx.Request:
        return self.response.request


class ResponseDecodeError(ApiClientError, ValueError):
    pass


class RetryCancelled(ApiClientError):
    def __init__(self, message: str, retries: int, last_error: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.retries = retries
        self.last_error = last_error


__all__ = [
    "ApiClientError",
    "ClientNotBuilt",
    "ConfigurationError",
    "InvalidMethod",
    "InvalidRequestOptions",
    "RateLimitExceeded",
    "ResponseDecodeError",
    "RetryCancelled",
]

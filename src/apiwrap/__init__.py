"""apiwrap: a configurable HTTP API client wrapper."""

from .client import ApiClient
from .config import ClientConfig
from .errors import (
    ApiClientError,
    ClientNotBuilt,
    ConfigurationError,
    InvalidMethod,
    InvalidRequestOptions,
    RateLimitExceeded,
    ResponseDecodeError,
    RetryCancelled,
)
from .responses import raw, to_dict, to_object

__all__ = [
    "ApiClient",
    "ApiClientError",
    "ClientConfig",
    "ClientNotBuilt",
    "ConfigurationError",
    "InvalidMethod",
    "InvalidRequestOptions",
    "RateLimitExceeded",
    "ResponseDecodeError",
    "RetryCancelled",
    "raw",
    "to_dict",
    "to_object",
]

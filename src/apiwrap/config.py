"""Configuration objects for the apiwrap client."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator, model_validator

from .errors import ConfigurationError


class ClientConfig(BaseModel):
    """Construction settings for :class:`apiwrap.client.ApiClient`.

    The API key is held as a :class:`pydantic.SecretStr` so it never shows up
    in ``repr()`` or log output. Use :meth:`create` to get a
    :class:`ConfigurationError` instead of a raw pydantic error.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    api_url: str = Field(..., min_length=1)
    api_key: SecretStr
    cache_path: Optional[Path] = None
    api_requires_query: bool = False
    api_param_name: str = ""
    cache_private: bool = True
    cache_shared: bool = False
    cache_default_ttl: int = Field(default=300, gt=0)

    @field_validator("api_url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        scheme, sep, rest = value.partition("://")
        if not sep or scheme.lower() not in ("http", "https") or not rest.strip("/"):
            raise ValueError("api_url must be an absolute http or https URL")
        return value

    @field_validator("api_key")
    @classmethod
    def _check_key(cls, value: SecretStr) -> SecretStr:
        stripped = value.get_secret_value().strip()
        if not stripped:
            raise ValueError("api_key must be a non-empty string")
        return SecretStr(stripped)

    @field_validator("cache_path", mode="before")
    @classmethod
    def _blank_cache_path(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("cache_path")
    @classmethod
    def _check_cache_path(cls, value: Optional[Path]) -> Optional[Path]:
        if value is None:
            return None
        if not value.is_dir():
            raise ValueError(f"cache_path {value} is not an existing directory")
        if not os.access(value, os.W_OK):
            raise ValueError(f"cache_path {value} is not writable")
        return value

    @model_validator(mode="after")
    def _check_param_name(self) -> "ClientConfig":
        if self.api_requires_query and not self.api_param_name:
            raise ValueError("api_param_name is required when api_requires_query is set")
        return self

    @classmethod
    def create(
        cls,
        api_url: str,
        api_key: Optional[str] = None,
        cache_path: Optional[str | Path] = None,
        api_requires_query: bool = False,
        api_param_name: str = "",
        **extra: Any,
    ) -> "ClientConfig":
        try:
            return cls(
                api_url=api_url,
                api_key=api_key or "",
                cache_path=cache_path,
                api_requires_query=api_requires_query,
                api_param_name=api_param_name,
                **extra,
            )
        except ValidationError as exc:
            fields = sorted({".".join(str(part) for part in err["loc"]) or "config" for err in exc.errors()})
            raise ConfigurationError(f"Invalid client configuration: {', '.join(fields)}") from exc

    @classmethod
    def from_env(cls, prefix: str = "APIWRAP_") -> "ClientConfig":
        requires_query = os.environ.get(f"{prefix}API_REQUIRES_QUERY", "false").lower() == "true"
        return cls.create(
            api_url=os.environ.get(f"{prefix}API_URL", ""),
            api_key=os.environ.get(f"{prefix}API_KEY"),
            cache_path=os.environ.get(f"{prefix}CACHE_PATH"),
            api_requires_query=requires_query,
            api_param_name=os.environ.get(f"{prefix}API_PARAM_NAME", ""),
        )

    @property
    def cache_enabled(self) -> bool:
        return self.cache_path is not None and (self.cache_private or self.cache_shared)

    def credential_fingerprint(self) -> str:
        digest = hashlib.sha256(self.api_key.get_secret_value().encode("utf-8"))
        return digest.hexdigest()[:16]


__all__ = ["ClientConfig"]

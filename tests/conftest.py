from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from apiwrap import ApiClient, ClientConfig


class MemoryStore(dict):
    """Dict-backed stand-in for a diskcache.Cache."""

    def __init__(self) -> None:
        super().__init__()
        self.expires: Dict[str, Optional[float]] = {}

    def set(self, key: str, value: Any, expire: Optional[float] = None) -> bool:
        self[key] = value
        self.expires[key] = expire
        return True


def echo(request: httpx.Request) -> httpx.Response:
    """Answer like httpbin's /anything: query args, headers and method."""
    args: Dict[str, List[str]] = {}
    for name, value in request.url.params.multi_items():
        args.setdefault(name, []).append(value)
    return httpx.Response(
        200,
        json={
            "args": args,
            "headers": dict(request.headers),
            "method": request.method,
            "path": request.url.path,
        },
    )


@pytest.fixture()
def sleeps() -> List[float]:
    return []


@pytest.fixture()
def make_client(sleeps: List[float]) -> Callable[..., ApiClient]:
    created: List[ApiClient] = []

    def factory(
        handler: Callable[[httpx.Request], httpx.Response] = echo,
        *,
        api_url: str = "https://api.example.com",
        api_key: str = "test",
        cache_store: Any = None,
        **config: Any,
    ) -> ApiClient:
        cfg = ClientConfig.create(api_url=api_url, api_key=api_key, **config)
        client = ApiClient(
            cfg,
            transport=httpx.MockTransport(handler),
            cache_store=cache_store,
            sleep=sleeps.append,
        )
        created.append(client)
        return client

    yield factory
    for client in created:
        client.close()


@pytest.fixture()
def cache_dir(tmp_path: Path) -> Path:
    path = tmp_path / "cache"
    path.mkdir()
    return path


@pytest.fixture()
def memory_store() -> MemoryStore:
    return MemoryStore()

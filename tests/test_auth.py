from __future__ import annotations

import httpx

from apiwrap import ClientConfig
from apiwrap.auth import apply_middleware, header_setter, inject_auth, persistent_header_middleware, redact_url


def query_config(**overrides) -> ClientConfig:
    values = dict(api_url="https://api.example.com", api_key="test", api_requires_query=True, api_param_name="api_key")
    values.update(overrides)
    return ClientConfig.create(**values)


def test_query_auth_added_to_caller_params() -> None:
    options = {"params": {"foo": "bar"}}

    result = inject_auth(query_config(), options)

    assert result["params"] == {"api_key": "test", "foo": "bar"}
    assert options == {"params": {"foo": "bar"}}


def test_query_auth_creates_params() -> None:
    assert inject_auth(query_config(), {}) == {"params": {"api_key": "test"}}


def test_caller_supplied_key_wins() -> None:
    result = inject_auth(query_config(), {"params": {"api_key": "mine"}})

    assert result["params"] == {"api_key": "mine"}


def test_query_auth_with_pair_list_keeps_repeats() -> None:
    result = inject_auth(query_config(), {"params": [("tag", "a"), ("tag", "b")]})

    assert result["params"] == [("tag", "a"), ("tag", "b"), ("api_key", "test")]


def test_header_mode_leaves_options_alone() -> None:
    config = ClientConfig.create("https://api.example.com", "test")

    assert inject_auth(config, {"params": {"foo": "bar"}}) == {"params": {"foo": "bar"}}


def test_middleware_applied_in_order() -> None:
    request = httpx.Request("GET", "https://api.example.com/", headers={"Accept": "*/*"})
    chain = persistent_header_middleware({"Accept": "application/json", "Client-ID": "abc"})
    chain.append(header_setter("Client-ID", "override"))

    result = apply_middleware(request, chain)

    assert result.headers["Accept"] == "application/json"
    assert result.headers["Client-ID"] == "override"


def test_redact_url_hides_query_key() -> None:
    url = httpx.URL("https://api.example.com/get", params={"foo": "bar", "api_key": "test"})

    redacted = redact_url(url, query_config())

    assert "test" not in redacted
    assert "foo=bar" in redacted


def test_redact_url_header_mode_unchanged() -> None:
    url = httpx.URL("https://api.example.com/get?api_key=visible")

    assert redact_url(url, ClientConfig.create("https://api.example.com", "test")) == str(url)

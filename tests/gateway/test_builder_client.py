"""Tests for builder header sources."""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest

from src.config.loader import ConfigLoader  # noqa: TCH001
from src.gateway.builder_client import (
    BUILDER_HEADER_NAMES,
    HttpBuilderHeaderSource,
    LocalBuilderHeaderSource,
    build_builder_source,
)
from src.gateway.builder_signer import BuilderSigner  # noqa: TCH001
from src.interfaces import BuilderHeaderSource
from gateway_testkit import make_response, mock_http_client

_HEADERS = {name: f"value-{i}" for i, name in enumerate(BUILDER_HEADER_NAMES)}
_SIGN_URL = "https://signer.test/sign"


def _http_source(client: AsyncMock) -> HttpBuilderHeaderSource:
    return HttpBuilderHeaderSource(sign_url=_SIGN_URL, timeout_seconds=1.0, client=client)


class TestLocalBuilderHeaderSource:
    @pytest.mark.asyncio()
    async def test_fetch(self, builder_signer: BuilderSigner) -> None:
        source = LocalBuilderHeaderSource(builder_signer)
        headers = await source.fetch("POST", "/order", "{}")
        assert headers == builder_signer.headers("POST", "/order", "{}")

    @pytest.mark.asyncio()
    async def test_fetch_failure_returns_none(self, builder_signer: BuilderSigner) -> None:
        source = LocalBuilderHeaderSource(builder_signer)
        assert await source.fetch("", "/order", "{}") is None

    def test_protocol(self, builder_signer: BuilderSigner) -> None:
        assert isinstance(LocalBuilderHeaderSource(builder_signer), BuilderHeaderSource)


class TestHttpBuilderHeaderSource:
    @pytest.mark.asyncio()
    async def test_fetch(self) -> None:
        client = mock_http_client(post=make_response(200, _HEADERS, url=_SIGN_URL))
        source = _http_source(client)

        assert await source.fetch("POST", "/order", '{"a":1}') == _HEADERS
        args, kwargs = client.post.call_args
        assert args[0] == _SIGN_URL
        assert kwargs["json"] == {"method": "POST", "path": "/order", "body": '{"a":1}'}
        assert kwargs["timeout"] is not None

    @pytest.mark.asyncio()
    async def test_network_error(self) -> None:
        client = mock_http_client()
        client.post = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        assert await _http_source(client).fetch("POST", "/order", "") is None

    @pytest.mark.asyncio()
    async def test_non_2xx(self) -> None:
        client = mock_http_client(post=make_response(500, {"error": "x"}, url=_SIGN_URL))
        assert await _http_source(client).fetch("POST", "/order", "") is None

    @pytest.mark.asyncio()
    async def test_non_json(self) -> None:
        client = mock_http_client(post=make_response(200, text="nope", url=_SIGN_URL))
        assert await _http_source(client).fetch("POST", "/order", "") is None

    @pytest.mark.asyncio()
    async def test_incomplete_headers(self) -> None:
        partial = dict(_HEADERS)
        partial["POLY_BUILDER_PASSPHRASE"] = ""
        client = mock_http_client(post=make_response(200, partial, url=_SIGN_URL))
        assert await _http_source(client).fetch("POST", "/order", "") is None

    @pytest.mark.asyncio()
    async def test_close(self) -> None:
        client = mock_http_client()
        source = _http_source(client)
        await source.close()
        client.aclose.assert_called_once()


class TestBuildBuilderSource:
    def test_local_by_default(self, config_loader: ConfigLoader, builder_signer: BuilderSigner) -> None:
        assert isinstance(build_builder_source(config_loader, builder_signer), LocalBuilderHeaderSource)

    def test_http_when_sign_url_set(self, config_loader: ConfigLoader, builder_signer: BuilderSigner) -> None:
        config_loader.config["builder"]["sign_url"] = _SIGN_URL
        source = build_builder_source(config_loader, builder_signer)
        assert isinstance(source, HttpBuilderHeaderSource)

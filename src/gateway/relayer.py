"""Allow-listed passthrough to the meta-transaction relayer.

Credentials (env vars):
    POLY_RELAYER_AUTH_TOKEN -- static authorization header for /submit
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from src.core.logging import get_logger
from src.core.redact import mask_secret
from src.gateway.errors import (
    ConfigurationError,
    NotFoundError,
    UnauthorizedError,
    UpstreamError,
)

if TYPE_CHECKING:
    from src.config.loader import ConfigLoader

log = get_logger(__name__)

ALLOWED_READ_PATHS = frozenset({
    "nonce",
    "relay-payload",
    "transaction",
    "transactions",
    "deployed",
})
_DEFAULT_RELAYER_URL = "https://relayer-v2.polymarket.com"


@dataclass(frozen=True)
class RelayerResponse:
    status_code: int
    content: bytes
    content_type: str


def resolve_read_path(subpath: str) -> str:
    """Return the single allow-listed segment or raise NotFoundError."""
    segments = subpath.split("/")
    if len(segments) != 1 or segments[0] not in ALLOWED_READ_PATHS:
        raise NotFoundError("Not found.")
    return segments[0]


class RelayerProxy:
    """Forwards relayer reads and submissions without exposing its errors."""

    def __init__(
        self,
        relayer_url: str = _DEFAULT_RELAYER_URL,
        auth_token: str | None = None,
        timeout_seconds: float = 10.0,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._relayer_url = relayer_url.rstrip("/")
        self._auth_token = auth_token
        self._timeout = httpx.Timeout(timeout_seconds)
        self._client = http_client

        if auth_token:
            log.info("relayer_proxy.init", url=self._relayer_url, auth_token=mask_secret(auth_token))

    @classmethod
    def from_config(cls, config: ConfigLoader) -> RelayerProxy:
        return cls(
            relayer_url=config.get("relayer.url", _DEFAULT_RELAYER_URL) or "",
            auth_token=os.environ.get("POLY_RELAYER_AUTH_TOKEN") or None,
            timeout_seconds=float(config.get("relayer.timeout_seconds", 10.0)),
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    def _base_url(self) -> str:
        if not self._relayer_url:
            raise ConfigurationError("Relayer not configured")
        return self._relayer_url

    async def get(self, subpath: str, query: str = "") -> RelayerResponse:
        """Forward a read-only query to one of the allow-listed endpoints."""
        endpoint = resolve_read_path(subpath)
        url = f"{self._base_url()}/{endpoint}"
        if query:
            url = f"{url}?{query}"

        client = await self._get_client()
        try:
            resp = await client.get(url)
        except httpx.HTTPError as exc:
            log.error("relayer_proxy.unreachable", endpoint=endpoint, error=type(exc).__name__)
            raise UpstreamError("Relayer error.") from exc
        return self._translate(resp, endpoint)

    async def submit(self, raw_body: bytes | str) -> RelayerResponse:
        """Forward a signed transaction with the static authorization token."""
        if not self._auth_token:
            raise ConfigurationError("Relayer not configured")
        url = f"{self._base_url()}/submit"

        client = await self._get_client()
        try:
            resp = await client.post(
                url,
                content=raw_body,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": self._auth_token,
                },
            )
        except httpx.HTTPError as exc:
            log.error("relayer_proxy.unreachable", endpoint="submit", error=type(exc).__name__)
            raise UpstreamError("Relayer error.") from exc
        return self._translate(resp, "submit")

    def _translate(self, resp: httpx.Response, endpoint: str) -> RelayerResponse:
        if resp.status_code in (401, 403):
            log.warning("relayer_proxy.unauthorized", endpoint=endpoint, status=resp.status_code)
            raise UnauthorizedError("Relayer unauthorized")
        if not resp.is_success:
            log.warning("relayer_proxy.upstream_error", endpoint=endpoint, status=resp.status_code)
            raise UpstreamError("Relayer error.", upstream_status=resp.status_code)
        return RelayerResponse(
            status_code=resp.status_code,
            content=resp.content,
            content_type=resp.headers.get("content-type", "application/json"),
        )

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

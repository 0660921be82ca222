"""Sources of builder headers for the order path.

Builder attribution is best effort: both sources return ``None`` instead of
raising when headers cannot be produced, and the gateway then forwards the
order without them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx

from src.core.logging import get_logger
from src.gateway.builder_signer import BuilderSigner, load_builder_credentials
from src.gateway.errors import GatewayError

if TYPE_CHECKING:
    from src.config.loader import ConfigLoader
    from src.interfaces import BuilderHeaderSource

log = get_logger(__name__)

BUILDER_HEADER_NAMES = (
    "POLY_BUILDER_SIGNATURE",
    "POLY_BUILDER_TIMESTAMP",
    "POLY_BUILDER_API_KEY",
    "POLY_BUILDER_PASSPHRASE",
)


def _complete_headers(data: Any) -> dict[str, str] | None:
    if not isinstance(data, dict):
        return None
    headers = {name: data.get(name) for name in BUILDER_HEADER_NAMES}
    if not all(isinstance(value, str) and value for value in headers.values()):
        return None
    return headers  # type: ignore[return-value]


class LocalBuilderHeaderSource:
    """Signs in-process with the service's builder credentials."""

    def __init__(self, signer: BuilderSigner) -> None:
        self._signer = signer

    async def fetch(self, method: str, path: str, body: str) -> dict[str, str] | None:
        try:
            return self._signer.headers(method, path, body)
        except GatewayError as exc:
            log.warning("builder_headers.local_failed", error=exc.message)
            return None


class HttpBuilderHeaderSource:
    """Calls the builder signing endpoint with an explicit timeout."""

    def __init__(
        self,
        sign_url: str,
        timeout_seconds: float = 3.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._sign_url = sign_url
        self._timeout = httpx.Timeout(timeout_seconds)
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def fetch(self, method: str, path: str, body: str) -> dict[str, str] | None:
        client = await self._get_client()
        try:
            resp = await client.post(
                self._sign_url,
                json={"method": method, "path": path, "body": body},
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            log.warning("builder_headers.unreachable", error=type(exc).__name__)
            return None

        if not resp.is_success:
            log.warning("builder_headers.rejected", status=resp.status_code)
            return None

        try:
            data = resp.json()
        except ValueError:
            log.warning("builder_headers.invalid_body", status=resp.status_code)
            return None

        headers = _complete_headers(data)
        if headers is None:
            log.warning("builder_headers.incomplete")
        return headers

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


def build_builder_source(
    config: ConfigLoader,
    signer: BuilderSigner | None = None,
) -> BuilderHeaderSource:
    """Pick the HTTP source when ``builder.sign_url`` is set, else sign locally."""
    sign_url = config.get("builder.sign_url", "")
    if sign_url:
        return HttpBuilderHeaderSource(
            sign_url=sign_url,
            timeout_seconds=float(config.get("builder.sign_timeout_seconds", 3.0)),
        )
    return LocalBuilderHeaderSource(signer or BuilderSigner(load_builder_credentials()))

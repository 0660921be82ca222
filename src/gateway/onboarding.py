"""Session onboarding: exchange wallet-signed L1 headers for L2 credentials."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

import httpx

from src.core.logging import get_logger
from src.core.redact import redact_signature
from src.gateway.errors import MalformedRequestError, UpstreamError
from src.gateway.session_store import is_session_expired
from src.models.session import L2Credentials

if TYPE_CHECKING:
    from src.config.loader import ConfigLoader
    from src.gateway.session_store import SessionManager
    from src.models.session import Session

log = get_logger(__name__)

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_L1_SIGNATURE_RE = re.compile(r"^0x[0-9a-fA-F]{130}$")
_DIGITS_RE = re.compile(r"^\d+$")
_DEFAULT_CLOB_URL = "https://clob.polymarket.com"


def _pick(payload: dict[str, Any], header_key: str, plain_key: str, allow_int: bool = False) -> str | None:
    for key in (header_key, plain_key):
        value = payload.get(key)
        if isinstance(value, str):
            return value
        if allow_int and isinstance(value, int) and not isinstance(value, bool):
            return str(value)
    return None


def parse_l1_headers(payload: Any) -> dict[str, str] | None:
    """Extract and validate L1 auth values; None when anything is off."""
    if not isinstance(payload, dict):
        return None
    address = _pick(payload, "POLY_ADDRESS", "address")
    signature = _pick(payload, "POLY_SIGNATURE", "signature")
    timestamp = _pick(payload, "POLY_TIMESTAMP", "timestamp", allow_int=True)
    nonce = _pick(payload, "POLY_NONCE", "nonce", allow_int=True)
    if not address or not signature or not timestamp or not nonce:
        return None
    if not _ADDRESS_RE.match(address) or not _L1_SIGNATURE_RE.match(signature):
        return None
    if not _DIGITS_RE.match(timestamp) or not _DIGITS_RE.match(nonce):
        return None
    return {
        "POLY_ADDRESS": address,
        "POLY_SIGNATURE": signature,
        "POLY_TIMESTAMP": timestamp,
        "POLY_NONCE": nonce,
    }


class SessionOnboarding:
    """Derives (or creates) the wallet's venue API key and links the session."""

    def __init__(
        self,
        sessions: SessionManager,
        clob_url: str = _DEFAULT_CLOB_URL,
        timeout_seconds: float = 12.0,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._sessions = sessions
        self._clob_url = clob_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout_seconds)
        self._client = http_client

    @classmethod
    def from_config(cls, config: ConfigLoader, sessions: SessionManager) -> SessionOnboarding:
        return cls(
            sessions=sessions,
            clob_url=config.get("clob.url", _DEFAULT_CLOB_URL),
            timeout_seconds=float(config.get("clob.timeout_seconds", 12.0)),
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(base_url=self._clob_url, timeout=self._timeout)
        return self._client

    async def _request_creds(self, method: str, path: str, headers: dict[str, str]) -> L2Credentials | None:
        client = await self._get_client()
        try:
            resp = await client.request(method, path, headers=headers)
        except httpx.HTTPError as exc:
            log.warning("onboarding.unreachable", path=path, error=type(exc).__name__)
            return None
        if not resp.is_success:
            log.info("onboarding.rejected", path=path, status=resp.status_code)
            return None
        try:
            data = resp.json()
        except ValueError:
            return None
        if not isinstance(data, dict):
            return None
        api_key, secret, passphrase = data.get("apiKey"), data.get("secret"), data.get("passphrase")
        if not (api_key and secret and passphrase):
            return None
        return L2Credentials(api_key=api_key, secret=secret, passphrase=passphrase)

    async def initialize(self, session: Session, payload: Any) -> Session:
        """Link ``session`` to the wallet that signed the L1 headers.

        Raises:
            MalformedRequestError: The L1 payload is missing or invalid.
            UpstreamError: The venue would neither derive nor create a key.
        """
        l1_headers = parse_l1_headers(payload)
        if l1_headers is None:
            raise MalformedRequestError("Invalid auth payload.")
        address = l1_headers["POLY_ADDRESS"].lower()

        if session.is_linked and session.wallet_address != address:
            log.info("onboarding.wallet_switch")
            await self._sessions.destroy(session)
        expired = is_session_expired(session)
        if session.is_linked and not expired:
            return session
        if expired:
            await self._sessions.destroy(session)

        log.info(
            "onboarding.start",
            wallet_address=address,
            signature=redact_signature(l1_headers["POLY_SIGNATURE"]),
        )
        creds = await self._request_creds("GET", "/auth/derive-api-key", l1_headers)
        if creds is None:
            creds = await self._request_creds("POST", "/auth/api-key", l1_headers)
        if creds is None:
            raise UpstreamError("Unable to initialize session.")

        return await self._sessions.link(session, address, creds)

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

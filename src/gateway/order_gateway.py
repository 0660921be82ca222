"""Order submission gateway.

Validates a client order, composes L2 and builder headers for the exact
outbound body, forwards it once to the venue's ``/order`` endpoint and
translates the answer into a stable client-facing result.

There are no retries here: a blind retry of an order placement risks a
duplicate fill, so retry policy belongs to the caller.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from src.core.logging import get_logger, log_order_event
from src.core.redact import redact_api_key, redact_signature
from src.gateway.errors import MalformedRequestError, UnauthorizedError, UpstreamError
from src.gateway.l2_headers import build_l2_headers
from src.models.order import NormalizedOrderRequest, validate_order_request
from src.models.session import SessionState

if TYPE_CHECKING:
    from src.config.loader import ConfigLoader
    from src.interfaces import BuilderHeaderSource, SessionResolver
    from src.models.session import L2Credentials, Session

logger = get_logger(__name__)

ORDER_PATH = "/order"
_DEFAULT_CLOB_URL = "https://clob.polymarket.com"
_BASE_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json,text/plain,*/*",
    "Cache-Control": "no-cache",
}


@dataclass(frozen=True)
class OrderResult:
    """A forwarded order answer: the venue's bytes plus their parsed form."""

    content: bytes
    data: Any


def _looks_like_html(content_type: str, text: str) -> bool:
    return "text/html" in content_type or "<html" in text[:512].lower()


class OrderGateway:
    """Orchestrates authenticated order submission to the venue."""

    def __init__(
        self,
        sessions: SessionResolver,
        builder_source: BuilderHeaderSource | None,
        clob_url: str = _DEFAULT_CLOB_URL,
        timeout_seconds: float = 12.0,
        sell_enabled: bool = True,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._sessions = sessions
        self._builder_source = builder_source
        self._clob_url = clob_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout_seconds)
        self._sell_enabled = sell_enabled
        self._client = http_client

    @classmethod
    def from_config(
        cls,
        config: ConfigLoader,
        sessions: SessionResolver,
        builder_source: BuilderHeaderSource | None,
    ) -> OrderGateway:
        return cls(
            sessions=sessions,
            builder_source=builder_source,
            clob_url=config.get("clob.url", _DEFAULT_CLOB_URL),
            timeout_seconds=float(config.get("clob.timeout_seconds", 12.0)),
            sell_enabled=bool(config.get("orders.sell_enabled", True)),
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(base_url=self._clob_url, timeout=self._timeout)
        return self._client

    async def _require_linked(self, session: Session) -> L2Credentials:
        state = session.state()
        if state is SessionState.EXPIRED:
            await self._sessions.destroy(session)
        if state is not SessionState.LINKED or session.l2 is None:
            raise UnauthorizedError("Session not initialized.")
        return session.l2

    def _validate(self, raw_body: str | bytes) -> NormalizedOrderRequest:
        try:
            payload = json.loads(raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.info("order_gateway.malformed_json", error=str(exc)[:100])
            raise MalformedRequestError(
                "Invalid request", details={"message": "Malformed JSON"},
            ) from exc

        result = validate_order_request(payload, sell_enabled=self._sell_enabled)
        if not result.ok or result.request is None:
            logger.info("order_gateway.invalid_payload", error=result.error, code=result.code)
            raise MalformedRequestError(result.error, code=result.code, details=result.details())
        return result.request

    async def _compose_headers(self, session: Session, body: str) -> dict[str, str]:
        headers = dict(_BASE_HEADERS)
        headers.update(build_l2_headers(session, "POST", ORDER_PATH, body))

        builder_headers = None
        if self._builder_source is not None:
            builder_headers = await self._builder_source.fetch("POST", ORDER_PATH, body)
        if builder_headers is None:
            logger.warning("order_gateway.builder_headers_unavailable")
        else:
            headers.update(builder_headers)
        return headers

    async def submit(self, session: Session, raw_body: str | bytes) -> OrderResult:
        """Validate, sign and forward an order; return the venue's JSON body.

        Raises:
            UnauthorizedError: No linked session, expired session, or the
                venue rejected the credentials (401/403).
            MalformedRequestError: The payload failed validation.
            UpstreamError: Network failure, non-2xx or non-JSON answer.
        """
        l2 = await self._require_linked(session)
        request = self._validate(raw_body)

        venue_payload = request.to_venue_payload(owner=l2.api_key)
        body = json.dumps(venue_payload, separators=(",", ":"))
        order_ref = redact_signature(request.order.signature)
        log_order_event(
            "submit", order_ref,
            order_type=request.execution.value,
            side=request.side,
            token_id=request.token_id[:8],
            owner=redact_api_key(l2.api_key),
        )

        headers = await self._compose_headers(session, body)
        client = await self._get_client()
        try:
            resp = await client.post(ORDER_PATH, content=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("order_gateway.upstream_unreachable", error=type(exc).__name__)
            log_order_event("upstream_error", order_ref, reason="unreachable")
            raise UpstreamError("CLOB unreachable") from exc

        return self._translate(resp, order_ref)

    def _translate(self, resp: httpx.Response, order_ref: str) -> OrderResult:
        status = resp.status_code
        if status in (401, 403):
            logger.warning("order_gateway.upstream_unauthorized", status=status)
            log_order_event("rejected", order_ref, status=status)
            raise UnauthorizedError("CLOB rejected credentials.")

        content_type = resp.headers.get("content-type", "")
        text = resp.text
        if not resp.is_success:
            logger.error(
                "order_gateway.upstream_error",
                status=status,
                content_type=content_type,
                cf_ray=resp.headers.get("cf-ray"),
            )
            log_order_event("upstream_error", order_ref, status=status)
            raise UpstreamError("CLOB error", upstream_status=status)

        if _looks_like_html(content_type, text):
            logger.error("order_gateway.upstream_html", status=status, cf_ray=resp.headers.get("cf-ray"))
            raise UpstreamError("CLOB error", upstream_status=status)

        content = resp.content
        if not text:
            data: Any = None
            content = b"null"
        else:
            try:
                data = resp.json()
            except ValueError as exc:
                logger.error("order_gateway.upstream_non_json", status=status)
                raise UpstreamError("CLOB error", upstream_status=status) from exc

        log_order_event(
            "forwarded", order_ref,
            status=status,
            success=data.get("success") if isinstance(data, dict) else None,
        )
        return OrderResult(content=content, data=data)

    async def diagnose(self, session: Session, raw_body: str | bytes) -> dict[str, Any]:
        """Dry run: report the outbound payload shape without calling the venue."""
        l2 = await self._require_linked(session)
        request = self._validate(raw_body)

        venue_payload = request.to_venue_payload(owner=l2.api_key)
        order = venue_payload["order"]
        header_names = ["POLY_ADDRESS", "POLY_SIGNATURE", "POLY_TIMESTAMP", "POLY_API_KEY", "POLY_PASSPHRASE"]
        if self._builder_source is not None:
            header_names += [
                "POLY_BUILDER_SIGNATURE",
                "POLY_BUILDER_TIMESTAMP",
                "POLY_BUILDER_API_KEY",
                "POLY_BUILDER_PASSPHRASE",
            ]
        return {
            "ok": True,
            "topLevelKeys": list(venue_payload),
            "orderKeys": list(order),
            "orderKeyTypes": {key: type(value).__name__ for key, value in order.items()},
            "owner": redact_api_key(l2.api_key),
            "signature": redact_signature(order["signature"]),
            "headers": header_names,
        }

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

"""Order submission payload: schema, normalization and validation.

``validate_order_request`` is the only way a client payload becomes a
``NormalizedOrderRequest``. Side encoding is normalized inside the same
step, so downstream code only ever sees the canonical numeric form.
"""

from __future__ import annotations

import re
import time
from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

MAX_SAFE_INTEGER = 2**53 - 1
GTD_MIN_LEAD_SECONDS = 60

_NUMERIC_RE = re.compile(r"^\d+$")
_SIGNATURE_RE = re.compile(r"^0x[0-9a-fA-F]{130}$")


class OrderSide(IntEnum):
    BUY = 0
    SELL = 1


class ExecutionType(str, Enum):
    FOK = "FOK"
    FAK = "FAK"
    GTC = "GTC"
    GTD = "GTD"

    @property
    def allows_post_only(self) -> bool:
        return self in (ExecutionType.GTC, ExecutionType.GTD)


class TradeMode(str, Enum):
    MARKET = "market"
    LIMIT = "limit"


class SignedOrder(BaseModel):
    """The wallet-signed order, in the exact field order the venue expects."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    salt: int
    maker: str
    signer: str
    taker: str
    token_id: str
    maker_amount: str
    taker_amount: str
    expiration: str
    nonce: str
    fee_rate_bps: str
    side: int
    signature_type: int
    signature: str


class NormalizedOrderRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    order: SignedOrder
    execution: ExecutionType
    side: int
    token_id: str
    signature_type: int
    trade_mode: TradeMode | None = None
    funder_address: str | None = None
    post_only: bool | None = None

    def to_venue_payload(self, owner: str) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "order": self.order.model_dump(by_alias=True),
            "owner": owner,
            "orderType": self.execution.value,
        }
        if self.post_only:
            payload["postOnly"] = True
        return payload


class OrderValidation(BaseModel):
    """Tagged validation result: either ``request`` or ``errors`` is set."""

    ok: bool
    request: NormalizedOrderRequest | None = None
    error: str = ""
    code: str | None = None
    missing: list[str] = []
    errors: list[str] = []

    @classmethod
    def success(cls, request: NormalizedOrderRequest) -> OrderValidation:
        return cls(ok=True, request=request)

    @classmethod
    def failure(
        cls,
        error: str = "Invalid request",
        *,
        missing: list[str] | None = None,
        errors: list[str] | None = None,
        code: str | None = None,
    ) -> OrderValidation:
        return cls(ok=False, error=error, missing=missing or [], errors=errors or [], code=code)

    def details(self) -> dict[str, Any] | None:
        if self.missing:
            return {"missing": self.missing}
        if self.errors:
            return {"formErrors": self.errors}
        return None


class _FieldError(ValueError):
    pass


def parse_side(value: Any) -> OrderSide | None:
    """Map 0/1, "0"/"1" and BUY/SELL (any case) to an OrderSide."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return OrderSide(value) if value in (0, 1) else None
    if isinstance(value, str):
        normalized = value.strip().upper()
        if normalized in ("0", "BUY"):
            return OrderSide.BUY
        if normalized in ("1", "SELL"):
            return OrderSide.SELL
    return None


def _numeric_string(value: Any, label: str) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        if value < 0:
            raise _FieldError(f"{label} must be a numeric string.")
        return str(value)
    if isinstance(value, str) and _NUMERIC_RE.match(value):
        return value
    raise _FieldError(f"{label} must be a numeric string.")


def _positive_amount(value: Any, label: str) -> str:
    numeric = _numeric_string(value, label)
    if int(numeric) <= 0:
        raise _FieldError(f"{label} must be greater than zero.")
    return numeric


def _non_empty_string(value: Any, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise _FieldError(f"{label} must be a non-empty string.")
    return value


def _small_int(value: Any, label: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and _NUMERIC_RE.match(value):
        return int(value)
    raise _FieldError(f"{label} must be an integer.")


def _salt(value: Any) -> int:
    parsed = int(_numeric_string(value, "order.salt"))
    if parsed > MAX_SAFE_INTEGER:
        raise _FieldError("order.salt must be a safe integer.")
    return parsed


def _expiration(value: Any, execution: ExecutionType, now: float) -> str:
    expiration = _numeric_string(value, "order.expiration")
    if execution is ExecutionType.GTD:
        if int(expiration) <= int(now) + GTD_MIN_LEAD_SECONDS:
            raise _FieldError("order.expiration must be at least 60 seconds in the future.")
    elif expiration != "0":
        raise _FieldError('order.expiration must be "0" for non-GTD orders.')
    return expiration


def validate_order_request(
    payload: Any,
    *,
    sell_enabled: bool = True,
    now: float | None = None,
) -> OrderValidation:
    """Validate and normalize a client order payload.

    Args:
        payload: Decoded JSON body from the client.
        sell_enabled: When False, SELL orders are refused with SELL_DISABLED.
        now: Unix time used for GTD expiration checks (defaults to now).

    Returns:
        OrderValidation carrying either the normalized request or the errors.
    """
    if not isinstance(payload, dict):
        return OrderValidation.failure(errors=["payload must be an object."])
    if "owner" in payload:
        return OrderValidation.failure("Owner must not be provided by client.")

    order_raw = payload.get("order")
    order_in: dict[str, Any] = order_raw if isinstance(order_raw, dict) else {}
    missing: list[str] = []
    if not isinstance(order_raw, dict):
        missing.append("order")
    if not order_in.get("signature"):
        missing.append("order.signature")
    if order_in.get("signatureType") is None:
        missing.append("order.signatureType")
    token_raw = order_in.get("tokenId", order_in.get("tokenID"))
    if token_raw is None:
        missing.append("order.tokenId")
    if order_in.get("side") is None:
        missing.append("order.side")
    if missing:
        return OrderValidation.failure(missing=missing)

    order_side = parse_side(order_in.get("side"))
    if order_side is None:
        return OrderValidation.failure(errors=['order.side must be 0, 1, "BUY" or "SELL".'])
    outer_raw = payload.get("side")
    if outer_raw is not None:
        outer_side = parse_side(outer_raw)
        if outer_side is None:
            return OrderValidation.failure(errors=['side must be 0, 1, "BUY" or "SELL".'])
        if outer_side is not order_side:
            return OrderValidation.failure(errors=["side does not match order.side."])
    if order_side is OrderSide.SELL and not sell_enabled:
        return OrderValidation.failure(
            "Sell is disabled on this platform.", code="SELL_DISABLED",
        )

    execution_raw = str(payload.get("orderType") or payload.get("execution") or "FOK").upper()
    try:
        execution = ExecutionType(execution_raw)
    except ValueError:
        return OrderValidation.failure(errors=["orderType must be FOK, FAK, GTC, or GTD."])

    trade_mode: TradeMode | None = None
    if payload.get("tradeMode") is not None:
        try:
            trade_mode = TradeMode(str(payload["tradeMode"]).lower())
        except ValueError:
            return OrderValidation.failure(errors=["tradeMode must be market or limit."])

    current = now if now is not None else time.time()
    try:
        signature = _non_empty_string(order_in.get("signature"), "order.signature")
        if not _SIGNATURE_RE.match(signature):
            raise _FieldError("order.signature must be a 0x-prefixed 65-byte hex string.")
        order = SignedOrder(
            salt=_salt(order_in.get("salt")),
            maker=_non_empty_string(order_in.get("maker"), "order.maker"),
            signer=_non_empty_string(order_in.get("signer"), "order.signer"),
            taker=_non_empty_string(order_in.get("taker"), "order.taker"),
            token_id=_numeric_string(token_raw, "order.tokenId"),
            maker_amount=_positive_amount(order_in.get("makerAmount"), "order.makerAmount"),
            taker_amount=_positive_amount(order_in.get("takerAmount"), "order.takerAmount"),
            expiration=_expiration(order_in.get("expiration"), execution, current),
            nonce=_numeric_string(order_in.get("nonce"), "order.nonce"),
            fee_rate_bps=_numeric_string(order_in.get("feeRateBps"), "order.feeRateBps"),
            side=int(order_side),
            signature_type=_small_int(order_in.get("signatureType"), "order.signatureType"),
            signature=signature,
        )
        outer_signature_type = payload.get("signatureType")
        if outer_signature_type is not None and (
            _small_int(outer_signature_type, "signatureType") != order.signature_type
        ):
            return OrderValidation.failure("Signature type mismatch.")
        outer_token = payload.get("tokenId")
        if outer_token is not None and _numeric_string(outer_token, "tokenId") != order.token_id:
            return OrderValidation.failure(errors=["tokenId does not match order.tokenId."])
    except _FieldError as exc:
        return OrderValidation.failure(errors=[str(exc)])

    funder = payload.get("funderAddress")
    if funder:
        if not isinstance(funder, str) or funder.lower() != order.maker.lower():
            return OrderValidation.failure("Funder address mismatch.")

    post_only_raw = payload.get("postOnly")
    post_only = (
        post_only_raw
        if isinstance(post_only_raw, bool) and execution.allows_post_only
        else None
    )

    return OrderValidation.success(
        NormalizedOrderRequest(
            order=order,
            execution=execution,
            side=int(order_side),
            token_id=order.token_id,
            signature_type=order.signature_type,
            trade_mode=trade_mode,
            funder_address=funder or None,
            post_only=post_only,
        ),
    )

"""Per-user L2 authentication headers for the venue."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from src.gateway.builder_signer import hmac_signature
from src.gateway.errors import UnauthorizedError

if TYPE_CHECKING:
    from src.models.session import Session


def build_l2_headers(
    session: Session,
    method: str,
    request_path: str,
    body: str = "",
    timestamp: int | None = None,
) -> dict[str, str]:
    """Sign a venue request with the session's L2 credentials.

    ``request_path`` must match the exact upstream path including any query
    string. Callers gate on session state first; an unlinked session here is
    a programming error surfaced as UnauthorizedError.
    """
    if session.l2 is None or not session.wallet_address:
        raise UnauthorizedError("Session not initialized.")

    ts = timestamp if timestamp is not None else int(time.time())
    signature = hmac_signature(session.l2.secret, ts, method.upper(), request_path, body)
    return {
        "POLY_ADDRESS": session.wallet_address,
        "POLY_SIGNATURE": signature,
        "POLY_TIMESTAMP": str(ts),
        "POLY_API_KEY": session.l2.api_key,
        "POLY_PASSPHRASE": session.l2.passphrase,
    }

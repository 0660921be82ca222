"""Reserved-prefix header guard.

``POLY_*`` headers are produced exclusively by the gateway. Their presence on
an inbound request means a client is trying to smuggle credentials (or is
replaying leaked internal headers), so the request is rejected outright.
"""

from __future__ import annotations

from collections.abc import Iterable

from fastapi import Request

from src.core.logging import get_logger
from src.gateway.errors import MalformedRequestError

logger = get_logger(__name__)

RESERVED_PREFIX = "poly_"


def has_reserved_header(header_names: Iterable[str]) -> bool:
    """Return True if any header name starts with the reserved prefix."""
    return any(name.lower().startswith(RESERVED_PREFIX) for name in header_names)


def ensure_no_reserved_headers(header_names: Iterable[str]) -> None:
    """Raise MalformedRequestError when a reserved-prefix header is present."""
    names = list(header_names)
    if has_reserved_header(names):
        logger.warning(
            "header_guard.rejected",
            reserved=[n for n in names if n.lower().startswith(RESERVED_PREFIX)],
        )
        raise MalformedRequestError("Unexpected auth headers.")


async def reject_reserved_headers(request: Request) -> None:
    """FastAPI dependency applying the guard to an endpoint."""
    ensure_no_reserved_headers(request.headers.keys())

"""Gateway error taxonomy.

Every error carries the HTTP status it maps to and a short, fixed message.
Upstream bodies and credential values never end up in these messages.
"""

from __future__ import annotations

from typing import Any


class GatewayError(Exception):
    """Base class for errors returned to the client as ``{ok: false, error}``."""

    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"ok": False, "error": self.message}
        if self.code:
            body["code"] = self.code
        if self.details:
            body["details"] = self.details
        return body


class UnauthorizedError(GatewayError):
    """No session, expired session, or upstream rejected the credentials."""

    status_code = 401


class MalformedRequestError(GatewayError):
    """Payload failed shape or normalization validation."""

    status_code = 400


class NotFoundError(GatewayError):
    status_code = 404


class ConfigurationError(GatewayError):
    """A secret or host needed by this path is not configured."""

    status_code = 500


class UpstreamError(GatewayError):
    """Network failure or non-2xx answer from the venue, relayer or signer."""

    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        upstream_status: int | None = None,
        code: str | None = None,
    ) -> None:
        details = {"status": upstream_status} if upstream_status is not None else None
        super().__init__(message, code=code, details=details)
        self.upstream_status = upstream_status

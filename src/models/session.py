"""Trading session and credential models."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


class SessionState(str, Enum):
    UNAUTHENTICATED = "UNAUTHENTICATED"
    LINKED = "LINKED"
    EXPIRED = "EXPIRED"
    DESTROYED = "DESTROYED"


class L2Credentials(BaseModel):
    """Venue-issued API key triple bound to one wallet."""

    api_key: str
    secret: str
    passphrase: str

    model_config = {"frozen": True}


class Session(BaseModel):
    """Server-held trading session for one browser.

    Addressed only through the signed cookie token; ``l2`` never leaves
    the server.
    """

    session_id: str
    wallet_address: str | None = None
    l2: L2Credentials | None = None
    expires_at: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    destroyed: bool = False

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        current = now or datetime.now(tz=UTC)
        return current >= self.expires_at

    def state(self, now: datetime | None = None) -> SessionState:
        if self.destroyed:
            return SessionState.DESTROYED
        if self.is_expired(now):
            return SessionState.EXPIRED
        if not self.is_linked:
            return SessionState.UNAUTHENTICATED
        return SessionState.LINKED

    @property
    def is_linked(self) -> bool:
        return self.l2 is not None and bool(self.wallet_address)


class SessionStatus(BaseModel):
    ok: bool
    expired: bool
    address_matches: bool
    wallet_address: str | None = None

    def to_body(self) -> dict[str, object]:
        return {
            "ok": self.ok,
            "expired": self.expired,
            "addressMatches": self.address_matches,
            "walletAddress": self.wallet_address,
        }

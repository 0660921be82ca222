"""Server-held trading sessions addressed by a signed cookie token.

The cookie carries only an itsdangerous-signed session id. Session records
(wallet address, L2 snapshot, expiry) live in a ``SessionStore`` backend:
in-process memory for single-worker deployments and tests, Redis otherwise.

Expiry is detected lazily: every credential-bearing read must call
``is_session_expired`` and destroy the session when it returns True.
"""

from __future__ import annotations

import json
import os
import secrets
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import redis.asyncio as redis
from itsdangerous import BadSignature, TimestampSigner
from pydantic import ValidationError

from src.config.loader import ConfigError
from src.core.logging import get_logger
from src.core.redact import mask_secret
from src.models.session import L2Credentials, Session, SessionState, SessionStatus

if TYPE_CHECKING:
    from src.config.loader import ConfigLoader
    from src.interfaces import SessionStore

log = get_logger(__name__)

DEFAULT_TTL_SECONDS = 12 * 60 * 60
DEFAULT_COOKIE_NAME = "gateway_session"
KEY_PREFIX = "gateway:session:"
_MIN_SECRET_LENGTH = 32


def is_session_expired(session: Session, now: datetime | None = None) -> bool:
    """Pure expiry check on ``expires_at``; a session without one never expires."""
    return session.is_expired(now)


class InMemorySessionStore:
    """Dict-backed session store. Implements the SessionStore protocol."""

    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}

    async def get(self, session_id: str) -> dict[str, Any] | None:
        record = self._records.get(session_id)
        return dict(record) if record is not None else None

    async def set(self, session_id: str, record: dict[str, Any], ttl: int | None = None) -> None:
        self._records[session_id] = dict(record)

    async def delete(self, session_id: str) -> None:
        self._records.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._records)


class RedisSessionStore:
    """Async Redis session store with JSON serialization and key prefixing.

    Implements the SessionStore protocol from src.interfaces.
    Reads URL from REDIS_URL env var.
    """

    def __init__(
        self,
        url: str | None = None,
        prefix: str = KEY_PREFIX,
        default_ttl: int = DEFAULT_TTL_SECONDS,
        socket_timeout: float = 5.0,
        socket_connect_timeout: float = 5.0,
    ) -> None:
        self._url = url or os.environ.get("REDIS_URL", "redis://localhost:6379/0")
        self._prefix = prefix
        self._default_ttl = default_ttl
        self._socket_timeout = socket_timeout
        self._socket_connect_timeout = socket_connect_timeout
        self._redis: redis.Redis | None = None

    def _key(self, session_id: str) -> str:
        return f"{self._prefix}{session_id}"

    async def _get_redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(  # type: ignore[no-untyped-call]
                self._url,
                decode_responses=True,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_connect_timeout,
            )
        return self._redis

    async def get(self, session_id: str) -> dict[str, Any] | None:
        r = await self._get_redis()
        raw = await r.get(self._key(session_id))
        if raw is None:
            return None
        try:
            record = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            log.warning("redis_session_store.corrupt_record", session_id=mask_secret(session_id))
            return None
        return record if isinstance(record, dict) else None

    async def set(self, session_id: str, record: dict[str, Any], ttl: int | None = None) -> None:
        r = await self._get_redis()
        effective_ttl = ttl if ttl is not None else self._default_ttl
        await r.set(self._key(session_id), json.dumps(record, default=str), ex=effective_ttl)

    async def delete(self, session_id: str) -> None:
        r = await self._get_redis()
        await r.delete(self._key(session_id))

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


class SessionManager:
    """Resolves, links, reports on and destroys trading sessions.

    Implements the SessionResolver protocol used by the gateway.
    """

    def __init__(
        self,
        store: SessionStore,
        secret: str,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        cookie_name: str = DEFAULT_COOKIE_NAME,
        secure_cookie: bool = True,
    ) -> None:
        if not secret or len(secret) < _MIN_SECRET_LENGTH:
            msg = "Missing or weak GATEWAY_SESSION_SECRET."
            raise ConfigError(msg)
        self._store = store
        self._ttl_seconds = ttl_seconds
        self._signer = TimestampSigner(secret, salt="gateway-session")
        self.cookie_name = cookie_name
        self.secure_cookie = secure_cookie

    @classmethod
    def from_config(cls, config: ConfigLoader, store: SessionStore) -> SessionManager:
        """Build from config; the signing secret comes from GATEWAY_SESSION_SECRET."""
        return cls(
            store=store,
            secret=os.environ.get("GATEWAY_SESSION_SECRET", ""),
            ttl_seconds=int(config.get("session.ttl_seconds", DEFAULT_TTL_SECONDS)),
            cookie_name=config.get("session.cookie_name", DEFAULT_COOKIE_NAME),
            secure_cookie=bool(config.get("session.secure_cookie", True)),
        )

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def issue_token(self, session: Session) -> str:
        return self._signer.sign(session.session_id).decode("utf-8")

    def _unsign(self, token: str) -> str | None:
        try:
            return self._signer.unsign(token, max_age=self._ttl_seconds).decode("utf-8")
        except BadSignature:
            log.info("session.bad_token")
            return None

    async def resolve(self, token: str | None) -> Session:
        """Resolve a cookie token, synthesizing an empty session when needed."""
        session_id = self._unsign(token) if token else None
        if session_id is not None:
            record = await self._store.get(session_id)
            if record is not None:
                try:
                    return Session.model_validate(record)
                except ValidationError:
                    log.warning("session.invalid_record", session_id=mask_secret(session_id))
        return Session(session_id=secrets.token_urlsafe(32))

    async def save(self, session: Session) -> None:
        await self._store.set(
            session.session_id,
            session.model_dump(mode="json"),
            ttl=self._ttl_seconds,
        )

    async def link(
        self,
        session: Session,
        wallet_address: str,
        l2: L2Credentials,
        now: datetime | None = None,
    ) -> Session:
        """Attach venue credentials to the session (UNAUTHENTICATED -> LINKED)."""
        current = now or datetime.now(tz=UTC)
        session.wallet_address = wallet_address.lower()
        session.l2 = l2
        session.expires_at = current + timedelta(seconds=self._ttl_seconds)
        session.destroyed = False
        await self.save(session)
        log.info(
            "session.linked",
            wallet_address=session.wallet_address,
            api_key=mask_secret(l2.api_key),
            expires_at=session.expires_at.isoformat(),
        )
        return session

    async def destroy(self, session: Session) -> None:
        """Clear the session and retire its id. Safe to call any number of times.

        A fresh id means tokens issued before the destroy can never resolve
        to whatever this session is linked to next.
        """
        await self._store.delete(session.session_id)
        if not session.destroyed:
            log.info("session.destroyed", wallet_address=session.wallet_address)
        session.session_id = secrets.token_urlsafe(32)
        session.l2 = None
        session.wallet_address = None
        session.expires_at = None
        session.destroyed = True

    async def status(
        self,
        session: Session,
        address: str | None = None,
        now: datetime | None = None,
    ) -> SessionStatus:
        """Report whether the session can trade for ``address``."""
        state = session.state(now)
        expired = state is SessionState.EXPIRED
        if expired:
            await self.destroy(session)
        if address and session.wallet_address:
            address_matches = address.lower() == session.wallet_address.lower()
        else:
            address_matches = True
        ok = state is SessionState.LINKED and address_matches
        return SessionStatus(
            ok=ok,
            expired=expired,
            address_matches=address_matches,
            wallet_address=session.wallet_address,
        )

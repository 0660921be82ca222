"""Tests for session stores and SessionManager."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from src.config.loader import ConfigError, ConfigLoader
from src.gateway.session_store import (
    KEY_PREFIX,
    InMemorySessionStore,
    RedisSessionStore,
    SessionManager,
    is_session_expired,
)
from src.interfaces import SessionResolver, SessionStore
from src.models.session import L2Credentials, Session
from gateway_testkit import SESSION_SECRET, WALLET


@pytest.fixture()
def mock_redis() -> AsyncMock:
    r = AsyncMock()
    r.get = AsyncMock(return_value=None)
    r.set = AsyncMock()
    r.delete = AsyncMock()
    r.aclose = AsyncMock()
    return r


@pytest.fixture()
def redis_store(mock_redis: AsyncMock) -> RedisSessionStore:
    store = RedisSessionStore(url="redis://localhost:6379/0")
    store._redis = mock_redis
    return store


class TestIsSessionExpired:
    def test_missing_expiry(self) -> None:
        assert is_session_expired(Session(session_id="s")) is False

    def test_past_expiry(self, expired_session: Session) -> None:
        assert is_session_expired(expired_session) is True

    def test_explicit_now(self, linked_session: Session) -> None:
        assert linked_session.expires_at is not None
        assert is_session_expired(linked_session, linked_session.expires_at) is True


class TestInMemorySessionStore:
    @pytest.mark.asyncio()
    async def test_set_get_delete(self) -> None:
        store = InMemorySessionStore()
        await store.set("a", {"session_id": "a"})
        assert await store.get("a") == {"session_id": "a"}
        assert len(store) == 1
        await store.delete("a")
        assert await store.get("a") is None
        await store.delete("a")

    @pytest.mark.asyncio()
    async def test_returns_copies(self) -> None:
        store = InMemorySessionStore()
        record = {"session_id": "a"}
        await store.set("a", record)
        record["session_id"] = "mutated"
        fetched = await store.get("a")
        assert fetched == {"session_id": "a"}

    def test_protocol(self) -> None:
        assert isinstance(InMemorySessionStore(), SessionStore)


class TestRedisSessionStore:
    def test_default_url(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            assert RedisSessionStore()._url == "redis://localhost:6379/0"

    def test_env_var_url(self) -> None:
        with patch.dict("os.environ", {"REDIS_URL": "redis://env:6379/2"}):
            assert RedisSessionStore()._url == "redis://env:6379/2"

    def test_key_prefix(self) -> None:
        assert RedisSessionStore()._key("abc") == f"{KEY_PREFIX}abc"

    def test_protocol(self) -> None:
        assert isinstance(RedisSessionStore(), SessionStore)

    @pytest.mark.asyncio()
    async def test_set_uses_ttl(self, redis_store: RedisSessionStore, mock_redis: AsyncMock) -> None:
        await redis_store.set("abc", {"session_id": "abc"}, ttl=60)
        mock_redis.set.assert_called_once_with(
            f"{KEY_PREFIX}abc", json.dumps({"session_id": "abc"}), ex=60,
        )

    @pytest.mark.asyncio()
    async def test_set_default_ttl(self, mock_redis: AsyncMock) -> None:
        store = RedisSessionStore(default_ttl=120)
        store._redis = mock_redis
        await store.set("abc", {"session_id": "abc"})
        assert mock_redis.set.call_args.kwargs["ex"] == 120

    @pytest.mark.asyncio()
    async def test_get_decodes(self, redis_store: RedisSessionStore, mock_redis: AsyncMock) -> None:
        mock_redis.get = AsyncMock(return_value=json.dumps({"session_id": "abc"}))
        assert await redis_store.get("abc") == {"session_id": "abc"}

    @pytest.mark.asyncio()
    async def test_get_missing(self, redis_store: RedisSessionStore) -> None:
        assert await redis_store.get("abc") is None

    @pytest.mark.asyncio()
    async def test_corrupt_record(self, redis_store: RedisSessionStore, mock_redis: AsyncMock) -> None:
        mock_redis.get = AsyncMock(return_value="{not json")
        assert await redis_store.get("abc") is None

    @pytest.mark.asyncio()
    async def test_delete(self, redis_store: RedisSessionStore, mock_redis: AsyncMock) -> None:
        await redis_store.delete("abc")
        mock_redis.delete.assert_called_once_with(f"{KEY_PREFIX}abc")

    @pytest.mark.asyncio()
    async def test_close(self, redis_store: RedisSessionStore, mock_redis: AsyncMock) -> None:
        await redis_store.close()
        mock_redis.aclose.assert_called_once()
        assert redis_store._redis is None


class TestSessionManagerInit:
    def test_weak_secret_rejected(self) -> None:
        with pytest.raises(ConfigError, match="GATEWAY_SESSION_SECRET"):
            SessionManager(store=InMemorySessionStore(), secret="short")

    def test_from_config(self, config_loader: ConfigLoader) -> None:
        with patch.dict("os.environ", {"GATEWAY_SESSION_SECRET": SESSION_SECRET}):
            manager = SessionManager.from_config(config_loader, InMemorySessionStore())
        assert manager.cookie_name == "gateway_session"
        assert manager.ttl_seconds == 43200
        assert manager.secure_cookie is False

    def test_from_config_without_secret(self, config_loader: ConfigLoader) -> None:
        with patch.dict("os.environ", {}, clear=True), pytest.raises(ConfigError):
            SessionManager.from_config(config_loader, InMemorySessionStore())

    def test_protocol(self, session_manager: SessionManager) -> None:
        assert isinstance(session_manager, SessionResolver)


class TestSessionManagerResolve:
    @pytest.mark.asyncio()
    async def test_no_token_gives_fresh_session(self, session_manager: SessionManager) -> None:
        session = await session_manager.resolve(None)
        assert session.is_linked is False
        assert session.session_id

    @pytest.mark.asyncio()
    async def test_fresh_sessions_are_distinct(self, session_manager: SessionManager) -> None:
        first = await session_manager.resolve(None)
        second = await session_manager.resolve(None)
        assert first.session_id != second.session_id

    @pytest.mark.asyncio()
    async def test_round_trip(self, session_manager: SessionManager, linked_session: Session) -> None:
        await session_manager.save(linked_session)
        token = session_manager.issue_token(linked_session)
        resolved = await session_manager.resolve(token)
        assert resolved == linked_session

    @pytest.mark.asyncio()
    async def test_tampered_token(self, session_manager: SessionManager, linked_session: Session) -> None:
        await session_manager.save(linked_session)
        token = session_manager.issue_token(linked_session)
        resolved = await session_manager.resolve(token + "tampered")
        assert resolved.session_id != linked_session.session_id
        assert resolved.is_linked is False

    @pytest.mark.asyncio()
    async def test_token_from_other_secret(
        self, session_store: InMemorySessionStore, linked_session: Session,
    ) -> None:
        other = SessionManager(store=session_store, secret="another-secret-" + "x" * 32)
        mine = SessionManager(store=session_store, secret=SESSION_SECRET)
        await mine.save(linked_session)
        resolved = await mine.resolve(other.issue_token(linked_session))
        assert resolved.is_linked is False

    @pytest.mark.asyncio()
    async def test_unknown_session_id(self, session_manager: SessionManager, linked_session: Session) -> None:
        token = session_manager.issue_token(linked_session)
        resolved = await session_manager.resolve(token)
        assert resolved.session_id != linked_session.session_id


class TestSessionManagerLink:
    @pytest.mark.asyncio()
    async def test_link_sets_expiry_and_lowercases(
        self,
        session_manager: SessionManager,
        session_store: InMemorySessionStore,
        l2_credentials: L2Credentials,
    ) -> None:
        now = datetime(2025, 1, 1, tzinfo=UTC)
        session = Session(session_id="s1")
        await session_manager.link(session, WALLET.upper().replace("0X", "0x"), l2_credentials, now=now)

        assert session.wallet_address == WALLET
        assert session.l2 == l2_credentials
        assert session.expires_at == now + timedelta(seconds=session_manager.ttl_seconds)
        assert await session_store.get("s1") is not None

    @pytest.mark.asyncio()
    async def test_link_revives_destroyed_session(
        self, session_manager: SessionManager, l2_credentials: L2Credentials,
    ) -> None:
        session = Session(session_id="s1", destroyed=True)
        await session_manager.link(session, WALLET, l2_credentials)
        assert session.destroyed is False
        assert session.is_linked is True


class TestSessionManagerDestroy:
    @pytest.mark.asyncio()
    async def test_destroy_is_idempotent(
        self,
        session_manager: SessionManager,
        session_store: InMemorySessionStore,
        linked_session: Session,
    ) -> None:
        await session_manager.save(linked_session)
        await session_manager.destroy(linked_session)
        await session_manager.destroy(linked_session)

        assert linked_session.destroyed is True
        assert linked_session.l2 is None
        assert linked_session.wallet_address is None
        assert len(session_store) == 0

    @pytest.mark.asyncio()
    async def test_destroyed_token_resolves_to_fresh_session(
        self, session_manager: SessionManager, linked_session: Session,
    ) -> None:
        await session_manager.save(linked_session)
        token = session_manager.issue_token(linked_session)
        await session_manager.destroy(linked_session)
        resolved = await session_manager.resolve(token)
        assert resolved.is_linked is False

    @pytest.mark.asyncio()
    async def test_destroyed_token_stays_dead_after_relink(
        self, session_manager: SessionManager, linked_session: Session,
    ) -> None:
        await session_manager.save(linked_session)
        old_token = session_manager.issue_token(linked_session)
        await session_manager.destroy(linked_session)

        other = L2Credentials(api_key="other-key-123456", secret="c2VjcmV0", passphrase="pp")
        await session_manager.link(linked_session, "0x" + "b2" * 20, other)

        assert linked_session.session_id != "linked-session-id"
        stale = await session_manager.resolve(old_token)
        assert stale.is_linked is False
        assert stale.l2 is None
        relinked = await session_manager.resolve(session_manager.issue_token(linked_session))
        assert relinked.l2 == other


class TestSessionManagerStatus:
    @pytest.mark.asyncio()
    async def test_linked_matching_address(
        self, session_manager: SessionManager, linked_session: Session,
    ) -> None:
        status = await session_manager.status(linked_session, WALLET.upper().replace("0X", "0x"))
        assert status.ok is True
        assert status.address_matches is True
        assert status.expired is False

    @pytest.mark.asyncio()
    async def test_address_mismatch(self, session_manager: SessionManager, linked_session: Session) -> None:
        status = await session_manager.status(linked_session, "0x" + "b2" * 20)
        assert status.ok is False
        assert status.address_matches is False

    @pytest.mark.asyncio()
    async def test_no_address_matches(self, session_manager: SessionManager, linked_session: Session) -> None:
        status = await session_manager.status(linked_session)
        assert status.ok is True
        assert status.address_matches is True

    @pytest.mark.asyncio()
    async def test_unauthenticated(self, session_manager: SessionManager) -> None:
        status = await session_manager.status(Session(session_id="s"))
        assert status.ok is False
        assert status.expired is False
        assert status.wallet_address is None

    @pytest.mark.asyncio()
    async def test_expired_session_destroyed(
        self,
        session_manager: SessionManager,
        session_store: InMemorySessionStore,
        expired_session: Session,
    ) -> None:
        await session_manager.save(expired_session)
        status = await session_manager.status(expired_session, WALLET)

        assert status.ok is False
        assert status.expired is True
        assert expired_session.destroyed is True
        assert expired_session.l2 is None
        assert len(session_store) == 0

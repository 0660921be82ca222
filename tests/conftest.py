"""Shared test fixtures."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path  # noqa: TCH003
from typing import Any

import pytest

from src.config.loader import ConfigLoader
from src.gateway.builder_signer import BuilderCredentials, BuilderSigner
from src.gateway.session_store import InMemorySessionStore, SessionManager
from src.models.session import L2Credentials, Session
from gateway_testkit import ORDER_SIGNATURE, SESSION_SECRET, WALLET, b64_secret


@pytest.fixture()
def config_dir(tmp_path: Path) -> Path:
    """Create a temp config directory with default.toml."""
    config = tmp_path / "config"
    config.mkdir()

    default_toml = config / "default.toml"
    default_toml.write_text(
        """\
[clob]
url = "https://clob.test"
timeout_seconds = 12.0

[relayer]
url = "https://relayer.test"
timeout_seconds = 10.0

[builder]
sign_url = ""
sign_timeout_seconds = 3.0

[session]
cookie_name = "gateway_session"
ttl_seconds = 43200
secure_cookie = false
backend = "memory"

[orders]
sell_enabled = true

[trading]
enabled = true

[server]
host = "127.0.0.1"
port = 8000
"""
    )
    return config


@pytest.fixture()
def config_loader(config_dir: Path) -> ConfigLoader:
    """ConfigLoader with test config."""
    loader = ConfigLoader(config_dir=config_dir, env="test")
    loader.load()
    return loader


@pytest.fixture()
def builder_env() -> dict[str, str]:
    return {
        "POLY_BUILDER_API_KEY": "builder-key-0001",
        "POLY_BUILDER_SECRET": b64_secret(b"builder-secret-bytes-0123456789"),
        "POLY_BUILDER_PASSPHRASE": "builder-pass",
    }


@pytest.fixture()
def builder_credentials(builder_env: dict[str, str]) -> BuilderCredentials:
    return BuilderCredentials(
        api_key=builder_env["POLY_BUILDER_API_KEY"],
        secret=builder_env["POLY_BUILDER_SECRET"],
        passphrase=builder_env["POLY_BUILDER_PASSPHRASE"],
    )


@pytest.fixture()
def builder_signer(builder_credentials: BuilderCredentials) -> BuilderSigner:
    return BuilderSigner(builder_credentials, clock_ms=lambda: 1_700_000_000_000)


@pytest.fixture()
def l2_credentials() -> L2Credentials:
    return L2Credentials(
        api_key="l2-api-key-abcdef",
        secret=b64_secret(b"l2-secret-bytes-for-hmac-00001"),
        passphrase="l2-passphrase",
    )


@pytest.fixture()
def session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture()
def session_manager(session_store: InMemorySessionStore) -> SessionManager:
    return SessionManager(store=session_store, secret=SESSION_SECRET, secure_cookie=False)


@pytest.fixture()
def linked_session(l2_credentials: L2Credentials) -> Session:
    return Session(
        session_id="linked-session-id",
        wallet_address=WALLET,
        l2=l2_credentials,
        expires_at=datetime.now(tz=UTC) + timedelta(hours=1),
    )


@pytest.fixture()
def expired_session(l2_credentials: L2Credentials) -> Session:
    return Session(
        session_id="expired-session-id",
        wallet_address=WALLET,
        l2=l2_credentials,
        expires_at=datetime.now(tz=UTC) - timedelta(seconds=1),
    )


@pytest.fixture()
def order_payload() -> dict[str, Any]:
    """A valid FOK BUY order as a browser would post it."""
    return {
        "order": {
            "salt": 123456789,
            "maker": WALLET,
            "signer": WALLET,
            "taker": "0x0000000000000000000000000000000000000000",
            "tokenId": "71321045679252212594626385532706912750332728571942532289631379312455583992563",
            "makerAmount": "5000000",
            "takerAmount": "10000000",
            "expiration": "0",
            "nonce": "0",
            "feeRateBps": "0",
            "side": "BUY",
            "signatureType": 0,
            "signature": ORDER_SIGNATURE,
        },
        "orderType": "FOK",
    }


@pytest.fixture()
def order_body(order_payload: dict[str, Any]) -> bytes:
    return json.dumps(order_payload).encode("utf-8")

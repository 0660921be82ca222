"""Builder (fee-attribution) HMAC signer.

The service's builder credentials are loaded once at startup from
environment variables and are immutable for the process lifetime:
    POLY_BUILDER_API_KEY     -- builder API key
    POLY_BUILDER_SECRET      -- url-safe base64 HMAC secret
    POLY_BUILDER_PASSPHRASE  -- builder passphrase

Startup fails if any is missing, or if a client-visible ``PUBLIC_`` variant
of the same names is set.
"""

from __future__ import annotations

import base64
import binascii
import json
import os
import time
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel

from src.config.loader import ConfigError
from src.core.logging import get_logger
from src.core.redact import mask_secret
from src.gateway.errors import MalformedRequestError

logger = get_logger(__name__)

BUILDER_ENV_VARS = (
    "POLY_BUILDER_API_KEY",
    "POLY_BUILDER_SECRET",
    "POLY_BUILDER_PASSPHRASE",
)
FORBIDDEN_PUBLIC_ENV_VARS = tuple(f"PUBLIC_{name}" for name in BUILDER_ENV_VARS)


class BuilderCredentials(BaseModel):
    api_key: str
    secret: str
    passphrase: str

    model_config = {"frozen": True}

    def __repr__(self) -> str:
        return f"BuilderCredentials(api_key={mask_secret(self.api_key)!r})"


def load_builder_credentials(environ: dict[str, str] | None = None) -> BuilderCredentials:
    """Read builder credentials from the environment, failing fast.

    Raises:
        ConfigError: If a value is missing, the secret is not base64, or a
            forbidden client-visible variant is present.
    """
    env = environ if environ is not None else dict(os.environ)

    leaked = [name for name in FORBIDDEN_PUBLIC_ENV_VARS if env.get(name)]
    if leaked:
        msg = f"Forbidden public env var set: {', '.join(leaked)}"
        raise ConfigError(msg)

    missing = [name for name in BUILDER_ENV_VARS if not env.get(name)]
    if missing:
        msg = f"Missing required server env var: {', '.join(missing)}"
        raise ConfigError(msg)

    secret = env["POLY_BUILDER_SECRET"]
    try:
        base64.urlsafe_b64decode(secret)
    except (binascii.Error, ValueError) as exc:
        msg = "POLY_BUILDER_SECRET must be url-safe base64"
        raise ConfigError(msg) from exc

    creds = BuilderCredentials(
        api_key=env["POLY_BUILDER_API_KEY"],
        secret=secret,
        passphrase=env["POLY_BUILDER_PASSPHRASE"],
    )
    logger.info("builder_credentials.loaded", api_key=mask_secret(creds.api_key))
    return creds


def normalize_body(body: Any) -> str:
    """Wire form of a body: "" for None, strings as-is, compact JSON otherwise.

    Unserializable bodies become "" rather than failing the signature.
    """
    if body is None:
        return ""
    if isinstance(body, str):
        return body
    try:
        return json.dumps(body, separators=(",", ":"))
    except (TypeError, ValueError):
        return ""


def hmac_signature(secret: str, timestamp: int, method: str, path: str, body: str) -> str:
    """HMAC via py-clob-client with deferred import."""
    from py_clob_client.signing.hmac import build_hmac_signature

    return build_hmac_signature(secret, timestamp, method, path, body or None)


def sign(secret: str, timestamp_ms: int, method: str, path: str, body: Any = None) -> str:
    """Sign ``timestamp + METHOD + path + body`` with the given secret."""
    normalized_method = method.upper() if isinstance(method, str) else ""
    if not normalized_method or not path:
        raise MalformedRequestError(
            "Invalid request", details={"missing": ["method", "path"]},
        )
    return hmac_signature(secret, timestamp_ms, normalized_method, path, normalize_body(body))


class BuilderSigner:
    """Produces the four builder headers for a request.

    A fresh timestamp is taken on every call; headers are never cached
    because the venue's replay window is timestamp based.
    """

    def __init__(
        self,
        credentials: BuilderCredentials,
        clock_ms: Callable[[], int] | None = None,
    ) -> None:
        self._credentials = credentials
        self._clock_ms = clock_ms or (lambda: int(time.time() * 1000))

    @property
    def api_key(self) -> str:
        return self._credentials.api_key

    def headers(self, method: str, path: str, body: Any = None) -> dict[str, str]:
        timestamp = self._clock_ms()
        signature = sign(self._credentials.secret, timestamp, method, path, body)
        return {
            "POLY_BUILDER_SIGNATURE": signature,
            "POLY_BUILDER_TIMESTAMP": str(timestamp),
            "POLY_BUILDER_API_KEY": self._credentials.api_key,
            "POLY_BUILDER_PASSPHRASE": self._credentials.passphrase,
        }

"""Trading availability probe."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

from src.gateway.builder_signer import BUILDER_ENV_VARS

if TYPE_CHECKING:
    from src.config.loader import ConfigLoader


def trading_status(config: ConfigLoader, environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Trading is enabled only when the flag is on and builder keys are present."""
    env = environ if environ is not None else dict(os.environ)
    trading_flag = bool(config.get("trading.enabled", False))
    missing = [name for name in BUILDER_ENV_VARS if not env.get(name)]
    has_builder_keys = not missing
    return {
        "enabled": trading_flag and has_builder_keys,
        "tradingFlag": trading_flag,
        "hasBuilderKeys": has_builder_keys,
        "missing": missing,
    }

"""Gateway layer: sessions, header composition, order and relayer proxying."""

from __future__ import annotations

from src.gateway.builder_client import HttpBuilderHeaderSource, LocalBuilderHeaderSource
from src.gateway.builder_signer import BuilderCredentials, BuilderSigner
from src.gateway.onboarding import SessionOnboarding
from src.gateway.order_gateway import OrderGateway
from src.gateway.relayer import RelayerProxy
from src.gateway.session_store import InMemorySessionStore, RedisSessionStore, SessionManager

__all__ = [
    "BuilderCredentials",
    "BuilderSigner",
    "HttpBuilderHeaderSource",
    "InMemorySessionStore",
    "LocalBuilderHeaderSource",
    "OrderGateway",
    "RedisSessionStore",
    "RelayerProxy",
    "SessionManager",
    "SessionOnboarding",
]

"""Service wiring for the HTTP layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from fastapi import Request

from src.core.logging import get_logger
from src.gateway.builder_client import build_builder_source
from src.gateway.builder_signer import BuilderSigner, load_builder_credentials
from src.gateway.onboarding import SessionOnboarding
from src.gateway.order_gateway import OrderGateway
from src.gateway.relayer import RelayerProxy
from src.gateway.session_store import InMemorySessionStore, RedisSessionStore, SessionManager

if TYPE_CHECKING:
    from src.config.loader import ConfigLoader
    from src.interfaces import SessionStore
    from src.models.session import Session

log = get_logger(__name__)

REQUIRED_KEYS = ["clob.url", "relayer.url", "session.ttl_seconds"]


@dataclass
class GatewayServices:
    """Everything a request handler needs, built once per process."""

    config: ConfigLoader
    sessions: SessionManager
    signer: BuilderSigner
    orders: OrderGateway
    relayer: RelayerProxy
    onboarding: SessionOnboarding
    closeables: list[object] = field(default_factory=list)

    async def aclose(self) -> None:
        for component in (self.orders, self.relayer, self.onboarding, *self.closeables):
            close = getattr(component, "close", None)
            if close is not None:
                await close()


def _build_store(config: ConfigLoader) -> SessionStore:
    backend = config.get("session.backend", "memory")
    if backend == "redis":
        return RedisSessionStore(default_ttl=int(config.get("session.ttl_seconds", 43200)))
    return InMemorySessionStore()


def build_services(config: ConfigLoader) -> GatewayServices:
    """Build the gateway from config and environment.

    Builder credentials are validated here, so a missing or leaked builder
    secret stops the process before it serves a single request.
    """
    config.validate_keys(REQUIRED_KEYS)
    config.validate_ranges()
    signer = BuilderSigner(load_builder_credentials())
    store = _build_store(config)
    sessions = SessionManager.from_config(config, store)
    builder_source = build_builder_source(config, signer)
    services = GatewayServices(
        config=config,
        sessions=sessions,
        signer=signer,
        orders=OrderGateway.from_config(config, sessions, builder_source),
        relayer=RelayerProxy.from_config(config),
        onboarding=SessionOnboarding.from_config(config, sessions),
        closeables=[store, builder_source],
    )
    log.info(
        "gateway.services_built",
        env=config.env,
        session_backend=config.get("session.backend", "memory"),
        builder_source=type(builder_source).__name__,
    )
    return services


def get_services(request: Request) -> GatewayServices:
    services: GatewayServices = request.app.state.services
    return services


async def get_session(request: Request) -> Session:
    """Resolve the cookie-identified session for this request."""
    services = get_services(request)
    token = request.cookies.get(services.sessions.cookie_name)
    return await services.sessions.resolve(token)

"""Protocol interfaces for gateway components.

Route handlers and tests code against these contracts, so the session backend
and the builder-header source can be swapped without touching the gateway.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from src.models.session import Session


@runtime_checkable
class SessionStore(Protocol):
    """Persistence for server-held session records."""

    async def get(self, session_id: str) -> dict[str, Any] | None: ...

    async def set(self, session_id: str, record: dict[str, Any], ttl: int | None = None) -> None: ...

    async def delete(self, session_id: str) -> None: ...


@runtime_checkable
class SessionResolver(Protocol):
    """Resolves an opaque cookie token to a session record."""

    async def resolve(self, token: str | None) -> Session: ...

    async def destroy(self, session: Session) -> None: ...


@runtime_checkable
class BuilderHeaderSource(Protocol):
    """Yields builder attribution headers, or None when unavailable."""

    async def fetch(self, method: str, path: str, body: str) -> dict[str, str] | None: ...

"""FastAPI application exposing the order gateway.

Usage:
    uvicorn --factory src.api.app:create_app_from_config --port 8000
    # or
    gateway --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse, Response

from src.api.dependencies import GatewayServices, build_services, get_services, get_session
from src.config.loader import ConfigLoader
from src.core.logging import get_logger
from src.gateway.builder_signer import normalize_body
from src.gateway.errors import GatewayError, MalformedRequestError
from src.gateway.header_guard import reject_reserved_headers
from src.gateway.trading_status import trading_status
from src.models.session import Session

log = get_logger(__name__)

NO_STORE = {"Cache-Control": "no-store"}
API_PREFIX = "/api/polymarket"


def _json(content: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(content=content, status_code=status_code, headers=NO_STORE)


def _sync_cookie(response: Response, services: GatewayServices, session: Session) -> None:
    """Delete the cookie of a destroyed session, (re)issue it for a linked one."""
    sessions = services.sessions
    if session.destroyed:
        response.delete_cookie(sessions.cookie_name, path="/")
    elif session.is_linked:
        response.set_cookie(
            sessions.cookie_name,
            sessions.issue_token(session),
            max_age=sessions.ttl_seconds,
            path="/",
            httponly=True,
            samesite="lax",
            secure=sessions.secure_cookie,
        )


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as exc:
        raise MalformedRequestError("Invalid request", details={"message": "Malformed JSON"}) from exc


guarded = APIRouter(dependencies=[Depends(reject_reserved_headers)])
public = APIRouter()


@guarded.post("/order")
async def submit_order(
    request: Request,
    services: GatewayServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Response:
    body = await request.body()
    try:
        result = await services.orders.submit(session, body)
    except GatewayError as exc:
        response = _json(exc.to_body(), exc.status_code)
        _sync_cookie(response, services, session)
        return response
    return Response(content=result.content, media_type="application/json", headers=NO_STORE)


@guarded.post("/order/diagnostics")
async def diagnose_order(
    request: Request,
    services: GatewayServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Response:
    body = await request.body()
    try:
        report = await services.orders.diagnose(session, body)
    except GatewayError as exc:
        response = _json(exc.to_body(), exc.status_code)
        _sync_cookie(response, services, session)
        return response
    return _json(report)


@public.post("/builder/sign")
async def builder_sign(
    request: Request,
    services: GatewayServices = Depends(get_services),
) -> Response:
    payload = await _read_json(request)
    if not isinstance(payload, dict):
        raise MalformedRequestError("Invalid request", details={"missing": ["method", "path"]})
    method = payload.get("method") if isinstance(payload.get("method"), str) else ""
    path = payload.get("path") if isinstance(payload.get("path"), str) else ""
    headers = services.signer.headers(method, path, normalize_body(payload.get("body")))
    return _json(headers)


@guarded.get("/relayer/{subpath:path}")
async def relayer_read(
    subpath: str,
    request: Request,
    services: GatewayServices = Depends(get_services),
) -> Response:
    result = await services.relayer.get(subpath, request.url.query)
    return Response(
        content=result.content,
        status_code=result.status_code,
        media_type=result.content_type,
        headers=NO_STORE,
    )


@guarded.post("/relayer/submit")
async def relayer_submit(
    request: Request,
    services: GatewayServices = Depends(get_services),
) -> Response:
    result = await services.relayer.submit(await request.body())
    return Response(
        content=result.content,
        status_code=result.status_code,
        media_type=result.content_type,
        headers=NO_STORE,
    )


@guarded.get("/auth/status")
async def session_status(
    address: str | None = None,
    services: GatewayServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Response:
    status = await services.sessions.status(session, address)
    response = _json(status.to_body())
    _sync_cookie(response, services, session)
    return response


@guarded.post("/auth/logout")
async def logout(
    services: GatewayServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Response:
    await services.sessions.destroy(session)
    response = _json({"ok": True})
    _sync_cookie(response, services, session)
    return response


@guarded.post("/auth/init")
async def init_session(
    request: Request,
    services: GatewayServices = Depends(get_services),
    session: Session = Depends(get_session),
) -> Response:
    payload = await _read_json(request)
    linked = await services.onboarding.initialize(session, payload)
    response = _json({"ok": True})
    _sync_cookie(response, services, linked)
    return response


@public.get("/trading-status")
async def get_trading_status(services: GatewayServices = Depends(get_services)) -> Response:
    return _json(trading_status(services.config))


async def _gateway_error_handler(request: Request, exc: GatewayError) -> Response:
    log.info(
        "gateway.request_failed",
        path=request.url.path,
        status=exc.status_code,
        error=exc.message,
    )
    return _json(exc.to_body(), exc.status_code)


def create_app(services: GatewayServices) -> FastAPI:
    """Build the application around already-constructed services."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info("gateway.startup", env=services.config.env)
        yield
        await services.aclose()
        log.info("gateway.shutdown")

    app = FastAPI(title="Order Gateway", lifespan=lifespan)
    app.state.services = services
    app.add_exception_handler(GatewayError, _gateway_error_handler)
    app.include_router(guarded, prefix=API_PREFIX)
    app.include_router(public, prefix=API_PREFIX)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


def create_app_from_config(config_dir: str = "config", env: str | None = None) -> FastAPI:
    config = ConfigLoader(config_dir=config_dir, env=env)
    config.load()
    return create_app(build_services(config))

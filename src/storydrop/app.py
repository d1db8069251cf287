from __future__ import annotations

import asyncio
import json
import logging
from importlib.resources import as_file, files
from typing import Any, Awaitable, Dict, Optional, Protocol

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles

from storydrop.access_log_middleware import AccessLogMiddleware
from storydrop.config import Settings
from storydrop.errors import ClientDisconnected, ClientValidationError, LogEndpointError, MethodNotAllowed
from storydrop.models import CoreEvent, MetaRecord, Submission
from storydrop.normalize import build_core, build_meta, edge_context, is_honeypot, normalized_token
from storydrop.sink import WebhookSink

log = logging.getLogger(__name__)

LOG_PATH = "/api/log"
# every method lands on the handler so the 405 body stays ours
LOG_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
TOKEN_ID_REQUIRED = "TOKEN_ID_REQUIRED"
DISCONNECT_POLL_S = 0.1
DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443}


class Sink(Protocol):
    async def forward(self, core: CoreEvent, meta: MetaRecord) -> Any: ...


# ----------------------------
# Helpers
# ----------------------------
def request_origin(request: Request) -> str:
    """scheme://host[:port] of the request URL, default ports dropped."""
    url = request.url
    host = url.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    if url.port is not None and url.port != DEFAULT_PORTS.get(url.scheme):
        host = f"{host}:{url.port}"
    return f"{url.scheme}://{host}"


async def read_json_lenient(request: Request) -> Dict[str, Any]:
    """Broken, absurdly nested or non-object JSON counts as an empty submission."""
    raw = await request.body()
    try:
        data = json.loads(raw)
    except (ValueError, RecursionError):
        return {}
    return data if isinstance(data, dict) else {}


async def forward_while_connected(request: Request, forward: Awaitable[Any], poll_s: float = DISCONNECT_POLL_S) -> Any:
    """
    Await the sink call, checking every `poll_s` whether the caller is still there.
    A disconnect cancels the call and raises ClientDisconnected.
    """
    task = asyncio.ensure_future(forward)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=poll_s)
            if done:
                return task.result()
            if await request.is_disconnected():
                task.cancel()
                log.info("caller disconnected, sink call cancelled")
                raise ClientDisconnected()
    finally:
        if not task.done():
            task.cancel()


def mount_assets(app: FastAPI, assets_dir: Optional[str]) -> None:
    if assets_dir:
        app.mount("/", StaticFiles(directory=assets_dir, html=True), name="static")
        return
    public_root = files("storydrop").joinpath("public")
    with as_file(public_root) as public_dir:
        app.mount("/", StaticFiles(directory=str(public_dir), html=True), name="static")


# ----------------------------
# App
# ----------------------------
def create_app(settings: Optional[Settings] = None, *, sink: Optional[Sink] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    if sink is None:
        if not settings.webhook_url:
            log.warning("STORYDROP_WEBHOOK_URL is not set; submissions will fail with 502")
        sink = WebhookSink(settings.webhook_url, settings.secret, timeout=settings.sink_timeout)

    app = FastAPI(title="storydrop", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.settings = settings
    app.state.sink = sink
    app.add_middleware(AccessLogMiddleware, path=settings.access_log_path)

    @app.exception_handler(LogEndpointError)
    async def _log_endpoint_error(request: Request, exc: LogEndpointError):
        return JSONResponse(exc.body(), status_code=exc.status_code)

    @app.api_route(LOG_PATH, methods=LOG_METHODS)
    async def log_event(request: Request):
        origin = request_origin(request)

        if request.method == "OPTIONS":
            return Response(status_code=204, headers={
                "Access-Control-Allow-Origin": origin,
                "Access-Control-Allow-Methods": "POST, OPTIONS",
                "Access-Control-Allow-Headers": "Content-Type",
                "Access-Control-Max-Age": "600",
            })

        if request.method != "POST":
            raise MethodNotAllowed()

        sub = Submission.model_validate(await read_json_lenient(request))

        if is_honeypot(sub):
            log.info("honeypot tripped, dropping submission")
            return JSONResponse({"ok": True, "skipped": "honeypot"})

        if not normalized_token(sub):
            log.info("rejected submission without token_id")
            raise ClientValidationError(TOKEN_ID_REQUIRED)

        edge = edge_context(request.headers, request.client.host if request.client else None)
        core = build_core(sub, edge)
        meta = build_meta(sub, edge)

        status = await forward_while_connected(request, app.state.sink.forward(core, meta))
        log.info("forwarded event %s token=%s sink_status=%s", core.event_id, core.token_id, status)

        return JSONResponse({"ok": True}, headers={
            "Cache-Control": "no-store",
            "Access-Control-Allow-Origin": origin,
        })

    mount_assets(app, settings.assets_dir)
    return app


app = create_app()

"""
api/server.py — FastAPI REST API + WebSocket event feed for the switcher.

REST drives the same operations as the CLI (connect, refresh, select, switch);
the /ws feed pushes connection, source and active-target changes so a remote
panel can mirror state without polling.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from ingest_switcher import __version__
from ingest_switcher.config import Settings, get_settings
from ingest_switcher.controller import SwitcherController
from ingest_switcher.core import (
    ConnectError,
    ConnectFailure,
    ConnectionConfig,
    ConnectionState,
    FetchError,
    NoSelectionError,
    NotConnectedError,
    SwitchError,
)

log = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# WebSocket connection pool
# ──────────────────────────────────────────────────────────────────────────────

class WSConnectionPool:
    """Connected feed sockets. All writes go through `send` so replies and events never interleave."""

    def __init__(self):
        self._connections: list[WebSocket] = []
        self._send_locks: dict[int, asyncio.Lock] = {}

    async def connect(self, ws: WebSocket) -> None:
        await ws.accept()
        self._connections.append(ws)
        self._send_locks[id(ws)] = asyncio.Lock()
        log.info(f"WS client connected. Total: {len(self._connections)}")

    def disconnect(self, ws: WebSocket) -> None:
        if ws in self._connections:
            self._connections.remove(ws)
        self._send_locks.pop(id(ws), None)
        log.info(f"WS client disconnected. Total: {len(self._connections)}")

    async def send(self, ws: WebSocket, message: dict) -> None:
        lock = self._send_locks.get(id(ws)) or asyncio.Lock()
        async with lock:
            await ws.send_text(json.dumps(message))

    async def broadcast(self, message: dict) -> None:
        if not self._connections:
            return
        dead = []
        for ws in list(self._connections):
            try:
                await self.send(ws, message)
            except Exception:
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws)

    def count(self) -> int:
        return len(self._connections)


# ──────────────────────────────────────────────────────────────────────────────
# Error mapping
# ──────────────────────────────────────────────────────────────────────────────

CONNECT_STATUS = {
    ConnectFailure.AUTH_REJECTED: 401,
    ConnectFailure.TIMEOUT: 504,
    ConnectFailure.ALREADY_ACTIVE: 409,
}


def http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ConnectError):
        return HTTPException(
            status_code=CONNECT_STATUS.get(exc.reason, 502),
            detail={"error": "connect_failed", "reason": exc.reason.value, "message": exc.message},
        )
    if isinstance(exc, FetchError):
        return HTTPException(status_code=502, detail={"error": "fetch_failed", "message": str(exc)})
    if isinstance(exc, NoSelectionError):
        return HTTPException(status_code=409, detail={"error": "no_selection", "message": str(exc)})
    if isinstance(exc, NotConnectedError):
        return HTTPException(status_code=503, detail={"error": "not_connected", "message": str(exc)})
    if isinstance(exc, SwitchError):
        return HTTPException(status_code=502, detail={"error": "switch_failed", "message": str(exc)})
    return HTTPException(status_code=500, detail={"error": "internal", "message": str(exc)})


# ──────────────────────────────────────────────────────────────────────────────
# App factory
# ──────────────────────────────────────────────────────────────────────────────

class ConnectBody(BaseModel):
    host: Optional[str] = None
    port: Optional[int] = None
    password: Optional[str] = None


def create_app(controller: SwitcherController, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    ws_pool = WSConnectionPool()
    background: set[asyncio.Task] = set()

    def publish(event: str, data: dict) -> None:
        task = asyncio.get_running_loop().create_task(ws_pool.broadcast({"event": event, "data": data}))
        background.add(task)
        task.add_done_callback(background.discard)

    controller.connection.on_state_changed(
        lambda state: publish("connection_state", {"state": state.value})
    )
    controller.registry.add_refresh_listener(
        lambda sources: publish("sources_refreshed", {"sources": [s.to_dict() for s in sources]})
    )
    controller.registry.add_selection_listener(
        lambda name: publish("selection_changed", {"selected": name})
    )
    controller.tracker.add_target_listener(
        lambda name, target: publish("active_target_changed", {"source": name, "target": target})
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info(f"ingest-switcher API starting on {settings.api.host}:{settings.api.port}")
        yield
        await controller.disconnect()
        await controller.tracker.drain()
        if background:
            await asyncio.gather(*background, return_exceptions=True)
        log.info("ingest-switcher API shutting down.")

    app = FastAPI(
        title="ingest-switcher",
        description="Switch OBS media inputs between preset ingest links",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.ws_pool = ws_pool
    app.state.pending_events = background

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── REST auth dependency ──────────────────────────────────────────

    async def verify_api_key(authorization: Optional[str] = Header(None)):
        if settings.api.api_key:
            if not authorization or not authorization.startswith("Bearer "):
                raise HTTPException(status_code=401, detail="Missing Bearer token")
            token = authorization.removeprefix("Bearer ").strip()
            if token != settings.api.api_key:
                raise HTTPException(status_code=403, detail="Invalid API key")

    auth = Depends(verify_api_key)

    # ─────────────────────────────────────────────────────────────────
    # Health
    # ─────────────────────────────────────────────────────────────────

    @app.get("/health", tags=["System"])
    async def health():
        return {
            "status": "ok",
            "obs_state": controller.connection.state.value,
            "ws_clients": ws_pool.count(),
            "version": __version__,
        }

    @app.get("/healthz", tags=["System"])
    async def healthz():
        """Machine-readable health check. Returns 503 when OBS is disconnected."""
        if not controller.connection.is_connected():
            raise HTTPException(
                status_code=503,
                detail={"status": "degraded", "reason": f"OBS {controller.connection.state.value}"},
            )
        return {"status": "ok"}

    @app.get("/status", tags=["System"], dependencies=[auth])
    async def status():
        return controller.status()

    # ─────────────────────────────────────────────────────────────────
    # Connection
    # ─────────────────────────────────────────────────────────────────

    @app.post("/connect", tags=["Connection"], dependencies=[auth])
    async def connect(body: Optional[ConnectBody] = None):
        """Connect once. Failures are reported, never retried in the background."""
        base = controller.default_config
        config = ConnectionConfig(
            host=body.host if body and body.host else base.host,
            port=body.port if body and body.port else base.port,
            password=body.password if body and body.password is not None else base.password,
            timeout=base.timeout,
        )
        try:
            await controller.connect(config)
        except ConnectError as e:
            raise http_error(e)
        return controller.status()

    @app.post("/disconnect", tags=["Connection"], dependencies=[auth])
    async def disconnect():
        await controller.disconnect()
        return {"state": ConnectionState.DISCONNECTED.value}

    # ─────────────────────────────────────────────────────────────────
    # Sources
    # ─────────────────────────────────────────────────────────────────

    @app.get("/sources", tags=["Sources"], dependencies=[auth])
    async def list_sources():
        return {
            "sources": [s.to_dict() for s in controller.registry.sources],
            "selected": controller.registry.selected,
        }

    @app.post("/sources/refresh", tags=["Sources"], dependencies=[auth])
    async def refresh_sources():
        try:
            sources = await controller.registry.refresh()
        except FetchError as e:
            raise http_error(e)
        return {"sources": [s.to_dict() for s in sources], "selected": controller.registry.selected}

    @app.post("/sources/{source_name}/select", tags=["Sources"], dependencies=[auth])
    async def select_source(source_name: str):
        if source_name not in controller.registry:
            raise HTTPException(status_code=404, detail=f"Source '{source_name}' not found. Refresh first.")
        controller.registry.select(source_name)
        return {"selected": source_name}

    # ─────────────────────────────────────────────────────────────────
    # Active target
    # ─────────────────────────────────────────────────────────────────

    @app.get("/active", tags=["Active"], dependencies=[auth])
    async def active():
        return {"source": controller.registry.selected, "target": controller.tracker.active_target}

    @app.post("/active/reconcile", tags=["Active"], dependencies=[auth])
    async def reconcile():
        selected = controller.registry.selected
        if not selected:
            raise http_error(NoSelectionError())
        try:
            target = await controller.tracker.reconcile(selected)
        except FetchError as e:
            raise http_error(e)
        return {"source": selected, "target": target}

    # ─────────────────────────────────────────────────────────────────
    # Links
    # ─────────────────────────────────────────────────────────────────

    @app.get("/links", tags=["Links"], dependencies=[auth])
    async def list_links():
        active_target = controller.tracker.active_target
        return [
            {**link.to_dict(), "active": active_target is not None and link.url == active_target}
            for link in controller.links
        ]

    @app.post("/links/{link_id}/switch", tags=["Links"], dependencies=[auth])
    async def switch_link(link_id: str):
        link = controller.links.get(link_id)
        if link is None:
            raise HTTPException(status_code=404, detail=f"Link '{link_id}' not found")
        try:
            return await controller.switcher.switch_to(link)
        except SwitchError as e:
            raise http_error(e)

    # ─────────────────────────────────────────────────────────────────
    # WebSocket event feed — with auth
    # ─────────────────────────────────────────────────────────────────

    @app.websocket("/ws")
    async def websocket_endpoint(
        websocket: WebSocket,
        token: Optional[str] = Query(None),
    ):
        # Auth check: if API key is set, require it as ?token= query param
        if settings.api.api_key:
            if not token or token != settings.api.api_key:
                await websocket.close(code=4001, reason="Unauthorized")
                return

        await ws_pool.connect(websocket)
        try:
            await ws_pool.send(websocket, {"event": "status", "data": controller.status()})
            while True:
                raw = await websocket.receive_text()
                try:
                    msg = json.loads(raw)
                    if not isinstance(msg, dict):
                        raise ValueError("Expected a JSON object with a 'cmd' field")
                    response = await _handle_ws_command(msg)
                except json.JSONDecodeError:
                    response = {"error": "Invalid JSON"}
                except (ValueError, TypeError, KeyError, FetchError, SwitchError) as e:
                    response = {"error": str(e)}
                await ws_pool.send(websocket, response)
        except WebSocketDisconnect:
            log.debug("WS client closed the connection.")
        finally:
            ws_pool.disconnect(websocket)

    async def _handle_ws_command(msg: dict) -> dict:
        cmd = msg.get("cmd", "")
        params = msg.get("params", {})

        match cmd:
            case "refresh":
                sources = await controller.registry.refresh()
                return {"sources": [s.to_dict() for s in sources], "selected": controller.registry.selected}
            case "select":
                controller.registry.select(params["name"])
                return {"selected": params["name"]}
            case "switch":
                return await controller.switch_to_link(params["link_id"])
            case "get_status":
                return controller.status()
            case _:
                return {"error": f"Unknown command: {cmd}"}

    return app

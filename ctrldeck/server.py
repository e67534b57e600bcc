"""HTTP + WebSocket surface for a running :class:`DeckService`.

Exposes:
  GET  /health                      liveness and per-domain availability
  GET  /api/capabilities            the probed CapabilitySet
  GET  /api/system/metrics          current telemetry snapshot
  GET  /api/system/volume           volume level and mute flag
  POST /api/system/volume           {"level": 0-100}
  GET  /api/system/brightness       brightness level
  POST /api/system/brightness       {"level": 0-100}
  GET  /api/system/media            now-playing state
  POST /api/system/media            {"action": "play_pause" | "next" | "prev"}
  POST /api/actions/{action_type}   dispatcher, body is the string params map
  POST /api/capabilities/refresh    re-probe the host
  WS   /ws                          telemetry stream

Start with::

    python -m ctrldeck
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Callable

import anyio
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .errors import ErrorKind
from .models import ControlResult
from .service import DeckService

logger = logging.getLogger(__name__)

_STATUS_BY_KIND = {
    ErrorKind.UNSUPPORTED: 501,
    ErrorKind.PERMISSION_DENIED: 403,
    ErrorKind.DEVICE_UNAVAILABLE: 503,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.INVALID_PARAMETER: 400,
    ErrorKind.UNKNOWN: 500,
}


# ──────────────────────────────────────────────────────────────────
# Request models
# ──────────────────────────────────────────────────────────────────

class LevelRequest(BaseModel):
    level: int = Field(..., description="Target level, clamped to 0-100")


class MediaRequest(BaseModel):
    action: str


# ──────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────

def _control_response(result: ControlResult, key: str = "value") -> JSONResponse:
    if result.ok:
        body: dict[str, Any] = {"success": True}
        if result.value is not None:
            body[key] = result.value
        return JSONResponse(body)
    return JSONResponse(
        {"success": False, "error": result.message, "kind": result.error.value},
        status_code=_STATUS_BY_KIND.get(result.error, 500),
    )


async def _blocking(fn: Callable, *args) -> Any:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, fn, *args)


# ──────────────────────────────────────────────────────────────────
# App factory
# ──────────────────────────────────────────────────────────────────

def create_app(service: DeckService) -> FastAPI:
    @contextlib.asynccontextmanager
    async def lifespan(_app: FastAPI):
        await service.start()
        try:
            yield
        finally:
            await service.stop()

    app = FastAPI(title="ctrldeck", version=__version__, lifespan=lifespan)
    app.state.service = service

    @app.get("/health")
    async def health():
        caps = service.caps
        return {
            "status": "ok" if service.running else "starting",
            "platform": caps.platform,
            "domains": {
                "volume": service.volume.available,
                "mic": service.mic.available,
                "brightness": service.brightness.available,
                "media": service.media.available,
            },
        }

    @app.get("/api/capabilities")
    async def capabilities():
        return service.caps.to_dict()

    @app.post("/api/capabilities/refresh")
    async def refresh_capabilities():
        caps = await service.refresh_capabilities()
        return caps.to_dict()

    @app.get("/api/system/metrics")
    async def metrics():
        return service.current().to_dict()

    # ── Volume ──

    @app.get("/api/system/volume")
    async def get_volume():
        level = await _blocking(service.volume.get)
        if not level.ok:
            return _control_response(level)
        muted = await _blocking(service.volume.is_muted)
        return {"success": True, "level": level.value, "muted": bool(muted.value) if muted.ok else False}

    @app.post("/api/system/volume")
    async def set_volume(req: LevelRequest):
        return _control_response(await _blocking(service.volume.set, req.level), "level")

    # ── Brightness ──

    @app.get("/api/system/brightness")
    async def get_brightness():
        return _control_response(await _blocking(service.brightness.get), "level")

    @app.post("/api/system/brightness")
    async def set_brightness(req: LevelRequest):
        return _control_response(await _blocking(service.brightness.set, req.level), "level")

    # ── Media ──

    @app.get("/api/system/media")
    async def get_media():
        return service.media.get_state().to_dict()

    @app.post("/api/system/media")
    async def media_command(req: MediaRequest):
        commands = {
            "play_pause": service.media.play_pause,
            "next": service.media.next,
            "prev": service.media.previous,
            "previous": service.media.previous,
        }
        command = commands.get(req.action)
        if command is None:
            raise HTTPException(status_code=400, detail=f"Unknown media action: {req.action}")
        return _control_response(await command())

    # ── Actions ──

    @app.post("/api/actions/{action_type}")
    async def dispatch_action(action_type: str, params: dict[str, Any] | None = None):
        response = await service.dispatch_action(action_type, params or {})
        return JSONResponse(response.to_dict(), status_code=200 if response.success else 500)

    # ── Telemetry stream ──

    @app.websocket("/ws")
    async def telemetry_ws(websocket: WebSocket):
        await telemetry_ws_handler(websocket, service)

    return app


async def telemetry_ws_handler(websocket: WebSocket, service: DeckService) -> None:
    """Push every snapshot to the client; answer ``ping`` and ``get_metrics``.

    The send and receive loops share one task group: whichever side ends
    first (client gone, hub closed) cancels the other.
    """
    await websocket.accept()
    sub = service.subscribe()
    client = websocket.client.host if websocket.client else "?"
    logger.info("Telemetry client connected: %s (subscriber %d)", client, sub.id)

    async def _send_snapshots(scope: anyio.CancelScope) -> None:
        try:
            async for snapshot in sub:
                await websocket.send_json({"type": "metrics", "data": snapshot.to_dict()})
        except WebSocketDisconnect:
            pass
        scope.cancel()

    async def _receive(scope: anyio.CancelScope) -> None:
        try:
            async for msg in websocket.iter_json():
                msg_type = msg.get("type", "") if isinstance(msg, dict) else ""
                if msg_type == "ping":
                    await websocket.send_json({"type": "pong"})
                elif msg_type == "get_metrics":
                    await websocket.send_json({"type": "metrics", "data": service.current().to_dict()})
                else:
                    logger.debug("Ignoring telemetry client message: %r", msg_type)
        except WebSocketDisconnect:
            pass
        scope.cancel()

    try:
        await websocket.send_json({"type": "metrics", "data": service.current().to_dict()})
        async with anyio.create_task_group() as tg:
            tg.start_soon(_send_snapshots, tg.cancel_scope)
            tg.start_soon(_receive, tg.cancel_scope)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("Telemetry WebSocket error for %s", client)
    finally:
        service.unsubscribe(sub)
        logger.info("Telemetry client disconnected: %s", client)

"""Tests for the FastAPI surface: REST control routes and the telemetry WebSocket."""

from __future__ import annotations

import time
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from ctrldeck.capabilities import CapabilitySet
from ctrldeck.config import DeckConfig
from ctrldeck.controllers import Controllers
from ctrldeck.controllers.brightness import NullBrightnessController
from ctrldeck.server import create_app
from ctrldeck.service import DeckService
from fakes import FakeMedia, FakeMic, FakeSensors, FakeVolume


def _service(controllers: Controllers) -> DeckService:
    caps = CapabilitySet(platform="linux", volume=("pactl",), mic=("pactl",))
    return DeckService(DeckConfig(tick_interval=10.0), caps, controllers, sensors=FakeSensors())


@pytest.fixture
def service(controllers):
    return _service(controllers)


@pytest.fixture
def client(service):
    with TestClient(create_app(service)) as c:
        yield c


# ──────────────────────────────────────────────────────────────────
# REST
# ──────────────────────────────────────────────────────────────────

class TestHealth:
    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["platform"] == "linux"
        assert body["domains"]["volume"] is True

    def test_capabilities(self, client):
        body = client.get("/api/capabilities").json()
        assert body["platform"] == "linux"

    def test_metrics(self, client):
        body = client.get("/api/system/metrics").json()
        assert "cpu_pct" in body
        assert body["media"]["status"] == "Stopped"


class TestVolumeRoutes:
    def test_get(self, client):
        body = client.get("/api/system/volume").json()
        assert body == {"success": True, "level": 50, "muted": False}

    def test_set_clamps(self, client, controllers):
        resp = client.post("/api/system/volume", json={"level": 150})
        assert resp.status_code == 200
        assert resp.json()["level"] == 100
        assert controllers.volume.level == 100

    def test_missing_level_rejected(self, client):
        assert client.post("/api/system/volume", json={}).status_code == 422


class TestBrightnessRoutes:
    def test_unsupported_is_501(self):
        controllers = Controllers(FakeVolume(), FakeMic(), NullBrightnessController(), FakeMedia())
        with TestClient(create_app(_service(controllers))) as client:
            resp = client.get("/api/system/brightness")
        assert resp.status_code == 501
        assert resp.json()["kind"] == "unsupported"

    def test_set(self, client):
        body = client.post("/api/system/brightness", json={"level": 35}).json()
        assert body == {"success": True, "level": 35}


class TestMediaRoutes:
    def test_command(self, client, controllers):
        assert client.post("/api/system/media", json={"action": "prev"}).status_code == 200
        assert controllers.media.sent == ["previous"]

    def test_unknown_command(self, client):
        assert client.post("/api/system/media", json={"action": "rewind"}).status_code == 400

    def test_state(self, client):
        body = client.get("/api/system/media").json()
        assert body["status"] == "Stopped"
        assert body["thumbnail"] == ""


class TestActionRoutes:
    def test_volume_up(self, client):
        resp = client.post("/api/actions/volume_up", json={"step": "10"})
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Volume: 60%"}

    def test_no_body(self, client):
        assert client.post("/api/actions/toggle_mic").json()["message"] == "Microphone muted"

    def test_unknown_action_is_500(self, client):
        resp = client.post("/api/actions/self_destruct", json={})
        assert resp.status_code == 500
        assert resp.json()["error"] == "Unknown action type: self_destruct"


# ──────────────────────────────────────────────────────────────────
# WebSocket
# ──────────────────────────────────────────────────────────────────

def _until(ws, msg_type: str, limit: int = 10) -> dict:
    for _ in range(limit):
        msg = ws.receive_json()
        if msg["type"] == msg_type:
            return msg
    raise AssertionError(f"no {msg_type} message received")


class TestTelemetryWebSocket:
    def test_initial_snapshot(self, client):
        with client.websocket_connect("/ws") as ws:
            msg = ws.receive_json()
            assert msg["type"] == "metrics"
            assert "volume_pct" in msg["data"]

    def test_ping_pong(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "ping"})
            assert _until(ws, "pong") == {"type": "pong"}

    def test_get_metrics(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "get_metrics"})
            assert _until(ws, "metrics")["data"]["mem_total"] >= 0

    def test_subscribed_while_connected(self, client, service):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            assert service.hub.subscriber_count == 1

    def test_disconnect_releases_subscriber(self, client, service):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
        deadline = time.monotonic() + 2.0
        while service.hub.subscriber_count and time.monotonic() < deadline:
            time.sleep(0.01)
        assert service.hub.subscriber_count == 0

    def test_service_stops_after_socket_session(self, service):
        with TestClient(create_app(service)) as client:
            with client.websocket_connect("/ws") as ws:
                ws.receive_json()
                ws.send_json({"type": "ping"})
                _until(ws, "pong")
        assert not service.running


class TestCapabilityRefreshRoute:
    def test_refresh(self, client, service):
        fresh = Controllers(FakeVolume(level=20), FakeMic(), NullBrightnessController(), FakeMedia())
        caps = CapabilitySet(platform="linux", volume=("amixer",))
        with patch("ctrldeck.service.probe_capabilities", return_value=caps), \
                patch("ctrldeck.service.create_controllers", return_value=fresh):
            body = client.post("/api/capabilities/refresh").json()
        assert body["volume"] == ["amixer"]
        assert client.get("/api/system/volume").json()["level"] == 20
        assert client.get("/api/system/brightness").status_code == 501

"""Tests for the command dispatcher."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from ctrldeck.actions import ActionError, ExecutionResult
from ctrldeck.controllers import Controllers
from ctrldeck.dispatcher import CommandDispatcher, int_param
from ctrldeck.errors import ErrorKind
from ctrldeck.models import ControlResult


@pytest.fixture
def launcher():
    return MagicMock()


@pytest.fixture
def scripts():
    mock = MagicMock()
    mock.run.return_value = ExecutionResult(stdout="done\n", exit_code=0)
    return mock


@pytest.fixture
def dispatcher(controllers, launcher, scripts):
    return CommandDispatcher(controllers, launcher=launcher, scripts=scripts)


class TestIntParam:
    def test_values(self):
        assert int_param({"step": "7"}, "step", 5) == 7
        assert int_param({"step": 3}, "step", 5) == 3
        assert int_param({"step": "2.0"}, "step", 5) == 2
        assert int_param({"step": "abc"}, "step", 5) == 5
        assert int_param({}, "step", 5) == 5
        assert int_param({"step": ""}, "step", 5) == 5
        assert int_param({"step": "1e999"}, "step", 5) == 5
        assert int_param({"step": "nan"}, "step", 5) == 5


# ──────────────────────────────────────────────────────────────────
# Device actions
# ──────────────────────────────────────────────────────────────────

class TestVolumeActions:
    @pytest.mark.asyncio
    async def test_volume_up(self, dispatcher):
        response = await dispatcher.dispatch("volume_up", {"step": "5"})
        assert response.success
        assert response.message == "Volume: 55%"

    @pytest.mark.asyncio
    async def test_bad_step_uses_default(self, dispatcher):
        response = await dispatcher.dispatch("volume_up", {"step": "lots"})
        assert response.message == "Volume: 55%"

    @pytest.mark.asyncio
    async def test_overflowing_step_uses_default(self, dispatcher):
        response = await dispatcher.dispatch("volume_up", {"step": "1e999"})
        assert response.message == "Volume: 55%"

    @pytest.mark.asyncio
    async def test_infinite_level_rejected(self, dispatcher, controllers):
        response = await dispatcher.dispatch("volume_set", {"level": "inf"})
        assert not response.success
        assert "finite" in response.error
        assert controllers.volume.writes == []

    @pytest.mark.asyncio
    async def test_volume_down_clamps(self, dispatcher):
        response = await dispatcher.dispatch("volume_down", {"step": "60"})
        assert response.message == "Volume: 0%"

    @pytest.mark.asyncio
    async def test_volume_set(self, dispatcher, controllers):
        assert (await dispatcher.dispatch("volume_set", {"level": "150"})).message == "Volume: 100%"
        assert controllers.volume.level == 100
        assert not (await dispatcher.dispatch("volume_set", {})).success

    @pytest.mark.asyncio
    async def test_volume_mute(self, dispatcher):
        assert (await dispatcher.dispatch("volume_mute")).message == "Volume muted"
        assert (await dispatcher.dispatch("volume_mute")).message == "Volume unmuted"

    @pytest.mark.asyncio
    async def test_knobs_are_informational(self, dispatcher):
        response = await dispatcher.dispatch("volume_knob")
        assert response.success and "interactive" in response.message
        assert (await dispatcher.dispatch("brightness_knob")).success


class TestMicActions:
    @pytest.mark.asyncio
    async def test_toggle_and_alias(self, dispatcher):
        assert (await dispatcher.dispatch("toggle_mic")).message == "Microphone muted"
        assert (await dispatcher.dispatch("mute_mic")).message == "Microphone unmuted"

    @pytest.mark.asyncio
    async def test_explicit(self, dispatcher, controllers):
        await dispatcher.dispatch("mic_mute")
        assert controllers.mic.muted is True
        response = await dispatcher.dispatch("mic_unmute")
        assert response.message == "Microphone unmuted"
        assert controllers.mic.muted is False

    @pytest.mark.asyncio
    async def test_unavailable_mic(self, launcher, scripts):
        dispatcher = CommandDispatcher(Controllers.null(), launcher=launcher, scripts=scripts)
        response = await dispatcher.dispatch("toggle_mic")
        assert not response.success
        assert "not available" in response.error


class TestBrightnessActions:
    @pytest.mark.asyncio
    async def test_up_default_step(self, dispatcher):
        assert (await dispatcher.dispatch("brightness_up")).message == "Brightness: 80%"

    @pytest.mark.asyncio
    async def test_down_and_set(self, dispatcher):
        assert (await dispatcher.dispatch("brightness_down", {"step": "100"})).message == "Brightness: 0%"
        assert (await dispatcher.dispatch("brightness_set", {"level": 42})).message == "Brightness: 42%"


class TestMediaActions:
    @pytest.mark.asyncio
    async def test_messages(self, dispatcher, controllers):
        assert (await dispatcher.dispatch("media_play_pause")).message == "Media play/pause toggled"
        assert (await dispatcher.dispatch("media_next")).message == "Skipped to next track"
        assert (await dispatcher.dispatch("media_prev")).message == "Skipped to previous track"
        assert controllers.media.sent == ["play_pause", "next", "previous"]

    @pytest.mark.asyncio
    async def test_failure(self, dispatcher, controllers):
        controllers.media.play_pause = AsyncMock(
            return_value=ControlResult.failure(ErrorKind.DEVICE_UNAVAILABLE, "no MPRIS player running")
        )
        response = await dispatcher.dispatch("media_play_pause")
        assert response.error == "no MPRIS player running"


# ──────────────────────────────────────────────────────────────────
# Apps, URLs, scripts
# ──────────────────────────────────────────────────────────────────

class TestLaunchActions:
    @pytest.mark.asyncio
    async def test_launch_app(self, dispatcher, launcher):
        response = await dispatcher.dispatch("launch_app", {"app_path": "/usr/bin/firefox"})
        assert response.message == "Application launched"
        launcher.launch.assert_called_once_with("/usr/bin/firefox")

    @pytest.mark.asyncio
    async def test_launch_app_requires_path(self, dispatcher, launcher):
        response = await dispatcher.dispatch("launch_app", {})
        assert response.error == "App path is required"
        launcher.launch.assert_not_called()

    @pytest.mark.asyncio
    async def test_launch_failure(self, dispatcher, launcher):
        launcher.launch.side_effect = ActionError("nohup not found")
        response = await dispatcher.dispatch("launch_app", {"app_path": "x"})
        assert response.error == "nohup not found"

    @pytest.mark.asyncio
    async def test_open_url(self, dispatcher, launcher):
        assert (await dispatcher.dispatch("open_url", {"url": "https://example.com"})).message == "URL opened"
        assert (await dispatcher.dispatch("open_url", {})).error == "URL is required"


class TestScriptActions:
    @pytest.mark.asyncio
    async def test_inline(self, dispatcher, scripts):
        response = await dispatcher.dispatch("run_script", {"script_id": "inline:echo done"})
        assert response.success and response.message == "done\n"
        scripts.run.assert_called_once_with("inline:echo done")

    @pytest.mark.asyncio
    async def test_unknown_script_without_resolver(self, dispatcher, scripts):
        response = await dispatcher.dispatch("run_script", {"script_id": "abc123"})
        assert response.error == "Script not found"
        scripts.run.assert_not_called()

    @pytest.mark.asyncio
    async def test_resolved_script(self, controllers, launcher, scripts):
        dispatcher = CommandDispatcher(
            controllers, launcher=launcher, scripts=scripts,
            script_resolver={"backup": "/home/me/scripts/backup.sh"}.get,
        )
        await dispatcher.dispatch("run_script", {"script_id": "backup"})
        scripts.run.assert_called_once_with("/home/me/scripts/backup.sh")

    @pytest.mark.asyncio
    async def test_failed_script(self, dispatcher, scripts):
        scripts.run.return_value = ExecutionResult(stderr="oops", exit_code=2, error="exit status 2")
        response = await dispatcher.dispatch("run_script", {"script_id": "inline:false"})
        assert not response.success
        assert response.error == "exit status 2"

    @pytest.mark.asyncio
    async def test_requires_id(self, dispatcher):
        assert (await dispatcher.dispatch("run_script")).error == "Script ID is required"


class TestDispatch:
    @pytest.mark.asyncio
    async def test_unknown_action(self, dispatcher, controllers):
        response = await dispatcher.dispatch("self_destruct", {"step": "1"})
        assert not response.success
        assert response.error == "Unknown action type: self_destruct"
        assert controllers.volume.writes == []

    @pytest.mark.asyncio
    async def test_controller_exception_never_escapes(self, dispatcher, controllers):
        controllers.volume = MagicMock()
        controllers.volume.up.side_effect = RuntimeError("driver exploded")
        response = await dispatcher.dispatch("volume_up")
        assert not response.success
        assert response.error == "driver exploded"

    def test_actions_listed(self, dispatcher):
        assert {"toggle_mic", "volume_up", "media_prev", "run_script"} <= set(dispatcher.actions)

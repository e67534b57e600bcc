"""Command dispatcher: logical action name + string params → controller call.

Every dispatch returns an :class:`ActionResponse`; nothing raised by a
controller or an action ever escapes :meth:`CommandDispatcher.dispatch`.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Mapping

from .actions import INLINE_PREFIX, ActionError, AppLauncher, ScriptExecutor, ScriptResolver
from .controllers import Controllers
from .models import ActionResponse, ControlResult

logger = logging.getLogger(__name__)

DEFAULT_VOLUME_STEP = 5
DEFAULT_BRIGHTNESS_STEP = 10

Handler = Callable[[Mapping[str, Any]], Awaitable[ActionResponse]]


def int_param(params: Mapping[str, Any], name: str, default: int) -> int:
    """Integer parameter, or *default* when missing or not numeric."""
    raw = params.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(float(str(raw).strip()))
    except (TypeError, ValueError, OverflowError):
        logger.debug("Parameter %s=%r is not numeric, using %d", name, raw, default)
        return default


def _failed(result: ControlResult) -> ActionResponse:
    return ActionResponse.fail(result.message or (result.error.value if result.error else "unknown error"))


class CommandDispatcher:
    def __init__(
        self,
        controllers: Controllers,
        launcher: AppLauncher | None = None,
        scripts: ScriptExecutor | None = None,
        script_resolver: ScriptResolver | None = None,
        volume_step: int = DEFAULT_VOLUME_STEP,
        brightness_step: int = DEFAULT_BRIGHTNESS_STEP,
    ) -> None:
        self.controllers = controllers
        self.launcher = launcher or AppLauncher()
        self.scripts = scripts or ScriptExecutor()
        self.script_resolver = script_resolver
        self.volume_step = volume_step
        self.brightness_step = brightness_step

        self._handlers: dict[str, Handler] = {
            "toggle_mic": self._toggle_mic,
            "mute_mic": self._toggle_mic,
            "mic_mute": functools.partial(self._set_mic, True),
            "mic_unmute": functools.partial(self._set_mic, False),
            "volume_up": self._volume_up,
            "volume_down": self._volume_down,
            "volume_set": self._volume_set,
            "volume_mute": self._volume_mute,
            "volume_knob": self._volume_knob,
            "brightness_up": self._brightness_up,
            "brightness_down": self._brightness_down,
            "brightness_set": self._brightness_set,
            "brightness_knob": self._brightness_knob,
            "media_play_pause": self._media_play_pause,
            "media_next": self._media_next,
            "media_prev": self._media_prev,
            "launch_app": self._launch_app,
            "run_script": self._run_script,
            "open_url": self._open_url,
        }

    @property
    def actions(self) -> list[str]:
        return sorted(self._handlers)

    async def dispatch(self, action_type: str, params: Mapping[str, Any] | None = None) -> ActionResponse:
        handler = self._handlers.get(action_type)
        if handler is None:
            return ActionResponse.fail(f"Unknown action type: {action_type}")
        try:
            response = await handler(params or {})
        except Exception as exc:  # noqa: BLE001
            logger.exception("Action %s failed", action_type)
            return ActionResponse.fail(str(exc) or exc.__class__.__name__)
        if response.success:
            logger.info("%s: %s", action_type, response.message)
        else:
            logger.warning("%s failed: %s", action_type, response.error)
        return response

    async def _blocking(self, fn: Callable, *args) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args))

    # ── Microphone ──

    async def _toggle_mic(self, params: Mapping[str, Any]) -> ActionResponse:
        result = await self._blocking(self.controllers.mic.toggle_mute)
        if not result.ok:
            return _failed(result)
        return ActionResponse.ok("Microphone muted" if result.value else "Microphone unmuted")

    async def _set_mic(self, muted: bool, params: Mapping[str, Any]) -> ActionResponse:
        result = await self._blocking(self.controllers.mic.set_mute, muted)
        if not result.ok:
            return _failed(result)
        return ActionResponse.ok("Microphone muted" if muted else "Microphone unmuted")

    # ── Volume ──

    async def _volume_up(self, params: Mapping[str, Any]) -> ActionResponse:
        step = int_param(params, "step", self.volume_step)
        return self._level("Volume", await self._blocking(self.controllers.volume.up, step))

    async def _volume_down(self, params: Mapping[str, Any]) -> ActionResponse:
        step = int_param(params, "step", self.volume_step)
        return self._level("Volume", await self._blocking(self.controllers.volume.down, step))

    async def _volume_set(self, params: Mapping[str, Any]) -> ActionResponse:
        if "level" not in params:
            return ActionResponse.fail("level is required")
        result = await self._blocking(self.controllers.volume.set, params["level"])
        return self._level("Volume", result)

    async def _volume_mute(self, params: Mapping[str, Any]) -> ActionResponse:
        result = await self._blocking(self.controllers.volume.toggle_mute)
        if not result.ok:
            return _failed(result)
        return ActionResponse.ok("Volume muted" if result.value else "Volume unmuted")

    async def _volume_knob(self, params: Mapping[str, Any]) -> ActionResponse:
        return ActionResponse.ok("Volume knob is interactive - use direct volume control")

    # ── Brightness ──

    async def _brightness_up(self, params: Mapping[str, Any]) -> ActionResponse:
        step = int_param(params, "step", self.brightness_step)
        return self._level("Brightness", await self._blocking(self.controllers.brightness.up, step))

    async def _brightness_down(self, params: Mapping[str, Any]) -> ActionResponse:
        step = int_param(params, "step", self.brightness_step)
        return self._level("Brightness", await self._blocking(self.controllers.brightness.down, step))

    async def _brightness_set(self, params: Mapping[str, Any]) -> ActionResponse:
        if "level" not in params:
            return ActionResponse.fail("level is required")
        result = await self._blocking(self.controllers.brightness.set, params["level"])
        return self._level("Brightness", result)

    async def _brightness_knob(self, params: Mapping[str, Any]) -> ActionResponse:
        return ActionResponse.ok("Brightness knob is interactive - use direct brightness control")

    @staticmethod
    def _level(label: str, result: ControlResult) -> ActionResponse:
        if not result.ok:
            return _failed(result)
        return ActionResponse.ok(f"{label}: {result.value}%")

    # ── Media ──

    async def _media(self, command: Callable[[], Awaitable[ControlResult]], message: str) -> ActionResponse:
        result = await command()
        if not result.ok:
            return _failed(result)
        return ActionResponse.ok(message)

    async def _media_play_pause(self, params: Mapping[str, Any]) -> ActionResponse:
        return await self._media(self.controllers.media.play_pause, "Media play/pause toggled")

    async def _media_next(self, params: Mapping[str, Any]) -> ActionResponse:
        return await self._media(self.controllers.media.next, "Skipped to next track")

    async def _media_prev(self, params: Mapping[str, Any]) -> ActionResponse:
        return await self._media(self.controllers.media.previous, "Skipped to previous track")

    # ── Applications, URLs, scripts ──

    async def _launch_app(self, params: Mapping[str, Any]) -> ActionResponse:
        app_path = str(params.get("app_path") or "")
        if not app_path:
            return ActionResponse.fail("App path is required")
        try:
            await self._blocking(self.launcher.launch, app_path)
        except ActionError as exc:
            return ActionResponse.fail(str(exc))
        return ActionResponse.ok("Application launched")

    async def _open_url(self, params: Mapping[str, Any]) -> ActionResponse:
        url = str(params.get("url") or "")
        if not url:
            return ActionResponse.fail("URL is required")
        try:
            await self._blocking(self.launcher.open_url, url)
        except ActionError as exc:
            return ActionResponse.fail(str(exc))
        return ActionResponse.ok("URL opened")

    async def _run_script(self, params: Mapping[str, Any]) -> ActionResponse:
        script_id = str(params.get("script_id") or "")
        if not script_id:
            return ActionResponse.fail("Script ID is required")

        if script_id.startswith(INLINE_PREFIX):
            target = script_id
        else:
            target = self.script_resolver(script_id) if self.script_resolver else None
            if not target:
                return ActionResponse.fail("Script not found")

        try:
            result = await self._blocking(self.scripts.run, target)
        except ActionError as exc:
            return ActionResponse.fail(str(exc))
        return ActionResponse(success=result.success, message=result.stdout, error=result.error)

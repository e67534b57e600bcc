"""Output volume controllers.

Linux:   pulsectl → pactl → amixer (``Master``)
Windows: pycaw endpoint volume
Other:   NullVolumeController (always ``unsupported``)
"""

from __future__ import annotations

import logging

from ..capabilities import CapabilitySet
from ..errors import ControlError, ErrorKind
from ..runner import DEFAULT_TIMEOUT, run
from .base import DeviceController, LevelControl, MuteControl
from .endpoint import AudioEndpoint
from .mixer import PulseConnection, parse_amixer, parse_pactl_mute, parse_pactl_volume

logger = logging.getLogger(__name__)


class VolumeController(LevelControl, MuteControl, DeviceController):
    """Master output volume: ``get/set/up/down`` plus the mute flag."""

    domain = "volume"


class NullVolumeController(VolumeController):
    """Used when no mixer mechanism exists on this host."""

    def __init__(self) -> None:
        super().__init__(())

    def _read_level(self) -> int:
        raise ControlError(ErrorKind.UNSUPPORTED, "volume control not available")

    def _write_level(self, percent: int) -> None:
        raise ControlError(ErrorKind.UNSUPPORTED, "volume control not available")

    def _read_muted(self) -> bool:
        raise ControlError(ErrorKind.UNSUPPORTED, "volume control not available")

    def _write_muted(self, muted: bool) -> None:
        raise ControlError(ErrorKind.UNSUPPORTED, "volume control not available")


class LinuxVolumeController(VolumeController):
    def __init__(
        self,
        caps: CapabilitySet,
        pulse: PulseConnection | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_failures: int = 3,
    ) -> None:
        mechanisms = tuple(m for m in caps.volume if m != "pulsectl" or pulse is not None)
        super().__init__(mechanisms, max_failures)
        self._pulse = pulse
        self._pactl = caps.pactl_path or "pactl"
        self._amixer = caps.amixer_path or "amixer"
        self._timeout = timeout

    def _amixer_get(self):
        return parse_amixer(run([self._amixer, "get", "Master"], self._timeout))

    def _read_level(self) -> int:
        return self._chain("read volume", {
            "pulsectl": lambda: self._pulse.volume("sink"),
            "pactl": lambda: parse_pactl_volume(
                run([self._pactl, "get-sink-volume", "@DEFAULT_SINK@"], self._timeout)
            ),
            "amixer": lambda: self._amixer_get().percent,
        })

    def _write_level(self, percent: int) -> None:
        self._chain("set volume", {
            "pulsectl": lambda: self._pulse.set_volume(percent, "sink"),
            "pactl": lambda: run(
                [self._pactl, "set-sink-volume", "@DEFAULT_SINK@", f"{percent}%"], self._timeout
            ),
            "amixer": lambda: run([self._amixer, "-q", "set", "Master", f"{percent}%"], self._timeout),
        })

    def _amixer_muted(self) -> bool:
        muted = self._amixer_get().muted
        if muted is None:
            raise ControlError(ErrorKind.UNSUPPORTED, "Master control has no mute switch")
        return muted

    def _read_muted(self) -> bool:
        return self._chain("read mute", {
            "pulsectl": lambda: self._pulse.muted("sink"),
            "pactl": lambda: parse_pactl_mute(
                run([self._pactl, "get-sink-mute", "@DEFAULT_SINK@"], self._timeout)
            ),
            "amixer": self._amixer_muted,
        })

    def _write_muted(self, muted: bool) -> None:
        self._chain("set mute", {
            "pulsectl": lambda: self._pulse.set_muted(muted, "sink"),
            "pactl": lambda: run(
                [self._pactl, "set-sink-mute", "@DEFAULT_SINK@", "1" if muted else "0"], self._timeout
            ),
            "amixer": lambda: run(
                [self._amixer, "-q", "set", "Master", "mute" if muted else "unmute"], self._timeout
            ),
        })


class WindowsVolumeController(VolumeController):
    """Default render endpoint via Core Audio.

    Step operations go through the proportional endpoint API, never through
    synthetic media-key presses.
    """

    def __init__(self, caps: CapabilitySet, max_failures: int = 3) -> None:
        super().__init__(caps.volume, max_failures)
        self._endpoint = AudioEndpoint(capture=False)

    def _read_level(self) -> int:
        return self._chain("read volume", {"pycaw": self._endpoint.level})

    def _write_level(self, percent: int) -> None:
        self._chain("set volume", {"pycaw": lambda: self._endpoint.set_level(percent)})

    def _read_muted(self) -> bool:
        return self._chain("read mute", {"pycaw": self._endpoint.muted})

    def _write_muted(self, muted: bool) -> None:
        self._chain("set mute", {"pycaw": lambda: self._endpoint.set_muted(muted)})

"""Microphone (default capture source) mute controllers.

Only the mute flag is controlled; capture gain is left alone.
"""

from __future__ import annotations

import logging

from ..capabilities import CapabilitySet
from ..errors import ControlError, ErrorKind
from ..runner import DEFAULT_TIMEOUT, run
from .base import DeviceController, MuteControl
from .endpoint import AudioEndpoint
from .mixer import PulseConnection, parse_amixer, parse_pacmd_default_source_muted, parse_pactl_mute

logger = logging.getLogger(__name__)


class MicController(MuteControl, DeviceController):
    domain = "mic"

    def mute(self):
        return self.set_mute(True)

    def unmute(self):
        return self.set_mute(False)


class NullMicController(MicController):
    def __init__(self) -> None:
        super().__init__(())

    def _read_muted(self) -> bool:
        raise ControlError(ErrorKind.UNSUPPORTED, "microphone control not available")

    def _write_muted(self, muted: bool) -> None:
        raise ControlError(ErrorKind.UNSUPPORTED, "microphone control not available")


class LinuxMicController(MicController):
    """pulsectl → pactl → pacmd (read only) → amixer ``Capture``."""

    def __init__(
        self,
        caps: CapabilitySet,
        pulse: PulseConnection | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_failures: int = 3,
    ) -> None:
        mechanisms = tuple(m for m in caps.mic if m != "pulsectl" or pulse is not None)
        super().__init__(mechanisms, max_failures)
        self._pulse = pulse
        self._pactl = caps.pactl_path or "pactl"
        self._pacmd = caps.pacmd_path or "pacmd"
        self._amixer = caps.amixer_path or "amixer"
        self._timeout = timeout

    def _amixer_muted(self) -> bool:
        muted = parse_amixer(run([self._amixer, "get", "Capture"], self._timeout)).muted
        if muted is None:
            raise ControlError(ErrorKind.UNSUPPORTED, "Capture control has no switch")
        return muted

    def _read_muted(self) -> bool:
        return self._chain("read mute", {
            "pulsectl": lambda: self._pulse.muted("source"),
            "pactl": lambda: parse_pactl_mute(
                run([self._pactl, "get-source-mute", "@DEFAULT_SOURCE@"], self._timeout)
            ),
            "pacmd": lambda: parse_pacmd_default_source_muted(
                run([self._pacmd, "list-sources"], self._timeout)
            ),
            "amixer": self._amixer_muted,
        })

    def _write_muted(self, muted: bool) -> None:
        self._chain("set mute", {
            "pulsectl": lambda: self._pulse.set_muted(muted, "source"),
            "pactl": lambda: run(
                [self._pactl, "set-source-mute", "@DEFAULT_SOURCE@", "1" if muted else "0"],
                self._timeout,
            ),
            # ALSA capture switch: "cap" enables recording, so muting is "nocap"
            "amixer": lambda: run(
                [self._amixer, "-q", "set", "Capture", "nocap" if muted else "cap"], self._timeout
            ),
        })


class WindowsMicController(MicController):
    def __init__(self, caps: CapabilitySet, max_failures: int = 3) -> None:
        super().__init__(caps.mic, max_failures)
        self._endpoint = AudioEndpoint(capture=True)

    def _read_muted(self) -> bool:
        return self._chain("read mute", {"pycaw": self._endpoint.muted})

    def _write_muted(self, muted: bool) -> None:
        self._chain("set mute", {"pycaw": lambda: self._endpoint.set_muted(muted)})

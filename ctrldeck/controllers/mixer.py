"""Linux mixer plumbing shared by the volume and microphone controllers.

Three tiers, fastest first:
  - pulsectl: native libpulse binding (works against PipeWire's pulse server)
  - pactl:    the PulseAudio CLI
  - amixer:   ALSA simple mixer controls (and pacmd, read-only, for sources)

CLI output is treated as untrusted text: parsers accept only the shapes they
know and raise ``ValueError`` on anything else.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass

from ..errors import ControlError, ErrorKind
from ..models import normalize_percent

logger = logging.getLogger(__name__)

PA_VOLUME_NORM = 65536  # pactl raw units for 100%


# ──────────────────────────────────────────────────────────────────
# Native binding
# ──────────────────────────────────────────────────────────────────


class PulseConnection:
    """Lazily connected, thread-safe wrapper around ``pulsectl.Pulse``.

    One instance is shared by the volume and microphone controllers. Any
    error drops the connection so the next call reconnects.
    """

    def __init__(self, client_name: str = "ctrldeck") -> None:
        self._client_name = client_name
        self._pulse = None
        self._lock = threading.Lock()

    def _connect(self):
        if self._pulse is None:
            import pulsectl

            self._pulse = pulsectl.Pulse(self._client_name)
        return self._pulse

    def _default(self, pulse, kind: str):
        info = pulse.server_info()
        if kind == "sink":
            name = info.default_sink_name
            if not name:
                raise ControlError(ErrorKind.DEVICE_UNAVAILABLE, "no default audio output")
            return pulse.get_sink_by_name(name)
        name = info.default_source_name
        if not name:
            raise ControlError(ErrorKind.DEVICE_UNAVAILABLE, "no default audio input")
        return pulse.get_source_by_name(name)

    def _run(self, fn):
        with self._lock:
            try:
                return fn(self._connect())
            except Exception:
                self._drop()
                raise

    def _drop(self) -> None:
        if self._pulse is not None:
            try:
                self._pulse.close()
            except Exception:  # noqa: BLE001
                logger.debug("Error closing pulse connection", exc_info=True)
            self._pulse = None

    def volume(self, kind: str = "sink") -> int:
        def _op(pulse):
            obj = self._default(pulse, kind)
            return normalize_percent(pulse.volume_get_all_chans(obj), 0.0, 1.0)
        return self._run(_op)

    def set_volume(self, percent: int, kind: str = "sink") -> None:
        def _op(pulse):
            pulse.volume_set_all_chans(self._default(pulse, kind), percent / 100.0)
        self._run(_op)

    def muted(self, kind: str = "sink") -> bool:
        return self._run(lambda pulse: bool(self._default(pulse, kind).mute))

    def set_muted(self, muted: bool, kind: str = "sink") -> None:
        self._run(lambda pulse: pulse.mute(self._default(pulse, kind), muted))

    def close(self) -> None:
        with self._lock:
            self._drop()


# ──────────────────────────────────────────────────────────────────
# pactl
# ──────────────────────────────────────────────────────────────────

_PACTL_CHANNEL = re.compile(r":\s*(\d+)\s*/\s*\d+%")
_MUTE_LINE = re.compile(r"^\s*Mute:\s*(yes|no)\s*$", re.IGNORECASE | re.MULTILINE)


def parse_pactl_volume(output: str) -> int:
    """``Volume: front-left: 39321 /  60% / -13.31 dB, ...`` → 60."""
    raws = [int(v) for v in _PACTL_CHANNEL.findall(output)]
    if not raws:
        raise ValueError(f"unrecognized pactl volume output: {output[:80]!r}")
    return normalize_percent(sum(raws) / len(raws), 0, PA_VOLUME_NORM)


def parse_pactl_mute(output: str) -> bool:
    match = _MUTE_LINE.search(output)
    if not match:
        raise ValueError(f"unrecognized pactl mute output: {output[:80]!r}")
    return match.group(1).lower() == "yes"


# ──────────────────────────────────────────────────────────────────
# amixer
# ──────────────────────────────────────────────────────────────────

_AMIXER_LIMITS = re.compile(r"Limits:\s*(?:Playback|Capture)?\s*(-?\d+)\s*-\s*(-?\d+)")
_AMIXER_CHANNEL = re.compile(
    r"^\s*[\w ]+:\s*(?:Playback|Capture)\s+(-?\d+)\s+\[(\d+)%\](.*)$", re.MULTILINE
)


@dataclass(frozen=True)
class AmixerReading:
    percent: int
    muted: bool | None  # None when the control has no switch


def parse_amixer(output: str) -> AmixerReading:
    """Parse ``amixer get <control>`` into a level and a mute flag.

    Raw values are normalized against the control's ``Limits`` line; the
    bracketed percentage is used only when no limits are reported.
    """
    channels = _AMIXER_CHANNEL.findall(output)
    if not channels:
        raise ValueError(f"unrecognized amixer output: {output[:80]!r}")

    limits = _AMIXER_LIMITS.search(output)
    raws = [int(raw) for raw, _, _ in channels]
    if limits:
        percent = normalize_percent(sum(raws) / len(raws), int(limits.group(1)), int(limits.group(2)))
    else:
        percent = round(sum(int(pct) for _, pct, _ in channels) / len(channels))

    switches = [rest for _, _, rest in channels if "[on]" in rest or "[off]" in rest]
    muted = any("[off]" in rest for rest in switches) if switches else None
    return AmixerReading(percent=percent, muted=muted)


# ──────────────────────────────────────────────────────────────────
# pacmd (read-only source fallback)
# ──────────────────────────────────────────────────────────────────


def parse_pacmd_default_source_muted(output: str) -> bool:
    """Find ``muted:`` inside the ``* index:`` (default) block of ``pacmd list-sources``."""
    in_default = False
    for line in output.splitlines():
        stripped = line.strip()
        if stripped.startswith("* index:"):
            in_default = True
            continue
        if stripped.startswith("index:") and in_default:
            break
        if in_default and stripped.startswith("muted:"):
            return stripped.split(":", 1)[1].strip().lower() == "yes"
    raise ValueError("default source not found in pacmd output")

"""Value objects passed between controllers, the sampler and the transport."""

from __future__ import annotations

import base64
import dataclasses
import enum
import math
import time
from dataclasses import dataclass, field
from typing import Any, Union

from .errors import ErrorKind

# ──────────────────────────────────────────────────────────────────
# Sentinels reported when a sensor or controller cannot be read
# ──────────────────────────────────────────────────────────────────

BATTERY_UNAVAILABLE = -1
TEMPERATURE_UNAVAILABLE = -1.0
LEVEL_UNAVAILABLE = -1          # volume_pct / brightness_pct
CPU_UNAVAILABLE = 0.0
MEMORY_UNAVAILABLE = 0
RATE_UNAVAILABLE = 0.0


def clamp_percent(value: int | float) -> int:
    """Round and clamp *value* into the ``[0, 100]`` integer scale."""
    if not math.isfinite(value):
        raise ValueError(f"level must be finite, got {value!r}")
    return max(0, min(100, int(round(value))))


def normalize_percent(raw: int | float, minimum: int | float, maximum: int | float) -> int:
    """Map a native reading onto ``[0, 100]``.

    ``round((raw - min) * 100 / (max - min))``, with a degenerate range
    (``max == min``) reported as 100.
    """
    if maximum == minimum:
        return 100
    return clamp_percent((raw - minimum) * 100 / (maximum - minimum))


# ──────────────────────────────────────────────────────────────────
# Control results
# ──────────────────────────────────────────────────────────────────

ControlValue = Union[int, bool, None]


@dataclass(frozen=True)
class ControlResult:
    """Outcome of a single device controller call.

    Either ``ok`` with a ``value`` (or ``None`` for pure commands), or not ``ok``
    with an ``error``. Never both.
    """

    ok: bool
    value: ControlValue = None
    error: ErrorKind | None = None
    message: str = ""

    def __post_init__(self) -> None:
        if self.ok and self.error is not None:
            raise ValueError("successful ControlResult cannot carry an error")
        if not self.ok and (self.error is None or self.value is not None):
            raise ValueError("failed ControlResult needs an error and no value")

    @classmethod
    def success(cls, value: ControlValue = None) -> ControlResult:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str = "") -> ControlResult:
        return cls(ok=False, error=kind, message=message or kind.value)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"ok": self.ok}
        if self.ok:
            if self.value is not None:
                data["value"] = self.value
        else:
            data["error"] = self.error.value
            data["message"] = self.message
        return data


# ──────────────────────────────────────────────────────────────────
# Media
# ──────────────────────────────────────────────────────────────────


class MediaStatus(str, enum.Enum):
    PLAYING = "Playing"
    PAUSED = "Paused"
    STOPPED = "Stopped"

    @classmethod
    def parse(cls, value: str | None) -> MediaStatus:
        for status in cls:
            if value and value.strip().lower() == status.value.lower():
                return status
        return cls.STOPPED


@dataclass(frozen=True)
class MediaState:
    """Now-playing information. Equality compares every field."""

    title: str = ""
    artist: str = ""
    status: MediaStatus = MediaStatus.STOPPED
    artwork: bytes | None = None

    @classmethod
    def stopped(cls) -> MediaState:
        return cls()

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "artist": self.artist,
            "status": self.status.value,
            "thumbnail": base64.b64encode(self.artwork).decode("ascii") if self.artwork else "",
        }


# ──────────────────────────────────────────────────────────────────
# Telemetry
# ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TelemetrySnapshot:
    """One fully formed telemetry reading.

    Unreadable sensors carry the sentinels defined at the top of this module,
    never ``None`` or ``NaN``.
    """

    timestamp: float = field(default_factory=time.time)
    cpu_pct: float = CPU_UNAVAILABLE
    mem_used: int = MEMORY_UNAVAILABLE
    mem_total: int = MEMORY_UNAVAILABLE
    battery_pct: int = BATTERY_UNAVAILABLE
    charging: bool = False
    cpu_temp_c: float = TEMPERATURE_UNAVAILABLE
    mic_muted: bool = False
    volume_pct: int = LEVEL_UNAVAILABLE
    volume_muted: bool = False
    brightness_pct: int = LEVEL_UNAVAILABLE
    net_up_bps: float = RATE_UNAVAILABLE
    net_down_bps: float = RATE_UNAVAILABLE
    media: MediaState = field(default_factory=MediaState)

    @property
    def mem_pct(self) -> float:
        if self.mem_total <= 0:
            return 0.0
        return round(self.mem_used * 100.0 / self.mem_total, 1)

    def with_media(self, media: MediaState) -> TelemetrySnapshot:
        return dataclasses.replace(self, media=media, timestamp=time.time())

    def to_dict(self) -> dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in dataclasses.fields(self) if f.name != "media"}
        data["timestamp"] = int(self.timestamp)
        data["mem_pct"] = self.mem_pct
        data["media"] = self.media.to_dict()
        return data


# ──────────────────────────────────────────────────────────────────
# Dispatcher output
# ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ActionResponse:
    success: bool
    message: str = ""
    error: str = ""

    @classmethod
    def ok(cls, message: str) -> ActionResponse:
        return cls(success=True, message=message)

    @classmethod
    def fail(cls, error: str) -> ActionResponse:
        return cls(success=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.message:
            data["message"] = self.message
        if self.error:
            data["error"] = self.error
        return data

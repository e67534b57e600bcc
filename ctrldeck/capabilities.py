"""Capability probe: decides once how each hardware domain is controlled.

The probe only reads the local filesystem, ``PATH`` and importable bindings;
it never writes. The resulting :class:`CapabilitySet` is immutable and shared
read-only by every controller until an explicit refresh re-probes.

Mechanism names, per domain, in priority order:

  volume      pulsectl, pactl, amixer          (Linux)   | pycaw        (Windows)
  mic         pulsectl, pactl, pacmd, amixer   (Linux)   | pycaw        (Windows)
  brightness  sysfs, brightnessctl, logind     (Linux)   | ddcci, wmi   (Windows)
  media       mpris, playerctl                 (Linux)   | gsmtc        (Windows)
"""

from __future__ import annotations

import logging
import os
import platform
from dataclasses import dataclass
from pathlib import Path

from .config import DeckConfig
from .runner import find_tool

logger = logging.getLogger(__name__)

DOMAINS = ("volume", "mic", "brightness", "media")

# Mechanisms that can only issue commands, never report state
COMMAND_ONLY = frozenset({"playerctl"})


@dataclass(frozen=True)
class CapabilitySet:
    """Which native mechanism controls each domain on this host."""

    platform: str = "unknown"
    volume: tuple[str, ...] = ()
    mic: tuple[str, ...] = ()
    brightness: tuple[str, ...] = ()
    media: tuple[str, ...] = ()

    # Linux details
    backlight_device_path: str | None = None
    backlight_max_brightness: int = 0
    pactl_path: str | None = None
    pacmd_path: str | None = None
    amixer_path: str | None = None
    brightnessctl_path: str | None = None
    busctl_path: str | None = None
    playerctl_path: str | None = None

    # Windows details
    powershell_path: str | None = None

    def mechanisms(self, domain: str) -> tuple[str, ...]:
        if domain not in DOMAINS:
            raise KeyError(domain)
        return getattr(self, domain)

    def is_available(self, domain: str) -> bool:
        return bool(self.mechanisms(domain))

    @property
    def mixer_tool(self) -> str | None:
        return self.volume[0] if self.volume else None

    @property
    def media_backend(self) -> str | None:
        """The state-reporting media mechanism (command-only tools excluded)."""
        for name in self.media:
            if name not in COMMAND_ONLY:
                return name
        return None

    def to_dict(self) -> dict:
        return {
            "platform": self.platform,
            "volume": list(self.volume),
            "mic": list(self.mic),
            "brightness": list(self.brightness),
            "media": list(self.media),
            "mixer_tool": self.mixer_tool,
            "media_backend": self.media_backend,
            "backlight_device_path": self.backlight_device_path,
        }


# ──────────────────────────────────────────────────────────────────
# Individual probes
# ──────────────────────────────────────────────────────────────────


def find_backlight(backlight_base: Path, preference: list[str]) -> tuple[str | None, int]:
    """Pick a backlight device, preferring *preference* order, else the first found.

    Returns ``(device_path, max_brightness)``; ``max_brightness`` falls back to
    100 when the node is unreadable.
    """
    try:
        entries = sorted(p.name for p in backlight_base.iterdir())
    except OSError:
        return None, 0
    if not entries:
        return None, 0

    chosen = next((name for name in preference if name in entries), entries[0])
    device = backlight_base / chosen
    try:
        max_brightness = int((device / "max_brightness").read_text().strip())
    except (OSError, ValueError):
        max_brightness = 100
    return str(device), max_brightness


def _pulse_available() -> bool:
    """Whether the native PulseAudio/PipeWire binding can reach a server."""
    try:
        import pulsectl
    except (ImportError, OSError):
        return False
    try:
        with pulsectl.Pulse("ctrldeck-probe") as pulse:
            pulse.server_info()
        return True
    except Exception as exc:  # noqa: BLE001
        logger.debug("pulsectl cannot connect: %s", exc)
        return False


def _dbus_session_available() -> bool:
    try:
        import dbus_next  # noqa: F401
    except ImportError:
        return False
    if os.environ.get("DBUS_SESSION_BUS_ADDRESS"):
        return True
    getuid = getattr(os, "getuid", None)
    return getuid is not None and Path(f"/run/user/{getuid()}/bus").exists()


def _pycaw_available() -> bool:
    try:
        from pycaw.pycaw import AudioUtilities  # noqa: F401
    except Exception:  # noqa: BLE001 - comtypes raises OSError off-Windows
        return False
    return True


def _ddcci_available() -> bool:
    try:
        import ctypes
        ctypes.windll.dxva2  # noqa: B018
    except (ImportError, AttributeError, OSError):
        return False
    return True


def _gsmtc_available() -> bool:
    try:
        from winsdk.windows.media.control import (  # noqa: F401
            GlobalSystemMediaTransportControlsSessionManager,
        )
    except ImportError:
        return False
    return True


def _probe_linux(config: DeckConfig, sys_root: Path) -> CapabilitySet:
    search = config.tool_search_paths
    pactl = find_tool("pactl", search)
    pacmd = find_tool("pacmd", search)
    amixer = find_tool("amixer", search)
    brightnessctl = find_tool("brightnessctl", search)
    busctl = find_tool("busctl", search)
    playerctl = find_tool("playerctl", search)
    pulse_native = _pulse_available()

    backlight, max_brightness = find_backlight(
        sys_root / "class" / "backlight", config.backlight_preference
    )

    def _present(*candidates: tuple[str, object]) -> tuple[str, ...]:
        return tuple(name for name, found in candidates if found)

    return CapabilitySet(
        platform="linux",
        volume=_present(("pulsectl", pulse_native), ("pactl", pactl), ("amixer", amixer)),
        mic=_present(
            ("pulsectl", pulse_native), ("pactl", pactl), ("pacmd", pacmd), ("amixer", amixer),
        ),
        brightness=_present(
            ("sysfs", backlight),
            ("brightnessctl", brightnessctl),
            ("logind", busctl and backlight),
        ),
        media=_present(("mpris", _dbus_session_available()), ("playerctl", playerctl)),
        backlight_device_path=backlight,
        backlight_max_brightness=max_brightness,
        pactl_path=pactl,
        pacmd_path=pacmd,
        amixer_path=amixer,
        brightnessctl_path=brightnessctl,
        busctl_path=busctl,
        playerctl_path=playerctl,
    )


def _probe_windows(config: DeckConfig) -> CapabilitySet:
    powershell = find_tool("powershell") or find_tool("pwsh")
    pycaw = _pycaw_available()
    brightness = []
    if _ddcci_available():
        brightness.append("ddcci")
    if powershell:
        brightness.append("wmi")
    return CapabilitySet(
        platform="windows",
        volume=("pycaw",) if pycaw else (),
        mic=("pycaw",) if pycaw else (),
        brightness=tuple(brightness),
        media=("gsmtc",) if _gsmtc_available() else (),
        powershell_path=powershell,
    )


# ──────────────────────────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────────────────────────


def probe_capabilities(
    config: DeckConfig | None = None,
    system: str | None = None,
    sys_root: str | Path = "/sys",
) -> CapabilitySet:
    """Detect the usable control surface for every domain (best-effort, never raises)."""
    config = config or DeckConfig()
    system = (system or platform.system()).lower()
    try:
        if system == "linux":
            caps = _probe_linux(config, Path(sys_root))
        elif system == "windows":
            caps = _probe_windows(config)
        else:
            logger.warning("No control backends for platform %r", system)
            caps = CapabilitySet(platform=system)
    except Exception:  # noqa: BLE001
        logger.exception("Capability probe failed, every domain unavailable")
        caps = CapabilitySet(platform=system)

    for domain in DOMAINS:
        mechs = caps.mechanisms(domain)
        if mechs:
            logger.info("%s control: %s", domain, " → ".join(mechs))
        else:
            logger.warning("%s control unavailable on this host", domain)
    return caps

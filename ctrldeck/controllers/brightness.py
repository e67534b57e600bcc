"""Display brightness controllers.

Linux:   sysfs backlight node → brightnessctl → systemd-logind ``SetBrightness``
Windows: DDC/CI (dxva2) for external monitors → WMI for internal panels

Levels are always reported on the 0-100 scale regardless of the device's
native range.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from ..capabilities import CapabilitySet
from ..errors import ControlError, ErrorKind
from ..models import normalize_percent
from ..runner import DEFAULT_TIMEOUT, run
from .base import DeviceController, LevelControl

logger = logging.getLogger(__name__)


class BrightnessController(LevelControl, DeviceController):
    domain = "brightness"


class NullBrightnessController(BrightnessController):
    def __init__(self) -> None:
        super().__init__(())

    def _read_level(self) -> int:
        raise ControlError(ErrorKind.UNSUPPORTED, "brightness control not available")

    def _write_level(self, percent: int) -> None:
        raise ControlError(ErrorKind.UNSUPPORTED, "brightness control not available")


def percent_to_raw(percent: int, max_raw: int) -> int:
    """Scale a percentage onto ``[0, max_raw]``; any non-zero request stays lit."""
    raw = int(round(percent * max_raw / 100))
    if percent > 0 and raw < 1:
        raw = 1
    return raw


# ──────────────────────────────────────────────────────────────────
# Linux
# ──────────────────────────────────────────────────────────────────


class LinuxBrightnessController(BrightnessController):
    def __init__(
        self,
        caps: CapabilitySet,
        timeout: float = DEFAULT_TIMEOUT,
        max_failures: int = 3,
    ) -> None:
        super().__init__(caps.brightness, max_failures)
        self._device = Path(caps.backlight_device_path) if caps.backlight_device_path else None
        self._max_raw = caps.backlight_max_brightness or 100
        self._brightnessctl = caps.brightnessctl_path or "brightnessctl"
        self._busctl = caps.busctl_path or "busctl"
        self._timeout = timeout

    # ── sysfs ──

    def _sysfs_read(self) -> int:
        if self._device is None:
            raise ControlError(ErrorKind.DEVICE_UNAVAILABLE, "no backlight device")
        raw = int((self._device / "brightness").read_text().strip())
        return normalize_percent(raw, 0, self._max_raw)

    def _sysfs_write(self, percent: int) -> None:
        if self._device is None:
            raise ControlError(ErrorKind.DEVICE_UNAVAILABLE, "no backlight device")
        node = self._device / "brightness"
        if not os.access(node, os.W_OK):
            raise ControlError(ErrorKind.PERMISSION_DENIED, f"{node} is not writable")
        node.write_text(str(percent_to_raw(percent, self._max_raw)))

    # ── brightnessctl ──

    def _brightnessctl_read(self) -> int:
        current = int(run([self._brightnessctl, "--class=backlight", "get"], self._timeout))
        maximum = int(run([self._brightnessctl, "--class=backlight", "max"], self._timeout))
        return normalize_percent(current, 0, maximum)

    def _brightnessctl_write(self, percent: int) -> None:
        run([self._brightnessctl, "--class=backlight", "set", f"{percent}%"], self._timeout)

    # ── logind ──

    def _logind_write(self, percent: int) -> None:
        if self._device is None:
            raise ControlError(ErrorKind.DEVICE_UNAVAILABLE, "no backlight device")
        run([
            self._busctl, "call", "org.freedesktop.login1",
            "/org/freedesktop/login1/session/auto",
            "org.freedesktop.login1.Session", "SetBrightness",
            "ssu", "backlight", self._device.name,
            str(percent_to_raw(percent, self._max_raw)),
        ], self._timeout)

    def _read_level(self) -> int:
        # logind cannot report brightness; reading it falls through to sysfs
        return self._chain("read brightness", {
            "sysfs": self._sysfs_read,
            "brightnessctl": self._brightnessctl_read,
        })

    def _write_level(self, percent: int) -> None:
        self._chain("set brightness", {
            "sysfs": lambda: self._sysfs_write(percent),
            "brightnessctl": lambda: self._brightnessctl_write(percent),
            "logind": lambda: self._logind_write(percent),
        })


# ──────────────────────────────────────────────────────────────────
# Windows
# ──────────────────────────────────────────────────────────────────

_WMI_GET = (
    "(Get-CimInstance -Namespace root/WMI -ClassName WmiMonitorBrightness"
    " | Select-Object -First 1).CurrentBrightness"
)
_WMI_SET = (
    "Get-CimInstance -Namespace root/WMI -ClassName WmiMonitorBrightnessMethods"
    " | Invoke-CimMethod -MethodName WmiSetBrightness"
    " -Arguments @{{Timeout=1; Brightness={level}}} | Out-Null"
)


def parse_wmi_brightness(output: str) -> int:
    """Accept exactly one integer line in 0-100."""
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    if len(lines) != 1 or not lines[0].isdigit():
        raise ValueError(f"unexpected WMI brightness output: {output[:80]!r}")
    value = int(lines[0])
    if not 0 <= value <= 100:
        raise ValueError(f"WMI brightness out of range: {value}")
    return value


class DdcMonitors:
    """Physical monitors reachable over DDC/CI through ``dxva2.dll``."""

    def _with_monitors(self, fn):
        import ctypes
        from ctypes import wintypes

        class PHYSICAL_MONITOR(ctypes.Structure):
            _fields_ = [("hPhysicalMonitor", wintypes.HANDLE),
                        ("szPhysicalMonitorDescription", wintypes.WCHAR * 128)]

        user32 = ctypes.windll.user32
        dxva2 = ctypes.windll.dxva2
        handles: list = []

        MONITORENUMPROC = ctypes.WINFUNCTYPE(
            wintypes.BOOL, wintypes.HMONITOR, wintypes.HDC,
            ctypes.POINTER(wintypes.RECT), wintypes.LPARAM,
        )

        def _collect(hmonitor, _hdc, _rect, _data):
            count = wintypes.DWORD()
            if dxva2.GetNumberOfPhysicalMonitorsFromHMONITOR(hmonitor, ctypes.byref(count)) and count.value:
                monitors = (PHYSICAL_MONITOR * count.value)()
                if dxva2.GetPhysicalMonitorsFromHMONITOR(hmonitor, count.value, monitors):
                    handles.append((count.value, monitors))
            return True

        user32.EnumDisplayMonitors(None, None, MONITORENUMPROC(_collect), 0)
        if not handles:
            raise ControlError(ErrorKind.DEVICE_UNAVAILABLE, "no DDC/CI capable monitor")
        try:
            return fn(dxva2, [m.hPhysicalMonitor for n, arr in handles for m in arr[:n]])
        finally:
            for n, arr in handles:
                dxva2.DestroyPhysicalMonitors(n, arr)

    def level(self) -> int:
        import ctypes
        from ctypes import wintypes

        def _op(dxva2, monitors):
            lo, cur, hi = wintypes.DWORD(), wintypes.DWORD(), wintypes.DWORD()
            for handle in monitors:
                if dxva2.GetMonitorBrightness(handle, ctypes.byref(lo), ctypes.byref(cur), ctypes.byref(hi)):
                    return normalize_percent(cur.value, lo.value, hi.value)
            raise ControlError(ErrorKind.DEVICE_UNAVAILABLE, "monitor rejected DDC/CI brightness query")
        return self._with_monitors(_op)

    def set_level(self, percent: int) -> None:
        def _op(dxva2, monitors):
            if not any([dxva2.SetMonitorBrightness(handle, percent) for handle in monitors]):
                raise ControlError(ErrorKind.DEVICE_UNAVAILABLE, "monitor rejected DDC/CI brightness change")
        self._with_monitors(_op)


class WindowsBrightnessController(BrightnessController):
    def __init__(
        self,
        caps: CapabilitySet,
        timeout: float = DEFAULT_TIMEOUT,
        max_failures: int = 3,
        ddc: DdcMonitors | None = None,
    ) -> None:
        super().__init__(caps.brightness, max_failures)
        self._powershell = caps.powershell_path or "powershell"
        self._timeout = timeout
        self._ddc = ddc or DdcMonitors()

    def _ps(self, script: str) -> str:
        return run([self._powershell, "-NoProfile", "-NonInteractive", "-Command", script], self._timeout)

    def _read_level(self) -> int:
        return self._chain("read brightness", {
            "ddcci": self._ddc.level,
            "wmi": lambda: parse_wmi_brightness(self._ps(_WMI_GET)),
        })

    def _write_level(self, percent: int) -> None:
        self._chain("set brightness", {
            "ddcci": lambda: self._ddc.set_level(percent),
            "wmi": lambda: self._ps(_WMI_SET.format(level=percent)),
        })

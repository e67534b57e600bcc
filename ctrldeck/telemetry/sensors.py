"""OS-level sensors: CPU, memory, battery, CPU temperature and network rate.

All readers are blocking and meant to run in an executor. Each one returns
the module-level sentinel from :mod:`ctrldeck.models` when its source cannot
be read, so a missing sensor never fails a telemetry tick.
"""

from __future__ import annotations

import logging
import platform
import time
from dataclasses import dataclass
from pathlib import Path

import psutil

from ..models import (
    BATTERY_UNAVAILABLE,
    CPU_UNAVAILABLE,
    MEMORY_UNAVAILABLE,
    RATE_UNAVAILABLE,
    TEMPERATURE_UNAVAILABLE,
)
from ..runner import find_tool, run

logger = logging.getLogger(__name__)

# psutil sensor chip names that report the package/CPU temperature, by preference
CPU_SENSOR_CHIPS = ("coretemp", "k10temp", "zenpower", "cpu_thermal", "cpu-thermal", "soc_thermal", "acpitz")

_WMI_TEMP = (
    "(Get-CimInstance -Namespace root/WMI -ClassName MSAcpi_ThermalZoneTemperature"
    " | Select-Object -First 1).CurrentTemperature"
)


@dataclass(frozen=True)
class BatteryReading:
    percent: int = BATTERY_UNAVAILABLE
    charging: bool = False


@dataclass(frozen=True)
class NetworkReading:
    up_bps: float = RATE_UNAVAILABLE
    down_bps: float = RATE_UNAVAILABLE


class NetworkRate:
    """Byte rate since the previous reading, summed over every interface.

    The first reading has no baseline and reports zero, as does a counter
    that went backwards (interface reset).
    """

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._last: tuple[float, int, int] | None = None

    def update(self, sent: int, recv: int) -> NetworkReading:
        now = self._clock()
        previous, self._last = self._last, (now, sent, recv)
        if previous is None:
            return NetworkReading(0.0, 0.0)
        then, last_sent, last_recv = previous
        elapsed = now - then
        if elapsed <= 0:
            return NetworkReading(0.0, 0.0)
        return NetworkReading(
            up_bps=max(0.0, (sent - last_sent) / elapsed),
            down_bps=max(0.0, (recv - last_recv) / elapsed),
        )

    def read(self) -> NetworkReading:
        try:
            counters = psutil.net_io_counters()
        except Exception as exc:  # noqa: BLE001
            logger.debug("Network counters unavailable: %s", exc)
            return NetworkReading()
        if counters is None:
            return NetworkReading()
        return self.update(counters.bytes_sent, counters.bytes_recv)


class OSSensors:
    """Host sensors read through psutil with sysfs / WMI fallbacks."""

    def __init__(self, sys_root: str | Path = "/sys", system: str | None = None) -> None:
        self._sys = Path(sys_root)
        self._system = (system or platform.system()).lower()
        self.network = NetworkRate()
        # Prime psutil so the first non-blocking cpu_percent() is meaningful
        try:
            psutil.cpu_percent(interval=None)
        except Exception:  # noqa: BLE001
            logger.debug("cpu_percent priming failed", exc_info=True)

    def cpu_percent(self) -> float:
        try:
            return round(float(psutil.cpu_percent(interval=None)), 1)
        except Exception as exc:  # noqa: BLE001
            logger.debug("CPU usage unavailable: %s", exc)
            return CPU_UNAVAILABLE

    def memory(self) -> tuple[int, int]:
        """``(used, total)`` bytes."""
        try:
            mem = psutil.virtual_memory()
        except Exception as exc:  # noqa: BLE001
            logger.debug("Memory stats unavailable: %s", exc)
            return MEMORY_UNAVAILABLE, MEMORY_UNAVAILABLE
        return int(mem.total - mem.available), int(mem.total)

    # ── Battery ──

    def battery(self) -> BatteryReading:
        try:
            info = psutil.sensors_battery() if hasattr(psutil, "sensors_battery") else None
        except Exception as exc:  # noqa: BLE001
            logger.debug("psutil battery read failed: %s", exc)
            info = None
        if info is not None:
            return BatteryReading(int(round(info.percent)), bool(info.power_plugged) and info.percent < 100)
        if self._system == "linux":
            return self._sysfs_battery()
        return BatteryReading()

    def _sysfs_battery(self) -> BatteryReading:
        for name in ("BAT0", "BAT1"):
            node = self._sys / "class" / "power_supply" / name
            try:
                capacity = int((node / "capacity").read_text().strip())
            except (OSError, ValueError):
                continue
            try:
                status = (node / "status").read_text().strip()
            except OSError:
                status = ""
            return BatteryReading(max(0, min(100, capacity)), status == "Charging")
        return BatteryReading()

    # ── Temperature ──

    def cpu_temperature(self) -> float:
        temp = self._psutil_temperature()
        if temp is None and self._system == "linux":
            temp = self._thermal_zone_temperature()
        if temp is None and self._system == "windows":
            temp = self._wmi_temperature()
        return round(temp, 1) if temp is not None else TEMPERATURE_UNAVAILABLE

    def _psutil_temperature(self) -> float | None:
        if not hasattr(psutil, "sensors_temperatures"):
            return None
        try:
            temps = psutil.sensors_temperatures(fahrenheit=False)
        except Exception as exc:  # noqa: BLE001
            logger.debug("psutil temperatures failed: %s", exc)
            return None
        if not temps:
            return None
        for chip in CPU_SENSOR_CHIPS:
            entries = temps.get(chip)
            if entries:
                return float(entries[0].current)
        return None

    def _thermal_zone_temperature(self) -> float | None:
        try:
            millideg = int((self._sys / "class" / "thermal" / "thermal_zone0" / "temp").read_text().strip())
        except (OSError, ValueError):
            return None
        return millideg / 1000.0

    def _wmi_temperature(self) -> float | None:
        powershell = find_tool("powershell") or find_tool("pwsh")
        if not powershell:
            return None
        try:
            out = run([powershell, "-NoProfile", "-NonInteractive", "-Command", _WMI_TEMP], 3.0)
            tenths_kelvin = float(out.splitlines()[0].strip())
        except Exception as exc:  # noqa: BLE001
            logger.debug("WMI temperature unavailable: %s", exc)
            return None
        return tenths_kelvin / 10.0 - 273.15

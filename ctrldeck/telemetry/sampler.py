"""Periodic telemetry sampling.

Every tick reads the OS sensors and the device controllers concurrently,
each read bounded by ``call_timeout``, and publishes one fully formed
:class:`TelemetrySnapshot`. A read that times out keeps running in its worker
thread; until it finishes, later ticks skip that source and report its
sentinel instead of piling up more blocked threads.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import threading
import time
from typing import Any, Callable

from ..controllers import Controllers
from ..models import (
    BATTERY_UNAVAILABLE,
    CPU_UNAVAILABLE,
    LEVEL_UNAVAILABLE,
    MEMORY_UNAVAILABLE,
    TEMPERATURE_UNAVAILABLE,
    ControlResult,
    MediaState,
    TelemetrySnapshot,
)
from .hub import BroadcastHub
from .sensors import BatteryReading, NetworkReading, OSSensors

logger = logging.getLogger(__name__)


class SamplerState(str, enum.Enum):
    IDLE = "idle"
    SAMPLING = "sampling"


class TelemetrySampler:
    def __init__(
        self,
        controllers: Controllers,
        hub: BroadcastHub,
        sensors: OSSensors | None = None,
        interval: float = 1.0,
        call_timeout: float = 2.0,
    ) -> None:
        self.controllers = controllers
        self.hub = hub
        self.sensors = sensors or OSSensors()
        self.interval = interval
        self.call_timeout = call_timeout
        self.state = SamplerState.IDLE
        self._current = TelemetrySnapshot()
        self._lock = threading.Lock()
        self._inflight: set[str] = set()
        self._task: asyncio.Task | None = None

    # ── Snapshot access ──

    def current(self) -> TelemetrySnapshot:
        with self._lock:
            return self._current

    def update_media(self, media: MediaState) -> None:
        """Merge a media change into the current snapshot and push it now."""
        with self._lock:
            self._current = self._current.with_media(media)
            snapshot = self._current
        self.hub.push_immediate(snapshot)

    # ── Lifecycle ──

    async def start(self) -> None:
        if self.state == SamplerState.SAMPLING:
            return
        self.state = SamplerState.SAMPLING
        self.hub.attach(asyncio.get_running_loop())
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("Telemetry sampling every %.1fs", self.interval)

    async def stop(self) -> None:
        if self.state == SamplerState.IDLE:
            return
        self.state = SamplerState.IDLE
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _run(self) -> None:
        while self.state == SamplerState.SAMPLING:
            started = time.monotonic()
            try:
                await self.sample_once()
            except asyncio.CancelledError:
                raise
            except Exception:  # noqa: BLE001
                logger.exception("Telemetry tick failed")
            await asyncio.sleep(max(0.0, self.interval - (time.monotonic() - started)))

    # ── Sampling ──

    async def _read(self, source: str, fn: Callable[[], Any], fallback: Any) -> Any:
        if source in self._inflight:
            logger.debug("Skipping %s, previous read still running", source)
            return fallback
        loop = asyncio.get_running_loop()
        self._inflight.add(source)
        future = loop.run_in_executor(None, fn)
        future.add_done_callback(lambda _f: self._inflight.discard(source))
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=self.call_timeout)
        except asyncio.TimeoutError:
            logger.debug("%s read exceeded %.1fs", source, self.call_timeout)
            return fallback
        except Exception as exc:  # noqa: BLE001
            logger.debug("%s read failed: %s", source, exc)
            return fallback

    async def _control(self, source: str, fn: Callable[[], ControlResult], fallback: Any) -> Any:
        result = await self._read(source, fn, None)
        if result is None or not result.ok or result.value is None:
            return fallback
        return result.value

    async def sample_once(self) -> TelemetrySnapshot:
        c = self.controllers
        s = self.sensors
        (
            cpu, memory, battery, temp, network,
            volume, volume_muted, mic_muted, brightness,
        ) = await asyncio.gather(
            self._read("cpu", s.cpu_percent, CPU_UNAVAILABLE),
            self._read("memory", s.memory, (MEMORY_UNAVAILABLE, MEMORY_UNAVAILABLE)),
            self._read("battery", s.battery, BatteryReading()),
            self._read("temperature", s.cpu_temperature, TEMPERATURE_UNAVAILABLE),
            self._read("network", s.network.read, NetworkReading()),
            self._control("volume", c.volume.get, LEVEL_UNAVAILABLE),
            self._control("volume_mute", c.volume.is_muted, False),
            self._control("mic", c.mic.is_muted, False),
            self._control("brightness", c.brightness.get, LEVEL_UNAVAILABLE),
        )

        with self._lock:
            snapshot = TelemetrySnapshot(
                timestamp=time.time(),
                cpu_pct=cpu,
                mem_used=memory[0],
                mem_total=memory[1],
                battery_pct=battery.percent,
                charging=battery.charging,
                cpu_temp_c=temp,
                mic_muted=bool(mic_muted),
                volume_pct=int(volume),
                volume_muted=bool(volume_muted),
                brightness_pct=int(brightness),
                net_up_bps=round(network.up_bps, 1),
                net_down_bps=round(network.down_bps, 1),
                media=c.media.get_state(),
            )
            self._current = snapshot
        self.hub.publish(snapshot)
        return snapshot

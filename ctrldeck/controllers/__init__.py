"""Device controllers and the per-platform factory.

Usage::

    caps = probe_capabilities(config)
    controllers = create_controllers(caps, config)
    controllers.volume.up(5)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..capabilities import CapabilitySet
from ..config import DeckConfig
from .brightness import (
    BrightnessController,
    LinuxBrightnessController,
    NullBrightnessController,
    WindowsBrightnessController,
)
from .media import (
    ArtworkFetcher,
    MediaController,
    MprisMediaController,
    NullMediaController,
    WindowsMediaController,
)
from .mic import LinuxMicController, MicController, NullMicController, WindowsMicController
from .mixer import PulseConnection
from .volume import LinuxVolumeController, NullVolumeController, VolumeController, WindowsVolumeController

logger = logging.getLogger(__name__)

__all__ = [
    "BrightnessController",
    "Controllers",
    "MediaController",
    "MicController",
    "VolumeController",
    "create_controllers",
]


@dataclass
class Controllers:
    """One controller per hardware domain."""

    volume: VolumeController
    mic: MicController
    brightness: BrightnessController
    media: MediaController
    pulse: PulseConnection | None = None

    def close(self) -> None:
        for controller in (self.volume, self.mic, self.brightness):
            controller.close()
        if self.pulse is not None:
            self.pulse.close()

    @classmethod
    def null(cls) -> Controllers:
        return cls(
            volume=NullVolumeController(),
            mic=NullMicController(),
            brightness=NullBrightnessController(),
            media=NullMediaController(),
        )


def create_controllers(caps: CapabilitySet, config: DeckConfig | None = None) -> Controllers:
    """Build the controller set matching *caps*.

    Domains with no mechanism get the Null implementation, which answers
    every call with ``unsupported``.
    """
    config = config or DeckConfig()
    timeout = config.command_timeout
    failures = config.max_consecutive_failures

    if caps.platform == "linux":
        pulse = PulseConnection() if "pulsectl" in caps.volume or "pulsectl" in caps.mic else None
        artwork = ArtworkFetcher(config.artwork_max_bytes, config.artwork_cache_size)
        controllers = Controllers(
            volume=LinuxVolumeController(caps, pulse, timeout, failures) if caps.volume else NullVolumeController(),
            mic=LinuxMicController(caps, pulse, timeout, failures) if caps.mic else NullMicController(),
            brightness=(
                LinuxBrightnessController(caps, timeout, failures)
                if caps.brightness else NullBrightnessController()
            ),
            media=(
                MprisMediaController(caps, artwork, config.media_poll_interval, timeout)
                if caps.media else NullMediaController()
            ),
            pulse=pulse,
        )
    elif caps.platform == "windows":
        controllers = Controllers(
            volume=WindowsVolumeController(caps, failures) if caps.volume else NullVolumeController(),
            mic=WindowsMicController(caps, failures) if caps.mic else NullMicController(),
            brightness=(
                WindowsBrightnessController(caps, timeout, failures)
                if caps.brightness else NullBrightnessController()
            ),
            media=(
                WindowsMediaController(caps, config.media_poll_interval)
                if caps.media else NullMediaController()
            ),
        )
    else:
        controllers = Controllers.null()

    logger.debug(
        "Controllers: volume=%s mic=%s brightness=%s media=%s",
        type(controllers.volume).__name__, type(controllers.mic).__name__,
        type(controllers.brightness).__name__, type(controllers.media).__name__,
    )
    return controllers

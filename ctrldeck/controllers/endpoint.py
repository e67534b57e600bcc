"""Windows Core Audio endpoint access through pycaw.

COM calls are made on whatever worker thread the caller runs on, so each
operation initializes COM for that thread, uses the endpoint and releases
every interface before uninitializing.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from ..errors import ControlError, ErrorKind
from ..models import normalize_percent

logger = logging.getLogger(__name__)


class AudioEndpoint:
    """``IAudioEndpointVolume`` of the default render (or capture) device."""

    def __init__(self, capture: bool = False) -> None:
        self.capture = capture

    @contextmanager
    def _endpoint(self) -> Iterator:
        import comtypes
        from comtypes import CLSCTX_ALL
        from ctypes import POINTER, cast
        from pycaw.pycaw import AudioUtilities, IAudioEndpointVolume

        comtypes.CoInitialize()
        device = interface = endpoint = None
        try:
            device = AudioUtilities.GetMicrophone() if self.capture else AudioUtilities.GetSpeakers()
            if device is None:
                what = "input" if self.capture else "output"
                raise ControlError(ErrorKind.DEVICE_UNAVAILABLE, f"no default audio {what} device")
            # Newer pycaw wraps the device and exposes the endpoint directly
            endpoint = getattr(device, "EndpointVolume", None)
            if endpoint is None:
                interface = device.Activate(IAudioEndpointVolume._iid_, CLSCTX_ALL, None)
                endpoint = cast(interface, POINTER(IAudioEndpointVolume))
            yield endpoint
        finally:
            del endpoint, interface, device
            comtypes.CoUninitialize()

    def level(self) -> int:
        with self._endpoint() as ep:
            return normalize_percent(ep.GetMasterVolumeLevelScalar(), 0.0, 1.0)

    def set_level(self, percent: int) -> None:
        with self._endpoint() as ep:
            ep.SetMasterVolumeLevelScalar(percent / 100.0, None)

    def muted(self) -> bool:
        with self._endpoint() as ep:
            return bool(ep.GetMute())

    def set_muted(self, muted: bool) -> None:
        with self._endpoint() as ep:
            ep.SetMute(int(muted), None)

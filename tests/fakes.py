"""In-memory controllers and sensors shared by the test modules."""

from __future__ import annotations

from ctrldeck.controllers.brightness import BrightnessController
from ctrldeck.controllers.media import MediaController
from ctrldeck.controllers.mic import MicController
from ctrldeck.controllers.volume import VolumeController
from ctrldeck.errors import ControlError, ErrorKind
from ctrldeck.models import MediaState
from ctrldeck.telemetry.sensors import BatteryReading, NetworkRate


# ──────────────────────────────────────────────────────────────────
# In-memory controllers
# ──────────────────────────────────────────────────────────────────


class FakeVolume(VolumeController):
    def __init__(self, level: int = 50, muted: bool = False, mechanisms=("fake",)) -> None:
        super().__init__(mechanisms)
        self.level = level
        self.muted = muted
        self.writes: list = []
        self.fail_reads: ControlError | None = None

    def _read_level(self) -> int:
        if self.fail_reads:
            raise self.fail_reads
        return self.level

    def _write_level(self, percent: int) -> None:
        self.writes.append(percent)
        self.level = percent

    def _read_muted(self) -> bool:
        if self.fail_reads:
            raise self.fail_reads
        return self.muted

    def _write_muted(self, muted: bool) -> None:
        self.writes.append(muted)
        self.muted = muted


class FakeMic(MicController):
    def __init__(self, muted: bool = False, mechanisms=("fake",)) -> None:
        super().__init__(mechanisms)
        self.muted = muted

    def _read_muted(self) -> bool:
        return self.muted

    def _write_muted(self, muted: bool) -> None:
        self.muted = muted


class FakeBrightness(BrightnessController):
    def __init__(self, level: int = 70, mechanisms=("fake",)) -> None:
        super().__init__(mechanisms)
        self.level = level

    def _read_level(self) -> int:
        return self.level

    def _write_level(self, percent: int) -> None:
        self.level = percent


class FakeMedia(MediaController):
    """Media controller fed from a list of scripted states."""

    def __init__(self, states=None, mechanisms=("fake",)) -> None:
        super().__init__(mechanisms, poll_interval=0.05)
        self.states = list(states or [])
        self.sent: list[str] = []
        self.send_error: Exception | None = None

    async def _read_state(self) -> MediaState:
        if self.states:
            return self.states.pop(0)
        return self.get_state()

    async def _send(self, command: str) -> None:
        if self.send_error:
            raise self.send_error
        self.sent.append(command)


class FakeSensors:
    """Stand-in for OSSensors with fixed readings."""

    def __init__(self) -> None:
        self.network = NetworkRate(clock=iter(range(0, 10_000)).__next__)

    def cpu_percent(self) -> float:
        return 12.5

    def memory(self) -> tuple[int, int]:
        return 4_000, 16_000

    def battery(self) -> BatteryReading:
        return BatteryReading(80, True)

    def cpu_temperature(self) -> float:
        return 48.0


def unsupported() -> ControlError:
    return ControlError(ErrorKind.UNSUPPORTED, "not here")



"""Device controller base classes.

Every controller exposes the same contract: public methods return a
:class:`~ctrldeck.models.ControlResult` and never raise. Internally each
operation walks the domain's mechanisms (decided by the capability probe)
in priority order; the first success wins and only the last failure is
surfaced.

Calls on one controller are serialized by a per-domain lock so two writers
never race on the same mixer or backlight node; different domains never
block each other.
"""

from __future__ import annotations

import abc
import logging
import threading
from typing import Callable, Mapping, TypeVar

from ..errors import ControlError, ErrorKind, classify_exception
from ..models import ControlResult, clamp_percent

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failure kinds that mean "this mechanism is not there", as opposed to a
# transient error. Enough of them in a row disables the domain.
_STRUCTURAL_FAILURES = (ErrorKind.UNSUPPORTED, ErrorKind.DEVICE_UNAVAILABLE)


class DeviceController(abc.ABC):
    """Common plumbing: availability, serialization, fallback chain."""

    domain: str = ""

    def __init__(self, mechanisms: tuple[str, ...] = (), max_failures: int = 3) -> None:
        self.mechanisms = tuple(mechanisms)
        self._lock = threading.RLock()
        self._max_failures = max_failures
        self._failures = 0
        self._disabled = False

    @property
    def available(self) -> bool:
        return bool(self.mechanisms) and not self._disabled

    def close(self) -> None:
        """Release native handles. Safe to call more than once."""

    # ── Result plumbing ─────────────────────────────────────────

    def _call(self, op: Callable[[], T]) -> ControlResult:
        if not self.available:
            return ControlResult.failure(
                ErrorKind.UNSUPPORTED, f"{self.domain} control not available on this host"
            )
        with self._lock:
            try:
                value = op()
            except Exception as exc:  # noqa: BLE001
                error = classify_exception(exc)
                self._record_failure(error)
                return ControlResult.failure(error.kind, error.message)
            self._failures = 0
        return ControlResult.success(value)

    def _record_failure(self, error: ControlError) -> None:
        if error.kind not in _STRUCTURAL_FAILURES:
            self._failures = 0
            return
        self._failures += 1
        if self._failures >= self._max_failures and not self._disabled:
            self._disabled = True
            logger.warning(
                "%s control disabled after %d consecutive failures: %s",
                self.domain, self._failures, error.message,
            )

    def _chain(self, action: str, steps: Mapping[str, Callable[[], T]]) -> T:
        """Run *action* through the mechanisms that implement it, in priority order."""
        last: ControlError | None = None
        for name in self.mechanisms:
            step = steps.get(name)
            if step is None:
                continue
            try:
                return step()
            except Exception as exc:  # noqa: BLE001
                last = classify_exception(exc)
                logger.debug("%s %s via %s failed: %s", self.domain, action, name, last.message)
        if last is None:
            raise ControlError(ErrorKind.UNSUPPORTED, f"no {self.domain} mechanism can {action}")
        raise last


class MuteControl(abc.ABC):
    """Mute flag handling shared by volume and microphone controllers."""

    _call: Callable[[Callable[[], T]], ControlResult]

    @abc.abstractmethod
    def _read_muted(self) -> bool:
        """Return the current mute flag (raise on failure)."""

    @abc.abstractmethod
    def _write_muted(self, muted: bool) -> None:
        """Set the mute flag (raise on failure)."""

    def is_muted(self) -> ControlResult:
        return self._call(self._read_muted)

    def set_mute(self, muted: bool) -> ControlResult:
        def _op() -> bool:
            self._write_muted(bool(muted))
            return bool(muted)
        return self._call(_op)

    def toggle_mute(self) -> ControlResult:
        """Flip the mute flag. Fails closed when the current flag cannot be read."""
        def _op() -> bool:
            target = not self._read_muted()
            self._write_muted(target)
            return target
        return self._call(_op)


class LevelControl(abc.ABC):
    """Percent level handling shared by volume and brightness controllers."""

    _call: Callable[[Callable[[], T]], ControlResult]

    @abc.abstractmethod
    def _read_level(self) -> int:
        """Return the level on the ``[0, 100]`` scale (raise on failure)."""

    @abc.abstractmethod
    def _write_level(self, percent: int) -> None:
        """Write an already clamped level (raise on failure)."""

    def get(self) -> ControlResult:
        return self._call(self._read_level)

    def set(self, value: int | float) -> ControlResult:
        try:
            target = clamp_percent(float(value))
        except (TypeError, ValueError):
            return ControlResult.failure(
                ErrorKind.INVALID_PARAMETER, f"level must be a finite number, got {value!r}"
            )

        def _op() -> int:
            self._write_level(target)
            return target
        return self._call(_op)

    def adjust(self, delta: int) -> ControlResult:
        """Relative change, done as ``set(clamp(get() + delta))``."""
        def _op() -> int:
            target = clamp_percent(self._read_level() + delta)
            self._write_level(target)
            return target
        return self._call(_op)

    def up(self, step: int) -> ControlResult:
        return self.adjust(abs(int(step)))

    def down(self, step: int) -> ControlResult:
        return self.adjust(-abs(int(step)))

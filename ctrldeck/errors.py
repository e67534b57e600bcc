"""Error taxonomy shared by every device controller.

Native failures (subprocess exits, COM errors, D-Bus errors, sysfs I/O) are
classified into a small set of :class:`ErrorKind` values so callers can react
uniformly regardless of which mechanism produced them.
"""

from __future__ import annotations

import asyncio
import enum
import errno
import subprocess


class ErrorKind(str, enum.Enum):
    UNSUPPORTED = "unsupported"
    PERMISSION_DENIED = "permission_denied"
    DEVICE_UNAVAILABLE = "device_unavailable"
    TIMEOUT = "timeout"
    INVALID_PARAMETER = "invalid_parameter"
    UNKNOWN = "unknown"


class ControlError(Exception):
    """A classified failure from a native control mechanism."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self) -> str:
        return f"ControlError({self.kind.value!r}, {self.message!r})"


_PERMISSION_MARKERS = ("permission denied", "not permitted", "access denied", "access is denied")
_DEVICE_MARKERS = ("no such device", "no such entity", "no such file", "device not found", "no player")


def classify_output(stderr: str) -> ErrorKind:
    """Classify a failed tool invocation from its stderr text."""
    text = stderr.lower()
    if any(marker in text for marker in _PERMISSION_MARKERS):
        return ErrorKind.PERMISSION_DENIED
    if any(marker in text for marker in _DEVICE_MARKERS):
        return ErrorKind.DEVICE_UNAVAILABLE
    return ErrorKind.UNKNOWN


def classify_exception(exc: BaseException) -> ControlError:
    """Wrap an arbitrary low-level exception into a :class:`ControlError`."""
    if isinstance(exc, ControlError):
        return exc
    if isinstance(exc, (subprocess.TimeoutExpired, asyncio.TimeoutError, TimeoutError)):
        return ControlError(ErrorKind.TIMEOUT, f"native call timed out: {exc}")
    if isinstance(exc, PermissionError):
        return ControlError(ErrorKind.PERMISSION_DENIED, f"permission denied: {exc}")
    if isinstance(exc, FileNotFoundError):
        return ControlError(ErrorKind.DEVICE_UNAVAILABLE, f"device unavailable: {exc}")
    if isinstance(exc, OSError) and exc.errno in (errno.ENODEV, errno.ENXIO, errno.EIO):
        return ControlError(ErrorKind.DEVICE_UNAVAILABLE, f"device unavailable: {exc}")
    if isinstance(exc, ValueError):
        return ControlError(ErrorKind.UNKNOWN, f"unparseable native output: {exc}")
    return ControlError(ErrorKind.UNKNOWN, str(exc) or exc.__class__.__name__)

"""Bounded execution of external control tools (pactl, brightnessctl, ...)."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Iterable

from .errors import ControlError, ErrorKind, classify_output

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0


def run(cmd: list[str], timeout: float = DEFAULT_TIMEOUT) -> str:
    """Run *cmd* and return its stripped stdout.

    Raises :class:`ControlError` on a missing executable, a timeout or a
    non-zero exit status. Never blocks longer than *timeout* seconds.
    """
    try:
        result = subprocess.run(
            cmd,
            capture_output=True, text=True, timeout=timeout,
            check=False,
        )
    except FileNotFoundError as exc:
        raise ControlError(ErrorKind.UNSUPPORTED, f"{Path(cmd[0]).name} not found") from exc
    except subprocess.TimeoutExpired as exc:
        raise ControlError(
            ErrorKind.TIMEOUT, f"{Path(cmd[0]).name} did not finish within {timeout:g}s"
        ) from exc
    except PermissionError as exc:
        raise ControlError(ErrorKind.PERMISSION_DENIED, f"cannot execute {cmd[0]}") from exc

    if result.returncode != 0:
        stderr = (result.stderr or result.stdout or "").strip()
        kind = classify_output(stderr)
        logger.debug("%s exited %d: %s", cmd[0], result.returncode, stderr)
        raise ControlError(
            kind, f"{Path(cmd[0]).name} failed ({result.returncode}): {stderr or 'no output'}"
        )
    return result.stdout.strip()


def find_tool(name: str, search_paths: Iterable[str] = ()) -> str | None:
    """Locate *name* on ``PATH``, then in a list of well-known directories."""
    found = shutil.which(name)
    if found:
        return found
    for directory in search_paths:
        candidate = os.path.join(directory, name)
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate
    return None


def spawn_detached(cmd: list[str]) -> None:
    """Start *cmd* without waiting for it (application launches, URL opens)."""
    try:
        subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=os.name != "nt",
        )
    except FileNotFoundError as exc:
        raise ControlError(ErrorKind.UNSUPPORTED, f"{Path(cmd[0]).name} not found") from exc
    except PermissionError as exc:
        raise ControlError(ErrorKind.PERMISSION_DENIED, f"cannot execute {cmd[0]}") from exc

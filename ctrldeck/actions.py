"""Non-device actions: launching applications, opening URLs, running scripts."""

from __future__ import annotations

import logging
import platform
import subprocess
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable, Optional

from .errors import ControlError
from .runner import spawn_detached

logger = logging.getLogger(__name__)

INLINE_PREFIX = "inline:"

# Interpreter argv prefix per script extension
INTERPRETERS = {
    ".sh": ["bash"],
    ".py": ["python3"],
    ".js": ["node"],
    ".ps1": ["powershell", "-File"],
    ".bat": ["cmd", "/c"],
    ".cmd": ["cmd", "/c"],
}

# script_id -> script path or "inline:<code>", None when unknown
ScriptResolver = Callable[[str], Optional[str]]


class ActionError(Exception):
    """An action was rejected before anything was started."""


def _is_windows(system: str | None) -> bool:
    return (system or platform.system()).lower() == "windows"


# ──────────────────────────────────────────────────────────────────
# Applications and URLs
# ──────────────────────────────────────────────────────────────────


class AppLauncher:
    """Start applications and open URLs without waiting for them."""

    def __init__(self, system: str | None = None, spawn: Callable[[list[str]], None] = spawn_detached) -> None:
        self._windows = _is_windows(system)
        self._spawn = spawn

    def launch(self, app_path: str) -> None:
        if not app_path:
            raise ActionError("app path cannot be empty")
        if self._windows:
            self._start([["cmd", "/c", "start", "", app_path]])
        elif app_path.endswith(".desktop"):
            desktop_id = Path(app_path).name[: -len(".desktop")]
            self._start([["gtk-launch", desktop_id], ["gio", "launch", app_path]])
        else:
            self._start([["nohup", app_path]])
        logger.info("Launched %s", app_path)

    def open_url(self, url: str) -> None:
        if not url:
            raise ActionError("url cannot be empty")
        if self._windows:
            self._start([["cmd", "/c", "start", "", url]])
        else:
            self._start([["xdg-open", url]])
        logger.info("Opened %s", url)

    def _start(self, candidates: list[list[str]]) -> None:
        """Spawn the first candidate command that can be started."""
        last: ControlError | None = None
        for cmd in candidates:
            try:
                self._spawn(cmd)
                return
            except ControlError as exc:
                logger.debug("%s could not start: %s", cmd[0], exc.message)
                last = exc
        raise ActionError(last.message if last else "nothing to start")


# ──────────────────────────────────────────────────────────────────
# Scripts
# ──────────────────────────────────────────────────────────────────


@dataclass
class ExecutionResult:
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    duration: float = 0.0
    error: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.error

    def to_dict(self) -> dict:
        return asdict(self)


class ScriptExecutor:
    """Run user scripts from a fixed set of directories with a timeout."""

    def __init__(
        self,
        allowed_dirs: list[Path] | None = None,
        timeout: float = 30.0,
        system: str | None = None,
    ) -> None:
        if allowed_dirs is None:
            home = Path.home()
            allowed_dirs = [home / "scripts", home / ".ctrldeck" / "scripts", Path("/usr/local/bin")]
        self.allowed_dirs = [Path(d).expanduser().resolve() for d in allowed_dirs]
        self.timeout = timeout
        self._windows = _is_windows(system)

    def validate(self, script_path: str) -> Path:
        if ".." in Path(script_path).parts or ".." in script_path.replace("\\", "/").split("/"):
            raise ActionError("directory traversal not allowed")
        path = Path(script_path).expanduser().resolve()
        if not any(path == d or d in path.parents for d in self.allowed_dirs):
            raise ActionError(f"script path not in allowed directories: {script_path}")
        if not path.exists():
            raise ActionError(f"script not found: {script_path}")
        if path.is_dir():
            raise ActionError(f"path is a directory, not a script: {script_path}")
        return path

    def command_for(self, path: Path, args: list[str] | None = None) -> list[str]:
        args = list(args or [])
        interpreter = INTERPRETERS.get(path.suffix.lower())
        if interpreter:
            return interpreter + [str(path)] + args
        if self._windows:
            return [str(path)] + args
        return ["bash", "-c", " ".join([str(path)] + args)]

    def execute(self, script_path: str, args: list[str] | None = None) -> ExecutionResult:
        path = self.validate(script_path)
        return self._run(self.command_for(path, args))

    def execute_inline(self, script: str, shell: str | None = None) -> ExecutionResult:
        if not script.strip():
            raise ActionError("script cannot be empty")
        if self._windows:
            cmd = [shell or "powershell", "-Command", script]
        else:
            cmd = [shell or "bash", "-c", script]
        return self._run(cmd)

    def run(self, target: str) -> ExecutionResult:
        """Execute a stored script reference: a path or ``inline:<code>``."""
        if target.startswith(INLINE_PREFIX):
            return self.execute_inline(target[len(INLINE_PREFIX):])
        return self.execute(target)

    def _run(self, cmd: list[str]) -> ExecutionResult:
        started = time.monotonic()
        try:
            proc = subprocess.run(
                cmd, capture_output=True, text=True, timeout=self.timeout, check=False,
            )
        except subprocess.TimeoutExpired as exc:
            return ExecutionResult(
                stdout=_text(exc.stdout), stderr=_text(exc.stderr), exit_code=-1,
                duration=time.monotonic() - started, error="execution timed out",
            )
        except OSError as exc:
            return ExecutionResult(exit_code=-1, duration=time.monotonic() - started, error=str(exc))

        result = ExecutionResult(
            stdout=proc.stdout, stderr=proc.stderr, exit_code=proc.returncode,
            duration=time.monotonic() - started,
        )
        if proc.returncode != 0:
            result.error = f"exit status {proc.returncode}"
        logger.info("%s exited %d in %.2fs", cmd[0],
                    proc.returncode, result.duration)
        return result


def _text(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode(errors="replace")
    return data

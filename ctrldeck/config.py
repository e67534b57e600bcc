"""Configuration for the ctrldeck service, loaded from config.json and the environment."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class DeckConfig:
    """Service configuration.

    Loaded with :meth:`load` from a JSON file (unknown keys are ignored) and
    optionally overridden from ``CTRLDECK_*`` environment variables.
    """

    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    # Telemetry
    tick_interval: float = 1.0
    subscriber_queue_size: int = 10
    call_timeout: float = 2.0  # per native call inside a tick

    # Control
    command_timeout: float = 5.0  # per external process
    volume_step: int = 5
    brightness_step: int = 10
    max_consecutive_failures: int = 3

    # Probe
    backlight_preference: list = field(default_factory=lambda: [
        "intel_backlight", "amdgpu_bl0", "amdgpu_bl1", "acpi_video0",
    ])
    tool_search_paths: list = field(default_factory=lambda: [
        "/usr/bin", "/usr/local/bin", "/bin",
    ])

    # Media
    media_poll_interval: float = 2.0
    artwork_cache_size: int = 50
    artwork_max_bytes: int = 5 * 1024 * 1024

    # Scripts
    script_dirs: list = field(default_factory=list)
    script_timeout: float = 30.0

    @classmethod
    def load(cls, path: str | Path) -> DeckConfig:
        path = Path(path)
        if path.exists():
            with open(path) as f:
                data = json.load(f)
            known = {f.name for f in fields(cls)}
            filtered = {k: v for k, v in data.items() if k in known}
            return cls(**filtered)
        logger.warning("Config not found at %s, using defaults", path)
        return cls()

    @classmethod
    def from_env(cls, base: DeckConfig | None = None) -> DeckConfig:
        """Apply ``CTRLDECK_*`` overrides on top of *base* (or a loaded config)."""
        if base is None:
            config_path = os.environ.get("CTRLDECK_CONFIG")
            base = cls.load(config_path) if config_path else cls()
        if "CTRLDECK_HOST" in os.environ:
            base.host = os.environ["CTRLDECK_HOST"]
        if "CTRLDECK_PORT" in os.environ:
            base.port = int(os.environ["CTRLDECK_PORT"])
        if "CTRLDECK_TICK_INTERVAL" in os.environ:
            base.tick_interval = float(os.environ["CTRLDECK_TICK_INTERVAL"])
        if "CTRLDECK_LOG_LEVEL" in os.environ:
            base.log_level = os.environ["CTRLDECK_LOG_LEVEL"]
        return base

    def save(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {}
        for k, v in self.__dict__.items():
            data[k] = v
        with open(path, "w") as f:
            json.dump(data, f, indent=2)

    def resolved_script_dirs(self) -> list[Path]:
        """Directories scripts may run from (defaults when none configured)."""
        if self.script_dirs:
            return [Path(d).expanduser() for d in self.script_dirs]
        home = Path.home()
        return [home / "scripts", home / ".ctrldeck" / "scripts", Path("/usr/local/bin")]

"""ctrldeck daemon entry point.

Usage:
    python -m ctrldeck [--config CONFIG_PATH] [--host HOST] [--port PORT] [--debug]
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from .config import DeckConfig


def main() -> None:
    parser = argparse.ArgumentParser(prog="ctrldeck", description="Hardware control daemon")
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to config.json (default: CTRLDECK_CONFIG or ~/.ctrldeck/config.json)",
    )
    parser.add_argument("--host", default=None, help="Bind address (overrides config)")
    parser.add_argument("--port", type=int, default=None, help="Port (overrides config)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--probe",
        action="store_true",
        help="Print the detected capabilities and exit",
    )
    args = parser.parse_args()

    # Load config
    config_path = args.config
    if config_path is None:
        candidate = Path.home() / ".ctrldeck" / "config.json"
        if candidate.exists():
            config_path = str(candidate)
    base = DeckConfig.load(config_path) if config_path else None
    config = DeckConfig.from_env(base)
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port

    level = logging.DEBUG if args.debug else getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    log = logging.getLogger(__name__)
    if config_path:
        log.info("Loaded config from %s", config_path)

    from .capabilities import probe_capabilities

    if args.probe:
        import json

        print(json.dumps(probe_capabilities(config).to_dict(), indent=2))
        return

    import uvicorn

    from .server import create_app
    from .service import DeckService

    service = DeckService.create(config)
    app = create_app(service)
    log.info("Starting ctrldeck on %s:%d", config.host, config.port)
    uvicorn.run(app, host=config.host, port=config.port, log_level=logging.getLevelName(level).lower())


if __name__ == "__main__":
    main()

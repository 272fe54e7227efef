"""Run the Orion API server: ``python -m orion``.

Configuration is read from the file named by ``ORION_CONFIG`` (a TOML file
or a directory holding ``orion.toml``); without it the defaults apply.
"""

from __future__ import annotations

import logging
import sys

import uvicorn

from orion.api.app import create_app
from orion.config import ConfigError, load_config
from orion.core.logging import configure_logging
from orion.core.telemetry import init_telemetry

logger = logging.getLogger(__name__)


def main() -> None:
    try:
        config = load_config()
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(1)

    configure_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        log_root=config.logging.log_root,
        name=config.name,
    )
    init_telemetry(config.name)

    app = create_app(config)
    logger.info("Serving Orion on %s:%d", config.server.host, config.server.port)
    uvicorn.run(app, host=config.server.host, port=config.server.port, log_config=None)


if __name__ == "__main__":
    main()

"""Run the service: ``python -m faultline``.

Configuration comes from FAULTLINE_* environment variables (see
faultline.config.Settings).
"""

import logging
import sys

import uvicorn

from faultline import __version__
from faultline.adapters.frameworks.fastapi import create_app
from faultline.config import ConfigError, Settings

logger = logging.getLogger("faultline")


def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    try:
        settings = Settings.from_env()
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 2
    logging.getLogger().setLevel(settings.log_level)

    logger.info(
        "Starting faultline %s on %s:%d", __version__, settings.host, settings.port
    )
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        access_log=False,
        timeout_keep_alive=settings.keepalive_timeout,
        timeout_graceful_shutdown=settings.graceful_timeout,
    )
    logger.info("Server exited")
    return 0


if __name__ == "__main__":
    sys.exit(main())

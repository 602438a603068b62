"""Library Lending API - server entry point.

Configures logging and serves the application with uvicorn:

    library-api                      # console script
    python -m library_api.server     # module
"""

import logging
import sys

import uvicorn

from library_api.app import create_app
from library_api.config import get_config

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)

logger = logging.getLogger(__name__)


def configure_logging(debug: bool, log_level: str) -> None:
    """Apply the configured level; debug mode turns everything up."""
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug mode enabled - verbose logging active")
    else:
        logging.getLogger().setLevel(log_level)
        # Per-request access lines are noise outside development
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def main() -> None:
    """Main entry point for the HTTP server."""
    try:
        config = get_config()
        configure_logging(config.debug, config.log_level)

        logger.info("=" * 60)
        logger.info("Library Lending API")
        logger.info("Version: %s", config.server_version)
        logger.info("Listening on: http://%s:%d", config.http_host, config.http_port)
        logger.info("Debug Mode: %s", config.debug)
        logger.info("=" * 60)

        uvicorn.run(
            create_app(config=config),
            host=config.http_host,
            port=config.http_port,
            log_config=None,
        )
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception:
        logger.exception("Failed to start server")
        sys.exit(1)


if __name__ == "__main__":
    main()

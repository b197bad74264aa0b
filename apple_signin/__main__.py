"""Entry point for running the sign in server."""

import uvicorn

from apple_signin.config import get_config
from apple_signin.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def main() -> None:
    """Entry point for running the server."""
    config = get_config()
    configure_logging(config.log_level)

    logger.info(
        "Starting sign in server on port %s",
        config.port,
    )

    uvicorn.run(
        "apple_signin.server:app",
        host=config.server_host,
        port=config.port,
        log_config=None,  # Use our custom structlog configuration
        access_log=False,
    )


if __name__ == "__main__":
    main()

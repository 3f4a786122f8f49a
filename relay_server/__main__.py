"""
Entry point for running the relay server.

Usage:
    python -m relay_server

Reads GEMINI_API_KEY (required), HOST and PORT (default 3000) from the
environment or .env / .env_local. Exits with status 1 without a credential.
"""
import sys

import uvicorn

from logging_setup import get_logger, Component, setup_logging
from .config import RelayConfig, load_env_files
from .server import create_app


def main() -> None:
    load_env_files()
    setup_logging()
    logger = get_logger(Component.RELAY_SERVER)

    try:
        config = RelayConfig.from_env()
    except KeyError:
        logger.critical("GEMINI_API_KEY is not set")
        sys.exit(1)

    setup_logging(level=config.log_level)
    app = create_app(config)

    logger.info("Server starting", host=config.host, port=config.port, model=config.gemini_model)
    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()

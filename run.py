#!/usr/bin/env python3
"""
Lending Core Entry Point

Starts the FastAPI server with settings from LENDING_* environment variables.
"""

import sys

from lending_core.api import run_server
from lending_core.config import get_config
from lending_core.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    logger.info(f"Starting lending core API on {config.api_host}:{config.api_port}")
    try:
        run_server(host=config.api_host, port=config.api_port, workers=config.api_workers)
    except KeyboardInterrupt:
        logger.info("Shutting down lending core API")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)

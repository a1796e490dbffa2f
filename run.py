#!/usr/bin/env python3
"""
Token Ledger Entry Point

Starts the FastAPI server with the configured token ledger.
"""

import sys

from token_ledger.api import run_server
from token_ledger.config import get_config
from token_ledger.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, "token_ledger", config.log_format, config.log_file)
    logger.info(f"Starting token ledger API on {config.api_host}:{config.api_port}")

    try:
        run_server(host=config.api_host, port=config.api_port)
    except KeyboardInterrupt:
        logger.info("Shutting down token ledger API")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)

#!/usr/bin/env python3
"""
Investment Tracker Entry Point

Starts the FastAPI server with settings from INVEST_* environment variables.
"""

import sys

from investment_core.api import run_server
from investment_core.config import get_config
from investment_core.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    setup_logging(
        level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file
    )

    print("Starting Investment Tracker...")
    print(f"Storage: {config.storage_backend} ({config.database_path})")
    print(f"API available at: http://{config.api_host}:{config.api_port}")
    print(f"Documentation at: http://{config.api_host}:{config.api_port}/docs")
    print()

    try:
        run_server(
            host=config.api_host,
            port=config.api_port,
            workers=config.api_workers
        )
    except KeyboardInterrupt:
        print("\nShutting down Investment Tracker...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)

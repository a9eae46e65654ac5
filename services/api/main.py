"""
API service entry point.

Usage:
    python -m services.api.main

Environment Variables:
    DATABASE_URL: PostgreSQL connection URL
    FARMWATCH_STORE: "memory" to serve from an in-process store
    LOG_LEVEL: Logging level (default: INFO)
    CONFIG_PATH: Path to config directory (default: config)
    API_HOST: Host to bind to (default: 0.0.0.0)
    API_PORT: Port to listen on (default: 8050)
"""

import os
import sys

import structlog
import uvicorn

from farmwatch.services import setup_logging
from services.api.app import create_app


def main() -> None:
    setup_logging()

    logger = structlog.get_logger(__name__)
    logger.info("api_service_starting", version="0.1.0", python_version=sys.version)

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8050"))
    log_level = os.getenv("LOG_LEVEL", "info").lower()

    uvicorn.run(
        create_app(),
        host=host,
        port=port,
        log_level=log_level,
        reload=False,
        workers=1,
        access_log=False,
    )


if __name__ == "__main__":
    main()

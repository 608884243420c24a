#!/usr/bin/env python
"""Server startup script - configures logging and runs the API with uvicorn."""
import logging
import os

import uvicorn

from .api import create_app
from .logging_utils import get_logger, setup_logging
from .logic.config_manager import get_config

logger = get_logger(__name__)


def main() -> None:
    config = get_config()
    setup_logging(level=getattr(logging, config.log_level, logging.INFO))

    app = create_app(config=config)
    # PORT is set by hosting platforms and wins over the configured port
    port = int(os.environ.get("PORT", config.server_port))
    logger.info(f"Starting Franchise Ledger API on port {port}")
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()

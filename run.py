#!/usr/bin/env python3
"""
Run the estimator web server locally.
"""

import logging

import uvicorn

from utils.config import Config

logger = logging.getLogger(__name__)


def main():
    """Start the web server."""
    config = Config.load()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger.info("Starting estimator on http://%s:%d", config.host, config.port)

    uvicorn.run(
        "web.app:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()

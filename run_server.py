#!/usr/bin/env python3
"""
Message board server
Serves the thread/reply JSON API with uvicorn
"""
import logging
import sys

import uvicorn

from config import DB_PATH, DEFAULT_HOST, DEFAULT_PORT, LOG_LEVEL

logger = logging.getLogger("run_server")


def main():
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logger.info("Starting message board server on %s:%s (database: %s)", DEFAULT_HOST, DEFAULT_PORT, DB_PATH)

    try:
        from app import app

        uvicorn.run(
            app,
            host=DEFAULT_HOST,
            port=DEFAULT_PORT,
            reload=False,
            access_log=True,
            log_level=LOG_LEVEL.lower(),
        )
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception:
        logger.exception("Error starting server")
        sys.exit(1)


if __name__ == "__main__":
    main()

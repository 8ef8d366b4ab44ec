"""Main entry point for the page router."""

import asyncio
import logging
import sys

from pagerouter.core.application import Application
from pagerouter.core.config import load_config


async def main() -> None:
    """Main entry point."""
    logger = logging.getLogger("pagerouter")
    try:
        config = load_config()

        application = Application(config)
        logger.info("Initializing page router...")

        await application.run_forever()

    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()

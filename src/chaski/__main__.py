"""Run the Chaski upload gateway: python -m chaski"""

import asyncio
import logging
import sys

import uvicorn
from dotenv import load_dotenv

from chaski.app import create_app
from chaski.config import load_config
from chaski.credentials import load_credential

logger = logging.getLogger("chaski")


def main() -> int:
    """Load the token before binding the port; exit 1 if it cannot be had."""
    load_dotenv()
    config = load_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    result = asyncio.run(load_credential(config))
    if not result.ok:
        logger.critical("Not starting without a GitHub token: %s", result.error)
        return 1

    app = create_app(config, credential=result.credential)
    logger.info("Upload endpoint: http://%s:%d/upload", config.host, config.port)
    uvicorn.run(app, host=config.host, port=config.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())

import logging
import sys

import uvicorn

from relay.config import get_settings
from relay.log import setup_logging

logger = logging.getLogger("relay")


def main():
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    logger.info(f"Listening on {settings.HOST}:{settings.PORT}")
    # uvicorn exits the process itself when the port cannot be bound
    uvicorn.run("relay.main:create_app", factory=True, host=settings.HOST, port=settings.PORT, log_config=None)


if __name__ == "__main__":
    sys.exit(main())

"""
Best Stories API entry point
Serves the ranked best stories of the upstream feed over HTTP
"""

import sys

import uvicorn
from loguru import logger

from beststories.api import create_app
from beststories.settings import global_settings


def main() -> None:
    """Main function"""
    logger.remove()
    logger.add(sys.stderr, level=global_settings.log_level.upper())

    logger.info(
        f"Starting Best Stories API on {global_settings.api_host}:{global_settings.api_port}"
    )

    app = create_app(global_settings)
    uvicorn.run(
        app,
        host=global_settings.api_host,
        port=global_settings.api_port,
        log_level=global_settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()

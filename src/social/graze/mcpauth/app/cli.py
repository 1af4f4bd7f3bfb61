import json
import logging
import os
from logging.config import dictConfig

from aiohttp import web

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def configure_logging():
    """
    Configure logging from LOGGING_CONFIG_FILE (a JSON dictConfig document) when set,
    otherwise log to stderr at LOG_LEVEL (default DEBUG).
    """
    logging_config_file = os.getenv("LOGGING_CONFIG_FILE", "")
    if logging_config_file:
        with open(logging_config_file) as fd:
            dictConfig(json.load(fd))
        return

    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger().setLevel(os.getenv("LOG_LEVEL", "DEBUG").upper())


def invoke():
    configure_logging()

    from social.graze.mcpauth.app.config import Settings
    from social.graze.mcpauth.app.server import start_web_server

    settings = Settings()  # type: ignore
    logger.info(
        "mcpauth listening on port %s issuer=%s oauth_enabled=%s",
        settings.http_port,
        settings.issuer,
        settings.oauth_enabled,
    )
    web.run_app(
        start_web_server(settings), port=settings.http_port, print=None
    )


if __name__ == "__main__":
    invoke()

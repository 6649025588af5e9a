"""Process entry point.

``uvicorn ratewall.main:app`` or the ``ratewall`` console script. Invalid or
missing configuration stops the process with exit status 1 before any
traffic is served.
"""

from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI

from ratewall.core.app_factory import create_app
from ratewall.core.config import LogSettings
from ratewall.core.errors import ConfigurationError
from ratewall.core.logging import configure_logging

logger = logging.getLogger(__name__)


def build_app() -> FastAPI:
    """Create the app, exiting the process on configuration errors."""

    try:
        return create_app()
    except ConfigurationError as exc:
        configure_logging(LogSettings())
        logger.critical(
            "startup.configuration_error",
            extra={"error_code": exc.code, "error_message": exc.message},
        )
        raise SystemExit(1) from exc


app = build_app()


def run() -> None:
    server = app.state.settings.server
    logger.info("server.listening", extra={"host": server.host, "port": server.port})
    uvicorn.run(app, host=server.host, port=server.port, log_config=None)


if __name__ == "__main__":
    run()

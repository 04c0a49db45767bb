"""Logging setup shared by the API service and the CLI."""
from __future__ import annotations

import logging

from site_audit.config.settings import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | None = None) -> logging.Logger:
    """Attach a console handler to the package loggers.

    Safe to call more than once; the handler is only installed the first time.
    """
    level_name = (level or settings.logging.level).upper()
    root = logging.getLogger("site_audit")
    root.setLevel(getattr(logging, level_name, logging.INFO))

    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    # The API layer logs under its own top-level package
    app_logger = logging.getLogger("app")
    app_logger.setLevel(root.level)
    if not app_logger.handlers:
        for handler in root.handlers:
            app_logger.addHandler(handler)

    return root

"""Logging setup.

Modules log through ``logging.getLogger(__name__)``; this only configures the
root handler once at startup.
"""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(debug: bool) -> None:
    """Configure root logging. DEBUG level in debug mode, INFO otherwise."""
    log_level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(level=log_level, format=LOG_FORMAT)

    # Keep third-party chatter down
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

"""
Handler setup for the ``dossier`` package logger.

Modules log through ``logging.getLogger(__name__)`` and propagate to the
package logger; only the package logger gets a handler.
"""

import logging
import sys

PACKAGE_LOGGER = "dossier"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_logger(name: str = PACKAGE_LOGGER) -> logging.Logger:
    """Return the logger for ``name`` once the package logger writes to stderr.

    The stderr handler is attached the first time and reused afterwards,
    so building several services does not duplicate log lines.
    """
    package = logging.getLogger(PACKAGE_LOGGER)
    if not package.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package.addHandler(handler)
        package.setLevel(logging.INFO)
    return logging.getLogger(name)


def set_log_level(level: int | str) -> None:
    """Set the level of every ``dossier.*`` logger, e.g. ``"debug"`` or ``logging.WARNING``."""
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    logging.getLogger(PACKAGE_LOGGER).setLevel(level)

"""
Logging utilities for serialkit.

Every serialkit module logs through a child of the ``serialkit`` logger. The
stream handler and level are configured once on that package logger, so codec
and lock messages share one format and one switch, and applications can
silence or redirect the whole library with ``logging.getLogger("serialkit")``.

The level defaults to INFO and can be set with ``SERIALKIT_LOG_LEVEL``
(a level name such as ``DEBUG``) before the first logger is created.
"""

import logging
import os

PACKAGE_LOGGER = "serialkit"
LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


def _configure_package_logger() -> logging.Logger:
    root = logging.getLogger(PACKAGE_LOGGER)
    if not root.handlers:  # configure once, however many modules ask
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%H:%M:%S"))
        root.addHandler(handler)
        root.setLevel(os.environ.get("SERIALKIT_LOG_LEVEL", "INFO").strip().upper())
    return root


def get_logger(name: str) -> logging.Logger:
    """
    Return the logger for a serialkit module.

    Parameters
    ----------
    name : str
        Dotted module name, typically ``__name__``. Names outside the
        ``serialkit`` namespace are placed under it.

    Returns
    -------
    logging.Logger
        A child of the package logger; it carries no handler of its own.

    Raises
    ------
    ValueError
        If ``SERIALKIT_LOG_LEVEL`` names no logging level.

    Examples
    --------
    >>> logger = get_logger(__name__)
    >>> logger.debug("markup branch selected")
    """
    _configure_package_logger()
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)

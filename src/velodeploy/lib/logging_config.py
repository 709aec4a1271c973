"""Logging configuration for velodeploy.

All modules obtain loggers through :func:`get_logger` so that records land
under the ``velodeploy`` namespace and are controlled by a single handler
installed by :func:`setup_logging`.
"""

import logging
import sys

ROOT_LOGGER_NAME = "velodeploy"
LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are noisy at INFO level
NOISY_LOGGERS = ("urllib3", "httpx", "httpcore")


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the velodeploy namespace.

    Args:
        name: Usually ``__name__`` of the calling module

    Returns:
        Logger instance
    """
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure the velodeploy logger hierarchy.

    Installs a single stderr handler on the ``velodeploy`` logger. Calling
    this more than once replaces the previous handler rather than stacking
    another one.

    Args:
        verbose: Enable DEBUG level output
        quiet: Only emit warnings and errors (ignored when verbose is set)
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False

    third_party_level = logging.DEBUG if verbose else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)

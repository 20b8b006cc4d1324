import logging
import os
import sys
from typing import Optional

PACKAGE_LOGGERS = ("common", "peer", "cli")

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _build_handler(level: int, node_name: Optional[str]) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    if node_name:
        fmt = f'%(asctime)s - %(name)s - %(levelname)s - [{node_name}] - %(message)s'
    else:
        fmt = LOG_FORMAT
    handler.setFormatter(logging.Formatter(fmt, datefmt=DATE_FORMAT))
    return handler


def setup_logging(
    component_name: str,
    log_level: Optional[str] = None,
    node_name: Optional[str] = None
) -> logging.Logger:
    """
    Set up logging configuration for a component.

    The package loggers (common, peer, cli) share one stdout handler so
    module loggers created with get_logger(__name__) inherit it.

    Args:
        component_name: Name of the component (e.g., 'peer', 'cli')
        log_level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to LOG_LEVEL env var or INFO
        node_name: Optional peer name (BattleTag) to include in log format

    Returns:
        Configured logger instance for the component
    """
    if log_level is None:
        log_level = os.getenv('LOG_LEVEL', 'INFO')

    level = getattr(logging, log_level.upper(), logging.INFO)
    handler = _build_handler(level, node_name)

    names = set(PACKAGE_LOGGERS) | {component_name}
    for name in names:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        if logger.handlers:
            continue
        logger.addHandler(handler)
        logger.propagate = False

    return logging.getLogger(component_name)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def set_verbose(enabled: bool) -> None:
    """
    Toggle debug output for all package loggers and their handlers.

    Args:
        enabled: True for DEBUG, False for INFO
    """
    level = logging.DEBUG if enabled else logging.INFO
    for name in PACKAGE_LOGGERS:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)


def is_verbose() -> bool:
    return logging.getLogger("peer").isEnabledFor(logging.DEBUG)

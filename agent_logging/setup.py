"""
Logging Setup
Configures file and console logging for the gateway and its scripts.
"""
import logging
import logging.handlers
import os
import sys
from datetime import datetime
from typing import Optional

from supremo_gateway.state_paths import resolve_state_dir

DETAILED_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(filename)s:%(lineno)d | %(message)s"
SIMPLE_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
MAX_LOG_BYTES = 10 * 1024 * 1024


def setup_logging(
    component: str,
    log_dir: Optional[str] = None,
    log_level: str = "INFO",
    console_output: bool = True,
) -> logging.Logger:
    """
    Setup logging for one named component.

    Creates a rotating file handler and an optional console handler.

    Args:
        component: Logger name (e.g. "supremo_gateway")
        log_dir: Directory for log files (defaults to <state dir>/logs/<component>/)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        console_output: Whether to also log to console

    Returns:
        Configured logger instance
    """
    if log_dir is None:
        log_dir = resolve_state_dir() / "logs" / component.lower()
    else:
        log_dir = os.path.expanduser(log_dir)
    os.makedirs(log_dir, exist_ok=True)

    logger = logging.getLogger(component)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Avoid duplicate handlers when called twice
    logger.handlers.clear()

    log_file = os.path.join(log_dir, f"{component.lower()}_{datetime.now().strftime('%Y%m%d')}.log")
    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=MAX_LOG_BYTES,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(fmt=DETAILED_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, log_level.upper(), logging.INFO))
        console_handler.setFormatter(logging.Formatter(fmt=SIMPLE_FORMAT, datefmt="%H:%M:%S"))
        logger.addHandler(console_handler)

    logger.propagate = False
    logger.debug(f"Log file: {log_file}")
    return logger


COMPONENTS = ("supremo_gateway", "integrations", "storage")


def configure_component_loggers(log_level: str = "INFO", log_dir: Optional[str] = None) -> None:
    """Pre-configure loggers for the gateway and its collaborators."""
    for component in COMPONENTS:
        setup_logging(
            component,
            log_dir=os.path.join(log_dir, component) if log_dir else None,
            log_level=log_level,
        )

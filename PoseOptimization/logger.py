"""
Logging utility for PoseOptimization

All modules log under the ``PoseOptimization`` namespace; the application
entry point decides where records go (console, file or both).
"""

import logging
import sys
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = "PoseOptimization"

# [2025-10-31 10:15:30] [INFO] [PoseOptimization.optimization.pose_optimizer] Message
LOG_FORMAT = '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _formatter() -> logging.Formatter:
    return logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: str = "INFO",
    log_file: Optional[str] = None,
    console: bool = True,
    force: bool = False
) -> logging.Logger:
    """
    Attach console and/or file handlers to a logger.

    Args:
        name: Logger name
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file (parent directories are created)
        console: Whether to output to stdout
        force: Replace existing handlers instead of keeping them

    Returns:
        Configured logger

    Example:
        >>> logger = setup_logger('PoseOptimization', level='DEBUG', log_file='solver.log')
        >>> logger.info("Pose refinement started")
    """
    logger = logging.getLogger(name)
    if logger.handlers and not force:
        return logger

    logger.setLevel(getattr(logging, level.upper()))
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(_formatter())
        logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode='a')
        file_handler.setFormatter(_formatter())
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Module logger under the package namespace.

    Example:
        >>> logger = get_logger("optimization.pose_optimizer")
        >>> logger.name
        'PoseOptimization.optimization.pose_optimizer'
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def configure_root_logger(level: str = "INFO", log_file: Optional[str] = None):
    """Configure the package logger once, from the application entry point."""
    setup_logger(
        name=ROOT_LOGGER_NAME,
        level=level,
        log_file=log_file,
        console=True,
        force=True
    )


def disable_console_logging():
    """Drop stdout handlers from the package logger, keeping file output."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in logger.handlers[:]:
        if isinstance(handler, logging.StreamHandler) and handler.stream == sys.stdout:
            logger.removeHandler(handler)


def set_level(level: str):
    """Change the package logging level (DEBUG, INFO, WARNING, ERROR)."""
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(getattr(logging, level.upper()))

"""Centralized logging configuration for the respawn tracker."""
import logging
import sys
from pathlib import Path
from datetime import datetime

ROOT_LOGGER_NAME = 'boss_respawn'


class FlushingStreamHandler(logging.StreamHandler):
    """Stream handler that flushes after every record (output shows up immediately when not a TTY)."""

    def emit(self, record):
        super().emit(record)
        self.flush()


def setup_logging(log_dir: Path = None, log_level: int = logging.INFO) -> logging.Logger:
    """
    Set up application-wide logging.

    Args:
        log_dir: Directory for log files (defaults to data/logs)
        log_level: Logging level (default: INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    # Module loggers created at import time carry the test-mode handler; hand them back to the root
    for name, child in logging.root.manager.loggerDict.items():
        if name.startswith(f'{ROOT_LOGGER_NAME}.') and isinstance(child, logging.Logger):
            child.handlers.clear()
            child.setLevel(logging.NOTSET)

    if log_dir is None:
        log_dir = Path.cwd() / "data" / "logs"
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    log_file = log_dir / f"boss_respawn_{datetime.now().strftime('%Y%m%d')}.log"

    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(log_level)
    file_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    file_handler.setFormatter(file_formatter)
    logger.addHandler(file_handler)

    console_handler = FlushingStreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        datefmt='%H:%M:%S'
    )
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    logger.info("=" * 80)
    logger.info("Boss Respawn Tracker - Logging initialized")
    logger.info(f"Log file: {log_file}")
    logger.info("=" * 80)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific module.
    Uses boss_respawn.<name> so all loggers are children of the app root
    and propagate to its handlers (file + console).
    """
    if name.startswith(ROOT_LOGGER_NAME):
        logger_name = name
    else:
        logger_name = f'{ROOT_LOGGER_NAME}.{name}'
    logger = logging.getLogger(logger_name)

    # No setup_logging() call yet: likely a test run, only surface warnings
    if not logger.handlers and logging.getLogger(ROOT_LOGGER_NAME).level == logging.NOTSET:
        handler = logging.StreamHandler()
        handler.setLevel(logging.WARNING)
        formatter = logging.Formatter('%(levelname)s: %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.WARNING)

    return logger

"""
Logging Configuration
Sets up the package loggers for the application.
"""
import logging
import sys
from typing import Optional


PACKAGE_LOGGERS = ("core", "file_io", "config")


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    """
    Configures the loggers of the 'core', 'file_io' and 'config' packages.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Optional path to save logs to a file.
    """
    # Format: Time - Module - Level - Message
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    for name in PACKAGE_LOGGERS:
        logger = logging.getLogger(name)
        logger.setLevel(level)

        # Avoid duplicate output when called twice
        for old_handler in list(logger.handlers):
            logger.removeHandler(old_handler)
            old_handler.close()

        for handler in handlers:
            logger.addHandler(handler)

    logging.getLogger("config").info("Logging initialized.")

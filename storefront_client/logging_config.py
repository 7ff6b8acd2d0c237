"""
logging_config.py — Centralized Logging Configuration for the Storefront Client

This module configures unified logging behavior for the whole client.
It ensures that the stores, the checkout workflow and the return app all log
consistently to both console and file.

Features:
    • Combined console and file logging output
    • Process ID tagging for multi-process visibility
    • Standardized log format for all modules
    • Reduced verbosity for the HTTP stack (httpx, httpcore)
"""

import logging
import sys

from .config import LOG_FILE, LOG_LEVEL


def setup_logging(log_file=LOG_FILE, level=LOG_LEVEL):
    """
    Configures the global logging system for the application.

    The configuration includes:
        - Log level: taken from LOG_LEVEL (INFO by default)
        - Log format: timestamp, log level, process ID, and message
        - Output destinations:
            1. File: LOG_FILE (persistent log), skipped when log_file is empty
            2. Console (stdout): real-time logs, container compatible
        - Reduced verbosity for httpx/httpcore, which log every request at INFO

    Args:
        log_file (str): Path of the log file. Pass an empty value to log to stdout only.
        level (str): Name of the root log level.
    """
    log_format = '%(asctime)s - %(levelname)s - [PID:%(process)d] - %(message)s'

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.insert(0, logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=log_format,
        handlers=handlers
    )

    # Reduce verbosity from external libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name):
    """
    Returns a configured logger instance for a given module or component name.

    Args:
        name (str): The logger name, typically the module's __name__.

    Returns:
        logging.Logger: A logger that follows the global format and handlers.
    """
    return logging.getLogger(name)

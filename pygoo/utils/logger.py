"""
pygoo - Logging Setup

All managers log under the 'pygoo' logger.

Logging Strategy:
- DEBUG: every API call and each polling round
- INFO: completed waits (VM running, disk ready, ...)
- WARNING: polling timeouts, failed transactions
- ERROR: problems that stop an operation
"""

import logging
import sys
import time
from pathlib import Path
from typing import Any

LOGGER_NAME = 'pygoo'

_DETAILED_FORMAT = '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class CleanFormatter(logging.Formatter):
    """Bare messages for INFO, a level tag for everything else."""

    PREFIXES = {
        logging.DEBUG: '[DEBUG] ',
        logging.WARNING: 'WARNING: ',
        logging.ERROR: 'ERROR: ',
        logging.CRITICAL: 'CRITICAL: ',
    }

    def format(self, record):
        return self.PREFIXES.get(record.levelno, '') + record.getMessage()


def setup_logging(level='INFO', log_file=None):
    """
    Configure the 'pygoo' logger for the CLI.

    Console output goes to stderr so command output on stdout stays
    parseable. At DEBUG the console shows timestamps and call sites.
    Calling it again replaces the previous handlers.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path of a log file, written in the detailed format
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(numeric_level)
    logger.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    if numeric_level <= logging.DEBUG:
        console.setFormatter(logging.Formatter(_DETAILED_FORMAT, datefmt=_DATE_FORMAT))
    else:
        console.setFormatter(CleanFormatter())
    logger.addHandler(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(_DETAILED_FORMAT, datefmt=_DATE_FORMAT))
        logger.addHandler(file_handler)
        logger.debug(f"Logging to file: {log_file}")

    return logger


def get_logger(name=None):
    """
    Get the pygoo logger, or one of its children.

    Example:
        from pygoo.utils.logger import get_logger
        logger = get_logger('gce')   # -> 'pygoo.gce'
    """
    if name:
        return logging.getLogger(f'{LOGGER_NAME}.{name}')
    return logging.getLogger(LOGGER_NAME)


def log_api_call(logger, method_name: str, **params):
    """
    Log an API call (DEBUG level).

    Example:
        log_api_call(logger, 'instances.get', project='my-project', zone='us-central1-a', instance='my-vm')
        # Output: API call: instances.get(project=my-project, zone=us-central1-a, instance=my-vm)
    """
    param_str = ', '.join(f'{k}={v}' for k, v in params.items())
    logger.debug(f"API call: {method_name}({param_str})")


def log_api_response(logger, response: Any, truncate: int = 200):
    """
    Log an API response (DEBUG level), truncated to `truncate` characters.
    """
    response_str = str(response)
    if len(response_str) > truncate:
        response_str = response_str[:truncate] + '...'
    logger.debug(f"API response: {response_str}")


def log_operation_start(logger, operation_name: str):
    """
    Log the start of an operation (DEBUG level).

    Returns:
        float: Start time (for use with log_operation_end)
    """
    logger.debug(f"Starting operation: {operation_name}")
    return time.time()


def log_operation_end(logger, operation_name: str, start_time: float):
    """
    Log the end of an operation with timing (DEBUG level).

    Example:
        start_time = log_operation_start(logger, 'Wait VM running')
        # ... do operation ...
        log_operation_end(logger, 'Wait VM running', start_time)
        # Output: Operation completed: Wait VM running (took 10.50s)
    """
    duration = time.time() - start_time
    logger.debug(f"Operation completed: {operation_name} (took {duration:.2f}s)")

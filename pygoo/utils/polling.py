"""
pygoo - Status Polling

Cloud operations (VM start, disk creation, template insertion, ...) are
asynchronous. These helpers poll a resource until it reaches the target
state or the timeout expires.
"""

import time
from typing import Any, Callable, Dict, Optional

from pygoo.core.exceptions import OperationFailedError, OperationTimeoutError, PyGooError
from pygoo.utils.logger import get_logger, log_operation_end, log_operation_start

DONE = 'DONE'


def wait_for_status(get_status: Callable[[], str], target_status: str, timeout: float,
                    interval: float = 10, missing_interval: Optional[float] = None,
                    description: str = 'resource', logger=None) -> bool:
    """
    Wait for a resource to reach a target status.

    A PyGooError raised by get_status means the resource doesn't exist yet;
    it is polled again after missing_interval.

    Args:
        get_status: Function that returns current status
        target_status: Status to wait for
        timeout: Maximum seconds to wait
        interval: Seconds between checks while the status is wrong
        missing_interval: Seconds between checks while the resource is missing
        description: Resource description used in log messages

    Returns:
        True if reached target status, False if timeout
    """
    logger = logger or get_logger()
    if missing_interval is None:
        missing_interval = interval

    operation_name = f"Wait {description} {target_status}"
    start_time = log_operation_start(logger, operation_name)

    while True:
        try:
            current_status = get_status()
        except PyGooError as e:
            logger.debug(f"Not yet existed: {description}: {e}")
            delay = missing_interval
        else:
            if current_status == target_status:
                log_operation_end(logger, operation_name, start_time)
                return True

            logger.debug(f"Current status: {current_status}, Target: {target_status}: {description}")
            delay = interval

        if time.time() - start_time > timeout:
            logger.warning(f"Timeout waiting for {description} to be {target_status} (>{timeout}s)")
            return False

        time.sleep(delay)


def format_operation_error(error: Dict[str, Any]) -> str:
    """Join the messages of an operation's `error.errors` list."""
    messages = [
        item.get('message') or item.get('code', 'unknown error')
        for item in error.get('errors', [])
    ]
    return '; '.join(messages) or str(error)


def wait_for_operation(get_operation: Callable[[], Dict[str, Any]], timeout: float,
                       interval: float = 10, description: str = 'operation',
                       logger=None) -> Dict[str, Any]:
    """
    Poll a compute operation until its status is DONE.

    Returns:
        The finished operation

    Raises:
        OperationFailedError: If the finished operation carries an error
        OperationTimeoutError: If it isn't DONE within timeout seconds
    """
    logger = logger or get_logger()
    start_time = log_operation_start(logger, description)

    while True:
        operation = get_operation()
        status = operation.get('status')

        if status == DONE:
            error = operation.get('error')
            if error:
                logger.warning(f"Operation failed: {description}: {error}")
                raise OperationFailedError(description, format_operation_error(error))

            log_operation_end(logger, description, start_time)
            return operation

        logger.debug(f"Operation {operation.get('name')} is {status}: {description}")

        if time.time() - start_time > timeout:
            logger.warning(f"Timeout waiting for {description} (>{timeout}s)")
            raise OperationTimeoutError(description, operation.get('name', ''), timeout)

        time.sleep(interval)

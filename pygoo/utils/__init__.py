"""Utils package."""

from .logger import setup_logging, get_logger
from .polling import wait_for_status, wait_for_operation

__all__ = [
    'setup_logging',
    'get_logger',
    'wait_for_status',
    'wait_for_operation',
]

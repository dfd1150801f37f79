"""
pygoo - API call execution

Runs discovery requests and translates googleapiclient errors into
pygoo exceptions.
"""

from typing import Any, Optional, Type

from googleapiclient.errors import HttpError

from pygoo.core.exceptions import PyGooError
from pygoo.utils.logger import log_api_call, log_api_response


def http_status(error: HttpError) -> Optional[int]:
    """HTTP status of a googleapiclient error, if it carries one."""
    resp = getattr(error, 'resp', None)
    status = getattr(resp, 'status', None)
    return int(status) if status is not None else None


def execute_request(request, action: str, error_class: Type[PyGooError], logger, **params) -> Any:
    """
    Log and execute a discovery request.

    Args:
        request: Request object returned by the discovery client
        action: API method name, for logging
        error_class: Error raised when the call fails
        logger: Logger for the call and its response
        **params: Call parameters, for logging

    Raises:
        error_class wrapping the HttpError, with its HTTP status
    """
    log_api_call(logger, action, **params)

    try:
        response = request.execute()
    except HttpError as e:
        logger.debug(f"API error: {action}: {e}")
        raise error_class(f"{action}: {e}", status=http_status(e)) from e

    log_api_response(logger, response)
    return response

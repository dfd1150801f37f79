"""
pygoo - Base Manager

This module provides the base class for all managers.
Each manager holds one discovery client and exposes one method per
underlying API call. Errors of the client are translated into the
manager's own PyGooError subclass.
"""

from typing import Any, Dict, Iterator, Type

from pygoo.core.api import execute_request
from pygoo.core.exceptions import PyGooError
from pygoo.utils.logger import get_logger


class BaseManager:
    """
    Base class for all managers.

    Example usage:
        class TopicManager(BaseManager):
            error_class = PubSubError

            def get_topic(self, name):
                return self._execute(
                    self.service.projects().topics().get(topic=name),
                    'topics.get', topic=name
                )
    """

    #: Error raised when a call fails
    error_class: Type[PyGooError] = PyGooError

    def __init__(self, service, logger=None):
        """
        Initialize manager.

        Args:
            service: Discovery client built by AuthManager.build_service()
            logger: Optional logger, defaults to the 'pygoo' logger
        """
        self.service = service
        self.logger = logger or get_logger()

    def _execute(self, request, action: str, **params) -> Any:
        """Execute a discovery request, raising the manager's error_class on failure."""
        return execute_request(request, action, self.error_class, self.logger, **params)

    def _paginate(self, collection, action: str, items_key: str = 'items',
                  **params) -> Iterator[Dict[str, Any]]:
        """
        Iterate over every item of a paged list call.

        Args:
            collection: Resource collection exposing list() and list_next()
            action: API method name, for logging
            items_key: Response field holding the page items
            **params: Arguments of list()
        """
        request = collection.list(**params)
        while request is not None:
            response = self._execute(request, action, **params)
            for item in response.get(items_key, []):
                yield item
            request = collection.list_next(request, response)

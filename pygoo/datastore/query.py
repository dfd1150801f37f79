"""
pygoo - Datastore queries

Query builder producing the REST `Query` object. Every builder method
returns a new Query, so a base query can be shared and refined.

Example:
    query = Query('User').filter('age', '>=', 18).order('-created').limit(50)
"""

import copy
from typing import Any, Dict, List, Optional, Tuple

from pygoo.datastore.entity import Key, encode_value

KEY_PROPERTY = '__key__'

OPERATORS = {
    '=': 'EQUAL',
    '==': 'EQUAL',
    '!=': 'NOT_EQUAL',
    '<': 'LESS_THAN',
    '<=': 'LESS_THAN_OR_EQUAL',
    '>': 'GREATER_THAN',
    '>=': 'GREATER_THAN_OR_EQUAL',
    'in': 'IN',
    'not in': 'NOT_IN',
}


class Query:
    """Datastore query over one kind."""

    def __init__(self, kind: Optional[str] = None):
        self.kind = kind
        self.filters: List[Tuple[str, str, Any]] = []
        self.orders: List[Tuple[str, str]] = []
        self.ancestor_key: Optional[Key] = None
        self.limit_value: Optional[int] = None
        self.offset_value: int = 0
        self.is_keys_only = False
        self.start_cursor: Optional[str] = None
        self.namespace_value: Optional[str] = None

    def _clone(self) -> 'Query':
        clone = copy.copy(self)
        clone.filters = list(self.filters)
        clone.orders = list(self.orders)
        return clone

    def filter(self, prop: str, op: str, value: Any) -> 'Query':
        """Add a property filter. Filters are ANDed together."""
        if op not in OPERATORS:
            raise ValueError(f"Unsupported filter operator: {op}")

        clone = self._clone()
        clone.filters.append((prop, OPERATORS[op], value))
        return clone

    def ancestor(self, key: Key) -> 'Query':
        """Restrict the query to descendants of key."""
        clone = self._clone()
        clone.ancestor_key = key
        return clone

    def order(self, prop: str) -> 'Query':
        """Sort by prop; a leading '-' sorts descending."""
        clone = self._clone()
        if prop.startswith('-'):
            clone.orders.append((prop[1:], 'DESCENDING'))
        else:
            clone.orders.append((prop, 'ASCENDING'))
        return clone

    def limit(self, limit: int) -> 'Query':
        clone = self._clone()
        clone.limit_value = limit
        return clone

    def offset(self, offset: int) -> 'Query':
        clone = self._clone()
        clone.offset_value = offset
        return clone

    def keys_only(self) -> 'Query':
        clone = self._clone()
        clone.is_keys_only = True
        return clone

    def start(self, cursor: str) -> 'Query':
        """Resume from a cursor returned by a previous page."""
        clone = self._clone()
        clone.start_cursor = cursor
        return clone

    def namespace(self, namespace: str) -> 'Query':
        clone = self._clone()
        clone.namespace_value = namespace
        return clone

    def _filters_to_api(self, project_id: str) -> List[Dict[str, Any]]:
        filters = [
            {'propertyFilter': {
                'property': {'name': prop},
                'op': op,
                'value': encode_value(value, project_id),
            }}
            for prop, op, value in self.filters
        ]

        if self.ancestor_key is not None:
            filters.append({'propertyFilter': {
                'property': {'name': KEY_PROPERTY},
                'op': 'HAS_ANCESTOR',
                'value': encode_value(self.ancestor_key, project_id),
            }})

        return filters

    def to_api(self, project_id: str, limit: Optional[int] = None,
               start_cursor: Optional[str] = None,
               offset: Optional[int] = None) -> Dict[str, Any]:
        """
        Build the REST query.

        limit, start_cursor and offset override the query's own values;
        they are used when walking through pages.
        """
        query: Dict[str, Any] = {}

        if self.kind:
            query['kind'] = [{'name': self.kind}]

        filters = self._filters_to_api(project_id)
        if len(filters) == 1:
            query['filter'] = filters[0]
        elif filters:
            query['filter'] = {'compositeFilter': {'op': 'AND', 'filters': filters}}

        if self.orders:
            query['order'] = [
                {'property': {'name': prop}, 'direction': direction}
                for prop, direction in self.orders
            ]

        if self.is_keys_only:
            query['projection'] = [{'property': {'name': KEY_PROPERTY}}]

        limit = limit if limit is not None else self.limit_value
        if limit is not None:
            query['limit'] = limit

        offset = offset if offset is not None else self.offset_value
        if offset:
            query['offset'] = offset

        cursor = start_cursor or self.start_cursor
        if cursor:
            query['startCursor'] = cursor

        return query

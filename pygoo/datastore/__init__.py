"""
pygoo - Datastore access layer

Keys, entity mapping, queries and transactions over the Datastore v1
REST API. GDSManager (pygoo.managers.gds) builds on these.

Usage:
    from dataclasses import dataclass, field
    from typing import Optional
    from pygoo.datastore import Key, Query

    @dataclass
    class User:
        name: str = ''
        bio: str = field(default='', metadata={'noindex': True})
        key: Optional[Key] = None
"""

from pygoo.datastore.entity import (
    Key,
    decode_value,
    encode_value,
    entity_from_api,
    entity_to_api,
)
from pygoo.datastore.query import Query
from pygoo.datastore.transaction import Transaction

__all__ = [
    'Key',
    'Query',
    'Transaction',
    'decode_value',
    'encode_value',
    'entity_from_api',
    'entity_to_api',
]

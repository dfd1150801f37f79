"""
pygoo - Datastore entity mapping

Converts Python values and dataclass models to the JSON representation of
the Datastore v1 REST API, and back.

https://cloud.google.com/datastore/docs/reference/data/rest/v1/projects/runQuery#Value
"""

import base64
import re
from dataclasses import dataclass, fields, is_dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

KEY_FIELD = 'key'

_FRACTION = re.compile(r'\.(\d+)')


@dataclass(frozen=True)
class Key:
    """
    Datastore entity key.

    A key is complete when it has a name or a numeric id. Incomplete keys
    get an id allocated by Datastore on put.

    The namespace applies to the whole path: a child key without one takes
    its parent's, and a namespaced child carries it up to its ancestors.

    Example:
        parent = Key('Account', name='acme')
        key = Key('User', name='joe', parent=parent)
    """

    kind: str
    name: Optional[str] = None
    id: Optional[int] = None
    parent: Optional['Key'] = None
    namespace: Optional[str] = None

    def __post_init__(self):
        if self.parent is None:
            return
        if self.namespace is None:
            object.__setattr__(self, 'namespace', self.parent.namespace)
        elif self.parent.namespace is None:
            object.__setattr__(self, 'parent', replace(self.parent, namespace=self.namespace))
        elif self.parent.namespace != self.namespace:
            raise ValueError(
                f"Key namespace {self.namespace!r} does not match parent namespace {self.parent.namespace!r}"
            )

    @property
    def is_complete(self) -> bool:
        return self.name is not None or self.id is not None

    def path(self) -> List[Dict[str, Any]]:
        """Path elements, root ancestor first."""
        elements = self.parent.path() if self.parent else []

        element = {'kind': self.kind}
        if self.name is not None:
            element['name'] = self.name
        elif self.id is not None:
            element['id'] = str(self.id)
        elements.append(element)

        return elements

    def to_api(self, project_id: str) -> Dict[str, Any]:
        partition = {'projectId': project_id}
        if self.namespace:
            partition['namespaceId'] = self.namespace

        return {'partitionId': partition, 'path': self.path()}

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'Key':
        namespace = data.get('partitionId', {}).get('namespaceId') or None

        key = None
        for element in data['path']:
            id_ = element.get('id')
            key = cls(
                kind=element['kind'],
                name=element.get('name'),
                id=int(id_) if id_ is not None else None,
                parent=key,
                namespace=namespace
            )
        return key

    def __str__(self):
        return '/'.join(
            f"{element['kind']}:{element.get('name', element.get('id', '?'))}"
            for element in self.path()
        )


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%fZ')


def _parse_timestamp(text: str) -> datetime:
    # Datastore returns up to nanosecond precision; datetime keeps microseconds
    text = text.replace('Z', '+00:00')
    text = _FRACTION.sub(lambda m: '.' + m.group(1)[:6].ljust(6, '0'), text, count=1)
    return datetime.fromisoformat(text)


def encode_value(value: Any, project_id: str, exclude_from_indexes: bool = False) -> Dict[str, Any]:
    """
    Encode a Python value as a Datastore Value.

    Raises:
        TypeError: If the value has no Datastore representation
    """
    if value is None:
        encoded = {'nullValue': 'NULL_VALUE'}
    elif isinstance(value, bool):
        encoded = {'booleanValue': value}
    elif isinstance(value, int):
        encoded = {'integerValue': str(value)}
    elif isinstance(value, float):
        encoded = {'doubleValue': value}
    elif isinstance(value, str):
        encoded = {'stringValue': value}
    elif isinstance(value, bytes):
        encoded = {'blobValue': base64.b64encode(value).decode('ascii')}
    elif isinstance(value, datetime):
        encoded = {'timestampValue': _format_timestamp(value)}
    elif isinstance(value, Key):
        encoded = {'keyValue': value.to_api(project_id)}
    elif isinstance(value, (list, tuple)):
        # Index exclusion goes on the elements, never on the array itself
        return {'arrayValue': {'values': [
            encode_value(item, project_id, exclude_from_indexes) for item in value
        ]}}
    elif isinstance(value, dict) or is_dataclass(value):
        encoded = {'entityValue': {'properties': encode_properties(value, project_id)}}
    else:
        raise TypeError(f"Unsupported Datastore property type: {type(value).__name__}")

    if exclude_from_indexes:
        encoded['excludeFromIndexes'] = True
    return encoded


def decode_value(data: Dict[str, Any]) -> Any:
    """Decode a Datastore Value to a Python value."""
    if 'nullValue' in data:
        return None
    if 'booleanValue' in data:
        return data['booleanValue']
    if 'integerValue' in data:
        return int(data['integerValue'])
    if 'doubleValue' in data:
        return float(data['doubleValue'])
    if 'stringValue' in data:
        return data['stringValue']
    if 'blobValue' in data:
        return base64.b64decode(data['blobValue'])
    if 'timestampValue' in data:
        return _parse_timestamp(data['timestampValue'])
    if 'keyValue' in data:
        return Key.from_api(data['keyValue'])
    if 'arrayValue' in data:
        return [decode_value(item) for item in data['arrayValue'].get('values', [])]
    if 'entityValue' in data:
        return decode_properties(data['entityValue'].get('properties', {}))
    if 'geoPointValue' in data:
        return dict(data['geoPointValue'])

    return None


def encode_properties(obj: Any, project_id: str) -> Dict[str, Any]:
    """
    Encode a dict or dataclass instance as Datastore properties.

    Dataclass fields declared with metadata={'noindex': True} are excluded
    from indexes; the `key` field is never stored.
    """
    if isinstance(obj, dict):
        return {name: encode_value(value, project_id) for name, value in obj.items()}

    if not is_dataclass(obj):
        raise TypeError(f"Entity must be a dict or a dataclass, got {type(obj).__name__}")

    properties = {}
    for f in fields(obj):
        if f.name == KEY_FIELD:
            continue
        properties[f.name] = encode_value(
            getattr(obj, f.name), project_id, f.metadata.get('noindex', False)
        )
    return properties


def decode_properties(properties: Dict[str, Any]) -> Dict[str, Any]:
    return {name: decode_value(value) for name, value in properties.items()}


def entity_to_api(key: Key, obj: Any, project_id: str) -> Dict[str, Any]:
    """Build the REST entity for `obj` stored under `key`."""
    return {
        'key': key.to_api(project_id),
        'properties': encode_properties(obj, project_id),
    }


def set_entity_key(entity: Any, key: Key) -> None:
    """Assign the key to the entity's `key` attribute, if the entity has one."""
    if not isinstance(entity, dict) and hasattr(entity, KEY_FIELD):
        setattr(entity, KEY_FIELD, key)


def entity_from_api(data: Dict[str, Any], model: Any = None) -> Any:
    """
    Build an entity from its REST representation.

    Args:
        data: REST entity ({'key': ..., 'properties': ...})
        model: Dataclass to instantiate. None or dict returns a plain dict
               of the properties.

    Properties without a matching dataclass field are ignored.
    """
    properties = decode_properties(data.get('properties', {}))
    if model is None or model is dict:
        return properties

    if not is_dataclass(model):
        raise TypeError(f"Model must be a dataclass, got {model!r}")

    init_fields = {f.name for f in fields(model) if f.init and f.name != KEY_FIELD}
    entity = model(**{name: value for name, value in properties.items() if name in init_fields})

    if 'key' in data:
        set_entity_key(entity, Key.from_api(data['key']))

    return entity

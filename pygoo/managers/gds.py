"""
pygoo - Datastore Manager

Generic entity access over Google Cloud Datastore: put/get/delete by key,
unique puts through transactions, and cursor-based query paging with
parallel per-page processing.

https://cloud.google.com/datastore/docs/reference/data/rest
"""

from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from pygoo.core.config import DEFAULT_DATASTORE_CONFIG, DatastoreConfig
from pygoo.core.exceptions import EntityNotFoundError, GDSError, UniqueViolationError
from pygoo.datastore.entity import Key, entity_from_api, entity_to_api, set_entity_key
from pygoo.datastore.query import Query
from pygoo.datastore.transaction import Transaction, commit_mutations, lookup_entities
from pygoo.managers.base import BaseManager

# Datastore accepts at most 500 mutations per commit
MAX_MUTATIONS = 500

NO_MORE_RESULTS = 'NO_MORE_RESULTS'


@dataclass
class Page:
    """One batch of query results."""

    keys: List[Key] = field(default_factory=list)
    entities: List[Any] = field(default_factory=list)
    cursor: Optional[str] = None

    def __len__(self):
        return len(self.keys)


class GDSManager(BaseManager):
    """
    Low level communication with Google Datastore.

    Example:
        gds = GDSManager(datastore, 'my-project')
        key = gds.build_key('User', 'joe')
        gds.put_unique(key, User(name='joe'))
        user = gds.get(key, User)
    """

    error_class = GDSError

    def __init__(self, service, project_id: str, config: Optional[DatastoreConfig] = None,
                 logger=None):
        super().__init__(service, logger)
        self.project_id = project_id
        self.config = replace(config or DEFAULT_DATASTORE_CONFIG)

    def setup(self, suffix_of_kind: str) -> None:
        """Set the suffix appended to kind names by kind_name()."""
        self.config.suffix_of_kind = suffix_of_kind

    def kind_name(self, kind: str) -> str:
        return f"{kind}{self.config.suffix_of_kind}"

    def build_key(self, kind: str, key_name: str) -> Key:
        """Build the key of the named entity."""
        return Key(kind, name=key_name, namespace=self.config.namespace)

    def _partition(self, namespace: Optional[str] = None) -> Dict[str, str]:
        partition = {'projectId': self.project_id}
        namespace = namespace or self.config.namespace
        if namespace:
            partition['namespaceId'] = namespace
        return partition

    def put(self, key: Key, entity: Any) -> Key:
        """
        Insert or update the entity.

        Returns:
            The stored key; for an incomplete key, the one with the allocated id
        """
        self.logger.debug(f"Put entity: key[{key}]")

        results = commit_mutations(
            self.service, self.project_id,
            [{'upsert': entity_to_api(key, entity, self.project_id)}],
            self.logger
        )

        if results and results[0].get('key'):
            key = Key.from_api(results[0]['key'])

        set_entity_key(entity, key)
        return key

    def put_unique(self, key: Key, entity: Any) -> None:
        """
        Insert the entity only if no entity exists under key.

        Raises:
            UniqueViolationError: If the key is already taken
        """
        self.logger.debug(f"PutUnique entity: key[{key}]")

        with self.get_tx() as tx:
            try:
                tx.get(key)
            except EntityNotFoundError:
                pass
            else:
                raise UniqueViolationError(key)

            tx.put(key, entity)

        set_entity_key(entity, key)

    def get(self, key: Key, model: Any = None) -> Any:
        """
        Get the entity by key.

        Args:
            model: Dataclass to build, or None for a dict of properties

        Raises:
            EntityNotFoundError: If no entity exists for key
        """
        self.logger.debug(f"Get entity: key[{key}]")

        found = lookup_entities(self.service, self.project_id, [key], self.logger)
        if key not in found:
            self.logger.debug(f"Entity not found: kind[{key.kind}], key[{key}]")
            raise EntityNotFoundError(key)

        return entity_from_api(found[key], model)

    def get_multi(self, keys: List[Key], model: Any = None) -> List[Any]:
        """
        Get the entities by keys, in key order.

        Raises:
            GDSError: If any key has no entity
        """
        found = lookup_entities(self.service, self.project_id, keys, self.logger)

        missing = [key for key in keys if key not in found]
        if missing:
            self.logger.debug(f"Entities not found: {[str(k) for k in missing]}")
            raise GDSError(f"GDS Error: {len(missing)} of {len(keys)} entities not found")

        return [entity_from_api(found[key], model) for key in keys]

    def get_keys_only(self, query: Query) -> List[Key]:
        """Get only the keys matched by the query."""
        keys, _ = self.get_all(query.keys_only())
        return keys

    def delete(self, key: Optional[Key]) -> None:
        """Delete the entity by key. Deleting an absent entity is not an error."""
        if key is None:
            raise GDSError("key is nil")

        self.logger.debug(f"Delete entity: key[{key}]")
        commit_mutations(
            self.service, self.project_id,
            [{'delete': key.to_api(self.project_id)}],
            self.logger
        )

    def get_all(self, query: Query, model: Any = None) -> Tuple[List[Key], List[Any]]:
        """
        Fetch every entity matched by the query.

        Returns:
            (keys, entities); entities is empty for keys-only queries
        """
        self.logger.debug(f"Get all by query: kind[{query.kind}]")

        keys, entities = [], []
        for page in self.iter_pages(query, model=model):
            keys.extend(page.keys)
            entities.extend(page.entities)

        return keys, entities

    def get_count(self, query: Query) -> int:
        """Count the entities matched by the query."""
        self.logger.debug(f"Get count by query: kind[{query.kind}]")

        body = {
            'partitionId': self._partition(query.namespace_value),
            'aggregationQuery': {
                'nestedQuery': query.to_api(self.project_id),
                'aggregations': [{'alias': 'total', 'count': {}}],
            },
        }
        response = self._execute(
            self.service.projects().runAggregationQuery(projectId=self.project_id, body=body),
            'datastore.runAggregationQuery', project=self.project_id, kind=query.kind
        )

        results = response.get('batch', {}).get('aggregationResults', [])
        if not results:
            return 0
        return int(results[0]['aggregateProperties']['total']['integerValue'])

    def delete_all(self, kind_name: str) -> int:
        """
        Delete all entities of a kind.

        Returns:
            Number of deleted entities
        """
        self.logger.debug(f"Delete all: kind[{kind_name}]")

        keys = self.get_keys_only(Query(kind_name))
        for start in range(0, len(keys), MAX_MUTATIONS):
            commit_mutations(
                self.service, self.project_id,
                [{'delete': key.to_api(self.project_id)} for key in keys[start:start + MAX_MUTATIONS]],
                self.logger
            )

        return len(keys)

    def get_tx(self) -> Transaction:
        """Begin a new transaction."""
        return Transaction(self.service, self.project_id, self.logger).begin()

    def iter_pages(self, query: Query, page_size: Optional[int] = None,
                   model: Any = None) -> Iterator[Page]:
        """
        Run the query page by page, following the end cursor of each batch.

        Stops when Datastore reports NO_MORE_RESULTS or the query's own
        limit is reached.
        """
        page_size = page_size or self.config.page_size
        remaining = query.limit_value
        offset = query.offset_value
        cursor = query.start_cursor

        while remaining is None or remaining > 0:
            batch_limit = page_size if remaining is None else min(page_size, remaining)
            body = {
                'partitionId': self._partition(query.namespace_value),
                'query': query.to_api(
                    self.project_id, limit=batch_limit, start_cursor=cursor, offset=offset
                ),
            }
            response = self._execute(
                self.service.projects().runQuery(projectId=self.project_id, body=body),
                'datastore.runQuery', project=self.project_id, kind=query.kind,
                limit=batch_limit, cursor=cursor
            )

            batch = response.get('batch', {})
            results = batch.get('entityResults', [])
            offset = max(offset - int(batch.get('skippedResults', 0)), 0)
            cursor = batch.get('endCursor')

            page = Page(cursor=cursor)
            for result in results:
                page.keys.append(Key.from_api(result['entity']['key']))
                if not query.is_keys_only:
                    page.entities.append(entity_from_api(result['entity'], model))

            if results:
                yield page

            if remaining is not None:
                remaining -= len(results)

            if batch.get('moreResults') == NO_MORE_RESULTS or not cursor:
                return
            if not results and not batch.get('skippedResults'):
                return

    def process_pages(self, query: Query, handler: Callable[[Page], Any],
                      page_size: Optional[int] = None, max_workers: Optional[int] = None,
                      model: Any = None) -> int:
        """
        Hand every page of the query to handler on a thread pool.

        Pages are fetched sequentially while earlier pages are processed,
        with at most max_workers pages in flight. If handlers fail, the
        first failure (in page order) is raised once every submitted page
        has been processed.

        Returns:
            Number of entities processed
        """
        max_workers = max_workers or self.config.max_workers
        futures = []
        pending = set()
        count = 0

        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='pygoo-gds') as executor:
            for page in self.iter_pages(query, page_size=page_size, model=model):
                future = executor.submit(handler, page)
                futures.append(future)
                pending.add(future)
                count += len(page)

                # Hold the next fetch until a worker is free
                if len(pending) >= max_workers:
                    _, pending = wait(pending, return_when=FIRST_COMPLETED)

        for future in futures:
            future.result()

        self.logger.debug(f"Processed {count} entities in {len(futures)} pages: kind[{query.kind}]")
        return count

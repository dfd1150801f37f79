"""
pygoo - Datastore transactions

Lookup/commit helpers shared by GDSManager and Transaction.

Example:
    with gds.get_tx() as tx:
        user = tx.get(key, User)
        user.visits += 1
        tx.put(key, user)
    # committed here, rolled back if the block raised
"""

from typing import Any, Dict, List, Optional

from pygoo.core.api import execute_request
from pygoo.core.exceptions import EntityNotFoundError, GDSError, TransactionError
from pygoo.datastore.entity import Key, entity_from_api, entity_to_api
from pygoo.utils.logger import get_logger

TRANSACTIONAL = 'TRANSACTIONAL'
NON_TRANSACTIONAL = 'NON_TRANSACTIONAL'


def lookup_entities(service, project_id: str, keys: List[Key], logger,
                    transaction: Optional[str] = None) -> Dict[Key, Dict[str, Any]]:
    """
    Look up keys, following deferred results.

    Returns:
        Mapping of key to REST entity, for the keys that were found
    """
    found = {}
    pending = [key.to_api(project_id) for key in keys]

    while pending:
        body = {'keys': pending}
        if transaction:
            body['readOptions'] = {'transaction': transaction}

        response = execute_request(
            service.projects().lookup(projectId=project_id, body=body),
            'datastore.lookup', GDSError, logger,
            project=project_id, keys=len(pending)
        )

        for result in response.get('found', []):
            entity = result['entity']
            found[Key.from_api(entity['key'])] = entity

        pending = response.get('deferred', [])

    return found


def commit_mutations(service, project_id: str, mutations: List[Dict[str, Any]], logger,
                     transaction: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Commit mutations, transactionally when a transaction id is given.

    Returns:
        The mutation results, in mutation order
    """
    body = {
        'mode': TRANSACTIONAL if transaction else NON_TRANSACTIONAL,
        'mutations': mutations,
    }
    if transaction:
        body['transaction'] = transaction

    response = execute_request(
        service.projects().commit(projectId=project_id, body=body),
        'datastore.commit', GDSError, logger,
        project=project_id, mode=body['mode'], mutations=len(mutations)
    )
    return response.get('mutationResults', [])


class Transaction:
    """
    A Datastore read-write transaction.

    Reads go through the transaction immediately; writes are buffered and
    sent on commit().
    """

    def __init__(self, service, project_id: str, logger=None):
        self.service = service
        self.project_id = project_id
        self.logger = logger or get_logger()
        self.id: Optional[str] = None
        self._mutations: List[Dict[str, Any]] = []
        self._finished = False

    def begin(self) -> 'Transaction':
        response = execute_request(
            self.service.projects().beginTransaction(projectId=self.project_id, body={}),
            'datastore.beginTransaction', GDSError, self.logger, project=self.project_id
        )
        self.id = response['transaction']
        return self

    def _check_active(self):
        if self.id is None:
            raise TransactionError("Transaction not begun")
        if self._finished:
            raise TransactionError("Transaction already committed or rolled back")

    def get(self, key: Key, model: Any = None) -> Any:
        """
        Read an entity inside the transaction.

        Raises:
            EntityNotFoundError: If no entity exists for key
        """
        self._check_active()

        found = lookup_entities(self.service, self.project_id, [key], self.logger, self.id)
        if key not in found:
            raise EntityNotFoundError(key)

        return entity_from_api(found[key], model)

    def put(self, key: Key, entity: Any) -> None:
        """Buffer an upsert."""
        self._check_active()
        self._mutations.append({'upsert': entity_to_api(key, entity, self.project_id)})

    def delete(self, key: Key) -> None:
        """Buffer a delete."""
        self._check_active()
        self._mutations.append({'delete': key.to_api(self.project_id)})

    def commit(self) -> List[Dict[str, Any]]:
        """Send the buffered mutations. Returns the mutation results."""
        self._check_active()
        self._finished = True

        try:
            return commit_mutations(
                self.service, self.project_id, self._mutations, self.logger, self.id
            )
        except GDSError as e:
            self.logger.warning(f"Commit failed: transaction[{self.id}]: {e}")
            raise

    def rollback(self) -> None:
        self._check_active()
        self._finished = True

        execute_request(
            self.service.projects().rollback(
                projectId=self.project_id, body={'transaction': self.id}
            ),
            'datastore.rollback', GDSError, self.logger, project=self.project_id
        )

    def __enter__(self):
        if self.id is None:
            self.begin()
        return self

    def __exit__(self, exc_type, exc, tb):
        if self._finished:
            return False

        if exc_type is None:
            self.commit()
        else:
            self.rollback()
        return False

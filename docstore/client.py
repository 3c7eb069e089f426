"""
### The Client

`DocumentStoreClient` is everything the rest of the library needs from a document database:

* address: `document(collection, id)`
* read: `get()`, `get_all()`, `exists()`
* write: `create()`, `set()`, `update()`, `delete()`, and `commit()` for many operations at once
* query: `query(collection)` gives a `ConstraintBuilder`; `run_query()` evaluates a Query Object
* units of work: `batch()`, `transaction()`, `run_transaction()`

Every write goes through `commit()`: it reads the clock once, resolves field transforms,
checks preconditions, and writes all documents as one atomic unit. Nothing is written when any check fails.

A concrete store only implements the storage primitives:
`_begin()`, `_read_documents()`, `_list_documents()`, `_write_documents()`.

Settings are given as keyword arguments (see `DocStoreSettingsDict`) and passed on
to the queries, batches and transactions that the client creates.
"""

import datetime
import logging
from collections import namedtuple
from typing import Callable, Iterable, List, Mapping

from .builder import ConstraintBuilder
from .document import DocumentReference, DocumentSnapshot, generate_id, unmet_conditions
from .exc import ConflictError, NotFoundError, ConfigurationError
from .indexes import IndexValidator
from .mutations.batch import BatchCoordinator
from .mutations.operation import Operation, OperationKind
from .mutations.transaction import TransactionCoordinator
from .mutations.validator import BatchValidator
from .query import DocumentQuery
from .transforms import TransformEngine
from .util import Reusable, SettingsHandler

logger = logging.getLogger(__name__)


#: A notification about a committed write, given to every listener
OperationEvent = namedtuple('OperationEvent', ('collection', 'kind', 'id', 'timestamp'))


def utcnow() -> datetime.datetime:
    """ The default clock """
    return datetime.datetime.now(datetime.timezone.utc)


class DocumentStoreClient:
    """ Base for document stores """

    #: The transform engine to resolve field transforms with
    transform_engine = TransformEngine()

    def __init__(self, clock: Callable[[], object] = None, **settings):
        """ Init the client

        :param clock: Callable that gives the commit timestamp. Default: the current UTC time.
        :param settings: Settings for queries, indexes, validation, batches and transactions.
            See DocStoreSettingsDict.
        :raises KeyError: unknown settings
        """
        self.clock = clock or utcnow

        # Distribute the settings
        self._settings = SettingsHandler(settings)
        self.indexes = IndexValidator(**self._settings.get_settings('indexes', IndexValidator))
        self.validator = BatchValidator(**self._settings.get_settings('validator', BatchValidator))
        self._settings.register('batch', BatchCoordinator, skip=('validator',))
        self._settings.register('transaction', TransactionCoordinator)
        for name, handler_cls in DocumentQuery.handler_classes():
            self._settings.register(name, handler_cls)
        self._settings.raise_if_invalid_settings(self)

        #: Audit listeners
        self._listeners = []

        #: Reusable queries, per collection
        self._queries = {}

    # region Storage primitives

    def _begin(self):
        """ Start an atomic unit. Returns a context manager that gives a connection handle. """
        raise NotImplementedError

    def _read_documents(self, refs: Iterable[DocumentReference], connection=None) -> Mapping[DocumentReference, DocumentSnapshot]:
        """ Read documents. Missing documents are not in the result. """
        raise NotImplementedError

    def _list_documents(self, collection: str, connection=None) -> List[DocumentSnapshot]:
        """ Read every document in a collection """
        raise NotImplementedError

    def _write_documents(self, changes: Mapping[DocumentReference, dict], timestamp, connection=None):
        """ Store new payloads; `None` deletes the document """
        raise NotImplementedError

    # endregion

    # region Reading

    def document(self, collection: str, id: str = None) -> DocumentReference:
        """ Address a document. A new id is generated when not given. """
        return DocumentReference(collection, id or generate_id())

    def get(self, collection: str, id: str) -> DocumentSnapshot:
        """ Read a document

        :return: The snapshot. A missing document gives a snapshot with `exists=False`.
        """
        ref = DocumentReference(collection, id)
        return self._read_documents([ref]).get(ref) or DocumentSnapshot.missing(ref)

    def get_all(self, refs: Iterable) -> List[DocumentSnapshot]:
        """ Read many documents, in the given order

        :param refs: DocumentReferences, or 'collection/id' paths
        """
        refs = [DocumentReference.from_path(ref) for ref in refs]
        found = self._read_documents(refs)
        return [found.get(ref) or DocumentSnapshot.missing(ref) for ref in refs]

    def exists(self, collection: str, id: str) -> bool:
        return self.get(collection, id).exists

    # endregion

    # region Writing

    def create(self, collection: str, data: Mapping, id: str = None) -> DocumentReference:
        """ Create a document

        :raises ConflictError: the document exists
        """
        return self.commit([Operation.create(collection, data, id)])[0]

    def set(self, collection: str, id: str, data: Mapping, merge: bool = False) -> DocumentReference:
        """ Replace a document, or merge into it; created when missing """
        return self.commit([Operation.set(collection, id, data, merge)])[0]

    def update(self, collection: str, id: str, data: Mapping, **options) -> DocumentReference:
        """ Update fields of a document. Dotted keys address nested fields.

        :raises NotFoundError: the document does not exist
        :raises ConflictError: the precondition did not hold
        """
        return self.commit([Operation.update(collection, id, data, **options)])[0]

    def delete(self, collection: str, id: str, **options) -> DocumentReference:
        """ Delete a document. Deleting a missing document is fine. """
        return self.commit([Operation.delete(collection, id, **options)])[0]

    def commit(self, operations: Iterable) -> List[DocumentReference]:
        """ Apply many operations as one atomic unit

        :param operations: Operation objects, or dicts
        :return: The reference of every written document, in the order of operations
        :raises ConflictError: a document to be created exists, or a precondition did not hold
        :raises NotFoundError: a document to be updated does not exist
        :raises ConfigurationError: a malformed operation
        """
        operations = [op if isinstance(op, Operation) else Operation.from_dict(op)
                      for op in operations]
        if not operations:
            return []

        # One timestamp per commit
        timestamp = self.clock()
        refs = [DocumentReference(op.collection, op.id or generate_id()) for op in operations]

        with self._begin() as connection:
            current = self._read_documents(set(refs), connection)
            state = {ref: snapshot.data for ref, snapshot in current.items()}

            # Compute the new payloads
            for operation, ref in zip(operations, refs):
                state[ref] = self._apply_operation(operation, ref, state.get(ref), timestamp)

            # Write
            self._write_documents({ref: state[ref] for ref in set(refs)}, timestamp, connection)

        self._notify([OperationEvent(ref.collection, op.kind.value, ref.id, timestamp)
                      for op, ref in zip(operations, refs)])
        return refs

    def _apply_operation(self, operation: Operation, ref: DocumentReference, data, timestamp):
        """ Compute the payload a document gets after the operation. `None` means deleted. """
        engine = self.transform_engine
        kind = operation.kind

        if kind is not OperationKind.DELETE and not isinstance(operation.data, Mapping):
            raise ConfigurationError('Operation {} on {} needs a data mapping, {!r} given'.format(
                kind.value, ref.path, operation.data))

        if kind is OperationKind.CREATE:
            if data is not None:
                raise ConflictError('Document already exists: {}'.format(ref.path))
            return engine.apply(None, operation.data, timestamp, engine.MODE_SET)

        if kind is OperationKind.UPDATE and data is None:
            raise NotFoundError(ref.path)

        if operation.precondition:
            failed = unmet_conditions(data or {}, operation.precondition)
            if failed:
                field, actual, expected = failed[0]
                raise ConflictError('Precondition failed for {}: {}={!r}, expected {!r}'.format(
                    ref.path, field, actual, expected))

        if kind is OperationKind.UPDATE:
            return engine.apply(data, operation.data, timestamp, engine.MODE_UPDATE)
        elif kind is OperationKind.SET:
            mode = engine.MODE_MERGE if operation.merge else engine.MODE_SET
            return engine.apply(data, operation.data, timestamp, mode)
        else:
            return None

    # endregion

    # region Queries

    def query(self, collection: str) -> ConstraintBuilder:
        """ Start building a query """
        return ConstraintBuilder(collection, self)

    def run_query(self, collection: str, query_object: Mapping) -> List[DocumentSnapshot]:
        """ Evaluate a Query Object against a collection

        :raises IndexRequiredError: the query needs a compound index, and strict index checking is on
        :raises InvalidQueryError: malformed Query Object
        """
        return self._query(collection).query(**query_object).end(self._list_documents(collection))

    def _query(self, collection: str) -> DocumentQuery:
        if collection not in self._queries:
            self._queries[collection] = Reusable(DocumentQuery(
                collection,
                self._settings.settings_for(*DocumentQuery.HANDLER_NAMES),
                self.indexes,
            ))
        return self._queries[collection]

    # endregion

    # region Units of work

    def batch(self, **settings) -> BatchCoordinator:
        """ Start a batch

        :param settings: Override batch and validator settings
        """
        settings = SettingsHandler({**self._settings.settings_for('validator', 'batch'), **settings})
        validator = BatchValidator(**settings.get_settings('validator', BatchValidator))
        batch = BatchCoordinator(self, validator, **settings.get_settings('batch', BatchCoordinator, skip=('validator',)))
        settings.raise_if_invalid_settings(batch)
        return batch

    def transaction(self, **settings) -> TransactionCoordinator:
        """ Get a transaction coordinator

        :param settings: Override transaction settings
        """
        settings = SettingsHandler({**self._settings.settings_for('transaction'), **settings})
        coordinator = TransactionCoordinator(self, **settings.get_settings('transaction', TransactionCoordinator))
        settings.raise_if_invalid_settings(coordinator)
        return coordinator

    def run_transaction(self, work_fn: Callable, **settings):
        """ Run a work function in a transaction

        :rtype: docstore.mutations.result.TransactionResult
        """
        return self.transaction(**settings).execute(work_fn)

    # endregion

    # region Listeners

    def add_listener(self, listener: Callable[[OperationEvent], None]):
        """ Get notified about every committed write """
        self._listeners.append(listener)
        return listener

    def remove_listener(self, listener: Callable[[OperationEvent], None]):
        self._listeners.remove(listener)

    def _notify(self, events: List[OperationEvent]):
        for event in events:
            for listener in self._listeners:
                try:
                    listener(event)
                except Exception:
                    logger.exception('Listener %r has failed on %s', listener, event)

    # endregion

    def __repr__(self):
        return '{}()'.format(self.__class__.__name__)

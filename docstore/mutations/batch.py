"""
### Batches

A batch collects write operations and commits them through the client:

```python
batch = client.batch()
batch.create('users', {'name': 'John'})
batch.update('users', 'u1', {'age': 31})
batch.delete('users', 'u2')
result = batch.execute()
```

A batch of up to `chunk_size` operations (100, by default) is committed as a single atomic unit.
A larger batch is split into chunks of `chunk_size`, committed one after another.
The first chunk that fails stops the batch: chunks committed before it stay committed
(there is no rollback across chunks), and the Result reports how far it went:

* `metadata['failed_chunk']`: the index of the chunk that failed, or `None`
* `metadata['committed_chunks']`: the number of chunks committed
* `metadata['committed_operations']`: the number of operations committed

A batch holds up to `max_operations` operations (500, by default): `add()` fails once it's full.
A batch executes only once.
"""

import logging
import time
from typing import Iterable, List, Mapping, Union

from .operation import Operation, OperationKind
from .result import Result
from .validator import BatchValidator
from ..exc import DocStoreError, ValidationError, Violation, ConfigurationError

logger = logging.getLogger(__name__)


class BatchCoordinator:
    """ Collects operations, and commits them in chunks """

    def __init__(self, client,
                 validator: BatchValidator = None,
                 max_operations: int = 500,
                 chunk_size: int = 100,
                 validate_operations: bool = True,
                 log_operations: bool = True):
        """ Init a batch

        :param client: The DocumentStoreClient to commit through
        :param validator: The validator to check operations with
        :param max_operations: The maximum number of operations in this batch
        :param chunk_size: The maximum number of operations committed as one atomic unit
        :param validate_operations: Validate operations before committing anything
        :param log_operations: Log chunk commits
        """
        self.client = client
        self.validator = validator or BatchValidator()
        self.max_operations = max_operations
        self.chunk_size = chunk_size
        self.validate_operations = validate_operations
        self.log_operations = log_operations

        if not chunk_size or chunk_size < 1:
            raise ConfigurationError('chunk_size must be a positive number, {!r} given'.format(chunk_size))
        if chunk_size > self.validator.max_operations_per_batch:
            raise ConfigurationError('chunk_size={} exceeds the limit of {} operations per commit'
                                     .format(chunk_size, self.validator.max_operations_per_batch))

        self._operations = []
        self._executed = False

    # region Collecting operations

    def add(self, operation: Union[Operation, Mapping]) -> 'BatchCoordinator':
        """ Add an operation

        :param operation: Operation, or a dict: {kind, collection, id?, data?, options?}
        :raises ValidationError: the batch is full
        :raises ConfigurationError: unknown operation kind
        """
        if len(self._operations) >= self.max_operations:
            raise ValidationError([Violation(
                len(self._operations), None,
                'Batch operation limit exceeded: {} operations'.format(self.max_operations)
            )], 'Batch is full')

        if not isinstance(operation, Operation):
            operation = Operation.from_dict(operation)
        self._operations.append(operation)
        return self

    def create(self, collection: str, data: Mapping, id: str = None) -> 'BatchCoordinator':
        return self.add(Operation.create(collection, data, id))

    def update(self, collection: str, id: str, data: Mapping, **options) -> 'BatchCoordinator':
        return self.add(Operation.update(collection, id, data, **options))

    def set(self, collection: str, id: str, data: Mapping, merge: bool = False, **options) -> 'BatchCoordinator':
        return self.add(Operation.set(collection, id, data, merge, **options))

    def delete(self, collection: str, id: str, **options) -> 'BatchCoordinator':
        return self.add(Operation.delete(collection, id, **options))

    def create_many(self, collection: str, documents: Iterable[Mapping]) -> 'BatchCoordinator':
        """ Add a `create` for every document

            A document may carry its id under the 'id' key.
        """
        for document in documents:
            document = dict(document)
            id = document.pop('id', None)
            self.create(collection, document, id)
        return self

    def update_many(self, collection: str, updates: Mapping[str, Mapping]) -> 'BatchCoordinator':
        """ Add an `update` for every {id: data} item """
        for id, data in updates.items():
            self.update(collection, id, data)
        return self

    def delete_many(self, collection: str, ids: Iterable[str]) -> 'BatchCoordinator':
        for id in ids:
            self.delete(collection, id)
        return self

    @property
    def operations(self) -> List[Operation]:
        return list(self._operations)

    @property
    def operation_count(self) -> int:
        return len(self._operations)

    def __len__(self):
        return len(self._operations)

    def clear(self) -> 'BatchCoordinator':
        """ Drop all collected operations """
        self._operations = []
        return self

    def summary(self) -> dict:
        """ What's going to be committed """
        counts = {kind.value: 0 for kind in OperationKind}
        for operation in self._operations:
            counts[operation.kind.value] += 1
        return {
            'total_operations': len(self._operations),
            'operations_by_kind': counts,
            'estimated_chunks': self._count_chunks(len(self._operations)),
            'chunk_size': self.chunk_size,
            'max_operations': self.max_operations,
        }

    # endregion

    # region Execution

    def execute(self) -> Result:
        """ Commit every operation

        :return: Result. `data` is the list of written DocumentReferences, in the order of operations.
        :raises RuntimeError: the batch has already been executed
        """
        if self._executed:
            raise RuntimeError('{} has already been executed'.format(self.__class__.__name__))
        self._executed = True

        start = time.perf_counter()
        operations = self._operations
        chunks = [operations[i:i + self.chunk_size] for i in range(0, len(operations), self.chunk_size)]
        metadata = dict(
            total_operations=len(operations),
            chunk_count=len(chunks),
            chunk_size=self.chunk_size,
            chunk_results=[],
            failed_chunk=None,
            committed_chunks=0,
            committed_operations=0,
        )

        # Validate everything before committing anything
        if self.validate_operations:
            try:
                self._validate(operations)
            except ValidationError as e:
                if self.log_operations:
                    logger.error('Batch validation failed: %s', e)
                return Result.failed(e, [], self._elapsed_ms(start), **metadata)

        # Commit
        references = []
        for chunk_index, chunk in enumerate(chunks):
            chunk_start = time.perf_counter()
            try:
                chunk_references = self.client.commit(chunk)
            except DocStoreError as e:
                metadata['chunk_results'].append(self._chunk_result(chunk_index, chunk, chunk_start, e))
                metadata['failed_chunk'] = chunk_index
                if self.log_operations:
                    logger.error('Batch chunk %d/%d failed after %d committed operations: %s',
                                 chunk_index + 1, len(chunks), metadata['committed_operations'], e)
                return Result.failed(e, references, self._elapsed_ms(start), **metadata)

            references.extend(chunk_references)
            metadata['chunk_results'].append(self._chunk_result(chunk_index, chunk, chunk_start))
            metadata['committed_chunks'] += 1
            metadata['committed_operations'] += len(chunk)
            if self.log_operations:
                logger.info('Batch chunk %d/%d committed: %d operations',
                            chunk_index + 1, len(chunks), len(chunk))

        return Result.ok(references, self._elapsed_ms(start), **metadata)

    def _validate(self, operations: List[Operation]):
        # Indexes are positions within the whole batch
        violations = []
        for index, operation in enumerate(operations):
            violations.extend(self.validator.validate_operation(operation, index))
        if violations:
            raise ValidationError(violations, 'Batch validation failed')

    def _count_chunks(self, n: int) -> int:
        return -(-n // self.chunk_size)

    @staticmethod
    def _chunk_result(chunk_index: int, chunk: list, chunk_start: float, error: Exception = None) -> dict:
        return {
            'chunk': chunk_index,
            'operations': len(chunk),
            'success': error is None,
            'error': str(error) if error is not None else None,
            'duration_ms': BatchCoordinator._elapsed_ms(chunk_start),
        }

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return (time.perf_counter() - start) * 1000

    # endregion

    def __repr__(self):
        return '{}(operations={}, chunk_size={}, executed={})'.format(
            self.__class__.__name__, len(self._operations), self.chunk_size, self._executed)


# region Bulk helpers

def _bulk(client, collection: str, items, add, chunk_size: int = 100, stop_on_failure: bool = False,
          **batch_settings) -> List[Result]:
    """ Run `add(batch, item)` for every item, committing a fresh batch every `chunk_size` items

    :param stop_on_failure: Do not commit the remaining chunks once one fails
    """
    items = list(items.items()) if isinstance(items, Mapping) else list(items)
    results = []
    for i in range(0, len(items), chunk_size):
        batch = client.batch(chunk_size=chunk_size, **batch_settings)
        for item in items[i:i + chunk_size]:
            add(batch, item)
        results.append(batch.execute())
        if stop_on_failure and not results[-1].success:
            break
    return results


def bulk_insert(client, collection: str, documents: Iterable[Mapping], chunk_size: int = 100, **batch_settings) -> List[Result]:
    """ Create many documents, one batch per chunk

    :return: One Result per chunk
    """
    return _bulk(client, collection, documents,
                 lambda batch, document: batch.create_many(collection, [document]),
                 chunk_size, **batch_settings)


def bulk_update(client, collection: str, updates: Mapping[str, Mapping], chunk_size: int = 100, **batch_settings) -> List[Result]:
    """ Update many documents: {id: data}, one batch per chunk """
    return _bulk(client, collection, updates,
                 lambda batch, item: batch.update(collection, item[0], item[1]),
                 chunk_size, **batch_settings)


def bulk_delete(client, collection: str, ids: Iterable[str], chunk_size: int = 100, **batch_settings) -> List[Result]:
    """ Delete many documents, one batch per chunk """
    return _bulk(client, collection, ids,
                 lambda batch, id: batch.delete(collection, id),
                 chunk_size, **batch_settings)


def bulk_upsert(client, collection: str, documents: Mapping[str, Mapping], chunk_size: int = 100,
                merge: bool = True, **batch_settings) -> List[Result]:
    """ Create or update many documents: {id: data}, one batch per chunk

    :param merge: Merge into existing documents rather than replacing them
    """
    return _bulk(client, collection, documents,
                 lambda batch, item: batch.set(collection, item[0], item[1], merge=merge),
                 chunk_size, **batch_settings)

# endregion

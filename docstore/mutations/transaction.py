"""
### Transactions

A transaction runs your work function against a `Transaction` handle.
Reads go straight to the store; writes are buffered, and committed as one atomic unit
only when the work function returns:

```python
def transfer(tx):
    a = tx.snapshot('accounts/a')
    b = tx.snapshot('accounts/b')
    tx.update('accounts/a', {'balance': a['balance'] - 10})
    tx.update('accounts/b', {'balance': b['balance'] + 10})
    return 'ok'

result = client.run_transaction(transfer)
result.success  # -> True
result.data  # -> 'ok'
result.attempts  # -> 1
```

When an attempt fails with a `TransientError` (raised by the work function, or by the commit),
its buffered writes are dropped, the coordinator waits for the backoff delay,
and runs the work function again from scratch, up to `max_attempts` times.
Any other error ends the transaction at once.

The coordinator goes through these states:

    idle -> attempting -> committed
                       -> retrying -> attempting
                       -> failed

Failures are reported through the TransactionResult: it carries the last error and the number of attempts made.
"""

import logging
import time
from enum import Enum
from typing import Callable, Iterable, List, Mapping

from .operation import Operation
from .result import TransactionResult
from ..document import DocumentReference, DocumentSnapshot, generate_id, unmet_conditions
from ..exc import TransientError, NotFoundError, ConflictError, ConfigurationError

logger = logging.getLogger(__name__)


class TransactionState(Enum):
    IDLE = 'idle'
    ATTEMPTING = 'attempting'
    RETRYING = 'retrying'
    COMMITTED = 'committed'
    FAILED = 'failed'


# region Backoff policies

class LinearBackoff:
    """ Wait `retry_delay * attempt` seconds after the N-th failed attempt """

    def __init__(self, retry_delay: float = 0.1):
        self.retry_delay = retry_delay

    def __call__(self, attempt: int) -> float:
        return self.retry_delay * attempt

    def __repr__(self):
        return 'LinearBackoff({!r})'.format(self.retry_delay)


class ExponentialBackoff:
    """ Wait `base * factor ** (attempt - 1)` seconds, but no more than `max_delay` """

    def __init__(self, base: float = 0.1, factor: float = 2.0, max_delay: float = None):
        self.base = base
        self.factor = factor
        self.max_delay = max_delay

    def __call__(self, attempt: int) -> float:
        delay = self.base * self.factor ** (attempt - 1)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay

    def __repr__(self):
        return 'ExponentialBackoff(base={!r}, factor={!r}, max_delay={!r})'.format(
            self.base, self.factor, self.max_delay)

# endregion


class Transaction:
    """ The handle a work function gets

        Documents are addressed with a DocumentReference, or a 'collection/id' path.
        Writes are buffered until the work function returns.
    """

    def __init__(self, client, attempt: int = 1):
        self.client = client
        self.attempt = attempt
        self._operations = []
        # {reference: conditions} registered with when()
        self._conditions = {}

    def document(self, collection: str, id: str = None) -> DocumentReference:
        """ Get a reference to a document. A new id is generated when not given. """
        return DocumentReference(collection, id or generate_id())

    def snapshot(self, ref) -> DocumentSnapshot:
        """ Read a document. A missing document gives a snapshot with `exists=False` """
        ref = DocumentReference.from_path(ref)
        return self.client.get(ref.collection, ref.id)

    def create(self, ref, data: Mapping) -> DocumentReference:
        """ Create a document; the commit fails if it exists

        :param ref: Reference, path, or just a collection name to get a generated id
        """
        if isinstance(ref, str) and '/' not in ref:
            ref = self.document(ref)
        ref = DocumentReference.from_path(ref)
        self._operations.append(Operation.create(ref.collection, data, ref.id))
        return ref

    def set(self, ref, data: Mapping, merge: bool = False) -> DocumentReference:
        ref = DocumentReference.from_path(ref)
        self._operations.append(Operation.set(ref.collection, ref.id, data, merge))
        return ref

    def update(self, ref, data: Mapping) -> DocumentReference:
        ref = DocumentReference.from_path(ref)
        self._operations.append(Operation.update(ref.collection, ref.id, data))
        return ref

    def delete(self, ref) -> DocumentReference:
        ref = DocumentReference.from_path(ref)
        self._operations.append(Operation.delete(ref.collection, ref.id))
        return ref

    def when(self, ref, conditions: Mapping) -> 'Transaction':
        """ Require fields of a document to have the given values

            The conditions are checked now, and checked again at commit time
            for every write to this document.

        :raises NotFoundError: the document does not exist
        :raises ConflictError: a field has a different value
        """
        ref = DocumentReference.from_path(ref)
        snapshot = self.snapshot(ref)
        if not snapshot.exists:
            raise NotFoundError(ref.path)
        failed = unmet_conditions(snapshot.data, conditions)
        if failed:
            field, actual, expected = failed[0]
            raise ConflictError('Condition failed for {}: {}={!r}, expected {!r}'.format(
                ref.path, field, actual, expected))
        self._conditions.setdefault(ref, {}).update(conditions)
        return self

    @property
    def operations(self) -> List[Operation]:
        """ Buffered writes, with the when() conditions attached as preconditions """
        operations = []
        for operation in self._operations:
            conditions = self._conditions.get(DocumentReference(operation.collection, operation.id)) \
                if operation.id else None
            if conditions and operation.kind.value != 'create':
                options = dict(operation.options)
                options['precondition'] = {**conditions, **operation.precondition}
                operation = Operation(operation.kind, operation.collection, operation.id, operation.data, options)
            operations.append(operation)
        return operations

    def __len__(self):
        return len(self._operations)


class TransactionCoordinator:
    """ Runs work functions with retries """

    def __init__(self, client,
                 max_attempts: int = 3,
                 retry_delay: float = 0.1,
                 backoff: Callable[[int], float] = None,
                 log_attempts: bool = True,
                 sleep: Callable[[float], None] = None):
        """ Init the coordinator

        :param client: The DocumentStoreClient to read from and commit through
        :param max_attempts: The number of times to try
        :param retry_delay: Delay unit for the default LinearBackoff, seconds
        :param backoff: Backoff policy: callable(attempt) -> seconds. Default: LinearBackoff(retry_delay)
        :param log_attempts: Log retries and failures
        :param sleep: callable(seconds) that waits. Default: time.sleep
        """
        if max_attempts is None or max_attempts < 1:
            raise ConfigurationError('max_attempts must be at least 1, {!r} given'.format(max_attempts))

        self.client = client
        self.max_attempts = max_attempts
        self.backoff = backoff or LinearBackoff(retry_delay)
        self.log_attempts = log_attempts
        self.sleep = sleep or time.sleep

        self.state = TransactionState.IDLE
        #: The states passed through during the last execute()
        self.history = [TransactionState.IDLE]

    def _set_state(self, state: TransactionState):
        self.state = state
        self.history.append(state)

    def execute(self, work_fn: Callable[[Transaction], object],
                max_attempts: int = None,
                backoff: Callable[[int], float] = None) -> TransactionResult:
        """ Run the work function, retrying on TransientError

        :param work_fn: callable(Transaction) -> value
        :param max_attempts: Override the number of attempts
        :param backoff: Override the backoff policy
        :return: TransactionResult. `data` is whatever the work function returned.
        """
        if max_attempts is None:
            max_attempts = self.max_attempts
        elif max_attempts < 1:
            raise ConfigurationError('max_attempts must be at least 1, {!r} given'.format(max_attempts))
        backoff = backoff or self.backoff

        start = time.perf_counter()
        self.state = TransactionState.IDLE
        self.history = [TransactionState.IDLE]
        error = None
        attempt = 0

        while attempt < max_attempts:
            attempt += 1
            self._set_state(TransactionState.ATTEMPTING)
            transaction = Transaction(self.client, attempt)

            try:
                value = work_fn(transaction)
                operations = transaction.operations
                if operations:
                    self.client.commit(operations)
            except TransientError as e:
                error = e
                if attempt >= max_attempts:
                    break
                delay = backoff(attempt)
                self._set_state(TransactionState.RETRYING)
                if self.log_attempts:
                    logger.warning('Transaction attempt %d/%d failed, retrying in %.3fs: %s',
                                   attempt, max_attempts, delay, e)
                if delay > 0:
                    self.sleep(delay)
                continue
            except Exception as e:
                # Not retryable
                error = e
                break
            else:
                self._set_state(TransactionState.COMMITTED)
                if attempt > 1 and self.log_attempts:
                    logger.info('Transaction succeeded after retry: %d attempts', attempt)
                return TransactionResult(True, value, None, self._elapsed_ms(start),
                                         {'operations': len(operations)},
                                         attempts=attempt, state=self.state)

        self._set_state(TransactionState.FAILED)
        if self.log_attempts:
            logger.error('Transaction failed after %d attempt(s): %s', attempt, error, exc_info=error)
        return TransactionResult(False, None, error, self._elapsed_ms(start),
                                 {'error_type': type(error).__name__},
                                 attempts=attempt, state=self.state)

    def execute_sequence(self, work_fns: Iterable[Callable[[Transaction], object]],
                         stop_on_failure: bool = True) -> List[TransactionResult]:
        """ Run several work functions, each in its own transaction

        :param stop_on_failure: Do not run the rest once one fails
        :return: One result per work function that was run
        """
        results = []
        for work_fn in work_fns:
            result = self.execute(work_fn)
            results.append(result)
            if not result.success and stop_on_failure:
                break
        return results

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return (time.perf_counter() - start) * 1000

    def __repr__(self):
        return '{}(max_attempts={}, backoff={!r}, state={})'.format(
            self.__class__.__name__, self.max_attempts, self.backoff, self.state.value)

"""
Writes: operations, validation, batches, and transactions.

Operations are the unit of work: `{kind, collection, id?, data?, options?}`.
They are checked by `BatchValidator`, collected by `BatchCoordinator`, or buffered
by a `Transaction` that `TransactionCoordinator` retries.
Coordinators report their outcome with a `Result`.
"""

from .operation import Operation, OperationKind
from .result import Result, TransactionResult
from .validator import BatchValidator
from .batch import BatchCoordinator, bulk_insert, bulk_update, bulk_delete, bulk_upsert
from .transaction import Transaction, TransactionCoordinator, TransactionState, LinearBackoff, ExponentialBackoff

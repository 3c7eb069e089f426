from enum import Enum
from typing import Mapping

from ..exc import ConfigurationError


class OperationKind(Enum):
    """ The kinds of write operations """
    #: Create a document; fails if it exists. The id is generated when not given.
    CREATE = 'create'
    #: Update fields of an existing document; fails if it's missing
    UPDATE = 'update'
    #: Replace a document (or merge into it, with `merge=True`); creates it when missing
    SET = 'set'
    #: Delete a document; a missing document is fine
    DELETE = 'delete'

    @classmethod
    def parse(cls, kind):
        """ Get an OperationKind from a string, or fail with ConfigurationError """
        if isinstance(kind, cls):
            return kind
        try:
            return cls(str(kind).lower())
        except ValueError:
            raise ConfigurationError('Unknown operation kind: {!r}'.format(kind))


class Operation:
    """ A single write: the unit submitted to batches and transactions

        Options:
        * merge (bool): for `set`, merge into the existing document instead of replacing it
        * precondition (dict): { field: expected value }. The write fails with ConflictError
            unless every field currently has the expected value.
            For `update`, `set`, and `delete`.
    """

    __slots__ = ('kind', 'collection', 'id', 'data', 'options')

    def __init__(self, kind, collection: str, id: str = None, data: Mapping = None, options: Mapping = None):
        self.kind = OperationKind.parse(kind)
        self.collection = collection
        self.id = id
        self.data = data
        self.options = dict(options or {})

    @classmethod
    def from_dict(cls, operation: Mapping):
        """ Make an Operation from a dict: {kind, collection, id?, data?, options?}

            The kind may also be given as 'type'.

        :raises ConfigurationError: Unknown kind, or unknown keys
        """
        operation = dict(operation)
        kind = operation.pop('kind', operation.pop('type', None))
        if kind is None:
            raise ConfigurationError('Operation kind is missing: {!r}'.format(operation))
        invalid_keys = set(operation) - {'collection', 'id', 'data', 'options'}
        if invalid_keys:
            raise ConfigurationError('Unknown operation keys: {}'.format(', '.join(sorted(invalid_keys))))
        return cls(kind, **operation)

    @classmethod
    def create(cls, collection, data, id=None, **options):
        return cls(OperationKind.CREATE, collection, id, data, options)

    @classmethod
    def update(cls, collection, id, data, **options):
        return cls(OperationKind.UPDATE, collection, id, data, options)

    @classmethod
    def set(cls, collection, id, data, merge=False, **options):
        if merge:
            options['merge'] = True
        return cls(OperationKind.SET, collection, id, data, options)

    @classmethod
    def delete(cls, collection, id, **options):
        return cls(OperationKind.DELETE, collection, id, None, options)

    @property
    def merge(self) -> bool:
        return bool(self.options.get('merge', False))

    @property
    def precondition(self) -> dict:
        return self.options.get('precondition') or {}

    def to_dict(self) -> dict:
        return dict(kind=self.kind.value, collection=self.collection, id=self.id,
                    data=self.data, options=self.options)

    def __eq__(self, other):
        return isinstance(other, Operation) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return 'Operation({}, {!r}, {!r})'.format(self.kind.value, self.collection, self.id)

"""
### Documents

A document is addressed by a `(collection, id)` pair and holds a mapping of fields.
Values may be scalars, lists, or nested mappings; nested fields are addressed with a dot-path:

```python
get_path({'metadata': {'stats': {'views': 10}}}, 'metadata.stats.views')  # -> 10
get_path({'metadata': {}}, 'metadata.stats.views')  # -> ABSENT
```

Values are compared the way the remote database compares them: first by their type class,
then by value within the class. The type classes are ordered as follows:

    null < bool < number < timestamp < string < bytes < array < map

This makes every pair of values comparable, so sorting never fails on mixed types.
"""

import datetime
import secrets
import string
from copy import deepcopy
from functools import cmp_to_key
from typing import Any, Iterable, Mapping

from .exc import ConfigurationError


class _ABSENT_TYPE:
    """ The value of a field that is not there at all

        It is different from `None`, which is a field explicitly set to null.
    """
    __slots__ = ()

    def __bool__(self):
        return False

    def __repr__(self):
        return 'ABSENT'

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


ABSENT = _ABSENT_TYPE()


# region Dot-paths

def split_path(path: str):
    """ Split a dot-path into its segments """
    if not isinstance(path, str) or not path:
        raise ConfigurationError('Field path must be a non-empty string, {!r} given'.format(path))
    return path.split('.')


def get_path(data: Mapping, path: str, default=ABSENT):
    """ Resolve a dot-path within a document payload

        :param data: Document payload
        :param path: Dot-path: 'a.b.c'
        :param default: The value to return when any segment is missing
    """
    value = data
    for segment in split_path(path):
        if not isinstance(value, Mapping) or segment not in value:
            return default
        value = value[segment]
    return value


def set_path(data: dict, path: str, value):
    """ Set a value at a dot-path, creating intermediate mappings as necessary

        A non-mapping value found half-way is replaced with a mapping.
    """
    *parents, last = split_path(path)
    target = data
    for segment in parents:
        if not isinstance(target.get(segment), dict):
            target[segment] = {}
        target = target[segment]
    target[last] = value


def delete_path(data: dict, path: str) -> bool:
    """ Remove the field at a dot-path

        :return: Whether anything was actually removed
    """
    *parents, last = split_path(path)
    target = data
    for segment in parents:
        target = target.get(segment) if isinstance(target, dict) else None
        if not isinstance(target, dict):
            return False
    return target.pop(last, ABSENT) is not ABSENT

# endregion


# region Value ordering

def type_rank(value) -> int:
    """ Get the type class of a value, as used for ordering """
    if value is ABSENT:
        return -1  # absent sorts even before null
    if value is None:
        return 0
    if isinstance(value, bool):
        return 1
    if isinstance(value, (int, float)):
        return 2
    if isinstance(value, (datetime.datetime, datetime.date)):
        return 3
    if isinstance(value, str):
        return 4
    if isinstance(value, (bytes, bytearray)):
        return 5
    if isinstance(value, (list, tuple)):
        return 6
    if isinstance(value, Mapping):
        return 7
    return 8


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


def compare_values(a, b) -> int:
    """ Compare two values: -1, 0, +1

        Values of different type classes are ordered by their class.
        Arrays compare element-wise, then by length; maps compare by sorted keys, then values.
    """
    ra, rb = type_rank(a), type_rank(b)
    if ra != rb:
        return _cmp(ra, rb)

    # Same type class
    if ra in (-1, 0):
        return 0
    if ra == 6:
        for x, y in zip(a, b):
            c = compare_values(x, y)
            if c:
                return c
        return _cmp(len(a), len(b))
    if ra == 7:
        for (ka, va), (kb, vb) in zip(sorted(a.items()), sorted(b.items())):
            c = _cmp(ka, kb) or compare_values(va, vb)
            if c:
                return c
        return _cmp(len(a), len(b))
    if ra == 3:
        # Dates and datetimes do not compare with each other
        a, b = _as_datetime(a), _as_datetime(b)
    if ra == 8:
        return 0 if a == b else _cmp(repr(a), repr(b))
    return _cmp(a, b)


def _as_datetime(value):
    if not isinstance(value, datetime.datetime):
        value = datetime.datetime(value.year, value.month, value.day)
    # Naive timestamps are taken as UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return value


def values_equal(a, b) -> bool:
    """ Equality as the database sees it: `True` never equals `1` """
    return type_rank(a) == type_rank(b) and compare_values(a, b) == 0


def contains_value(values: Iterable, value) -> bool:
    """ Test whether `value` is in `values`, using values_equal() """
    return any(values_equal(v, value) for v in values)


#: Sort key function for values
value_sort_key = cmp_to_key(compare_values)


def unmet_conditions(data: Mapping, conditions: Mapping) -> list:
    """ Check {field: expected value} conditions against a payload

        :return: [(field, actual value, expected value)] for every condition that does not hold
    """
    failed = []
    for field, expected in conditions.items():
        actual = get_path(data, field)
        if not values_equal(actual, expected):
            failed.append((field, actual, expected))
    return failed

# endregion


# region References & Snapshots

AUTO_ID_ALPHABET = string.ascii_letters + string.digits
AUTO_ID_LENGTH = 20


def generate_id() -> str:
    """ Generate a random document id, in the format the remote database uses """
    return ''.join(secrets.choice(AUTO_ID_ALPHABET) for _ in range(AUTO_ID_LENGTH))


class DocumentReference:
    """ The address of a document: (collection, id) """

    __slots__ = ('collection', 'id')

    def __init__(self, collection: str, id: str):
        if not isinstance(collection, str) or not collection:
            raise ConfigurationError('Collection name must be a non-empty string, {!r} given'.format(collection))
        if not isinstance(id, str) or not id:
            raise ConfigurationError('Document id must be a non-empty string, {!r} given'.format(id))
        self.collection = collection
        self.id = id

    @classmethod
    def from_path(cls, path):
        """ Get a reference from a 'collection/id' path; a reference is returned as is """
        if isinstance(path, cls):
            return path
        if isinstance(path, (tuple, list)) and len(path) == 2:
            return cls(*path)
        if not isinstance(path, str) or path.count('/') != 1:
            raise ConfigurationError("Document path must look like 'collection/id', {!r} given".format(path))
        return cls(*path.split('/'))

    @property
    def path(self) -> str:
        return '{}/{}'.format(self.collection, self.id)

    def __eq__(self, other):
        return isinstance(other, DocumentReference) and \
               (self.collection, self.id) == (other.collection, other.id)

    def __hash__(self):
        return hash((self.collection, self.id))

    def __repr__(self):
        return 'DocumentReference({!r})'.format(self.path)


class DocumentSnapshot:
    """ A document, as it was read at some point

        A snapshot of a missing document has `exists=False` and an empty payload.
        Snapshots own their payload: modifying a snapshot never touches the store.
    """

    __slots__ = ('reference', 'data', 'exists', 'update_time')

    def __init__(self, reference: DocumentReference, data: dict = None, exists: bool = True, update_time=None):
        self.reference = reference
        self.data = data if data is not None else {}
        self.exists = exists
        self.update_time = update_time

    @classmethod
    def missing(cls, reference: DocumentReference):
        """ A snapshot of a document that does not exist """
        return cls(reference, None, exists=False)

    @property
    def id(self) -> str:
        return self.reference.id

    @property
    def collection(self) -> str:
        return self.reference.collection

    def get(self, path: str, default=None) -> Any:
        """ Get a field value by its dot-path """
        return get_path(self.data, path, default)

    def __getitem__(self, path):
        value = get_path(self.data, path)
        if value is ABSENT:
            raise KeyError(path)
        return value

    def __contains__(self, path):
        return get_path(self.data, path) is not ABSENT

    def to_dict(self) -> dict:
        """ Export the document as a dict, with its id """
        return {'id': self.id, **self.data}

    def projected(self, fields: Iterable[str]):
        """ Make a copy that only has the given fields

            Fields are dot-paths. 'id' is always available from the reference.
        """
        data = {}
        for field in fields:
            value = get_path(self.data, field)
            if value is not ABSENT:
                set_path(data, field, deepcopy(value))
        return self.__class__(self.reference, data, self.exists, self.update_time)

    def __eq__(self, other):
        return isinstance(other, DocumentSnapshot) and \
               self.reference == other.reference and \
               self.exists == other.exists and \
               self.data == other.data

    def __repr__(self):
        if not self.exists:
            return 'DocumentSnapshot({!r}, exists=False)'.format(self.reference.path)
        return 'DocumentSnapshot({!r}, {!r})'.format(self.reference.path, self.data)

# endregion

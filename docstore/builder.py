"""
### Constraint Builder

A fluent interface that accumulates constraints, ordering, and pagination for a query:

```python
posts = store.query('posts') \\
    .where('published', True) \\
    .where('views', '>=', 100) \\
    .where_nested(lambda q: q.where('author', 'alice').or_where('author', 'bob')) \\
    .order_by('views', 'desc') \\
    .limit(10) \\
    .get()
```

The builder is purely additive: every call adds to its state, and returns the builder itself.
Nothing is evaluated until a terminal method (`get()`, `first()`, `count()`, ...) is called.

Constraints are combined left to right, every one with its own boolean:
`.where(a).or_where(b).where(c)` means `(a OR b) AND c`.
To group constraints differently, use `where_nested()` with a callback that receives a sub-builder.

A builder without a client can still be used to build a Query Object: see `to_query_object()`.
"""

import datetime
from copy import copy, deepcopy
from typing import Callable, Iterable, List, Optional

from .document import ABSENT, DocumentSnapshot, type_rank, value_sort_key
from .exc import ConfigurationError, InvalidQueryError, NotFoundError
from .handlers.cursor import Cursor
from .handlers.filter import Basic, Membership, NullCheck, Nested, normalize_operator, normalize_boolean
from .handlers.sort import OrderSpec
from .mutations.batch import bulk_update, bulk_delete


class ConstraintBuilder:
    """ Fluent query builder for a collection """

    def __init__(self, collection: str, client=None):
        """ Init a builder

        :param collection: Name of the collection to query
        :param client: The store to run the query against. Only terminal methods need it.
        :type client: docstore.client.DocumentStoreClient | None
        """
        self.collection = collection
        self.client = client

        # State
        self._constraints = []  # type: List[docstore.handlers.Constraint]
        self._orders = []  # type: List[OrderSpec]
        self._limit = None  # type: Optional[int]
        self._offset = None  # type: Optional[int]
        self._start_cursor = None  # type: Optional[Cursor]
        self._end_cursor = None  # type: Optional[Cursor]
        self._selects = None  # type: Optional[List[str]]
        self._distinct = False
        self._random = False

    def __copy__(self):
        cls = self.__class__
        result = cls.__new__(cls)
        result.__dict__.update(self.__dict__)
        result._constraints = list(self._constraints)
        result._orders = list(self._orders)
        result._selects = list(self._selects) if self._selects is not None else None
        return result

    def clone(self):
        """ Get an independent copy of this builder """
        return copy(self)

    def __repr__(self):
        return 'ConstraintBuilder({!r}, {!r})'.format(self.collection, self.to_query_object())

    # region Constraints

    def where(self, field, operator=ABSENT, value=ABSENT, boolean='and'):
        """ Add a constraint

            where('age', '>=', 18)
            where('name', 'Alice')  # equality
            where({'name': 'Alice', 'age': 18})  # several equalities
            where(lambda q: q.where(...).or_where(...))  # a nested group

        :param field: Field name (dot-path), a dict of equalities, or a callback for a nested group
        :param operator: One of: =, !=, <, <=, >, >=, in, not-in, array-contains, array-contains-any, like
        :param value: The value to compare with
        :param boolean: How to combine with the previous constraints: 'and' | 'or'
        """
        # Nested group
        if callable(field):
            return self.where_nested(field, boolean)

        # Dict of equalities
        if isinstance(field, dict):
            for name, v in field.items():
                self.where(name, '=', v, boolean)
            return self

        # Two-argument form: where(field, value)
        if value is ABSENT:
            operator, value = '=', operator
        if value is ABSENT:
            raise InvalidQueryError('where() needs a value for field `{}`'.format(field))

        operator = normalize_operator(operator)
        if operator in ('in', 'not-in'):
            return self.where_in(field, value, boolean, negate=(operator == 'not-in'))

        self._constraints.append(Basic(field, operator, value, boolean))
        return self

    def or_where(self, field, operator=ABSENT, value=ABSENT):
        """ Add a constraint, OR-ed with the previous ones """
        return self.where(field, operator, value, 'or')

    def where_in(self, field: str, values: Iterable, boolean='and', negate=False):
        """ Field value is one of the values """
        self._constraints.append(Membership(field, values, negate, boolean))
        return self

    def where_not_in(self, field: str, values: Iterable, boolean='and'):
        """ Field value is none of the values """
        return self.where_in(field, values, boolean, negate=True)

    def or_where_in(self, field: str, values: Iterable):
        return self.where_in(field, values, 'or')

    def or_where_not_in(self, field: str, values: Iterable):
        return self.where_in(field, values, 'or', negate=True)

    def where_null(self, field: str, boolean='and', negate=False):
        """ Field is null, or missing """
        self._constraints.append(NullCheck(field, negate, boolean))
        return self

    def where_not_null(self, field: str, boolean='and'):
        """ Field is present, and is not null """
        return self.where_null(field, boolean, negate=True)

    def or_where_null(self, field: str):
        return self.where_null(field, 'or')

    def or_where_not_null(self, field: str):
        return self.where_null(field, 'or', negate=True)

    def where_between(self, field: str, values, boolean='and', negate=False):
        """ lo <= field <= hi

            NOT between: field < lo OR field > hi
        """
        values = list(values)
        if len(values) != 2:
            raise InvalidQueryError('where_between() needs exactly 2 values for field `{}`, {} given'
                                    .format(field, len(values)))
        lo, hi = values
        if negate:
            group = [Basic(field, '<', lo), Basic(field, '>', hi, 'or')]
        else:
            group = [Basic(field, '>=', lo), Basic(field, '<=', hi)]
        self._constraints.append(Nested(group, boolean))
        return self

    def where_not_between(self, field: str, values, boolean='and'):
        return self.where_between(field, values, boolean, negate=True)

    def or_where_between(self, field: str, values):
        return self.where_between(field, values, 'or')

    def where_date(self, field: str, operator, value=ABSENT, boolean='and'):
        """ Compare a timestamp field with a calendar day

            where_date('at', '2020-05-01')  # any time on that day
            where_date('at', '>', '2020-05-01')  # from the next day on
        """
        if value is ABSENT:
            operator, value = '=', operator
        day = _as_date(value)
        tzinfo = value.tzinfo if isinstance(value, datetime.datetime) else None
        start = datetime.datetime.combine(day, datetime.time.min, tzinfo=tzinfo)
        return self._where_period(field, operator, start, start + datetime.timedelta(days=1), boolean)

    def where_year(self, field: str, operator, value=ABSENT, boolean='and'):
        """ Compare a timestamp field with a calendar year

            where_year('at', 2020)  # any time in 2020
            where_year('at', '<=', 2020)  # up to the end of 2020
        """
        if value is ABSENT:
            operator, value = '=', operator
        year = int(value)
        return self._where_period(field, operator, datetime.datetime(year, 1, 1), datetime.datetime(year + 1, 1, 1), boolean)

    def _where_period(self, field, operator, start, next_start, boolean):
        """ Compare a field with the period [start, next_start) as a whole """
        operator = normalize_operator(operator)
        end = next_start - datetime.timedelta(microseconds=1)
        if operator == '=':
            return self.where_between(field, [start, end], boolean)
        if operator == '!=':
            return self.where_not_between(field, [start, end], boolean)
        if operator in ('>', '<='):
            # after the period; up to its end
            return self.where(field, '>=' if operator == '>' else '<', next_start, boolean)
        if operator in ('>=', '<'):
            return self.where(field, operator, start, boolean)
        raise InvalidQueryError('Cannot compare `{}` with a date using {!r}'.format(field, operator))

    def where_nested(self, callback: Callable, boolean='and'):
        """ Add a group of constraints, evaluated as a single boolean

            The callback receives a fresh builder; the constraints it adds become the group.
            An empty group is ignored.
        """
        sub = self.__class__(self.collection)
        callback(sub)
        if sub._constraints:
            self._constraints.append(Nested(sub._constraints, normalize_boolean(boolean)))
        return self

    def or_where_nested(self, callback: Callable):
        return self.where_nested(callback, 'or')

    # endregion

    # region Ordering

    def order_by(self, field: str, direction='asc'):
        """ Order by a field. Subsequent calls add secondary keys. """
        self._orders.append(OrderSpec(field, direction))
        return self

    def order_by_desc(self, field: str):
        return self.order_by(field, 'desc')

    def latest(self, field: str = 'created_at'):
        """ Newest first """
        return self.order_by(field, 'desc')

    def oldest(self, field: str = 'created_at'):
        """ Oldest first """
        return self.order_by(field, 'asc')

    def in_random_order(self):
        """ Shuffle the results """
        self._random = True
        return self

    # endregion

    # region Pagination

    def limit(self, value: int):
        self._limit = value
        return self

    take = limit

    def offset(self, value: int):
        self._offset = value
        return self

    skip = offset

    def start_after(self, document_id):
        """ Start the page right after this document """
        self._start_cursor = Cursor('start_after', document_id)
        return self

    def start_at(self, document_id):
        """ Start the page with this document """
        self._start_cursor = Cursor('start_at', document_id)
        return self

    start_before = start_at

    def end_at(self, document_id):
        """ End the page with this document """
        self._end_cursor = Cursor('end_at', document_id)
        return self

    def end_before(self, document_id):
        """ End the page right before this document """
        self._end_cursor = Cursor('end_before', document_id)
        return self

    # endregion

    # region Projection

    def select(self, *fields):
        """ Only return these fields. Lists are accepted as well. """
        self._selects = _flatten_fields(fields) or None
        return self

    def add_select(self, *fields):
        """ Return these fields too """
        self._selects = list(dict.fromkeys((self._selects or []) + _flatten_fields(fields)))
        return self

    def distinct(self):
        """ Remove duplicate documents """
        self._distinct = True
        return self

    # endregion

    # region State

    @property
    def constraints(self):
        return list(self._constraints)

    @property
    def orders(self):
        return list(self._orders)

    @property
    def cursors(self):
        return [c for c in (self._start_cursor, self._end_cursor) if c is not None]

    def to_query_object(self) -> dict:
        """ Export the state as a Query Object for DocumentQuery """
        return dict(
            filter=list(self._constraints),
            sort=list(self._orders),
            cursor=self.cursors,
            skip=self._offset,
            limit=self._limit,
            project=list(self._selects) if self._selects else None,
            distinct=self._distinct,
            random=self._random,
        )

    # endregion

    # region Terminal methods

    def _require_client(self):
        if self.client is None:
            raise ConfigurationError('The builder for "{}" is not bound to a store'.format(self.collection))
        return self.client

    def get(self, *fields) -> List[DocumentSnapshot]:
        """ Run the query """
        builder = self.clone().select(*fields) if fields else self
        return self._require_client().run_query(self.collection, builder.to_query_object())

    def first(self, *fields) -> Optional[DocumentSnapshot]:
        """ Get the first document, or None """
        results = self.clone().limit(1).get(*fields)
        return results[0] if results else None

    def first_or_fail(self, *fields) -> DocumentSnapshot:
        """ Get the first document

        :raises NotFoundError: nothing matched
        """
        snapshot = self.first(*fields)
        if snapshot is None:
            raise NotFoundError(self.collection, 'No documents in "{}" match the query'.format(self.collection))
        return snapshot

    def find(self, document_id: str) -> Optional[DocumentSnapshot]:
        """ Get a document by id, or None """
        snapshot = self._require_client().get(self.collection, document_id)
        return snapshot if snapshot.exists else None

    def value(self, field: str):
        """ Get a field value from the first document, or None """
        snapshot = self.first()
        return snapshot.get(field) if snapshot is not None else None

    def value_or_fail(self, field: str):
        return self.first_or_fail().get(field)

    def pluck(self, field: str, key: str = None):
        """ Get the values of a field

        :param field: The field to get values of
        :param key: If given, make a dict keyed by this field. Use 'id' for document ids.
        :rtype: list | dict
        """
        results = self.get()
        if key is None:
            return [_field_value(s, field) for s in results]
        return {_field_value(s, key): _field_value(s, field) for s in results}

    def count(self) -> int:
        return len(self.get())

    def exists(self) -> bool:
        return self.first() is not None

    def doesnt_exist(self) -> bool:
        return not self.exists()

    def min(self, field: str):
        values = self._values(field)
        return min(values, key=value_sort_key) if values else None

    def max(self, field: str):
        values = self._values(field)
        return max(values, key=value_sort_key) if values else None

    def sum(self, field: str):
        return sum(self._numbers(field))

    def avg(self, field: str):
        numbers = self._numbers(field)
        return sum(numbers) / len(numbers) if numbers else None

    average = avg

    def _values(self, field):
        return [v for v in (s.get(field, ABSENT) for s in self.get())
                if v is not ABSENT and v is not None]

    def _numbers(self, field):
        return [v for v in self._values(field) if type_rank(v) == 2]

    def chunk(self, size: int, callback: Callable[[List[DocumentSnapshot]], Optional[bool]]) -> bool:
        """ Process the results in chunks

            The callback may return False to stop.

        :return: False if the callback has stopped the process
        """
        if size <= 0:
            raise InvalidQueryError('Chunk size must be positive')
        results = self.get()
        for i in range(0, len(results), size):
            if callback(results[i:i + size]) is False:
                return False
        return True

    def each(self, callback: Callable[[DocumentSnapshot], Optional[bool]], size: int = 1000) -> bool:
        """ Process the results one by one

            The callback may return False to stop.
        """
        def process_chunk(snapshots):
            for snapshot in snapshots:
                if callback(snapshot) is False:
                    return False
            return True
        return self.chunk(size, process_chunk)

    # endregion

    # region Writes

    def insert(self, data: dict) -> bool:
        """ Create a document with a generated id """
        self.insert_get_id(data)
        return True

    def insert_get_id(self, data: dict) -> str:
        """ Create a document with a generated id, and return the id """
        if not data:
            raise InvalidQueryError('Cannot insert an empty document')
        return self._require_client().create(self.collection, data).id

    def insert_with_id(self, document_id: str, data: dict) -> bool:
        """ Create or replace a document with the given id """
        self._require_client().set(self.collection, document_id, data)
        return True

    def update(self, data: dict) -> int:
        """ Update every matching document

            Documents are updated in chunks: each chunk is atomic, and the first failed one stops the update.

        :return: The number of documents updated
        :raises DocStoreError: a chunk has failed
        """
        if not data:
            return 0
        snapshots = self.get()
        self._unwrap_all(bulk_update(self._require_client(), self.collection,
                                     {s.id: deepcopy(data) for s in snapshots},
                                     stop_on_failure=True))
        return len(snapshots)

    def delete(self) -> int:
        """ Delete every matching document, in chunks like update()

        :return: The number of documents deleted
        :raises DocStoreError: a chunk has failed
        """
        snapshots = self.get()
        self._unwrap_all(bulk_delete(self._require_client(), self.collection,
                                     [s.id for s in snapshots],
                                     stop_on_failure=True))
        return len(snapshots)

    @staticmethod
    def _unwrap_all(results):
        for result in results:
            result.unwrap()

    # endregion


def _flatten_fields(fields) -> List[str]:
    result = []
    for f in fields:
        if isinstance(f, (list, tuple)):
            result.extend(f)
        elif f is not None and f != '*':
            result.append(f)
    return result


def _field_value(snapshot: DocumentSnapshot, field: str):
    return snapshot.id if field == 'id' else snapshot.get(field)


def _as_date(value) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str):
        return datetime.date.fromisoformat(value[:10])
    raise InvalidQueryError('Not a date: {!r}'.format(value))

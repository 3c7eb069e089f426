"""
### Sort Operation

Sorting orders the documents by one or more fields.

An example of a sort operation would look like this:

```python
DocumentQuery('users').query(
    # sort by age, descending;
    # then sort by first name, alphabetically
    sort=['age-', 'first_name+'],
)
```

#### Syntax

* Array syntax.

    List of field names, optionally suffixed by the sort direction: `-` for `desc`, `+` for `asc`.
    The default is `+`. Items may also be `OrderSpec` objects, or `(field, 'asc'|'desc')` tuples.

    ```python
    { 'sort': [ 'a+', 'b-', 'c' ] }  # -> a asc, b desc, c asc
    ```

* String syntax

    List of fields, with optional `+` / `-`, separated by whitespace.

    ```python
    { 'sort': 'a+ b- c' }
    ```

#### Ordering rules

Values are compared by their type class first (`null < bool < number < timestamp < string < bytes < array < map`),
then by value. A missing field sorts before `null`. `desc` reverses the comparison completely.
When all sort keys tie, documents are ordered by their id, ascending.
The sort is stable and deterministic.
"""

import random
from collections import OrderedDict, namedtuple
from functools import cmp_to_key

from .base import DocumentQueryHandlerBase
from ..document import get_path, compare_values
from ..exc import InvalidQueryError


class OrderSpec(namedtuple('OrderSpec', ('field', 'direction'))):
    """ Sort by a field, `asc` or `desc` """

    __slots__ = ()

    def __new__(cls, field: str, direction: str = 'asc'):
        direction = normalize_direction(direction)
        if not isinstance(field, str) or not field:
            raise InvalidQueryError('Sort field must be a non-empty string, {!r} given'.format(field))
        return super(OrderSpec, cls).__new__(cls, field, direction)

    @property
    def descending(self) -> bool:
        return self.direction == 'desc'


def normalize_direction(direction) -> str:
    """ Normalize a sort direction: 'asc', 'desc' (case-insensitive), +1, -1 """
    if direction in (+1, -1) and not isinstance(direction, bool):
        return 'asc' if direction == +1 else 'desc'
    if isinstance(direction, str) and direction.lower() in ('asc', 'desc'):
        return direction.lower()
    raise InvalidQueryError('Sort direction can be either "asc" or "desc"; {!r} given'.format(direction))


def parse_sort_spec(spec, section_name='sort'):
    """ Parse any supported sort syntax into an OrderedDict: {field: 'asc'|'desc'} """
    # Empty
    if not spec:
        return OrderedDict()

    # String syntax
    if isinstance(spec, str):
        # Split by whitespace and convert to a list
        spec = spec.split()

    # A single OrderSpec
    if isinstance(spec, OrderSpec):
        spec = [spec]

    # OrderedDict: { field: direction }
    if isinstance(spec, OrderedDict):
        return OrderedDict((field, normalize_direction(d)) for field, d in spec.items())

    # A plain dict only works with a single key
    if isinstance(spec, dict):
        if len(spec) > 1:
            raise InvalidQueryError('{} is a plain object; can only have 1 field '
                                    'because of unstable ordering of object keys; '
                                    'use list syntax instead'
                                    .format(section_name))
        return OrderedDict((field, normalize_direction(d)) for field, d in spec.items())

    if not isinstance(spec, (list, tuple)):
        raise InvalidQueryError('{name} must be either a list, a string, or an object; {type} provided.'
                                .format(name=section_name, type=type(spec)))

    result = OrderedDict()
    for item in spec:
        if isinstance(item, OrderSpec):
            order = item
        elif isinstance(item, str) and item:
            # "field[+-]"
            if item[-1] in {'+', '-'}:
                order = OrderSpec(item[:-1], 'desc' if item[-1] == '-' else 'asc')
            else:
                order = OrderSpec(item, 'asc')
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            order = OrderSpec(*item)
        else:
            raise InvalidQueryError('Invalid {} item: {!r}'.format(section_name, item))
        result[order.field] = order.direction
    return result


def sort_snapshots(snapshots, orders):
    """ Sort snapshots by a list of OrderSpec; ties are broken by document id

    :type snapshots: list[docstore.document.DocumentSnapshot]
    :type orders: list[OrderSpec]
    :rtype: list[docstore.document.DocumentSnapshot]
    """
    def compare(a, b):
        for order in orders:
            c = compare_values(get_path(a.data, order.field), get_path(b.data, order.field))
            if c:
                return -c if order.descending else c
        # Deterministic: id, ascending
        return (a.id > b.id) - (a.id < b.id)

    return sorted(snapshots, key=cmp_to_key(compare))


class QuerySort(DocumentQueryHandlerBase):
    """ Document sorting

        * None: no sorting (documents come ordered by id)
        * OrderedDict({ a: 'asc', b: 'desc' })
        * [ 'a+', 'b-', 'c' ]  - array of strings '<field>[<+|->]'. default direction = +
        * [ OrderSpec('a', 'asc'), ('b', 'desc') ]
        * dict({a: 'asc'}) -- you can only use a dict with ONE FIELD (because of its unstable order)
    """

    query_object_section_name = 'sort'

    def __init__(self, collection):
        super(QuerySort, self).__init__(collection)

        # On input
        #: OrderedDict() of a sort spec: {field: 'asc'|'desc'}
        self.sort_spec = None

    def input(self, sort_spec):
        super(QuerySort, self).input(sort_spec)
        self.sort_spec = parse_sort_spec(sort_spec, self.query_object_section_name)
        return self

    @property
    def orders(self):
        """ The sort spec as a list of OrderSpec """
        return [OrderSpec(field, direction)
                for field, direction in (self.sort_spec or {}).items()]

    def is_input_empty(self):
        return not self.sort_spec

    def alter_results(self, snapshots):
        # Always sort: when no order is given, documents are ordered by id
        return sort_snapshots(snapshots, self.orders)

    def get_final_input_value(self):
        return ['{}{}'.format(field, '-' if d == 'desc' else '')
                for field, d in self.sort_spec.items()]


class QueryRandomOrder(DocumentQueryHandlerBase):
    """ Random order

        The page is shuffled after it has been sliced: the database has no random ordering,
        so it's the page that's shuffled, not the whole collection.

        * None, False: no shuffling
        * True: shuffle
    """

    query_object_section_name = 'random'

    def __init__(self, collection, random_generator=None):
        """ Init random ordering

        :param collection: Collection name
        :param random_generator: A `random.Random` instance to shuffle with. Give a seeded one to get repeatable results.
        """
        super(QueryRandomOrder, self).__init__(collection)

        # Settings
        self.random_generator = random_generator or random.Random()

        # On input
        self.shuffle = False

    def input(self, shuffle):
        super(QueryRandomOrder, self).input(shuffle)
        if not isinstance(shuffle, (bool, NoneType)):
            raise InvalidQueryError('{} must be a boolean'.format(self.query_object_section_name))
        self.shuffle = bool(shuffle)
        return self

    def alter_results(self, snapshots):
        if not self.shuffle:
            return snapshots
        snapshots = list(snapshots)
        self.random_generator.shuffle(snapshots)
        return snapshots

    def get_final_input_value(self):
        return self.shuffle


NoneType = type(None)

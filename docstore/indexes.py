"""
### Compound Indexes

The remote database refuses to run certain queries unless there is a compound index for them.
`IndexValidator` simulates those rules so that the problem shows up in tests, not in production.

A compound index is required when:

* more than one constraint is present (nested groups are flattened), or
* exactly one constraint is present, and the query is ordered by some *other* field, or
* `array-contains` or `array-contains-any` is used together with any other constraint or any ordering.

The required index lists the constraint fields first (ascending), then the order fields,
with their directions. An index that starts with exactly these fields (in this order,
with these directions) satisfies the query.

```python
indexes = IndexValidator(strict_indexes=True)
indexes.add_index('posts', 'author_id published_at-')

indexes.validate('posts',
                 [Basic('author_id', '=', 1)],
                 [OrderSpec('published_at', 'desc')])  # ok
```

With `strict_indexes=False`, a missing index is only logged.
"""

import logging
from typing import List

from .exc import IndexRequiredError
from .handlers.filter import Constraint
from .handlers.sort import OrderSpec, parse_sort_spec

logger = logging.getLogger(__name__)


#: Operators that need an index whenever they're combined with anything
ARRAY_OPERATORS = frozenset(('array-contains', 'array-contains-any'))


def flatten_constraints(constraints) -> List[Constraint]:
    """ Get the simple constraints, with nested groups flattened """
    return [leaf
            for constraint in constraints or ()
            for leaf in constraint.leaves()]


class IndexValidator:
    """ Decides whether a query needs a compound index, and whether one is registered """

    def __init__(self, strict_indexes=False, indexes=None):
        """ Init the validator

        :param strict_indexes: Raise IndexRequiredError when a required index is missing.
            Otherwise, a warning is logged.
        :param indexes: Initial indexes: { collection: [ 'a b-', ... ] }
        :type indexes: dict[str, list] | None
        """
        self.strict_indexes = strict_indexes

        #: Registered indexes: { collection: [ [OrderSpec, ...], ... ] }
        self._indexes = {}

        for collection, index_list in (indexes or {}).items():
            for fields in index_list:
                self.add_index(collection, fields)

    def add_index(self, collection: str, fields):
        """ Register a compound index

        :param collection: Collection name
        :param fields: Index fields, in the sort syntax: 'a b-', ['a+', 'b-'], [OrderSpec, ...]
        :return: The parsed index
        :rtype: list[OrderSpec]
        """
        index = [OrderSpec(field, direction)
                 for field, direction in parse_sort_spec(fields, 'index').items()]
        if not index:
            raise ValueError('An index must have at least one field')
        self._indexes.setdefault(collection, [])
        if index not in self._indexes[collection]:
            self._indexes[collection].append(index)
        return index

    def indexes(self, collection: str):
        """ Get the list of indexes registered for a collection """
        return list(self._indexes.get(collection, ()))

    def clear(self, collection: str = None):
        """ Forget the indexes: for one collection, or all of them """
        if collection is None:
            self._indexes.clear()
        else:
            self._indexes.pop(collection, None)

    def requires_index(self, constraints, orders) -> bool:
        """ Does this combination of constraints and orders need a compound index? """
        leaves = flatten_constraints(constraints)
        orders = list(orders or ())

        # More than one constraint
        if len(leaves) > 1:
            return True

        # One constraint, ordered by a different field
        if len(leaves) == 1 and any(o.field != leaves[0].field for o in orders):
            return True

        # Array operators combined with anything
        uses_array_operator = any(getattr(c, 'operator', None) in ARRAY_OPERATORS for c in leaves)
        if uses_array_operator and (len(leaves) > 1 or orders):
            return True

        return False

    def required_fields(self, constraints, orders) -> List[OrderSpec]:
        """ The minimal index for the query: constraint fields (asc), then order fields """
        required = [OrderSpec(c.field, 'asc') for c in flatten_constraints(constraints)]
        required.extend(OrderSpec(o.field, o.direction) for o in orders or ())

        # Drop exact duplicates, keep the order
        return list(dict.fromkeys(required))

    def has_matching_index(self, collection: str, constraints, orders) -> bool:
        """ Is there an index that satisfies the query? Queries that need none are always satisfied. """
        if not self.requires_index(constraints, orders):
            return True

        required = self.required_fields(constraints, orders)
        return any(
            len(index) >= len(required) and index[:len(required)] == required
            for index in self._indexes.get(collection, ())
        )

    def validate(self, collection: str, constraints, orders) -> bool:
        """ Check the query against the registered indexes

        :return: Whether the query is satisfied
        :raises IndexRequiredError: in strict mode, when no index satisfies the query
        """
        if self.has_matching_index(collection, constraints, orders):
            return True

        required = self.required_fields(constraints, orders)
        if self.strict_indexes:
            raise IndexRequiredError(collection, required)

        logger.warning('Query on %r would require a composite index: %s',
                       collection, ', '.join('{} {}'.format(f, d) for f, d in required))
        return False

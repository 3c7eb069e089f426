"""
### Filter Operation
Filtering selects the documents that match a list of constraints.

Example of filtering:

```python
DocumentQuery('users').query(filter=[
    ('age', '>=', 18),
    ('age', '<=', 25),
    ('sex', 'female'),  # equality is the default
])
```

#### Operators

* `=` (alias: `==`): equality. Note that `True` is never equal to `1`.
* `!=` (alias: `<>`): inequality. A document that lacks the field *does* match.
* `<`, `<=`, `>`, `>=`: ordering; only values of the same type class are compared:
    numbers with numbers, strings with strings, etc.
* `in`, `not-in`: the field is (not) equal to any of the given values
* `array-contains`: the array field contains the value
* `array-contains-any`: the array field contains any of the values
* `like`: case-insensitive substring match. `%` wildcards are removed from the pattern.

A document that lacks the field fails every operator, except for `!=`.

#### Combining constraints

Constraints are combined left to right, every one using its own `boolean`: `and` or `or`.
Thus, `a OR b AND c` means `(a OR b) AND c`. If you need it the other way around, group
the constraints explicitly:

```python
Nested([
    Basic('a', '=', 1),
    Nested([Basic('b', '=', 2), Basic('c', '=', 3)], boolean='or'),
])
```

The dict syntax is supported as well: `{'age': {'>=': 18}, '$or': [{'role': 'admin'}, {'role': 'owner'}]}`.
"""

from .base import DocumentQueryHandlerBase
from ..document import ABSENT, get_path, type_rank, compare_values, values_equal, contains_value
from ..exc import InvalidQueryError


# region Constraint Classes

def _is_array(value):
    return isinstance(value, (list, tuple, set, frozenset))


#: Operator aliases
OPERATOR_ALIASES = {
    '==': '=',
    '<>': '!=',
    'not in': 'not-in',
    'not_in': 'not-in',
    'array_contains': 'array-contains',
    'array_contains_any': 'array-contains-any',
}


def normalize_operator(operator: str) -> str:
    """ Normalize an operator token: lowercase, aliases resolved """
    if not isinstance(operator, str):
        raise InvalidQueryError('Operator must be a string, {!r} given'.format(operator))
    operator = operator.strip().lower()
    return OPERATOR_ALIASES.get(operator, operator)


def normalize_boolean(boolean: str) -> str:
    boolean = str(boolean).strip().lower()
    if boolean not in ('and', 'or'):
        raise InvalidQueryError('Boolean must be either "and" or "or", {!r} given'.format(boolean))
    return boolean


def _same_class_compare(field_value, value, test):
    return type_rank(field_value) == type_rank(value) and test(compare_values(field_value, value))


def _like(field_value, pattern):
    if field_value is None:
        return False
    needle = str(pattern).replace('%', '').lower()
    return needle in str(field_value).lower()


class Constraint:
    """ A filter condition, or a group of conditions """

    __slots__ = ('boolean',)

    def __init__(self, boolean='and'):
        self.boolean = normalize_boolean(boolean)

    def matches(self, data: dict) -> bool:
        """ Test a document payload against this constraint """
        raise NotImplementedError()

    def leaves(self):
        """ Iterate over the simple constraints, with nested groups flattened """
        yield self

    def with_boolean(self, boolean):
        """ Make a copy with a different boolean """
        raise NotImplementedError()

    def _key(self):
        raise NotImplementedError()

    def __eq__(self, other):
        return type(self) is type(other) and self._key() == other._key()

    def __hash__(self):
        return hash(repr(self))

    @staticmethod
    def combine(constraints, data) -> bool:
        """ Fold constraints left to right, honoring each one's boolean

            The first constraint's boolean is irrelevant: it's the seed.
            An empty list matches everything.
        """
        result = True
        for i, constraint in enumerate(constraints):
            if i == 0:
                result = constraint.matches(data)
            elif constraint.boolean == 'or':
                result = result or constraint.matches(data)
            else:
                result = result and constraint.matches(data)
        return result


class Basic(Constraint):
    """ A comparison: field <operator> value """

    __slots__ = ('field', 'operator', 'value')

    # Operators
    # operator => lambda field_value, value
    # `field_value` is never ABSENT here: missing fields are handled by matches()
    _operators = {
        '=': lambda fv, v: values_equal(fv, v),
        '!=': lambda fv, v: not values_equal(fv, v),
        '<': lambda fv, v: _same_class_compare(fv, v, lambda c: c < 0),
        '<=': lambda fv, v: _same_class_compare(fv, v, lambda c: c <= 0),
        '>': lambda fv, v: _same_class_compare(fv, v, lambda c: c > 0),
        '>=': lambda fv, v: _same_class_compare(fv, v, lambda c: c >= 0),
        'in': lambda fv, v: contains_value(v, fv),
        'not-in': lambda fv, v: not contains_value(v, fv),
        'array-contains': lambda fv, v: _is_array(fv) and contains_value(fv, v),
        'array-contains-any': lambda fv, v: _is_array(fv) and any(contains_value(fv, x) for x in v),
        'like': _like,
    }

    # List of operators that always require an array argument
    _operators_require_array_value = frozenset(('in', 'not-in', 'array-contains-any'))

    #: All supported operators
    OPERATORS = frozenset(_operators)

    def __init__(self, field: str, operator: str, value, boolean='and'):
        super(Basic, self).__init__(boolean)
        if not isinstance(field, str) or not field:
            raise InvalidQueryError('Field name must be a non-empty string, {!r} given'.format(field))
        operator = normalize_operator(operator)
        if operator not in self._operators:
            raise InvalidQueryError('Unsupported operator "{}" for field `{}`'.format(operator, field))
        if operator in self._operators_require_array_value:
            if not _is_array(value):
                raise InvalidQueryError('Operator "{}" requires a list of values for field `{}`'
                                        .format(operator, field))
            value = list(value)
        self.field = field
        self.operator = operator
        self.value = value

    def matches(self, data):
        field_value = get_path(data, self.field)
        if field_value is ABSENT:
            return self.operator == '!=' and self.value is not ABSENT
        return self._operators[self.operator](field_value, self.value)

    def with_boolean(self, boolean):
        return Basic(self.field, self.operator, self.value, boolean)

    def _key(self):
        return (self.field, self.operator, self.value, self.boolean)

    def __repr__(self):
        return '{} {} {!r}'.format(self.field, self.operator, self.value) + \
               (' [or]' if self.boolean == 'or' else '')


class Membership(Constraint):
    """ Field value is (not) one of the values """

    __slots__ = ('field', 'values', 'negate')

    def __init__(self, field: str, values, negate=False, boolean='and'):
        super(Membership, self).__init__(boolean)
        if not isinstance(field, str) or not field:
            raise InvalidQueryError('Field name must be a non-empty string, {!r} given'.format(field))
        if not _is_array(values):
            raise InvalidQueryError('Membership check on `{}` requires a list of values'.format(field))
        self.field = field
        self.values = list(values)
        self.negate = bool(negate)

    @property
    def operator(self):
        return 'not-in' if self.negate else 'in'

    def matches(self, data):
        field_value = get_path(data, self.field)
        if field_value is ABSENT:
            return False
        return contains_value(self.values, field_value) != self.negate

    def with_boolean(self, boolean):
        return Membership(self.field, self.values, self.negate, boolean)

    def _key(self):
        return (self.field, self.values, self.negate, self.boolean)

    def __repr__(self):
        return '{} {} {!r}'.format(self.field, self.operator, self.values) + \
               (' [or]' if self.boolean == 'or' else '')


class NullCheck(Constraint):
    """ Field is null (or not)

        A missing field counts as null.
    """

    __slots__ = ('field', 'negate')

    def __init__(self, field: str, negate=False, boolean='and'):
        super(NullCheck, self).__init__(boolean)
        if not isinstance(field, str) or not field:
            raise InvalidQueryError('Field name must be a non-empty string, {!r} given'.format(field))
        self.field = field
        self.negate = bool(negate)

    @property
    def operator(self):
        return '!=' if self.negate else '='

    def matches(self, data):
        is_null = get_path(data, self.field) in (None, ABSENT)
        return is_null != self.negate

    def with_boolean(self, boolean):
        return NullCheck(self.field, self.negate, boolean)

    def _key(self):
        return (self.field, self.negate, self.boolean)

    def __repr__(self):
        return '{} is {}null'.format(self.field, 'not ' if self.negate else '') + \
               (' [or]' if self.boolean == 'or' else '')


class Nested(Constraint):
    """ A group of constraints, evaluated as a single boolean """

    __slots__ = ('constraints',)

    def __init__(self, constraints, boolean='and'):
        super(Nested, self).__init__(boolean)
        self.constraints = list(constraints)
        if not all(isinstance(c, Constraint) for c in self.constraints):
            raise InvalidQueryError('Nested group can only contain constraints')

    def matches(self, data):
        return self.combine(self.constraints, data)

    def leaves(self):
        for constraint in self.constraints:
            yield from constraint.leaves()

    def with_boolean(self, boolean):
        return Nested(self.constraints, boolean)

    def _key(self):
        return (self.constraints, self.boolean)

    def __repr__(self):
        return '({})'.format(', '.join(map(repr, self.constraints))) + \
               (' [or]' if self.boolean == 'or' else '')

# endregion


class QueryFilter(DocumentQueryHandlerBase):
    """ Document filtering

        Accepts:
        * None: no filtering
        * [ Constraint, ... ]  - constraint objects
        * [ (field, value), (field, op, value), (field, op, value, boolean) ]  - tuples
        * { field: value, field: {op: value}, '$or': [ {...}, ... ], '$and': [ {...}, ... ] }  - dict syntax

        List items can be mixed.
    """

    query_object_section_name = 'filter'

    # Dict syntax: boolean keys
    _boolean_operators = frozenset(('$and', '$or'))

    # These classes implement the constraints
    # You can override them, if necessary
    _BASIC_CONSTRAINT_CLS = Basic
    _MEMBERSHIP_CONSTRAINT_CLS = Membership
    _NESTED_CONSTRAINT_CLS = Nested

    def __init__(self, collection, force_filter=None):
        """ Init a filter

        :param collection: Collection name
        :param force_filter: A list of constraints that is forced onto every query.
            They are AND-ed with whatever the user provides.
        """
        super(QueryFilter, self).__init__(collection)

        # Settings
        self.force_filter = self._parse_criteria(force_filter) if force_filter else []

        # On input
        #: list of parsed constraints
        self.constraints = None

    def input(self, criteria):
        super(QueryFilter, self).input(criteria)
        self.constraints = self._parse_criteria(criteria)
        return self

    def _parse_criteria(self, criteria):
        """ Parse criteria and return a list of Constraint objects

        :type criteria: list | tuple | dict | None
        :rtype: list[Constraint]
        """
        # None
        if not criteria:
            return []

        # Dict syntax
        if isinstance(criteria, dict):
            return self._parse_dict(criteria)

        # Single constraint
        if isinstance(criteria, Constraint):
            return [criteria]

        # List of anything
        if not isinstance(criteria, (list, tuple)):
            raise InvalidQueryError('Filter criteria must be one of: null, list, object')

        constraints = []
        for item in criteria:
            if isinstance(item, Constraint):
                constraints.append(item)
            elif isinstance(item, dict):
                constraints.extend(self._parse_dict(item))
            elif isinstance(item, (list, tuple)):
                constraints.append(self._parse_tuple(item))
            else:
                raise InvalidQueryError('Unsupported filter criterion: {!r}'.format(item))
        return constraints

    def _parse_tuple(self, item):
        """ (field, value), (field, op, value), (field, op, value, boolean) """
        if len(item) == 2:
            field, value = item
            return self._make_constraint(field, '=', value)
        elif len(item) == 3:
            field, operator, value = item
            return self._make_constraint(field, operator, value)
        elif len(item) == 4:
            field, operator, value, boolean = item
            return self._make_constraint(field, operator, value, boolean)
        else:
            raise InvalidQueryError('Filter tuple must have 2 to 4 items: {!r}'.format(item))

    def _make_constraint(self, field, operator, value, boolean='and'):
        operator = normalize_operator(operator)
        if operator in ('in', 'not-in'):
            return self._MEMBERSHIP_CONSTRAINT_CLS(field, value, operator == 'not-in', boolean)
        return self._BASIC_CONSTRAINT_CLS(field, operator, value, boolean)

    def _parse_dict(self, criteria):
        """ { field: value, field: {op: value}, $or: [...], $and: [...] }: everything is AND-ed """
        constraints = []
        for key, value in criteria.items():
            # Boolean group
            if key in self._boolean_operators:
                group = self._parse_boolean_operator(key, value)
                if group is not None:
                    constraints.append(group)
                continue

            # Field with operators
            if isinstance(value, dict):
                if not value:
                    raise InvalidQueryError('Empty operator object for field `{}`'.format(key))
                for operator, operand in value.items():
                    constraints.append(self._make_constraint(key, operator, operand))
            # Field equality
            else:
                constraints.append(self._make_constraint(key, '=', value))
        return constraints

    def _parse_boolean_operator(self, op, criteria):
        """ {'$or': [ {..}, {..} ]}: every item becomes a group of its own """
        if not isinstance(criteria, (list, tuple)):
            raise InvalidQueryError('{}: {} argument must be a list'
                                    .format(self.query_object_section_name, op))

        boolean = 'or' if op == '$or' else 'and'
        groups = []
        for item in criteria:
            parsed = self._parse_criteria(item if isinstance(item, dict) else [item])
            if not parsed:
                continue
            group = parsed[0] if len(parsed) == 1 else self._NESTED_CONSTRAINT_CLS(parsed)
            groups.append(group.with_boolean(boolean))

        # Empty criteria: { $or: [] } does not make sense
        if not groups:
            return None
        return self._NESTED_CONSTRAINT_CLS(groups)

    def all_constraints(self):
        """ Get the list of constraints, the forced ones included """
        if not self.force_filter:
            return list(self.constraints or ())
        if not self.constraints:
            return list(self.force_filter)
        # Group the user's constraints so that an `or` cannot escape the forced filter
        return list(self.force_filter) + [self._NESTED_CONSTRAINT_CLS(self.constraints)]

    def is_input_empty(self):
        return not self.constraints

    def alter_results(self, snapshots):
        constraints = self.all_constraints()
        if not constraints:
            return snapshots  # short-circuit
        return [s for s in snapshots
                if Constraint.combine(constraints, s.data)]

    def get_final_input_value(self):
        return self.constraints

"""
Query Object
------------

A Query Object is a dict that describes how to select, order, and slice the documents of a collection.
It is what `ConstraintBuilder` produces, and what `DocumentQuery` consumes.
It has the following keys:

* `filter`: [Filter Operation](#filter-operation) filters the documents, using your criteria
* `sort`: [Sort Operation](#sort-operation) determines the ordering of the documents
* `cursor`: [Cursor Operation](#cursor-operation) paginates by anchoring on a document
* `skip`, `limit`: [Slice Operation](#slice-operation) paginates by offset
* `project`: [Project Operation](#project-operation) selects the fields to be returned
* `distinct`: removes duplicate documents
* `random`: shuffles the page

An example Query Object is:

```python
{
    'filter': [('age', '>=', 18), ('sex', 'female')],
    'sort': ['age+'],
    'cursor': Cursor('start_after', 'last-seen-id'),
    'limit': 100,
    'project': ['name', 'age'],
}
```

The sections are applied in this order: filter, sort, cursor, skip & limit, project & distinct, random.
"""

from .base import DocumentQueryHandlerBase
from .filter import QueryFilter, \
    Constraint, Basic, Membership, NullCheck, Nested, normalize_operator
from .sort import QuerySort, QueryRandomOrder, OrderSpec, parse_sort_spec, sort_snapshots
from .cursor import QueryCursor, Cursor, apply_cursors
from .limit import QueryLimit
from .project import QueryProject

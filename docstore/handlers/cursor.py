"""
### Cursor Operation

Cursors paginate by anchoring on a document's position within the *ordered* result set,
rather than by a numeric offset:

```python
DocumentQuery('posts').query(
    sort=['published_at-'],
    cursor=Cursor('start_after', last_id_on_previous_page),
    limit=20,
)
```

Modes:

* `start_after`: the page starts right after the anchor document
* `start_at` (alias: `start_before`): the page starts with the anchor document itself
* `end_at`: the page ends with the anchor document
* `end_before`: the page ends right before the anchor document

One start and one end cursor may be given together, either as a list, or as a dict:
`{'start_after': 'a', 'end_before': 'z'}`.

When the anchor document is not in the result set, the cursor is ignored.

Cursors are applied after sorting, and before `skip` and `limit`.
"""

from collections import namedtuple

from .base import DocumentQueryHandlerBase
from ..document import DocumentSnapshot
from ..exc import InvalidQueryError


#: Cursor modes that bound the start of the page
START_MODES = frozenset(('start_after', 'start_at'))
#: Cursor modes that bound the end of the page
END_MODES = frozenset(('end_at', 'end_before'))

_MODE_ALIASES = {
    'start_before': 'start_at',
    'startafter': 'start_after',
    'startat': 'start_at',
    'startbefore': 'start_at',
    'endat': 'end_at',
    'endbefore': 'end_before',
}


class Cursor(namedtuple('Cursor', ('mode', 'id'))):
    """ An anchor document id, and how it bounds the page """

    __slots__ = ()

    def __new__(cls, mode: str, id):
        if not isinstance(mode, str):
            raise InvalidQueryError('Cursor mode must be a string, {!r} given'.format(mode))
        mode = _MODE_ALIASES.get(mode.lower(), mode.lower())
        if mode not in START_MODES | END_MODES:
            raise InvalidQueryError('Unknown cursor mode: {!r}'.format(mode))
        # A snapshot may serve as an anchor
        if isinstance(id, DocumentSnapshot):
            id = id.id
        if not isinstance(id, str) or not id:
            raise InvalidQueryError('Cursor anchor must be a document id, {!r} given'.format(id))
        return super(Cursor, cls).__new__(cls, mode, id)

    @property
    def is_start(self) -> bool:
        return self.mode in START_MODES


def _index_of(snapshots, id):
    for i, s in enumerate(snapshots):
        if s.id == id:
            return i
    return None


def apply_cursors(snapshots, start: Cursor = None, end: Cursor = None):
    """ Slice an ordered list of snapshots with cursors

        Unknown anchors are ignored. Both anchors are located in the same ordered list,
        so an end anchor that comes before the start anchor gives an empty page.
    """
    begin, stop = 0, len(snapshots)

    if start is not None:
        i = _index_of(snapshots, start.id)
        if i is not None:
            begin = i + 1 if start.mode == 'start_after' else i

    if end is not None:
        i = _index_of(snapshots, end.id)
        if i is not None:
            stop = i + 1 if end.mode == 'end_at' else i

    return snapshots[begin:max(begin, stop)]


class QueryCursor(DocumentQueryHandlerBase):
    """ Cursor pagination

        * None: no cursors
        * Cursor('start_after', 'id')
        * [ Cursor('start_after', 'a'), Cursor('end_before', 'z') ]
        * ('start_after', 'id')
        * { 'start_after': 'a', 'end_before': 'z' }
    """

    query_object_section_name = 'cursor'

    def __init__(self, collection):
        super(QueryCursor, self).__init__(collection)

        # On input
        self.start = None  # type: Cursor | None
        self.end = None  # type: Cursor | None

    def input(self, cursors):
        super(QueryCursor, self).input(cursors)
        for cursor in self._parse(cursors):
            # A later cursor replaces an earlier one of the same kind
            if cursor.is_start:
                self.start = cursor
            else:
                self.end = cursor
        return self

    def _parse(self, cursors):
        # Empty
        if not cursors:
            return []

        # Cursor, or a (mode, id) tuple
        if isinstance(cursors, Cursor):
            return [cursors]
        if isinstance(cursors, tuple) and len(cursors) == 2 and isinstance(cursors[0], str):
            return [Cursor(*cursors)]

        # { mode: id }
        if isinstance(cursors, dict):
            return [Cursor(mode, id) for mode, id in cursors.items()]

        # List
        if isinstance(cursors, (list, tuple)):
            return [c if isinstance(c, Cursor) else Cursor(*c)
                    for c in cursors]

        raise InvalidQueryError('{} must be a Cursor, a list, or an object; {} provided'
                                .format(self.query_object_section_name, type(cursors)))

    def is_input_empty(self):
        return self.start is None and self.end is None

    def alter_results(self, snapshots):
        if self.is_input_empty():
            return snapshots  # short-circuit
        return apply_cursors(snapshots, self.start, self.end)

    def get_final_input_value(self):
        return [c for c in (self.start, self.end) if c is not None]

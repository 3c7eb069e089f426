"""
### Offset Pagination

Two optional sections of the Query Object select a window of the results:

* `skip`: the number of documents to drop from the start
* `limit`: the number of documents to keep after that

```python
DocumentQuery('users').query(
    skip=200,
    limit=100,  # documents 201..300
)
```

Both take an integer or `None`. Zero and negative numbers mean "no skip" and "no limit".

With a cursor in the same query, `skip` counts from where the cursor has positioned the page.
"""

from .base import DocumentQueryHandlerBase
from ..exc import InvalidQueryError


class QueryLimit(DocumentQueryHandlerBase):
    """ Limits and offsets

        Handles two keys:
        * 'limit': None, or int: the maximum number of documents
        * 'skip': None, or int: the number of documents to skip
    """

    query_object_section_name = 'limit'

    def __init__(self, collection, max_items=None):
        """ Init a limit

        :param collection: Collection name
        :param max_items: Upper bound for `limit`.
            A query without a limit gets this one.
        """
        super(QueryLimit, self).__init__(collection)

        # Config
        self.max_items = max_items
        assert self.max_items is None or self.max_items > 0

        # On input
        self.skip = None
        self.limit = None

    def input_prepare_query_object(self, query_object):
        """ Alter Query Object

        Two sections, `skip` and `limit`, are handled here.
        They are merged into one `limit` section: a tuple (skip, limit).
        """
        if 'skip' in query_object or 'limit' in query_object:
            query_object['limit'] = (query_object.pop('skip', None),
                                     query_object.pop('limit', None))
            if query_object['limit'] == (None, None):
                query_object.pop('limit')  # both missing
        return query_object

    def input(self, skip=None, limit=None):
        # DocumentQuery actually gives us a tuple (skip, limit)
        if isinstance(skip, tuple):
            skip, limit = skip

        # Super
        super(QueryLimit, self).input((skip, limit))

        # Validate
        if isinstance(skip, bool) or not isinstance(skip, (int, NoneType)):
            raise InvalidQueryError('Skip must be either an integer, or null')
        if isinstance(limit, bool) or not isinstance(limit, (int, NoneType)):
            raise InvalidQueryError('Limit must be either an integer, or null')

        # Clamp
        skip = None if skip is None or skip <= 0 else skip
        limit = None if limit is None or limit <= 0 else limit

        # Max limit
        if self.max_items:
            limit = min(self.max_items, limit or self.max_items)

        # Done
        self.skip = skip
        self.limit = limit
        return self

    @property
    def has_limit(self):
        """ Check whether there's a limit on this handler """
        return self.limit is not None or self.skip is not None

    def is_input_empty(self):
        return not self.has_limit

    def alter_results(self, snapshots):
        """ Apply skip and limit: plain positional slicing """
        if self.skip:
            snapshots = snapshots[self.skip:]
        if self.limit:
            snapshots = snapshots[:self.limit]
        return snapshots

    def get_final_input_value(self):
        return dict(skip=self.skip, limit=self.limit)


NoneType = type(None)

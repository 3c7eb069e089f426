"""
### Project Operation

Projection selects the fields to be returned:

```python
DocumentQuery('users').query(
    project=['name', 'address.city'],  # dot-paths are supported
)
```

Document ids are always available from the snapshot, whatever the projection is.

### Distinct

```python
DocumentQuery('users').query(project=['city'], distinct=True)
```

`distinct` removes documents whose (projected) payload equals the payload of a document seen earlier.
The first occurrence wins, so the order is preserved.
The document id is not a part of the payload, unless `'id'` is explicitly projected.
"""

from .base import DocumentQueryHandlerBase
from ..document import values_equal
from ..exc import InvalidQueryError


class QueryProject(DocumentQueryHandlerBase):
    """ Projection & Distinct

        Handles two keys:
        * 'project': None, or a list of field names (dot-paths). A whitespace-separated string works too.
        * 'distinct': bool
    """

    query_object_section_name = 'project'

    def __init__(self, collection, force_include=None):
        """ Init a projection

        :param collection: Collection name
        :param force_include: Fields that are always included into a projection
        """
        super(QueryProject, self).__init__(collection)

        # Settings
        self.force_include = tuple(force_include or ())

        # On input
        #: List of projected fields, or None to include everything
        self.fields = None
        #: Remove duplicates?
        self.distinct = False

    def input_prepare_query_object(self, query_object):
        """ Pack 'project' and 'distinct' into a tuple: a handler only gets one key """
        if 'project' in query_object or 'distinct' in query_object:
            query_object['project'] = (query_object.pop('project', None),
                                       query_object.pop('distinct', False))
            if query_object['project'] == (None, False):
                query_object.pop('project')
        return query_object

    def input(self, fields=None, distinct=False):
        if isinstance(fields, tuple) and len(fields) == 2 and isinstance(fields[1], bool):
            fields, distinct = fields

        super(QueryProject, self).input((fields, distinct))

        # String syntax
        if isinstance(fields, str):
            fields = fields.split()

        # Validate
        if fields is not None:
            if not isinstance(fields, (list, tuple)) or not all(isinstance(f, str) and f for f in fields):
                raise InvalidQueryError('{} must be a list of field names'.format(self.query_object_section_name))
            fields = list(dict.fromkeys(list(fields) + list(self.force_include)))  # unique, ordered

        self.fields = fields or None
        self.distinct = bool(distinct)
        return self

    def is_input_empty(self):
        return self.fields is None and not self.distinct

    @property
    def data_fields(self):
        """ Projected fields that live in the payload ('id' lives in the reference) """
        return [f for f in self.fields if f != 'id'] if self.fields else None

    def alter_results(self, snapshots):
        if self.fields:
            snapshots = [s.projected(self.data_fields) for s in snapshots]
        if self.distinct:
            snapshots = self._unique(snapshots)
        return snapshots

    def _unique(self, snapshots):
        with_id = bool(self.fields) and 'id' in self.fields
        seen = []
        result = []
        for s in snapshots:
            record = s.to_dict() if with_id else s.data
            if not any(values_equal(record, r) for r in seen):
                seen.append(record)
                result.append(s)
        return result

    def get_final_input_value(self):
        return dict(project=self.fields, distinct=self.distinct)

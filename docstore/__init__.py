"""
docstore is an embeddable document data layer that behaves like a hosted document database:
documents live in collections, are addressed by `(collection, id)`, and hold nested fields.

You query them with a fluent builder:

```python
from docstore import MemoryDocumentStore

store = MemoryDocumentStore({'products': {
    'a': {'price': 10}, 'b': {'price': 20}, 'c': {'price': 5},
}})
store.query('products').order_by('price', 'desc').limit(2).pluck('price')  # -> [20, 10]
```

and write them through batches and retrying transactions, with server-side field transforms:

```python
from docstore import increment, server_timestamp

store.update('products', 'a', {'views': increment(1), 'seen_at': server_timestamp()})
```

Queries that a hosted database could only serve with a compound index are detected,
so that you find out about missing indexes before you go to production.
"""

# Exceptions that are used here and there
from .exc import *

# Documents, and how their values are compared
from .document import ABSENT, DocumentReference, DocumentSnapshot, generate_id

# Field transforms, resolved at commit time
from .transforms import TransformEngine, \
    server_timestamp, increment, decrement, array_union, array_remove, delete_field

# The heart of the query engine are the handlers:
# that's where the Query Object is applied to the documents
from . import handlers
from .handlers import Basic, Membership, NullCheck, Nested, OrderSpec, Cursor

# DocumentQuery evaluates a Query Object; ConstraintBuilder makes one
from .query import DocumentQuery, evaluate
from .builder import ConstraintBuilder
from .indexes import IndexValidator

# Writes
from .mutations import *

# Stores
from .client import DocumentStoreClient, OperationEvent
from .store import MemoryDocumentStore
from .sa import SqlDocumentStore

# Helpers
# Reusable query objects (so that you don't have to initialize them over and over again)
from .util import Reusable
# Settings for stores
from .util import DocStoreSettingsDict

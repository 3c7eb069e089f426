"""
### SQL-backed store

`SqlDocumentStore` keeps documents in a single SQL table, using SqlAlchemy Core:

| collection | id  | data (JSON)           | update_time |
|------------|-----|-----------------------|-------------|
| users      | u1  | {"name": "John", ...} | ...         |

Every commit runs in one database transaction.
Queries load the collection and evaluate the Query Object in Python,
so they behave exactly like they do with `MemoryDocumentStore`.

Database errors are translated:

* `OperationalError` (locked database, lost connection) becomes a `TransientError`, which transactions retry
* `IntegrityError` becomes a `ConflictError`

Values that JSON has no type for are tagged: timestamps, dates, and bytes survive a round-trip.
"""

import base64
import datetime
import json
from contextlib import contextmanager
from typing import Iterable, List, Mapping

import sqlalchemy as sa
from sqlalchemy import tuple_ as sql_tuple
from sqlalchemy.exc import OperationalError, IntegrityError
from sqlalchemy.types import TypeDecorator

from .client import DocumentStoreClient
from .document import DocumentReference, DocumentSnapshot
from .exc import TransientError, ConflictError


# region JSON codec

def encode_value(value):
    """ Convert a document value into something JSON can store

        Tags are maps with a single '$'-key. User keys that start with '$' get one more '$'.
    """
    if isinstance(value, datetime.datetime):
        return {'$timestamp': value.isoformat()}
    if isinstance(value, datetime.date):
        return {'$date': value.isoformat()}
    if isinstance(value, (bytes, bytearray)):
        return {'$bytes': base64.b64encode(bytes(value)).decode('ascii')}
    if isinstance(value, Mapping):
        return {_escape_key(str(k)): encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def decode_value(value):
    """ Reverse encode_value() """
    if isinstance(value, dict):
        if len(value) == 1:
            (tag, tagged), = value.items()
            if tag == '$timestamp':
                return datetime.datetime.fromisoformat(tagged)
            if tag == '$date':
                return datetime.date.fromisoformat(tagged)
            if tag == '$bytes':
                return base64.b64decode(tagged)
        return {_unescape_key(k): decode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_value(v) for v in value]
    return value


def _escape_key(key: str) -> str:
    return '$' + key if key.startswith('$') else key


def _unescape_key(key: str) -> str:
    return key[1:] if key.startswith('$$') else key


class DocumentJSON(TypeDecorator):
    """ A document payload, stored as JSON text """
    impl = sa.Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return json.dumps(encode_value(value), ensure_ascii=False, sort_keys=True)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return decode_value(json.loads(value))

# endregion


def documents_table(metadata: sa.MetaData, name: str = 'documents') -> sa.Table:
    """ Define the documents table """
    return sa.Table(
        name, metadata,
        sa.Column('collection', sa.String(1500), primary_key=True),
        sa.Column('id', sa.String(1500), primary_key=True),
        sa.Column('data', DocumentJSON, nullable=False),
        sa.Column('update_time', sa.DateTime(timezone=True), nullable=True),
    )


class SqlDocumentStore(DocumentStoreClient):
    """ A document store on top of a SQL database

        Example:

            engine = sqlalchemy.create_engine('sqlite://')
            store = SqlDocumentStore(engine, strict_indexes=True)
            store.create('users', {'name': 'John'})
    """

    def __init__(self, engine, table_name: str = 'documents', create_tables: bool = True, **settings):
        """ Init the store

        :param engine: SqlAlchemy Engine, or a database URL
        :param table_name: The name of the documents table
        :param create_tables: Create the table if it does not exist
        :param settings: Client settings. See DocStoreSettingsDict.
        """
        super(SqlDocumentStore, self).__init__(**settings)
        self.engine = sa.create_engine(engine) if isinstance(engine, str) else engine
        self.metadata = sa.MetaData()
        self.table = documents_table(self.metadata, table_name)

        if create_tables:
            self.metadata.create_all(self.engine)

    @contextmanager
    def _begin(self):
        try:
            with self.engine.begin() as connection:
                yield connection
        except OperationalError as e:
            raise TransientError('Database is unavailable: {}'.format(e.orig)) from e
        except IntegrityError as e:
            raise ConflictError('Write conflict: {}'.format(e.orig)) from e

    @contextmanager
    def _connection(self, connection=None):
        """ Use the given connection, or open a new one for reading """
        if connection is not None:
            yield connection
            return
        try:
            with self.engine.connect() as connection:
                yield connection
        except OperationalError as e:
            raise TransientError('Database is unavailable: {}'.format(e.orig)) from e

    def _read_documents(self, refs: Iterable[DocumentReference], connection=None):
        refs = list(refs)
        if not refs:
            return {}

        t = self.table
        query = sa.select(t.c.collection, t.c.id, t.c.data, t.c.update_time).where(
            sql_tuple(t.c.collection, t.c.id).in_([(ref.collection, ref.id) for ref in refs])
        )
        with self._connection(connection) as connection:
            rows = connection.execute(query).fetchall()
        return {DocumentReference(row.collection, row.id): self._snapshot(row) for row in rows}

    def _list_documents(self, collection: str, connection=None) -> List[DocumentSnapshot]:
        t = self.table
        query = sa.select(t.c.collection, t.c.id, t.c.data, t.c.update_time)\
            .where(t.c.collection == collection)\
            .order_by(t.c.id)
        with self._connection(connection) as connection:
            rows = connection.execute(query).fetchall()
        return [self._snapshot(row) for row in rows]

    def _write_documents(self, changes: Mapping[DocumentReference, dict], timestamp, connection=None):
        t = self.table
        update_time = timestamp if isinstance(timestamp, datetime.datetime) else None
        for ref, data in changes.items():
            connection.execute(t.delete().where(sa.and_(t.c.collection == ref.collection, t.c.id == ref.id)))
            if data is not None:
                connection.execute(t.insert().values(
                    collection=ref.collection, id=ref.id, data=data, update_time=update_time))

    @staticmethod
    def _snapshot(row) -> DocumentSnapshot:
        return DocumentSnapshot(DocumentReference(row.collection, row.id), row.data, True, row.update_time)

    def collections(self) -> List[str]:
        """ Names of the collections that have documents """
        t = self.table
        with self._connection() as connection:
            return [row.collection for row in connection.execute(
                sa.select(t.c.collection).distinct().order_by(t.c.collection))]

    def drop_tables(self):
        self.metadata.drop_all(self.engine)

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__, self.engine.url)

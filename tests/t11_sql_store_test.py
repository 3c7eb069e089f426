import datetime
import unittest

import sqlalchemy as sa

from docstore import SqlDocumentStore, Operation
from docstore import transforms as t
from docstore.sa import encode_value, decode_value
from docstore.exc import ConflictError, NotFoundError, TransientError
from .util import FakeClock


UTC = datetime.timezone.utc


class SqlStoreTest(unittest.TestCase):
    """ Test SqlDocumentStore, on an in-memory SQLite """

    longMessage = True
    maxDiff = None

    def setUp(self):
        self.engine = sa.create_engine('sqlite://')
        self.clock = FakeClock()
        self.store = SqlDocumentStore(self.engine, clock=self.clock)

    def tearDown(self):
        self.store.drop_tables()
        self.engine.dispose()

    def test_codec(self):
        ts = datetime.datetime(2020, 5, 1, 10, 30, tzinfo=UTC)
        value = {'at': ts, 'day': datetime.date(2020, 5, 1), 'raw': b'\x00\xff',
                 'nested': {'list': [ts, 1, 'a', None, True]}}

        # === Test: tagged values
        encoded = encode_value(value)
        self.assertEqual(encoded['at'], {'$timestamp': '2020-05-01T10:30:00+00:00'})
        self.assertEqual(encoded['day'], {'$date': '2020-05-01'})
        self.assertEqual(encoded['raw'], {'$bytes': 'AP8='})

        # === Test: decoding reverses it
        self.assertEqual(decode_value(encoded), value)

        # === Test: user maps that look like tags
        for value in ({'$date': 'soon'}, {'$bytes': '!!'}, {'$timestamp': ts}, {'$$x': 1, 'y': {'$z': 2}}):
            self.assertEqual(decode_value(encode_value(value)), value)
        self.assertEqual(encode_value({'$date': 'soon'}), {'$$date': 'soon'})

        # === Test: ... survive the database
        self.store.create('docs', {'$date': 'soon'}, id='d1')
        self.assertEqual(self.store.get('docs', 'd1').data, {'$date': 'soon'})

    def test_crud(self):
        ts = datetime.datetime(2019, 1, 1, tzinfo=UTC)

        # === Test: create, get
        self.store.create('users', {'name': 'John', 'age': 30, 'born': ts, 'avatar': b'png'}, id='u1')
        self.store.create('users', {'name': 'Jane', 'age': 25}, id='u2')
        john = self.store.get('users', 'u1')
        self.assertTrue(john.exists)
        self.assertEqual(john.data, {'name': 'John', 'age': 30, 'born': ts, 'avatar': b'png'})
        self.assertIsNotNone(john.update_time)
        self.assertFalse(self.store.get('users', 'zzz').exists)

        with self.assertRaises(ConflictError):
            self.store.create('users', {'name': 'Again'}, id='u1')

        # === Test: update with transforms
        self.store.update('users', 'u1', {'age': t.increment(1), 'tags': t.array_union(['a']),
                                          'avatar': t.delete_field()})
        self.assertEqual(self.store.get('users', 'u1').data, {'name': 'John', 'age': 31, 'born': ts, 'tags': ['a']})
        with self.assertRaises(NotFoundError):
            self.store.update('users', 'zzz', {'age': 1})

        # === Test: get_all()
        self.assertEqual([s.exists for s in self.store.get_all(['users/u2', 'users/zzz', 'users/u1'])],
                         [True, False, True])

        # === Test: delete
        self.store.delete('users', 'u2')
        self.assertFalse(self.store.exists('users', 'u2'))

        # === Test: collections()
        self.store.create('posts', {'title': 'Hi'}, id='p1')
        self.assertEqual(self.store.collections(), ['posts', 'users'])

    def test_atomic(self):
        self.store.create('users', {'n': 1}, id='u1')

        # === Test: a failed commit writes nothing
        with self.assertRaises(ConflictError):
            self.store.commit([
                Operation.create('users', {'n': 2}, id='u2'),
                Operation.create('users', {'n': 3}, id='u1'),
            ])
        self.assertFalse(self.store.exists('users', 'u2'))
        self.assertEqual(self.store.get('users', 'u1').data, {'n': 1})

        # === Test: the batch goes through commit()
        batch = self.store.batch(chunk_size=2)
        batch.create_many('items', [{'id': str(i), 'n': i} for i in range(5)])
        self.assertTrue(batch.execute().success)
        self.assertEqual(self.store.query('items').count(), 5)

    def test_queries(self):
        for i, (name, price) in enumerate([('Apple', 10), ('Banana', 20), ('Carrot', 5)]):
            self.store.create('products', {'name': name, 'price': price}, id='p{}'.format(i))

        # === Test: queries are evaluated like everywhere else
        self.assertEqual(self.store.query('products').order_by('price', 'desc').limit(2).pluck('name'),
                         ['Banana', 'Apple'])
        self.assertEqual(self.store.query('products').where('name', 'like', 'an').pluck('id'), ['p1'])
        self.assertEqual(self.store.query('products').sum('price'), 35)

    def test_transactions(self):
        self.store.create('accounts', {'balance': 100}, id='a')

        # === Test: a transaction commits in one database transaction
        def withdraw(tx):
            balance = tx.snapshot('accounts/a')['balance']
            tx.update('accounts/a', {'balance': balance - 10, 'at': t.server_timestamp()})
            return balance - 10

        result = self.store.run_transaction(withdraw)
        self.assertTrue(result.success)
        self.assertEqual(result.data, 90)
        self.assertEqual(self.store.get('accounts', 'a')['balance'], 90)

    def test_unavailable(self):
        # === Test: database errors are transient
        store = SqlDocumentStore('sqlite:////nonexistent/directory/db.sqlite', create_tables=False,
                                 sleep=lambda seconds: None)
        with self.assertRaises(TransientError):
            store.get('users', 'u1')
        with self.assertRaises(TransientError):
            store.create('users', {'name': 'John'})

        # === Test: ... and transactions retry them
        result = store.run_transaction(lambda tx: tx.snapshot('users/u1'))
        self.assertFalse(result.success)
        self.assertEqual(result.attempts, 3)
        self.assertIsInstance(result.error, TransientError)

import datetime
import unittest

from docstore.document import ABSENT, get_path, set_path, delete_path, \
    type_rank, compare_values, values_equal, contains_value, value_sort_key, unmet_conditions, \
    generate_id, DocumentReference, DocumentSnapshot
from docstore.exc import ConfigurationError


UTC = datetime.timezone.utc


class DocumentTest(unittest.TestCase):
    """ Test documents, paths, and value ordering """

    longMessage = True
    maxDiff = None

    def test_paths(self):
        data = {'name': 'a', 'metadata': {'stats': {'views': 10}}}

        # === Test: get_path()
        self.assertEqual(get_path(data, 'name'), 'a')
        self.assertEqual(get_path(data, 'metadata.stats.views'), 10)
        self.assertEqual(get_path(data, 'metadata.stats'), {'views': 10})
        self.assertIs(get_path(data, 'metadata.stats.likes'), ABSENT)
        self.assertIs(get_path(data, 'name.first'), ABSENT)  # not a mapping
        self.assertIsNone(get_path(data, 'missing', None))

        with self.assertRaises(ConfigurationError):
            get_path(data, '')

        # === Test: ABSENT
        self.assertFalse(ABSENT)
        self.assertEqual(repr(ABSENT), 'ABSENT')

        # === Test: set_path()
        d = {}
        set_path(d, 'a.b.c', 1)
        self.assertEqual(d, {'a': {'b': {'c': 1}}})
        set_path(d, 'a.b', 2)
        self.assertEqual(d, {'a': {'b': 2}})
        set_path(d, 'a.b.c', 3)  # a non-mapping is replaced
        self.assertEqual(d, {'a': {'b': {'c': 3}}})

        # === Test: delete_path()
        self.assertTrue(delete_path(d, 'a.b.c'))
        self.assertEqual(d, {'a': {'b': {}}})
        self.assertFalse(delete_path(d, 'a.b.c'))
        self.assertFalse(delete_path(d, 'x.y'))

    def test_value_ordering(self):
        ts = datetime.datetime(2020, 1, 1, tzinfo=UTC)

        # === Test: type classes
        values = [{'a': 1}, [1], b'x', 'str', ts, 3.5, 1, True, None]
        self.assertEqual(sorted(values, key=value_sort_key),
                         [None, True, 1, 3.5, ts, 'str', b'x', [1], {'a': 1}])
        self.assertLess(type_rank(ABSENT), type_rank(None))

        # === Test: arrays
        self.assertEqual(compare_values([1, 2], [1, 3]), -1)
        self.assertEqual(compare_values([1, 2], [1]), 1)
        self.assertEqual(compare_values([], []), 0)

        # === Test: maps
        self.assertEqual(compare_values({'a': 1}, {'a': 2}), -1)
        self.assertEqual(compare_values({'a': 1}, {'b': 0}), -1)
        self.assertEqual(compare_values({'a': 1}, {'a': 1}), 0)

        # === Test: timestamps: naive ones are UTC; dates compare with datetimes
        self.assertEqual(compare_values(datetime.datetime(2020, 1, 1), ts), 0)
        self.assertEqual(compare_values(datetime.date(2020, 1, 2), datetime.datetime(2020, 1, 1, 12)), 1)

        # === Test: values_equal()
        self.assertFalse(values_equal(True, 1))
        self.assertFalse(values_equal(0, False))
        self.assertTrue(values_equal(1, 1.0))
        self.assertFalse(values_equal(ABSENT, None))
        self.assertTrue(values_equal([1, {'a': 2}], [1, {'a': 2}]))
        self.assertFalse(values_equal('1', 1))

        # === Test: contains_value()
        self.assertTrue(contains_value([1, 'a'], 'a'))
        self.assertFalse(contains_value([True], 1))
        self.assertFalse(contains_value([], None))

    def test_conditions(self):
        data = {'a': 1, 'b': {'c': 2}}
        self.assertEqual(unmet_conditions(data, {'a': 1, 'b.c': 2}), [])
        self.assertEqual(unmet_conditions(data, {'a': 1, 'b.c': 3}), [('b.c', 2, 3)])
        self.assertEqual(unmet_conditions(data, {'x': None}), [('x', ABSENT, None)])

    def test_reference(self):
        ref = DocumentReference('users', 'u1')

        # === Test: path, equality
        self.assertEqual(ref.path, 'users/u1')
        self.assertEqual(ref, DocumentReference('users', 'u1'))
        self.assertNotEqual(ref, DocumentReference('users', 'u2'))
        self.assertEqual(len({ref, DocumentReference('users', 'u1')}), 1)

        # === Test: validation
        with self.assertRaises(ConfigurationError):
            DocumentReference('', 'u1')
        with self.assertRaises(ConfigurationError):
            DocumentReference('users', None)

        # === Test: from_path()
        self.assertEqual(DocumentReference.from_path('users/u1'), ref)
        self.assertEqual(DocumentReference.from_path(('users', 'u1')), ref)
        self.assertIs(DocumentReference.from_path(ref), ref)
        with self.assertRaises(ConfigurationError):
            DocumentReference.from_path('users')
        with self.assertRaises(ConfigurationError):
            DocumentReference.from_path('users/u1/posts')

        # === Test: generate_id()
        id1, id2 = generate_id(), generate_id()
        self.assertEqual(len(id1), 20)
        self.assertTrue(id1.isalnum())
        self.assertNotEqual(id1, id2)

    def test_snapshot(self):
        ref = DocumentReference('users', 'u1')
        s = DocumentSnapshot(ref, {'name': 'John', 'meta': {'age': 30}})

        # === Test: accessors
        self.assertTrue(s.exists)
        self.assertEqual(s.id, 'u1')
        self.assertEqual(s.collection, 'users')
        self.assertEqual(s.get('meta.age'), 30)
        self.assertIsNone(s.get('meta.height'))
        self.assertEqual(s.get('meta.height', 0), 0)
        self.assertEqual(s['name'], 'John')
        with self.assertRaises(KeyError):
            s['surname']
        self.assertIn('meta.age', s)
        self.assertNotIn('meta.height', s)

        # === Test: to_dict()
        self.assertEqual(s.to_dict(), {'id': 'u1', 'name': 'John', 'meta': {'age': 30}})

        # === Test: projected()
        p = s.projected(['meta.age', 'missing'])
        self.assertEqual(p.data, {'meta': {'age': 30}})
        self.assertEqual(p.id, 'u1')
        p.data['meta']['age'] = 99
        self.assertEqual(s.get('meta.age'), 30)  # the original is intact

        # === Test: missing()
        m = DocumentSnapshot.missing(ref)
        self.assertFalse(m.exists)
        self.assertEqual(m.data, {})
        self.assertIn('exists=False', repr(m))
        self.assertNotEqual(m, s)

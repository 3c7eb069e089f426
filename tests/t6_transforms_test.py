import datetime
import unittest

from docstore import transforms as t
from docstore.transforms import TransformEngine
from docstore.document import ABSENT
from docstore.exc import ConfigurationError


NOW = datetime.datetime(2020, 1, 1, tzinfo=datetime.timezone.utc)


class TransformsTest(unittest.TestCase):
    """ Test field transforms """

    longMessage = True
    maxDiff = None

    def setUp(self):
        self.engine = TransformEngine()

    def test_resolve(self):
        resolve = lambda current, transform: self.engine.resolve(current, transform, NOW)

        # === Test: server timestamp
        self.assertEqual(resolve('whatever', t.server_timestamp()), NOW)

        # === Test: increment
        self.assertEqual(resolve(ABSENT, t.increment(5)), 5)
        self.assertEqual(resolve(10, t.increment(5)), 15)
        self.assertEqual(resolve(1.5, t.increment(1)), 2.5)
        self.assertEqual(resolve('text', t.increment(2)), 2)
        self.assertEqual(resolve(True, t.increment(2)), 2)  # not a number
        self.assertEqual(resolve(10, t.decrement(3)), 7)
        with self.assertRaises(ConfigurationError):
            t.increment('1')

        # === Test: array union
        self.assertEqual(resolve(['a', 'b'], t.array_union(['b', 'c'])), ['a', 'b', 'c'])
        self.assertEqual(resolve(ABSENT, t.array_union(['a', 'a'])), ['a'])
        self.assertEqual(resolve('scalar', t.array_union([1])), [1])
        self.assertEqual(resolve([1], t.array_union([True])), [1, True])

        # === Test: array union is idempotent
        once = resolve(['a'], t.array_union(['b', 'c']))
        twice = resolve(once, t.array_union(['b', 'c']))
        self.assertEqual(once, twice)

        # === Test: array remove: every occurrence
        self.assertEqual(resolve(['a', 'b', 'a', 'c'], t.array_remove(['a'])), ['b', 'c'])
        self.assertEqual(resolve([{'x': 1}, {'x': 2}], t.array_remove([{'x': 1}])), [{'x': 2}])
        self.assertEqual(resolve(ABSENT, t.array_remove(['a'])), [])

        # === Test: a second array remove is a no-op
        once = resolve(['a', 'b'], t.array_remove(['a']))
        self.assertEqual(resolve(once, t.array_remove(['a'])), once)

        # === Test: increments add up
        for base in (ABSENT, 0, 7, 2.5):
            self.assertEqual(resolve(resolve(base, t.increment(3)), t.increment(4)),
                             resolve(base, t.increment(7)))

        # === Test: delete
        self.assertIs(resolve(1, t.delete_field()), ABSENT)

        # === Test: equality
        self.assertEqual(t.increment(1), t.Increment(1))
        self.assertNotEqual(t.increment(1), t.increment(2))
        self.assertEqual(repr(t.array_union([1])), 'ArrayUnion([1])')

        # === Test: unknown transforms
        with self.assertRaises(ConfigurationError):
            resolve(1, t.Transform())

    def test_apply_set(self):
        current = {'a': 1, 'b': 2}

        # === Test: set replaces the document
        result = self.engine.apply(current, {'c': 3, 'at': t.server_timestamp(), 'gone': t.delete_field()},
                                   NOW, TransformEngine.MODE_SET)
        self.assertEqual(result, {'c': 3, 'at': NOW})

        # === Test: transforms in nested mappings are resolved against nothing
        result = self.engine.apply(None, {'stats': {'views': t.increment(1)}}, NOW)
        self.assertEqual(result, {'stats': {'views': 1}})

        # === Test: the input is never modified
        self.assertEqual(current, {'a': 1, 'b': 2})

    def test_apply_update(self):
        current = {'a': 1, 'meta': {'x': 1, 'y': 2}, 'tags': ['a'], 'views': 10}

        # === Test: update: dot-paths, transforms
        result = self.engine.apply(current, {
            'meta.x': 5,
            'views': t.increment(1),
            'tags': t.array_union(['b']),
            'a': t.delete_field(),
            'created': t.server_timestamp(),
            'updated': t.server_timestamp(),
        }, NOW, TransformEngine.MODE_UPDATE)
        self.assertEqual(result, {'meta': {'x': 5, 'y': 2}, 'tags': ['a', 'b'], 'views': 11,
                                  'created': NOW, 'updated': NOW})
        self.assertIs(result['created'], result['updated'])

        # === Test: update replaces nested mappings
        result = self.engine.apply(current, {'meta': {'z': 3}}, NOW, TransformEngine.MODE_UPDATE)
        self.assertEqual(result['meta'], {'z': 3})

        # === Test: merge merges them
        result = self.engine.apply(current, {'meta': {'z': 3, 'x': t.increment(1)}}, NOW, TransformEngine.MODE_MERGE)
        self.assertEqual(result['meta'], {'x': 2, 'y': 2, 'z': 3})

        # === Test: the input is never modified
        self.assertEqual(current, {'a': 1, 'meta': {'x': 1, 'y': 2}, 'tags': ['a'], 'views': 10})

        # === Test: unknown mode
        with self.assertRaises(ConfigurationError):
            self.engine.apply(current, {}, NOW, 'replace')

    def test_helpers(self):
        data = {'a': 1, 'b': t.increment(1)}
        self.assertTrue(t.has_transforms(data))
        self.assertFalse(t.has_transforms({'a': 1}))
        self.assertEqual(t.extract_transforms(data), {'b': t.increment(1)})
        self.assertEqual(t.remove_transforms(data), {'a': 1})

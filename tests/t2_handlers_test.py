import random
import unittest
from collections import OrderedDict
from copy import copy

from docstore.handlers import *
from docstore.handlers.sort import normalize_direction
from docstore.exc import InvalidQueryError
from .util import make_snapshots, ids


PEOPLE = {
    'a': {'name': 'Alice', 'age': 30, 'tags': ['x', 'y'], 'meta': {'score': 5}, 'active': True},
    'b': {'name': 'Bob', 'age': 20, 'tags': ['y'], 'meta': {'score': 7}, 'active': False},
    'c': {'name': 'Carol', 'age': None, 'tags': [], 'active': 1},
    'd': {'name': 'Dave', 'age': '40'},
}


class HandlersTest(unittest.TestCase):
    """ Test individual handlers """

    longMessage = True
    maxDiff = None

    def test_base(self):
        handler = QueryFilter('people')

        # === Test: copies taken before input() take their own input
        older = copy(handler).input([('age', '>', 25)])
        younger = copy(handler).input(None)
        self.assertEqual(ids(older.alter_results(make_snapshots(PEOPLE))), ['a'])
        self.assertEqual(ids(younger.alter_results(make_snapshots(PEOPLE))), ['a', 'b', 'c', 'd'])
        self.assertEqual(older.input_value, [('age', '>', 25)])
        self.assertEqual(older.get_final_input_value(), [Basic('age', '>', 25)])

        # === Test: ... and leave the original untouched
        self.assertIsNone(handler.input_value)
        self.assertTrue(handler.is_input_empty())
        handler.input(None)
        with self.assertRaises(RuntimeError):
            handler.input(None)

    def test_filter(self):
        def run(criteria, **settings):
            handler = QueryFilter('people', **settings).input(criteria)
            return ids(handler.alter_results(make_snapshots(PEOPLE)))

        # === Test: input() can be called only once
        with self.assertRaises(RuntimeError):
            QueryFilter('people').input(None).input(None)

        # === Test: No input
        self.assertEqual(run(None), ['a', 'b', 'c', 'd'])
        self.assertEqual(run([]), ['a', 'b', 'c', 'd'])

        # === Test: comparison only within a type class
        self.assertEqual(run([('age', '>=', 20)]), ['a', 'b'])  # None and '40' are not numbers
        self.assertEqual(run([('age', '>', 25)]), ['a'])
        self.assertEqual(run([('age', '<', '5')]), ['d'])

        # === Test: equality does not confuse bools and numbers
        self.assertEqual(run([('active', True)]), ['a'])
        self.assertEqual(run([('active', '==', 1)]), ['c'])

        # === Test: a missing field matches only `!=`
        self.assertEqual(run([('active', '!=', True)]), ['b', 'c', 'd'])
        self.assertEqual(run([('meta.score', '<', 6)]), ['a'])
        self.assertEqual(run([('meta.score', '!=', 5)]), ['b', 'c', 'd'])

        # === Test: array operators
        self.assertEqual(run([('tags', 'array-contains', 'y')]), ['a', 'b'])
        self.assertEqual(run([('tags', 'array-contains-any', ['x', 'z'])]), ['a'])
        self.assertEqual(run([('name', 'array-contains', 'A')]), [])  # not an array

        # === Test: membership
        self.assertEqual(run([('name', 'in', ['Alice', 'Dave'])]), ['a', 'd'])
        self.assertEqual(run([('name', 'not-in', ['Alice'])]), ['b', 'c', 'd'])
        self.assertEqual(run([('meta.score', 'not in', [5])]), ['b'])  # missing fields never match

        # === Test: like
        self.assertEqual(run([('name', 'like', '%AR%')]), ['c'])
        self.assertEqual(run([('name', 'like', 'a')]), ['a', 'c', 'd'])
        self.assertEqual(run([('age', 'like', '4')]), ['d'])

        # === Test: boolean: left fold
        self.assertEqual(run([('age', 30), ('age', '=', 20, 'or')]), ['a', 'b'])
        self.assertEqual(run([('name', 'Alice'), ('name', '=', 'Bob', 'or'), ('age', '>', 25)]), ['a'])
        self.assertEqual(run([('age', '>', 25), ('name', '=', 'Bob', 'or')]), ['a', 'b'])

        # === Test: dict syntax
        self.assertEqual(run({'age': {'>=': 20}, 'active': True}), ['a'])
        self.assertEqual(run({'$or': [{'name': 'Alice'}, {'name': 'Bob'}]}), ['a', 'b'])
        self.assertEqual(run({'active': True, '$or': [{'name': 'Alice'}, {'name': 'Bob'}]}), ['a'])
        self.assertEqual(run([{'name': 'Alice'}, ('age', 30)]), ['a'])  # mixed

        # === Test: force_filter: the user's `or` can't escape it
        self.assertEqual(run([('name', 'Bob'), ('name', '=', 'Alice', 'or')],
                             force_filter=[('active', True)]),
                         ['a'])
        self.assertEqual(run(None, force_filter={'active': False}), ['b'])

        # === Test: constraint objects
        self.assertEqual(run([Nested([Basic('age', '=', 30), Basic('age', '=', 20, 'or')])]), ['a', 'b'])
        self.assertEqual(run(NullCheck('age')), ['c'])
        self.assertEqual(run([NullCheck('meta', negate=True)]), ['a', 'b'])
        self.assertEqual(run([Membership('age', [20, 30])]), ['a', 'b'])

        # === Test: final value
        f = QueryFilter('people').input([('age', '>', 1)])
        self.assertEqual(f.get_final_input_value(), [Basic('age', '>', 1)])

        # === Test: errors
        with self.assertRaises(InvalidQueryError):
            run([('age', 'between', 1)])
        with self.assertRaises(InvalidQueryError):
            run([('age', 'in', 5)])
        with self.assertRaises(InvalidQueryError):
            run('age > 5')
        with self.assertRaises(InvalidQueryError):
            run([('age',)])
        with self.assertRaises(InvalidQueryError):
            run([('age', '=', 1, 'xor')])
        with self.assertRaises(InvalidQueryError):
            run({'$or': {'a': 1}})
        with self.assertRaises(InvalidQueryError):
            run({'age': {}})

    def test_constraints(self):
        # === Test: operators are normalized
        self.assertEqual(normalize_operator('=='), '=')
        self.assertEqual(normalize_operator('<>'), '!=')
        self.assertEqual(normalize_operator('NOT IN'), 'not-in')
        self.assertEqual(normalize_operator(' Array_Contains '), 'array-contains')
        self.assertEqual(Basic('a', '==', 1), Basic('a', '=', 1))
        self.assertNotEqual(Basic('a', '=', 1), Basic('a', '=', 1, 'or'))

        # === Test: leaves()
        n = Nested([Basic('a', '=', 1), Nested([Basic('b', '=', 2), NullCheck('c')])])
        self.assertEqual([c.field for c in n.leaves()], ['a', 'b', 'c'])

        # === Test: with_boolean()
        self.assertEqual(Membership('a', [1]).with_boolean('OR').boolean, 'or')

        # === Test: combine(): empty list matches everything
        self.assertTrue(Constraint.combine([], {}))

        # === Test: Nested only accepts constraints
        with self.assertRaises(InvalidQueryError):
            Nested([('a', 1)])

    def test_sort(self):
        # === Test: parse_sort_spec()
        self.assertEqual(parse_sort_spec('a b- c+'),
                         OrderedDict([('a', 'asc'), ('b', 'desc'), ('c', 'asc')]))
        self.assertEqual(parse_sort_spec(['a-', ('b', 'DESC'), OrderSpec('c', -1)]),
                         OrderedDict([('a', 'desc'), ('b', 'desc'), ('c', 'desc')]))
        self.assertEqual(parse_sort_spec({'a': 'desc'}), OrderedDict([('a', 'desc')]))
        self.assertEqual(parse_sort_spec(None), OrderedDict())

        with self.assertRaises(InvalidQueryError):
            parse_sort_spec({'a': 'asc', 'b': 'desc'})  # unstable ordering
        with self.assertRaises(InvalidQueryError):
            parse_sort_spec([''])
        with self.assertRaises(InvalidQueryError):
            OrderSpec('a', 'sideways')
        with self.assertRaises(InvalidQueryError):
            normalize_direction(True)

        # === Test: sort
        def run(spec, documents=PEOPLE):
            return ids(QuerySort('people').input(spec).alter_results(make_snapshots(documents)))

        self.assertEqual(run(['age']), ['c', 'b', 'a', 'd'])  # null < numbers < strings
        self.assertEqual(run(['age-']), ['d', 'a', 'b', 'c'])
        self.assertEqual(run(['age'], {**PEOPLE, 'e': {}}), ['e', 'c', 'b', 'a', 'd'])  # absent first
        self.assertEqual(run(None, {'z': {}, 'x': {}, 'y': {}}), ['x', 'y', 'z'])  # by id

        # === Test: ties are broken by id, ascending
        tied = {'y': {'k': 1}, 'x': {'k': 1}, 'w': {'k': 0}}
        self.assertEqual(run('k', tied), ['w', 'x', 'y'])
        self.assertEqual(run('k-', tied), ['x', 'y', 'w'])

        # === Test: secondary keys
        docs = {'a': {'g': 1, 'n': 2}, 'b': {'g': 1, 'n': 1}, 'c': {'g': 0, 'n': 3}}
        self.assertEqual(run(['g-', 'n'], docs), ['b', 'a', 'c'])
        self.assertEqual(ids(sort_snapshots(make_snapshots(docs), [OrderSpec('g', 'desc'), OrderSpec('n')])),
                         ['b', 'a', 'c'])

        # === Test: final value
        s = QuerySort('people').input([('age', 'desc'), 'name'])
        self.assertEqual(s.get_final_input_value(), ['age-', 'name'])
        self.assertEqual(s.orders, [OrderSpec('age', 'desc'), OrderSpec('name', 'asc')])

    def test_random(self):
        snapshots = make_snapshots({str(i): {} for i in range(20)})

        # === Test: shuffled
        r = QueryRandomOrder('c', random_generator=random.Random(42)).input(True)
        shuffled = r.alter_results(snapshots)
        self.assertEqual(sorted(ids(shuffled)), sorted(ids(snapshots)))
        self.assertNotEqual(ids(shuffled), ids(snapshots))

        # === Test: repeatable with a seed
        again = QueryRandomOrder('c', random_generator=random.Random(42)).input(True).alter_results(snapshots)
        self.assertEqual(ids(again), ids(shuffled))

        # === Test: not shuffled
        self.assertEqual(QueryRandomOrder('c').input(None).alter_results(snapshots), snapshots)

        with self.assertRaises(InvalidQueryError):
            QueryRandomOrder('c').input('yes')

    def test_cursor(self):
        snapshots = make_snapshots({k: {} for k in 'abcde'})
        run = lambda start=None, end=None: ids(apply_cursors(snapshots, start, end))

        # === Test: apply_cursors()
        self.assertEqual(run(Cursor('start_after', 'b')), ['c', 'd', 'e'])
        self.assertEqual(run(Cursor('start_at', 'b')), ['b', 'c', 'd', 'e'])
        self.assertEqual(run(None, Cursor('end_at', 'd')), ['a', 'b', 'c', 'd'])
        self.assertEqual(run(None, Cursor('end_before', 'd')), ['a', 'b', 'c'])
        self.assertEqual(run(Cursor('start_after', 'a'), Cursor('end_before', 'e')), ['b', 'c', 'd'])
        self.assertEqual(run(Cursor('start_after', 'zzz')), ['a', 'b', 'c', 'd', 'e'])  # unknown: ignored
        self.assertEqual(run(Cursor('start_after', 'd'), Cursor('end_before', 'b')), [])

        # === Test: Cursor
        self.assertEqual(Cursor('startAfter', 'x').mode, 'start_after')
        self.assertEqual(Cursor('start_before', 'x').mode, 'start_at')
        self.assertEqual(Cursor('end_at', snapshots[0]).id, 'a')
        self.assertTrue(Cursor('start_at', 'x').is_start)
        self.assertFalse(Cursor('end_at', 'x').is_start)
        with self.assertRaises(InvalidQueryError):
            Cursor('sideways', 'x')
        with self.assertRaises(InvalidQueryError):
            Cursor('start_after', '')

        # === Test: QueryCursor
        def handle(value):
            return ids(QueryCursor('c').input(value).alter_results(snapshots))

        self.assertEqual(handle(None), ['a', 'b', 'c', 'd', 'e'])
        self.assertEqual(handle({'start_after': 'a', 'end_before': 'd'}), ['b', 'c'])
        self.assertEqual(handle(('start_at', 'c')), ['c', 'd', 'e'])
        self.assertEqual(handle([('start_at', 'a'), ('start_after', 'c')]), ['d', 'e'])  # the later one wins

        c = QueryCursor('c').input([Cursor('end_at', 'b'), Cursor('start_at', 'a')])
        self.assertEqual(c.get_final_input_value(), [Cursor('start_at', 'a'), Cursor('end_at', 'b')])

        with self.assertRaises(InvalidQueryError):
            QueryCursor('c').input('a')

    def test_limit(self):
        snapshots = make_snapshots({k: {} for k in 'abcde'})

        def run(skip=None, limit=None, **settings):
            return ids(QueryLimit('c', **settings).input(skip, limit).alter_results(snapshots))

        # === Test: skip & limit
        self.assertEqual(run(1, 2), ['b', 'c'])
        self.assertEqual(run(None, 2), ['a', 'b'])
        self.assertEqual(run(3), ['d', 'e'])
        self.assertEqual(run(10), [])

        # === Test: zero and negative values are ignored
        self.assertEqual(run(-1, 0), ['a', 'b', 'c', 'd', 'e'])
        self.assertFalse(QueryLimit('c').input(0, 0).has_limit)

        # === Test: max_items
        self.assertEqual(run(max_items=2), ['a', 'b'])
        self.assertEqual(run(None, 10, max_items=2), ['a', 'b'])
        self.assertEqual(run(None, 1, max_items=2), ['a'])

        # === Test: packed input
        self.assertEqual(QueryLimit('c').input((1, 2)).get_final_input_value(), dict(skip=1, limit=2))
        self.assertEqual(QueryLimit('c').input_prepare_query_object({'skip': 1, 'limit': 2}), {'limit': (1, 2)})
        self.assertEqual(QueryLimit('c').input_prepare_query_object({'skip': None}), {})

        # === Test: errors
        with self.assertRaises(InvalidQueryError):
            QueryLimit('c').input('1')
        with self.assertRaises(InvalidQueryError):
            QueryLimit('c').input(None, True)

    def test_project(self):
        docs = {
            'a': {'name': 'A', 'meta': {'x': 1, 'y': 2}},
            'b': {'name': 'A', 'meta': {'x': 1, 'y': 3}},
            'c': {'name': 'B'},
        }

        def run(fields=None, distinct=False, **settings):
            return QueryProject('c', **settings).input(fields, distinct).alter_results(make_snapshots(docs))

        # === Test: projection
        self.assertEqual([s.data for s in run(['name'])], [{'name': 'A'}, {'name': 'A'}, {'name': 'B'}])
        self.assertEqual([s.data for s in run(['meta.x'])], [{'meta': {'x': 1}}, {'meta': {'x': 1}}, {}])
        self.assertEqual([s.data for s in run('name meta.y')][1], {'name': 'A', 'meta': {'y': 3}})
        self.assertEqual([s.data for s in run(None)], list(docs.values()))

        # === Test: distinct: the first occurrence wins
        self.assertEqual(ids(run(['name', 'meta.x'], True)), ['a', 'c'])
        self.assertEqual(ids(run(['name'], True)), ['a', 'c'])
        self.assertEqual(ids(run(['name', 'id'], True)), ['a', 'b', 'c'])  # ids differ
        self.assertEqual(ids(run(None, True)), ['a', 'b', 'c'])  # payloads differ

        # === Test: force_include
        p = QueryProject('c', force_include=['name']).input(['meta.x'])
        self.assertEqual(p.fields, ['meta.x', 'name'])

        # === Test: packed input
        self.assertEqual(QueryProject('c').input_prepare_query_object({'distinct': True}),
                         {'project': (None, True)})
        self.assertEqual(QueryProject('c').input((['a'], True)).get_final_input_value(),
                         dict(project=['a'], distinct=True))

        # === Test: errors
        with self.assertRaises(InvalidQueryError):
            QueryProject('c').input([1])

"""
### Field Transforms

A field transform is a write-time directive that is resolved against the value currently
stored in the field, instead of overwriting it with a literal:

```python
from docstore import transforms as t

store.update('posts', 'hello', {
    'views': t.increment(1),          # views = (views or 0) + 1
    'tags': t.array_union(['news']),  # append 'news' unless it's there already
    'draft': t.delete_field(),        # remove the field
    'updated_at': t.server_timestamp(),  # the commit timestamp
})
```

Supported transforms:

* `ServerTimestamp`: the commit timestamp. It is read once per commit, so every field
    that uses it within one commit gets exactly the same value.
* `Increment(delta)`: `(current or 0) + delta`. A non-numeric current value counts as `0`.
* `ArrayUnion(elements)`: append every element that is not already present; order is preserved.
* `ArrayRemove(elements)`: remove every occurrence of every element; order is preserved.
* `DeleteField`: the field is removed from the document.

Transforms are found among the top-level fields of the incoming data.
With `update` and `set(merge=True)`, field names may be dot-paths that address nested fields.
"""

from copy import deepcopy
from typing import Mapping

from .document import ABSENT, get_path, set_path, delete_path, contains_value, values_equal
from .exc import ConfigurationError


# region Transform Classes

class Transform:
    """ Base class for field transforms """

    __slots__ = ()

    #: Name of the transform, for repr() and for export
    name = None

    def _args(self):
        return ()

    def __eq__(self, other):
        return type(self) is type(other) and self._args() == other._args()

    def __hash__(self):
        return hash((type(self), repr(self._args())))

    def __repr__(self):
        return '{}({})'.format(self.__class__.__name__, ', '.join(map(repr, self._args())))


class ServerTimestamp(Transform):
    """ Set the field to the commit timestamp """
    __slots__ = ()
    name = 'serverTimestamp'


class Increment(Transform):
    """ Add a number to the current value """
    __slots__ = ('delta',)
    name = 'increment'

    def __init__(self, delta=1):
        if isinstance(delta, bool) or not isinstance(delta, (int, float)):
            raise ConfigurationError('Increment() requires a number, {!r} given'.format(delta))
        self.delta = delta

    def _args(self):
        return (self.delta,)


class ArrayUnion(Transform):
    """ Add elements to an array, unless present """
    __slots__ = ('elements',)
    name = 'arrayUnion'

    def __init__(self, elements):
        self.elements = list(elements)

    def _args(self):
        return (self.elements,)


class ArrayRemove(Transform):
    """ Remove all occurrences of the elements from an array """
    __slots__ = ('elements',)
    name = 'arrayRemove'

    def __init__(self, elements):
        self.elements = list(elements)

    def _args(self):
        return (self.elements,)


class DeleteField(Transform):
    """ Remove the field from the document """
    __slots__ = ()
    name = 'delete'

# endregion


# region Shortcuts

def server_timestamp() -> ServerTimestamp:
    return ServerTimestamp()


def increment(delta=1) -> Increment:
    return Increment(delta)


def decrement(delta=1) -> Increment:
    return Increment(-delta)


def array_union(elements) -> ArrayUnion:
    return ArrayUnion(elements)


def array_remove(elements) -> ArrayRemove:
    return ArrayRemove(elements)


def delete_field() -> DeleteField:
    return DeleteField()


def has_transforms(data: Mapping) -> bool:
    """ Does the payload have any transforms among its top-level fields? """
    return any(isinstance(v, Transform) for v in data.values())


def extract_transforms(data: Mapping) -> dict:
    """ Get only the transforms from a payload """
    return {k: v for k, v in data.items() if isinstance(v, Transform)}


def remove_transforms(data: Mapping) -> dict:
    """ Get only the plain values from a payload """
    return {k: v for k, v in data.items() if not isinstance(v, Transform)}

# endregion


class TransformEngine:
    """ Resolves field transforms against the currently stored values

        The engine itself is stateless; the commit timestamp is given to it by the caller,
        which reads the clock once per commit.
    """

    #: `set`: the document is replaced
    MODE_SET = 'set'
    #: `update`: fields are replaced, one by one
    MODE_UPDATE = 'update'
    #: `set(merge=True)`: like update, but nested mappings are merged recursively
    MODE_MERGE = 'merge'

    def resolve(self, current, transform: Transform, commit_timestamp):
        """ Resolve a single transform

        :param current: The current value of the field, or ABSENT
        :param transform: The transform to apply
        :param commit_timestamp: The timestamp of the current commit
        :return: The new value, or ABSENT when the field is to be deleted
        :raises ConfigurationError: unknown transform
        """
        if isinstance(transform, ServerTimestamp):
            return commit_timestamp
        elif isinstance(transform, Increment):
            base = current if _is_number(current) else 0
            return base + transform.delta
        elif isinstance(transform, ArrayUnion):
            result = list(current) if isinstance(current, (list, tuple)) else []
            for element in transform.elements:
                if not contains_value(result, element):
                    result.append(deepcopy(element))
            return result
        elif isinstance(transform, ArrayRemove):
            if not isinstance(current, (list, tuple)):
                return []
            return [v for v in current
                    if not any(values_equal(v, e) for e in transform.elements)]
        elif isinstance(transform, DeleteField):
            return ABSENT
        else:
            raise ConfigurationError('Unknown field transform: {!r}'.format(transform))

    def apply(self, current: dict, data: Mapping, commit_timestamp, mode: str = MODE_SET) -> dict:
        """ Compute the new document payload

        :param current: The current payload (ignored with MODE_SET), or None for a missing document
        :param data: The incoming payload, possibly with transforms
        :param commit_timestamp: The timestamp of the current commit
        :param mode: One of MODE_SET, MODE_UPDATE, MODE_MERGE
        :return: A new payload. `current` is never modified.
        """
        if mode == self.MODE_SET:
            return self._resolve_fresh(data, commit_timestamp)
        elif mode in (self.MODE_UPDATE, self.MODE_MERGE):
            result = deepcopy(current) if current else {}
            for path, value in data.items():
                self._merge_into(result, path, value, commit_timestamp, deep=(mode == self.MODE_MERGE))
            return result
        else:
            raise ConfigurationError('Unknown write mode: {!r}'.format(mode))

    def _merge_into(self, target: dict, path: str, value, commit_timestamp, deep: bool):
        # Transform: resolve against what's there
        if isinstance(value, Transform):
            new_value = self.resolve(get_path(target, path), value, commit_timestamp)
            if new_value is ABSENT:
                delete_path(target, path)
            else:
                set_path(target, path, new_value)
        # Deep merge: go into mappings that exist on both sides
        elif deep and isinstance(value, Mapping) and isinstance(get_path(target, path), dict):
            for key, nested_value in value.items():
                self._merge_into(target, '{}.{}'.format(path, key), nested_value, commit_timestamp, deep)
        # Plain value
        else:
            set_path(target, path, self._resolve_fresh(value, commit_timestamp))

    def _resolve_fresh(self, value, commit_timestamp):
        """ Copy a value, resolving transforms against nothing """
        if isinstance(value, Mapping):
            result = {}
            for k, v in value.items():
                if isinstance(v, Transform):
                    v = self.resolve(ABSENT, v, commit_timestamp)
                    if v is ABSENT:
                        continue
                else:
                    v = self._resolve_fresh(v, commit_timestamp)
                result[k] = v
            return result
        elif isinstance(value, Transform):
            return self.resolve(ABSENT, value, commit_timestamp)
        else:
            return deepcopy(value)


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)

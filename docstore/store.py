from contextlib import contextmanager
from copy import deepcopy
from typing import Iterable, List, Mapping

from .client import DocumentStoreClient
from .document import DocumentReference, DocumentSnapshot


class MemoryDocumentStore(DocumentStoreClient):
    """ A document store that keeps everything in memory

        Every instance is a separate database.
        It's not synchronized: use one writer at a time.

        Example:

            store = MemoryDocumentStore({'users': {'u1': {'name': 'John', 'age': 30}}})
            store.query('users').where('age', '>', 18).get()
    """

    def __init__(self, documents: Mapping[str, Mapping[str, dict]] = None, **settings):
        """ Init the store

        :param documents: Initial documents: { collection: { id: payload } }
        :param settings: Client settings. See DocStoreSettingsDict.
        """
        super(MemoryDocumentStore, self).__init__(**settings)

        #: { collection: { id: (payload, update_time) } }
        self._collections = {}

        for collection, docs in (documents or {}).items():
            for id, data in docs.items():
                ref = DocumentReference(collection, id)
                self._collections.setdefault(ref.collection, {})[ref.id] = (deepcopy(dict(data)), None)

    @contextmanager
    def _begin(self):
        # Changes are computed first, then written at once
        yield None

    def _read_documents(self, refs: Iterable[DocumentReference], connection=None):
        found = {}
        for ref in refs:
            stored = self._collections.get(ref.collection, {}).get(ref.id)
            if stored is not None:
                found[ref] = self._snapshot(ref, stored)
        return found

    def _list_documents(self, collection: str, connection=None) -> List[DocumentSnapshot]:
        return [self._snapshot(DocumentReference(collection, id), stored)
                for id, stored in self._collections.get(collection, {}).items()]

    def _write_documents(self, changes: Mapping[DocumentReference, dict], timestamp, connection=None):
        for ref, data in changes.items():
            documents = self._collections.setdefault(ref.collection, {})
            if data is None:
                documents.pop(ref.id, None)
            else:
                documents[ref.id] = (deepcopy(data), timestamp)

    @staticmethod
    def _snapshot(ref: DocumentReference, stored) -> DocumentSnapshot:
        data, update_time = stored
        return DocumentSnapshot(ref, deepcopy(data), True, update_time)

    # region Inspection

    def collections(self) -> List[str]:
        """ Names of the collections that have documents """
        return sorted(name for name, documents in self._collections.items() if documents)

    def dump(self, collection: str = None) -> dict:
        """ Export the contents: { collection: { id: payload } }, or { id: payload } for one collection """
        if collection is not None:
            return {id: deepcopy(data) for id, (data, _) in self._collections.get(collection, {}).items()}
        return {name: self.dump(name) for name in self.collections()}

    def reset(self):
        """ Remove everything """
        self._collections.clear()

    # endregion

    def __repr__(self):
        return '{}(collections={})'.format(self.__class__.__name__, self.collections())

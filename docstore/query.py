from copy import copy
from typing import Iterable, Mapping

from . import handlers
from .document import DocumentReference, DocumentSnapshot
from .exc import InvalidQueryError
from .handlers.cursor import Cursor
from .util import SettingsHandler


class DocumentQuery(object):
    """ Evaluates a Query Object against a list of documents

        Usage:

            q = DocumentQuery('users').query(filter=[('age', '>=', 18)], sort=['age-'], limit=10)
            results = q.end(snapshots)

        Every Query Object section is handled by its own handler; the handlers are applied in order:
        index check, filter, sort, cursor, skip & limit, project & distinct, random.

        Evaluation never fails because nothing matched: you just get an empty list.
    """

    def __init__(self, collection: str, handler_settings=None, index_validator=None):
        """ Init a query

        :param collection: Name of the collection to query
        :param handler_settings: Handler settings: see DocStoreSettingsDict.
            These are just plain kwargs names for every handler object's __init__ method:

                # filter
                    force_filter=None
                # limit
                    max_items=None
                # project
                    force_include=None
                # random
                    random_generator=None

        :type handler_settings: dict | DocStoreSettingsDict | None
        :param index_validator: Compound index rules to check the query against
        :type index_validator: docstore.indexes.IndexValidator | None
        """
        self._collection = collection
        self._index_validator = index_validator

        # Initialize the settings
        self._handler_settings = SettingsHandler(handler_settings or {})

        # Handlers, one per Query Object section
        self._init_query_object_handlers()

        # Every new attribute has to be handled in __copy__()

    def __copy__(self):
        """ DocumentQuery can be reused: wrap it with Reusable() which performs the automatic copy() """
        cls = self.__class__
        result = cls.__new__(cls)
        result.__dict__.update(self.__dict__)

        # Fresh handlers for the copy
        for name in self.HANDLER_ATTR_NAMES:
            setattr(result, name, copy(getattr(result, name)))

        return result

    @property
    def collection(self) -> str:
        return self._collection

    def query(self, **query_object):
        """ Load a Query Object

        :param filter: Constraints: Constraint objects, or tuples (field, operator, value)
        :param sort: Sorting spec
        :param cursor: Cursors
        :param skip: Skip documents
        :param limit: Limit documents
        :param project: Projection spec
        :param distinct: Remove duplicates
        :param random: Shuffle the page
        :raises InvalidQueryError: unknown Query Object sections
        :raises InvalidQueryError: a section could not be parsed
        :rtype: DocumentQuery
        """
        # Prepare Query Object
        for handler_name, handler in self._handlers():
            query_object = handler.input_prepare_query_object(query_object)

        # Unknown sections
        invalid_keys = set(query_object.keys()) - self.HANDLER_NAMES
        if invalid_keys:
            raise InvalidQueryError('Unknown Query Object operations: {}'.format(', '.join(sorted(invalid_keys))))

        # Process every field with its handler
        # Every handler gets input, even when its section is missing: settings like max_items still apply
        for handler_name, handler in self._handlers():
            handler.input(query_object.get(handler_name, None))

        # Done
        return self

    def end(self, snapshots: Iterable[DocumentSnapshot]):
        """ Evaluate the query against the documents

        Missing documents (exists=False) are never included.

        :param snapshots: The documents of the collection
        :rtype: list[DocumentSnapshot]
        :raises IndexRequiredError: the query needs a compound index, and strict index checking is on
        """
        # Compound index rules
        if self._index_validator is not None:
            self._index_validator.validate(self._collection, self.constraints, self.orders)

        # Apply every handler
        results = [s for s in snapshots if s.exists]
        for handler_name, handler in self._handlers():
            results = handler.alter_results(results)
        return results

    @property
    def constraints(self):
        """ The filter constraints, the forced ones included """
        return self.handler_filter.all_constraints()

    @property
    def orders(self):
        """ The sort spec, as a list of OrderSpec """
        return self.handler_sort.orders

    def get_final_query_object(self) -> dict:
        """ Export the Query Object, as the handlers have understood it """
        qo = {}
        qo['filter'] = self.handler_filter.get_final_input_value()
        qo['sort'] = self.handler_sort.get_final_input_value()
        qo['cursor'] = self.handler_cursor.get_final_input_value()
        qo.update(self.handler_limit.get_final_input_value())
        qo.update(self.handler_project.get_final_input_value())
        qo['random'] = self.handler_random.get_final_input_value()
        return qo

    def __repr__(self):
        return 'DocumentQuery({!r})'.format(self._collection)

    # region Query Object handlers

    # This section initializes every Query Object handler, one per section.
    # Override these to use custom handler classes.

    _QO_HANDLER_FILTER = handlers.QueryFilter
    _QO_HANDLER_SORT = handlers.QuerySort
    _QO_HANDLER_CURSOR = handlers.QueryCursor
    _QO_HANDLER_LIMIT = handlers.QueryLimit
    _QO_HANDLER_PROJECT = handlers.QueryProject
    _QO_HANDLER_RANDOM = handlers.QueryRandomOrder

    HANDLER_NAMES = frozenset(('filter',
                               'sort',
                               'cursor',
                               'limit',
                               'project',
                               'random'))
    HANDLER_ATTR_NAMES = frozenset('handler_' + name
                                   for name in HANDLER_NAMES)

    def _handlers(self):
        """ Pairs of (section name, handler), in the order of evaluation """
        return (
            # The ordering of these handlers is the order of evaluation:
            # 1. 'sort' before 'cursor': cursors are located in the ordered sequence
            # 2. 'cursor' before 'limit': `skip` counts from the cursor
            # 3. 'project' after 'limit': distinct works on the page
            # 4. 'random' last: the page is shuffled
            ('filter', self.handler_filter),
            ('sort', self.handler_sort),
            ('cursor', self.handler_cursor),
            ('limit', self.handler_limit),
            ('project', self.handler_project),
            ('random', self.handler_random),
        )

    # for IDE completion
    handler_filter = None  # type: handlers.QueryFilter
    handler_sort = None  # type: handlers.QuerySort
    handler_cursor = None  # type: handlers.QueryCursor
    handler_limit = None  # type: handlers.QueryLimit
    handler_project = None  # type: handlers.QueryProject
    handler_random = None  # type: handlers.QueryRandomOrder

    @classmethod
    def handler_classes(cls):
        """ Get (handler_name, handler_cls) for every handler """
        return [(name, getattr(cls, '_QO_HANDLER_' + name.upper()))
                for name in sorted(cls.HANDLER_NAMES)]

    def _init_query_object_handlers(self):
        """ Create the handlers, with their settings """
        for name, handler_cls in self.handler_classes():
            setattr(self, 'handler_' + name,
                    self._init_handler(name, handler_cls))

        # Check settings
        self._handler_settings.raise_if_invalid_settings(self)

    def _init_handler(self, handler_name, handler_cls):
        """ Create one handler """
        handler_settings = self._handler_settings.get_settings(handler_name, handler_cls)
        return handler_cls(self._collection, **handler_settings)

    # endregion


def evaluate(documents, constraints=None, orders=None, cursor=None, limit=None, offset=None, distinct=False,
             index_validator=None, collection='documents'):
    """ Evaluate constraints against a set of documents

    A functional shortcut for DocumentQuery.

    :param documents: Snapshots, or a mapping { id: payload }
    :type documents: Iterable[DocumentSnapshot] | Mapping[str, dict]
    :param constraints: List of Constraint objects (or anything the filter accepts)
    :param orders: List of OrderSpec (or anything the sort accepts)
    :param cursor: A Cursor, a list of cursors, or a document id to start after
    :param limit: Max number of documents
    :param offset: Number of documents to skip
    :param distinct: Remove duplicate documents
    :param index_validator: Compound index rules to check against
    :param collection: Collection name, for the index check and for mapping input
    :rtype: list[DocumentSnapshot]
    """
    if isinstance(documents, Mapping):
        documents = [DocumentSnapshot(DocumentReference(collection, id), data)
                     for id, data in documents.items()]
    if isinstance(cursor, str):
        cursor = Cursor('start_after', cursor)

    return DocumentQuery(collection, index_validator=index_validator).query(
        filter=constraints,
        sort=orders,
        cursor=cursor,
        skip=offset,
        limit=limit,
        distinct=bool(distinct),
    ).end(documents)

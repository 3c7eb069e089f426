class DocumentQueryHandlerBase:
    """ An implementation of a handler for DocumentQuery

        Every subclass handles a single section of the Query Object.
        Handlers work in two phases:

        1. input(): receive a section of the Query Object, validate it, and store it
        2. alter_results(): apply it to the list of document snapshots
    """

    #: The Query Object section this handler consumes
    query_object_section_name = None

    def __init__(self, collection: str):
        """ Create a handler for a collection, with no input yet

        Keyword arguments with a default value are settings:
        SettingsHandler collects them by name and passes them here.

        :param collection: Name of the collection being queried
        """
        #: The collection being queried
        self.collection = collection

        #: The section, as given to input()
        self.input_value = None

    def __copy__(self):
        """ A copy has the same settings, and takes input again

        Reusable() relies on this to hand out a fresh handler for every query.
        """
        cls = self.__class__
        result = cls.__new__(cls)
        result.__dict__.update(self.__dict__)
        return result

    def input_prepare_query_object(self, query_object):
        """ Rewrite the Query Object before any section is read

        Called for every handler, before any input().
        The default leaves it as is.

        :param query_object: dict
        """
        return query_object

    def input(self, qo_value):
        """ Receive this handler's section of the Query Object

        Subclasses validate and parse the value, and keep the result in public attributes.

        :param qo_value: The value of the section; None when it is missing
        :rtype: DocumentQueryHandlerBase
        :raises InvalidQueryError
        """
        self.input_value = qo_value  # kept as is: the caller still owns it

        # One input per handler
        self.input = self.__raise_input_not_reusable

        return self

    def is_input_empty(self):
        """ Has this handler got nothing to do? """
        return not self.input_value

    def __raise_input_not_reusable(self, *args, **kwargs):
        raise RuntimeError("{}.input() has already been called. "
                           "Use Reusable(), or a copy() of the handler"
                           .format(self.__class__.__name__))

    def alter_results(self, snapshots):
        """ Apply the section to the documents

        :param snapshots: The documents, as they come out of the previous handler
        :type snapshots: list[docstore.document.DocumentSnapshot]
        :rtype: list[docstore.document.DocumentSnapshot]
        """
        raise NotImplementedError()

    def get_final_input_value(self):
        """ The section, as this handler has understood it """
        return self.input_value

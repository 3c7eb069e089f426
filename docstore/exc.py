from collections import namedtuple


#: A single limit/shape violation found by BatchValidator
#: operation_index: position of the operation in the batch (None for batch-wide violations)
#: field: dotted path to the offending field (or the name of the offending operation key)
#: message: human-readable explanation
Violation = namedtuple('Violation', ('operation_index', 'field', 'message'))


class DocStoreError(Exception):
    """ Base class for every error raised by docstore """


class ValidationError(DocStoreError):
    """ Limit or shape violations

        One error is raised per validation run; it carries every violation that was found,
        not only the first one.
    """

    def __init__(self, violations, message='Validation failed'):
        self.violations = list(violations)
        super(ValidationError, self).__init__('{}: {}'.format(
            message,
            '; '.join(self.format_violation(v) for v in self.violations)
        ))

    @property
    def messages(self):
        """ The list of formatted per-field messages """
        return [self.format_violation(v) for v in self.violations]

    @staticmethod
    def format_violation(v: Violation) -> str:
        if v.operation_index is None:
            return v.message
        return 'Operation {}: {}'.format(v.operation_index, v.message)


class IndexRequiredError(DocStoreError):
    """ The query needs a compound index that was not registered

        `fields` is the minimal list of (field, direction) pairs to create the index with
    """

    def __init__(self, collection: str, fields):
        self.collection = collection
        self.fields = list(fields)
        super(IndexRequiredError, self).__init__(
            'The query on "{collection}" requires a composite index: {fields}'.format(
                collection=collection,
                fields=', '.join('{} {}'.format(f, d) for f, d in self.fields))
        )


class NotFoundError(DocStoreError):
    """ A document was required to exist, but it does not """

    def __init__(self, path: str, message=None):
        self.path = path
        super(NotFoundError, self).__init__(message or 'Document not found: {}'.format(path))


class ConflictError(DocStoreError):
    """ A precondition did not hold: the document exists already, or a field had an unexpected value """


class TransientError(DocStoreError):
    """ A retryable backend failure

        TransactionCoordinator retries these, and only these.
    """


class ConfigurationError(DocStoreError):
    """ Malformed input: unknown operation kind, bad settings, and the like """


class InvalidQueryError(ConfigurationError):
    """ Invalid query input provided by the caller """

    def __init__(self, err: str):
        super(InvalidQueryError, self).__init__('Query error: {err}'.format(err=err))

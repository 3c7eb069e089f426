from typing import *

from .inspect import pluck_kwargs_from


class DocStoreSettingsDict(dict):
    """ Document store settings container.

        Is used for nice autocompletion and documentation purposes mostly! :)

        The keyword settings in this object are just plain kwargs names
        for the __init__ methods of query handlers, validators and coordinators,
        which are fed to them by SettingsHandler.
    """

    def __init__(self,
                 # --- filter
                 force_filter=None,
                 # --- limit
                 max_items: int = None,
                 # --- project
                 force_include: Iterable[str] = None,
                 # --- random
                 random_generator=None,
                 # --- indexes
                 strict_indexes: bool = False,
                 indexes: Mapping[str, list] = None,
                 # --- validator
                 max_operations_per_batch: int = 500,
                 max_document_size: int = 1048576,
                 max_field_name_length: int = 1500,
                 max_field_value_length: int = 1048487,
                 max_array_elements: int = 20000,
                 max_id_length: int = 1500,
                 # --- batch
                 max_operations: int = 500,
                 chunk_size: int = 100,
                 validate_operations: bool = True,
                 log_operations: bool = True,
                 # --- transaction
                 max_attempts: int = 3,
                 retry_delay: float = 0.1,
                 backoff: Callable[[int], float] = None,
                 log_attempts: bool = True,
                 sleep: Callable[[float], None] = None,
                 # --- store
                 clock: Callable[[], Any] = None,
                 ):
        """ A document store has plenty of settings that let you configure limits, retries,
        and query behavior. These settings can be nicely kept in a `DocStoreSettingsDict`
        and given to the store as keyword arguments.

        Example:
            ```python
            from docstore import MemoryDocumentStore, DocStoreSettingsDict

            settings = DocStoreSettingsDict(
                strict_indexes=True,
                max_items=100,
                max_attempts=5,
            )
            store = MemoryDocumentStore(**settings)
            ```

        Args:
            force_filter (list | dict | None): (for: filter)
                Constraints that are forced onto every query.
                The user's constraints are grouped, so that an `or` can't escape the forced filter.
            max_items (int | None): (for: limit)
                The maximum number of documents that a query can return.
                This value is forced onto every query.
            force_include (list[str] | None): (for: project)
                Fields that are always included into a projection.
            random_generator (random.Random | None): (for: random)
                The generator to shuffle the results with. Give a seeded one for repeatable results.
            strict_indexes (bool): (for: indexes)
                Raise `IndexRequiredError` when a query needs a compound index that's not registered.
                When `False`, a warning is logged.
            indexes (dict[str, list] | None): (for: indexes)
                Initial compound indexes: `{collection: ['a b-', ...]}`
            max_operations_per_batch (int): (for: validator)
                The maximum number of operations in a single unit of work.
            max_document_size (int): (for: validator)
                The maximum size of a document, in bytes of its JSON serialization.
            max_field_name_length (int): (for: validator)
                The maximum length of a field name.
            max_field_value_length (int): (for: validator)
                The maximum length of a string value.
            max_array_elements (int): (for: validator)
                The maximum number of array elements.
            max_id_length (int): (for: validator)
                The maximum length of collection names and document ids.
            max_operations (int): (for: batch)
                The maximum number of operations that a batch would accept.
            chunk_size (int): (for: batch)
                Larger batches are committed in chunks of this size.
                Every chunk is atomic; the batch as a whole is not.
            validate_operations (bool): (for: batch)
                Validate the operations before executing the batch.
            log_operations (bool): (for: batch)
                Log the outcome of every batch.
            max_attempts (int): (for: transaction)
                How many times a transaction is attempted, in total.
            retry_delay (float): (for: transaction)
                Seconds to wait before a retry. The default backoff waits `retry_delay * attempt`.
            backoff (Callable[[int], float] | None): (for: transaction)
                A custom backoff policy: `attempt` -> seconds to wait.
            log_attempts (bool): (for: transaction)
                Log retried and failed transactions.
            sleep (Callable[[float], None] | None): (for: transaction)
                The function to wait with. Defaults to `time.sleep()`.
            clock (Callable[[], Any] | None): (for: store)
                The source of commit timestamps. Defaults to the current UTC time.
        """
        super(DocStoreSettingsDict, self).__init__()
        self.update({k: v
                     for k, v in locals().items()
                     if k not in {'__class__', 'self'}})

    def and_more(self, **settings):
        """ Copy the object and add more settings to it """
        return self.__class__(**{**self, **settings})

    @classmethod
    def pluck_from(cls, dict, skip=()):
        """ Initialize the class by plucking kwargs from a dictionary.

            This is useful when you have a dict with configuration for multiple things,
            and you only want the keys that this class knows.
        """
        kwargs = pluck_kwargs_from(dict,
                                   for_func=cls.__init__,
                                   skip=skip
                                   )
        return cls(**kwargs)

from copy import copy


class Reusable:
    """ Make a configured query reusable

        A DocumentQuery can only receive its input() once, because it keeps the state.
        Configuring it is, however, not free: settings have to be distributed among handlers.
        This wrapper keeps a pristine object, and hands out a fresh copy on every attribute access.

        Example:

            active_users = Reusable(DocumentQuery('users', dict(force_filter=[('active', True)])))

            active_users.query(limit=10).end(snapshots)
            active_users.query(limit=20).end(snapshots)  # works, because it's a different copy
    """
    __slots__ = ('__obj',)

    def __init__(self, obj):
        self.__obj = obj

    # Copy-on-access

    def __getattr__(self, attr):
        return getattr(copy(self.__obj), attr)

    def __repr__(self):
        return 'Reusable({!r})'.format(self.__obj)

from typing import Any, Optional


class Result:
    """ The outcome of a batch or a transaction

        Coordinators report failures through a Result rather than raising:
        inspect `success`, or call `unwrap()` to get the data or raise the error.
    """

    __slots__ = ('success', 'data', 'error', 'duration_ms', 'metadata')

    def __init__(self, success: bool, data: Any = None, error: Optional[Exception] = None,
                 duration_ms: float = 0.0, metadata: dict = None):
        self.success = success
        self.data = data
        self.error = error
        self.duration_ms = duration_ms
        self.metadata = metadata or {}

    @classmethod
    def ok(cls, data=None, duration_ms=0.0, **metadata):
        return cls(True, data, None, duration_ms, metadata)

    @classmethod
    def failed(cls, error: Exception, data=None, duration_ms=0.0, **metadata):
        return cls(False, data, error, duration_ms, metadata)

    def __bool__(self):
        return self.success

    def unwrap(self):
        """ Get the data, or raise the error """
        if not self.success:
            raise self.error
        return self.data

    def summary(self) -> dict:
        """ A short, loggable summary """
        return {
            'success': self.success,
            'error': str(self.error) if self.error is not None else None,
            'duration_ms': round(self.duration_ms, 2),
            **self.metadata,
        }

    def to_dict(self) -> dict:
        return {
            'success': self.success,
            'data': self.data,
            'error': self.error,
            'duration_ms': self.duration_ms,
            'metadata': dict(self.metadata),
        }

    def __repr__(self):
        return '{}({})'.format(self.__class__.__name__,
                               ', '.join('{}={!r}'.format(k, v) for k, v in self.summary().items()))


class TransactionResult(Result):
    """ The outcome of a transaction: also reports the number of attempts and the final state """

    __slots__ = ('attempts', 'state')

    def __init__(self, success: bool, data: Any = None, error: Optional[Exception] = None,
                 duration_ms: float = 0.0, metadata: dict = None, attempts: int = 0, state=None):
        super(TransactionResult, self).__init__(success, data, error, duration_ms, metadata)
        self.attempts = attempts
        self.state = state

    @property
    def retried(self) -> bool:
        return self.attempts > 1

    def summary(self) -> dict:
        return {
            **super(TransactionResult, self).summary(),
            'attempts': self.attempts,
            'state': getattr(self.state, 'value', self.state),
        }

    def to_dict(self) -> dict:
        return {
            **super(TransactionResult, self).to_dict(),
            'attempts': self.attempts,
            'state': getattr(self.state, 'value', self.state),
        }

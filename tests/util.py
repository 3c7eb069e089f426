import datetime

from docstore.document import DocumentReference, DocumentSnapshot


def make_snapshots(documents: dict, collection: str = 'documents'):
    """ Make snapshots from { id: payload } """
    return [DocumentSnapshot(DocumentReference(collection, id), data)
            for id, data in documents.items()]


def ids(snapshots):
    """ Get document ids from a list of snapshots """
    return [s.id for s in snapshots]


class FakeClock:
    """ A clock that ticks one second per call """

    def __init__(self, start=datetime.datetime(2020, 1, 1, tzinfo=datetime.timezone.utc)):
        self.now = start
        self.calls = 0

    def __call__(self):
        self.calls += 1
        value = self.now
        self.now += datetime.timedelta(seconds=1)
        return value

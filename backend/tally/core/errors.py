"""Error taxonomy for the session core.

Everything a public session operation can fail with derives from
`TallyError`. Backing store implementations raise `StoreError`; the core
translates it into the matching `TallyError` at the point where it knows
what the write meant (room creation, an optimistic ledger mutation, ...).
"""


class StoreError(Exception):
    """Raised by a backing store when a remote call fails."""


class TallyError(Exception):
    """Base class for recoverable, user-visible session errors."""

    message = 'Something went wrong'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message


class NotFound(TallyError):
    message = 'Not found'


class RoomNotFound(NotFound):
    message = 'Room not found'


class PreconditionFailed(TallyError):
    message = 'Operation not allowed right now'


class RoomEnded(PreconditionFailed):
    message = 'Room has ended'


class RoomFull(PreconditionFailed):
    message = 'Room is full'


class WriteFailure(TallyError):
    """A remote write failed; local state has been rolled back."""

    message = 'Failed to update. Please try again.'


class RoomCreationError(WriteFailure):
    message = 'Failed to create room'


class StorageUnavailable(TallyError):
    message = 'Local storage is unavailable'

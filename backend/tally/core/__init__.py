"""Session core: identity, rooms, the participant ledger and room synchronization.

Nothing in here depends on Flask; the device side only needs a
`BackingStore` (`MemoryStore` offline, `RemoteStore` against the store
service) and a `LocalStorage`.
"""

from .errors import (
    NotFound,
    PreconditionFailed,
    RoomCreationError,
    RoomEnded,
    RoomFull,
    RoomNotFound,
    StorageUnavailable,
    StoreError,
    TallyError,
    WriteFailure,
)
from .records import ParticipantRecord, Role, Room, RoomStatus, RoundEntry
from .session import GameSession, Mode
from .storage import JsonFileStorage, MemoryStorage
from .store import MemoryStore

"""Room lifecycle: create, look up, join and end rooms on the backing store."""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Callable, Optional

from .errors import RoomCreationError, RoomEnded, RoomFull, RoomNotFound, StoreError
from .records import (
    PARTICIPANTS,
    ROOMS,
    ParticipantRecord,
    Role,
    Room,
    RoomStatus,
    utcnow_iso,
)
from .store import BackingStore

logger = logging.getLogger(__name__)

MAX_PARTICIPANTS = 15
ROOM_CODE_ATTEMPTS = 5
ROOM_CODE_MIN = 1000
ROOM_CODE_MAX = 999999


def generate_room_code(rng: Optional[random.Random] = None) -> str:
    """Generate a short numeric room code of 4 to 6 digits."""
    rng = rng or random
    return str(rng.randint(ROOM_CODE_MIN, ROOM_CODE_MAX))


@dataclass
class JoinResult:
    role: Role
    record: ParticipantRecord
    reconnected: bool = False


class RoomDirectory:
    def __init__(
        self,
        store: BackingStore,
        max_participants: int = MAX_PARTICIPANTS,
        code_attempts: int = ROOM_CODE_ATTEMPTS,
        code_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self._store = store
        self.max_participants = max_participants
        self.code_attempts = max(1, code_attempts)
        self._code_factory = code_factory or generate_room_code

    def _draw_code(self) -> str:
        # Redraw while the code is taken; after the last attempt the drawn
        # code is used anyway and the insert decides.
        code = self._code_factory()
        for _ in range(self.code_attempts - 1):
            if not self._store.count(ROOMS, {'code': code}):
                break
            logger.info(f"[room-code-collision] code={code}")
            code = self._code_factory()
        return code

    def get_room(self, code: str) -> Optional[Room]:
        rows = self._store.select(ROOMS, {'code': code})
        return Room.from_record(rows[0]) if rows else None

    def create_room(self, identity: str, display_name: Optional[str] = None) -> str:
        try:
            code = self._draw_code()
            room = Room(code=code, banker_identity=identity, created_at=utcnow_iso())
            self._store.insert(ROOMS, room.to_record())
            banker = ParticipantRecord.fresh(identity, code, Role.BANKER, display_name)
            self._store.upsert(PARTICIPANTS, banker.to_record())
        except StoreError as exc:
            logger.warning(f"[room-create-failed] identity={identity} error={exc}")
            raise RoomCreationError() from exc
        logger.info(f"[room-create] code={code} banker={identity}")
        return code

    def join_room(
        self, identity: str, code: str, display_name: Optional[str] = None
    ) -> JoinResult:
        """
        Join `code` as `identity`.

        Checks run in a fixed order: the room must exist, then be active.
        An identity that already has a record in the room is a reconnection
        and gets that record back unchanged, bypassing the capacity check.
        Only newcomers are counted against `max_participants`.
        """
        room = self.get_room(code)
        if room is None:
            raise RoomNotFound()
        if not room.is_active:
            raise RoomEnded()

        existing = self._store.select(PARTICIPANTS, {'room_code': code, 'identity': identity})
        if existing:
            record = ParticipantRecord.from_record(existing[0])
            logger.info(f"[room-rejoin] code={code} identity={identity} role={record.role.value}")
            return JoinResult(role=record.role, record=record, reconnected=True)

        if self._store.count(PARTICIPANTS, {'room_code': code}) >= self.max_participants:
            raise RoomFull(f'Room is full (max {self.max_participants} players)')

        role = Role.BANKER if identity == room.banker_identity else Role.PLAYER
        record = ParticipantRecord.fresh(identity, code, role, display_name)
        self._store.upsert(PARTICIPANTS, record.to_record())
        logger.info(f"[room-join] code={code} identity={identity} role={role.value}")
        return JoinResult(role=role, record=record)

    def end_room(self, code: str) -> None:
        self._store.update(ROOMS, {'code': code}, {'status': RoomStatus.ENDED.value})
        logger.info(f"[room-end] code={code}")

"""
Device-side session: one explicit state machine over the three modes.

`GameSession.state` is always exactly one of `Unselected`, `SinglePlayer`
or `Multiplayer`. Entering `Multiplayer` starts the room synchronizer and
every transition out of it stops it, so no subscription outlives the room or
role it was opened for.

Public operations are error boundaries: a failure is logged, kept on
`session.error` and the call returns None. Nothing is retried automatically;
retrying is the user repeating the operation.
"""
from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .catchup import CatchUpCoordinator
from .errors import (
    PreconditionFailed,
    RoomEnded,
    RoomNotFound,
    StorageUnavailable,
    StoreError,
    TallyError,
)
from .identity import IdentityProvider
from .ledger import ParticipantLedger
from .records import ParticipantRecord, Role
from .rooms import RoomDirectory
from .solo import LocalSessionStore
from .storage import AUTO_REJOIN_KEY, DISPLAY_NAME_KEY, LocalStorage
from .store import BackingStore
from .sync import RealtimeSynchronizer, RoomSummary

logger = logging.getLogger(__name__)


class Mode(str, Enum):
    UNSELECTED = 'unselected'
    SINGLE = 'single'
    MULTI = 'multi'


@dataclass(frozen=True)
class Unselected:
    mode = Mode.UNSELECTED


@dataclass(frozen=True)
class SinglePlayer:
    solo: LocalSessionStore
    mode = Mode.SINGLE


@dataclass(frozen=True)
class Multiplayer:
    room_code: str
    role: Role
    ledger: ParticipantLedger
    synchronizer: RealtimeSynchronizer
    coordinator: CatchUpCoordinator
    mode = Mode.MULTI


SessionState = Union[Unselected, SinglePlayer, Multiplayer]


def _boundary(fn):
    @functools.wraps(fn)
    def wrapper(self: 'GameSession', *args, **kwargs):
        try:
            return fn(self, *args, **kwargs)
        except TallyError as exc:
            self._fail(fn.__name__, exc)
        except StoreError as exc:
            self._fail(fn.__name__, TallyError(f'Network error: {exc}'))
        except ValueError as exc:
            self._fail(fn.__name__, PreconditionFailed(str(exc)))
        return None

    return wrapper


class GameSession:
    def __init__(
        self,
        storage: LocalStorage,
        store: BackingStore,
        directory: Optional[RoomDirectory] = None,
        identity_provider: Optional[IdentityProvider] = None,
    ) -> None:
        self._storage = storage
        self._store = store
        self.directory = directory or RoomDirectory(store)
        self._identity_provider = identity_provider or IdentityProvider(storage)
        self.state: SessionState = Unselected()
        self.error: Optional[TallyError] = None
        self.display_name = self._read_local(DISPLAY_NAME_KEY) or ''

    # ------------------------------------------------------------------ views
    @property
    def mode(self) -> Mode:
        return self.state.mode

    @property
    def identity(self) -> str:
        return self._identity_provider.get_or_create_identity()

    @property
    def role(self) -> Optional[Role]:
        return self.state.role if isinstance(self.state, Multiplayer) else None

    @property
    def room_code(self) -> Optional[str]:
        return self.state.room_code if isinstance(self.state, Multiplayer) else None

    @property
    def summary(self) -> Optional[RoomSummary]:
        if isinstance(self.state, Multiplayer) and self.state.role is Role.BANKER:
            return self.state.synchronizer.summary
        return None

    @property
    def pending_catch_up(self) -> Optional[int]:
        if isinstance(self.state, Multiplayer):
            return self.state.coordinator.pending
        return None

    # ------------------------------------------------------------------ plumbing
    def _fail(self, op: str, exc: TallyError) -> None:
        logger.warning(f"[session-error] op={op} error={exc.message}")
        self.error = exc

    def clear_error(self) -> None:
        self.error = None

    def _read_local(self, key: str) -> Optional[str]:
        try:
            return self._storage.get(key)
        except StorageUnavailable as exc:
            logger.warning(f"[local-read] key={key} unavailable: {exc}")
            return None

    def _write_local(self, key: str, value: Optional[str]) -> None:
        try:
            if value is None:
                self._storage.remove(key)
            else:
                self._storage.set(key, value)
        except StorageUnavailable as exc:
            logger.warning(f"[local-write] key={key} unavailable: {exc}")

    def _transition(self, new_state: SessionState) -> None:
        old = self.state
        if isinstance(old, Multiplayer):
            old.synchronizer.stop()
            old.ledger.close()
        self.state = new_state
        logger.info(f"[session-mode] {old.mode.value} -> {new_state.mode.value}")

    def _receive_prompt(self, missing_count: int) -> None:
        if isinstance(self.state, Multiplayer):
            self.state.coordinator.receive(missing_count)

    def _enter_room(self, record: ParticipantRecord) -> Multiplayer:
        ledger = ParticipantLedger(self._store, record)
        synchronizer = RealtimeSynchronizer(
            self._store,
            record.room_code,
            record.role,
            record.identity,
            on_prompt=self._receive_prompt,
        )
        coordinator = CatchUpCoordinator(record.role, record.identity, synchronizer, ledger)
        state = Multiplayer(record.room_code, record.role, ledger, synchronizer, coordinator)
        self._transition(state)
        try:
            synchronizer.start()
        except StoreError:
            # A room without its subscription is not a valid state
            self._transition(Unselected())
            raise
        self._write_local(AUTO_REJOIN_KEY, record.room_code)
        return state

    def _require_mode(self):
        if isinstance(self.state, SinglePlayer):
            return self.state.solo
        if isinstance(self.state, Multiplayer):
            return self.state.ledger
        raise PreconditionFailed('Choose single player or join a room first')

    # ------------------------------------------------------------------ identity
    @_boundary
    def set_display_name(self, name: str) -> None:
        self.display_name = name
        self._write_local(DISPLAY_NAME_KEY, name)
        if isinstance(self.state, Multiplayer) and self.state.role is Role.PLAYER:
            self.state.ledger.set_display_name(name)

    # ------------------------------------------------------------------ single player
    @_boundary
    def start_single(self) -> LocalSessionStore:
        if isinstance(self.state, SinglePlayer):
            return self.state.solo
        state = SinglePlayer(LocalSessionStore(self._storage))
        self._transition(state)
        return state.solo

    @_boundary
    def exit_single(self) -> None:
        if not isinstance(self.state, SinglePlayer):
            return
        self.state.solo.exit()
        self._write_local(AUTO_REJOIN_KEY, None)
        self._transition(Unselected())

    # ------------------------------------------------------------------ rooms
    @_boundary
    def create_room(self) -> str:
        identity = self.identity
        code = self.directory.create_room(identity, self.display_name)
        self._enter_room(ParticipantRecord.fresh(identity, code, Role.BANKER, self.display_name))
        return code

    @_boundary
    def join_room(self, code: str) -> Role:
        code = str(code).strip()
        result = self.directory.join_room(self.identity, code, self.display_name)
        self._enter_room(result.record)
        return result.role

    def auto_rejoin(self) -> Optional[Role]:
        """Rejoin the room this device was last in, if any."""
        if not isinstance(self.state, Unselected):
            return None
        saved = self._read_local(AUTO_REJOIN_KEY)
        if not saved:
            return None
        self.clear_error()
        role = self.join_room(saved)
        if role is None and isinstance(self.error, (RoomNotFound, RoomEnded)):
            self._write_local(AUTO_REJOIN_KEY, None)
        return role

    @_boundary
    def leave_room(self) -> None:
        if not isinstance(self.state, Multiplayer):
            return
        state = self.state
        self._transition(Unselected())
        self._write_local(AUTO_REJOIN_KEY, None)
        if state.role is Role.BANKER:
            self.directory.end_room(state.room_code)

    def close(self) -> None:
        """Tear down without ending anything remotely."""
        self._transition(Unselected())

    # ------------------------------------------------------------------ tally
    @_boundary
    def set_base(self, amount) -> None:
        self._require_mode().set_base(amount)

    @_boundary
    def apply_action(self, multiplier: int) -> None:
        self._require_mode().apply_action(multiplier)

    @_boundary
    def undo(self) -> None:
        self._require_mode().undo()

    # ------------------------------------------------------------------ catch-up
    @_boundary
    def refresh(self) -> Optional[RoomSummary]:
        if isinstance(self.state, Multiplayer) and self.state.role is Role.BANKER:
            return self.state.synchronizer.refresh()
        return None

    @_boundary
    def prompt_catch_up(self, target_identity: str, missing_count: Optional[int] = None) -> None:
        if not isinstance(self.state, Multiplayer):
            raise PreconditionFailed('Not in a room')
        if missing_count is None:
            missing_count = self.state.synchronizer.summary.missing_rounds.get(target_identity)
            if not missing_count:
                raise PreconditionFailed('Player is not behind')
        self.state.coordinator.prompt(target_identity, missing_count)

    @_boundary
    def resolve_catch_up(self, accept: bool) -> None:
        if isinstance(self.state, Multiplayer):
            self.state.coordinator.resolve(accept)

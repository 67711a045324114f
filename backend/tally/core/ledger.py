"""
The device's own participant record in a multiplayer room.

Every mutation follows the same command shape: take a snapshot, apply the
change locally, push the new record to the backing store, then either commit
or restore the snapshot. Role gating lives here as operation preconditions;
a gated call is a silent no-op.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Callable, List, Tuple

from .errors import StoreError, WriteFailure
from .records import PARTICIPANTS, ParticipantRecord, Role, RoundEntry, to_decimal, utcnow_iso
from .store import BackingStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerSnapshot:
    base_stake: Decimal
    current_net: Decimal
    last_delta: Decimal
    round_history: Tuple[RoundEntry, ...]
    updated_at: str


@dataclass(frozen=True)
class LedgerCommand:
    """A named local transition plus the message used if its write fails."""

    name: str
    transition: Callable[[ParticipantRecord], None]
    failure_message: str = WriteFailure.message


class ParticipantLedger:
    def __init__(self, store: BackingStore, record: ParticipantRecord) -> None:
        self._store = store
        self.record = record
        self.closed = False

    # ------------------------------------------------------------------ views
    @property
    def role(self) -> Role:
        return self.record.role

    @property
    def base_stake(self) -> Decimal:
        return self.record.base_stake

    @property
    def current_net(self) -> Decimal:
        return self.record.current_net

    @property
    def last_delta(self) -> Decimal:
        return self.record.last_delta

    @property
    def round_history(self) -> Tuple[RoundEntry, ...]:
        return tuple(self.record.round_history)

    @property
    def round_count(self) -> int:
        return self.record.round_count

    @property
    def _match(self):
        return {'identity': self.record.identity, 'room_code': self.record.room_code}

    # ------------------------------------------------------------------ snapshot
    def snapshot(self) -> LedgerSnapshot:
        r = self.record
        return LedgerSnapshot(
            base_stake=r.base_stake,
            current_net=r.current_net,
            last_delta=r.last_delta,
            round_history=tuple(r.round_history),
            updated_at=r.updated_at,
        )

    def restore(self, snap: LedgerSnapshot) -> None:
        self.record = replace(
            self.record,
            base_stake=snap.base_stake,
            current_net=snap.current_net,
            last_delta=snap.last_delta,
            round_history=list(snap.round_history),
            updated_at=snap.updated_at,
        )

    def _execute(self, command: LedgerCommand) -> None:
        snap = self.snapshot()
        command.transition(self.record)
        self.record.updated_at = utcnow_iso()
        changes = {
            'current_net': str(self.record.current_net),
            'last_delta': str(self.record.last_delta),
            'round_history': [e.to_record() for e in self.record.round_history],
            'updated_at': self.record.updated_at,
        }
        try:
            self._store.update(PARTICIPANTS, self._match, changes)
        except StoreError as exc:
            if self.closed:
                logger.info(f"[ledger-{command.name}] late failure after close ignored: {exc}")
                return
            self.restore(snap)
            logger.warning(
                f"[ledger-rollback] op={command.name} identity={self.record.identity} "
                f"room={self.record.room_code} error={exc}"
            )
            raise WriteFailure(command.failure_message) from exc
        logger.debug(
            f"[ledger-{command.name}] identity={self.record.identity} "
            f"net={self.record.current_net} last_delta={self.record.last_delta}"
        )

    def _best_effort(self, name: str, changes) -> None:
        try:
            self._store.update(PARTICIPANTS, self._match, changes)
        except StoreError as exc:
            logger.warning(f"[ledger-{name}] best-effort write failed: {exc}")

    # ------------------------------------------------------------------ operations
    def set_base(self, amount) -> None:
        self.record.base_stake = to_decimal(amount)
        self.record.updated_at = utcnow_iso()
        self._best_effort('set-base', {
            'base_stake': str(self.record.base_stake),
            'updated_at': self.record.updated_at,
        })

    def set_display_name(self, name: str) -> None:
        self.record.display_name = name
        self.record.updated_at = utcnow_iso()
        self._best_effort('set-name', {
            'display_name': name,
            'updated_at': self.record.updated_at,
        })

    def apply_action(self, multiplier: int) -> None:
        if not self.record.is_player or self.record.base_stake <= 0:
            return
        multiplier = int(multiplier)
        delta = self.record.base_stake * multiplier

        def transition(r: ParticipantRecord) -> None:
            r.current_net += delta
            r.last_delta = delta
            r.round_history.insert(0, RoundEntry(multiplier, delta, utcnow_iso()))

        self._execute(LedgerCommand('action', transition))

    def undo(self) -> None:
        if not self.record.is_player or self.record.last_delta == 0:
            return

        def transition(r: ParticipantRecord) -> None:
            r.current_net -= r.last_delta
            r.last_delta = Decimal(0)
            if r.round_history:
                del r.round_history[0]

        self._execute(LedgerCommand('undo', transition, 'Undo failed. Please try again.'))

    def mass_tie(self, count: int) -> None:
        count = int(count)
        if not self.record.is_player or count <= 0:
            return
        ties: List[RoundEntry] = [RoundEntry.tie() for _ in range(count)]

        def transition(r: ParticipantRecord) -> None:
            r.round_history[:0] = ties
            r.last_delta = Decimal(0)

        self._execute(LedgerCommand(
            'mass-tie', transition, 'Failed to log missing rounds. Please try again.'
        ))

    def close(self) -> None:
        self.closed = True

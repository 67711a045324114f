"""Catch-up (tie) protocol that brings lagging players back to the majority round count."""
from __future__ import annotations

import logging
from collections import Counter
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from .errors import PreconditionFailed, WriteFailure
from .ledger import ParticipantLedger
from .records import ParticipantRecord, Role

if TYPE_CHECKING:
    from .sync import RealtimeSynchronizer, RoomSummary

logger = logging.getLogger(__name__)

PROMPT_EVENT = 'prompt_catch_up'


def majority_round_count(counts: Iterable[int]) -> int:
    """Most frequent round count; on equal frequency the larger count wins."""
    tally = Counter(counts)
    if not tally:
        return 0
    return max(tally.items(), key=lambda item: (item[1], item[0]))[0]


def missing_rounds(records: Iterable[ParticipantRecord]) -> Dict[str, int]:
    """Players strictly behind the majority, mapped to how many rounds they miss."""
    players = [r for r in records if r.is_player]
    majority = majority_round_count(r.round_count for r in players)
    return {
        r.identity: majority - r.round_count
        for r in players
        if r.round_count < majority
    }


class CatchUpCoordinator:
    """
    Both halves of the protocol for one device.

    The banker side sends a targeted `prompt_catch_up` broadcast through the
    room synchronizer. The player side holds at most one pending prompt and,
    once the player confirms, inserts the tie rounds through the ledger.
    """

    def __init__(
        self,
        role: Role,
        identity: str,
        synchronizer: 'RealtimeSynchronizer',
        ledger: Optional[ParticipantLedger] = None,
    ) -> None:
        self.role = role
        self.identity = identity
        self._synchronizer = synchronizer
        self._ledger = ledger
        self.pending: Optional[int] = None

    # banker side
    def prompt(self, target_identity: str, missing_count: int = 1) -> None:
        if self.role is not Role.BANKER:
            return
        missing_count = int(missing_count)
        if missing_count <= 0:
            raise PreconditionFailed('Nothing to catch up')
        self._synchronizer.send(PROMPT_EVENT, {
            'target_identity': target_identity,
            'missing_count': missing_count,
        })
        logger.info(f"[catch-up-prompt] target={target_identity} missing={missing_count}")

    def prompt_all_behind(self, summary: 'RoomSummary') -> List[str]:
        prompted = []
        for identity, missing in sorted(summary.missing_rounds.items()):
            self.prompt(identity, missing)
            prompted.append(identity)
        return prompted

    # player side
    def receive(self, missing_count: int) -> None:
        if self.role is not Role.PLAYER:
            return
        self.pending = max(1, int(missing_count))
        logger.info(f"[catch-up-pending] identity={self.identity} missing={self.pending}")

    def resolve(self, accept: bool) -> None:
        missing, self.pending = self.pending, None
        if not missing or not accept or self._ledger is None:
            return
        try:
            self._ledger.mass_tie(missing)
        except WriteFailure:
            # keep the prompt so the player can confirm again
            self.pending = missing
            raise

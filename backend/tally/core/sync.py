from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from .catchup import PROMPT_EVENT, majority_round_count, missing_rounds
from .errors import StoreError
from .records import PARTICIPANTS, ParticipantRecord, Role
from .store import BackingStore, Subscription

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoomSummary:
    participants: Tuple[ParticipantRecord, ...] = ()
    player_count: int = 0
    banker_net: Decimal = Decimal(0)
    majority_round_count: int = 0
    missing_rounds: Dict[str, int] = field(default_factory=dict)


def summarize_room(records: Iterable[ParticipantRecord]) -> RoomSummary:
    """Recompute the banker's view of a room from its full set of participant records."""
    records = tuple(records)
    players = [r for r in records if r.role is Role.PLAYER]
    return RoomSummary(
        participants=records,
        player_count=len(players),
        banker_net=-sum((p.current_net for p in players), Decimal(0)),
        majority_round_count=majority_round_count(p.round_count for p in players),
        missing_rounds=missing_rounds(players),
    )


class RealtimeSynchronizer:
    """
    Keeps one device in step with its room.

    A banker subscribes to participant changes and answers every
    notification with a full re-fetch and `summarize_room`, so duplicated or
    reordered notifications are harmless. A player only listens for catch-up
    prompts addressed to its own identity.
    """

    def __init__(
        self,
        store: BackingStore,
        room_code: str,
        role: Role,
        identity: str,
        on_summary: Optional[Callable[[RoomSummary], None]] = None,
        on_prompt: Optional[Callable[[int], None]] = None,
    ) -> None:
        self._store = store
        self.room_code = room_code
        self.role = role
        self.identity = identity
        self._on_summary = on_summary
        self._on_prompt = on_prompt
        self._subscription: Optional[Subscription] = None
        self.summary = RoomSummary()
        self.last_error: Optional[StoreError] = None

    @property
    def active(self) -> bool:
        return self._subscription is not None

    def start(self) -> None:
        if self._subscription is not None:
            return
        if self.role is Role.BANKER:
            self._subscription = self._store.subscribe(self.room_code, on_change=self._handle_change)
            self.refresh()
        else:
            self._subscription = self._store.subscribe(self.room_code, on_broadcast=self._handle_broadcast)
        logger.info(f"[sync-start] room={self.room_code} role={self.role.value}")

    def stop(self) -> None:
        sub, self._subscription = self._subscription, None
        if sub is not None:
            sub.close()
            logger.info(f"[sync-stop] room={self.room_code} role={self.role.value}")

    def refresh(self) -> Optional[RoomSummary]:
        if self._subscription is None:
            return None
        try:
            rows = self._store.select(PARTICIPANTS, {'room_code': self.room_code})
        except StoreError as exc:
            # the next notification triggers another full re-fetch
            self.last_error = exc
            logger.warning(f"[sync-refresh-failed] room={self.room_code} error={exc}")
            return None
        if self._subscription is None:
            return None
        self.last_error = None
        self.summary = summarize_room(ParticipantRecord.from_record(row) for row in rows)
        if self._on_summary:
            self._on_summary(self.summary)
        return self.summary

    def send(self, event: str, payload: Dict[str, Any]) -> None:
        if self._subscription is None:
            raise StoreError('Not connected to the room')
        self._subscription.send(event, payload)

    def _handle_change(self, notification: Dict[str, Any]) -> None:
        logger.debug(f"[sync-change] room={self.room_code} event={notification.get('event')}")
        self.refresh()

    def _handle_broadcast(self, event: str, payload: Dict[str, Any]) -> None:
        if self._subscription is None or event != PROMPT_EVENT:
            return
        if (payload or {}).get('target_identity') != self.identity:
            return
        try:
            missing_count = int(payload.get('missing_count') or 1)
        except (TypeError, ValueError):
            logger.warning(f"[sync-prompt-ignored] room={self.room_code} payload={payload}")
            return
        if self._on_prompt:
            self._on_prompt(missing_count)

"""
Domain records shared by the session core and the backing stores.

Records travel as JSON-safe dicts (decimals as strings, timestamps as
ISO-8601 text) so the same shape works for the in-memory store and for the
HTTP store service.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

ROOMS = 'rooms'
PARTICIPANTS = 'participants'

# Key columns per table; a record is unique on these.
TABLE_KEYS = {
    ROOMS: ('code',),
    PARTICIPANTS: ('identity', 'room_code'),
}


class Role(str, Enum):
    BANKER = 'banker'
    PLAYER = 'player'


class RoomStatus(str, Enum):
    ACTIVE = 'active'
    ENDED = 'ended'


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_decimal(value: Any) -> Decimal:
    if value is None or value == '':
        return Decimal(0)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f'Not a decimal amount: {value!r}') from exc
    if not amount.is_finite():
        raise ValueError(f'Not a finite amount: {value!r}')
    return amount


@dataclass(frozen=True)
class RoundEntry:
    multiplier: int
    amount: Decimal
    timestamp: str

    @classmethod
    def tie(cls) -> 'RoundEntry':
        return cls(multiplier=0, amount=Decimal(0), timestamp=utcnow_iso())

    def to_record(self) -> Dict[str, Any]:
        return {
            'multiplier': self.multiplier,
            'amount': str(self.amount),
            'timestamp': self.timestamp,
        }

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> 'RoundEntry':
        return cls(
            multiplier=int(data.get('multiplier') or 0),
            amount=to_decimal(data.get('amount')),
            timestamp=str(data.get('timestamp') or ''),
        )


@dataclass(frozen=True)
class Room:
    code: str
    banker_identity: str
    status: RoomStatus = RoomStatus.ACTIVE
    created_at: str = ''

    @property
    def is_active(self) -> bool:
        return self.status is RoomStatus.ACTIVE

    def to_record(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'banker_identity': self.banker_identity,
            'status': self.status.value,
            'created_at': self.created_at,
        }

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> 'Room':
        return cls(
            code=str(data['code']),
            banker_identity=str(data['banker_identity']),
            status=RoomStatus(data.get('status') or RoomStatus.ACTIVE.value),
            created_at=str(data.get('created_at') or ''),
        )


@dataclass
class ParticipantRecord:
    """One participant's ledger row in one room."""

    identity: str
    room_code: str
    role: Role
    display_name: str = ''
    base_stake: Decimal = Decimal(0)
    current_net: Decimal = Decimal(0)
    last_delta: Decimal = Decimal(0)
    round_history: List[RoundEntry] = field(default_factory=list)
    updated_at: str = ''

    @property
    def round_count(self) -> int:
        return len(self.round_history)

    @property
    def is_player(self) -> bool:
        return self.role is Role.PLAYER

    def to_record(self) -> Dict[str, Any]:
        return {
            'identity': self.identity,
            'room_code': self.room_code,
            'role': self.role.value,
            'display_name': self.display_name,
            'base_stake': str(self.base_stake),
            'current_net': str(self.current_net),
            'last_delta': str(self.last_delta),
            'round_history': [entry.to_record() for entry in self.round_history],
            'updated_at': self.updated_at,
        }

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> 'ParticipantRecord':
        return cls(
            identity=str(data['identity']),
            room_code=str(data['room_code']),
            role=Role(data['role']),
            display_name=str(data.get('display_name') or ''),
            base_stake=to_decimal(data.get('base_stake')),
            current_net=to_decimal(data.get('current_net')),
            last_delta=to_decimal(data.get('last_delta')),
            round_history=[RoundEntry.from_record(e) for e in data.get('round_history') or []],
            updated_at=str(data.get('updated_at') or ''),
        )

    @classmethod
    def fresh(
        cls,
        identity: str,
        room_code: str,
        role: Role,
        display_name: Optional[str] = None,
    ) -> 'ParticipantRecord':
        return cls(
            identity=identity,
            room_code=room_code,
            role=role,
            display_name=display_name or '',
            updated_at=utcnow_iso(),
        )

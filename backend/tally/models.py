from tally import db
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
import json

# Columns clients may filter on or write, per model
PARTICIPANT_FIELDS = (
    'identity', 'room_code', 'role', 'display_name', 'base_stake',
    'current_net', 'last_delta', 'round_history', 'updated_at',
)
ROOM_FIELDS = ('code', 'banker_identity', 'status', 'created_at')


def _utcnow():
    return datetime.now(timezone.utc)


def _parse_ts(value):
    if not value:
        return _utcnow()
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _iso(value):
    return value.isoformat() if value else None


class Room(db.Model):
    __tablename__ = 'room'
    code = db.Column(db.String(6), primary_key=True)
    banker_identity = db.Column(db.String(64), nullable=False, index=True)
    status = db.Column(db.String(16), default='active', nullable=False) # active, ended
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    participants = db.relationship('Participant', back_populates='room', lazy='dynamic')

    key_columns = ('code',)
    fields = ROOM_FIELDS

    def apply(self, data):
        for name in ROOM_FIELDS:
            if name not in data:
                continue
            value = data[name]
            if name == 'created_at':
                value = _parse_ts(value)
            setattr(self, name, value)

    def to_dict(self):
        return {
            'code': self.code,
            'banker_identity': self.banker_identity,
            'status': self.status,
            'created_at': _iso(self.created_at),
        }


class Participant(db.Model):
    __tablename__ = 'participant'
    identity = db.Column(db.String(64), primary_key=True)
    room_code = db.Column(db.String(6), db.ForeignKey('room.code'), primary_key=True)
    role = db.Column(db.String(16), nullable=False) # banker, player
    display_name = db.Column(db.String(64), nullable=False, default='')
    # Amounts are stored as exact decimal text
    base_stake = db.Column(db.String(40), nullable=False, default='0')
    current_net = db.Column(db.String(40), nullable=False, default='0')
    last_delta = db.Column(db.String(40), nullable=False, default='0')
    round_history = db.Column(db.Text, nullable=False, default='[]')  # JSON-encoded list, newest first
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, nullable=False)
    room = db.relationship('Room', back_populates='participants')

    key_columns = ('identity', 'room_code')
    fields = PARTICIPANT_FIELDS

    def apply(self, data):
        for name in PARTICIPANT_FIELDS:
            if name not in data:
                continue
            value = data[name]
            if name in ('base_stake', 'current_net', 'last_delta'):
                value = _decimal_str(value)
            elif name == 'round_history':
                value = json.dumps(value or [])
            elif name == 'updated_at':
                value = _parse_ts(value)
            elif name == 'display_name':
                value = value or ''
            setattr(self, name, value)

    def to_dict(self):
        try:
            history = json.loads(self.round_history) if self.round_history else []
        except ValueError:
            history = []
        return {
            'identity': self.identity,
            'room_code': self.room_code,
            'role': self.role,
            'display_name': self.display_name or '',
            'base_stake': _decimal_str(self.base_stake),
            'current_net': _decimal_str(self.current_net),
            'last_delta': _decimal_str(self.last_delta),
            'round_history': history,
            'updated_at': _iso(self.updated_at),
        }


def _decimal_str(value):
    try:
        value = Decimal(str(value or 0))
    except InvalidOperation as exc:
        raise ValueError(f'Not a decimal amount: {value!r}') from exc
    if not value.is_finite():
        raise ValueError(f'Not a finite amount: {value!r}')
    if value == 0:
        return '0'
    if value == value.to_integral_value():
        return str(value.quantize(Decimal(1)))
    return str(value.normalize())

from decimal import Decimal

import pytest

from tally.core.errors import WriteFailure
from tally.core.ledger import ParticipantLedger
from tally.core.records import PARTICIPANTS, ParticipantRecord, Role
from tally.core.rooms import RoomDirectory


@pytest.fixture()
def room(store):
    directory = RoomDirectory(store, code_factory=lambda: '4821')
    return directory, directory.create_room('banker-1')


def _player_ledger(store, room, identity='alice'):
    directory, code = room
    record = directory.join_room(identity, code).record
    return ParticipantLedger(store, record)


def _stored(store, identity, code='4821'):
    row = store.select(PARTICIPANTS, {'identity': identity, 'room_code': code})[0]
    return ParticipantRecord.from_record(row)


def test_apply_action_updates_local_and_remote(store, room):
    ledger = _player_ledger(store, room)
    ledger.set_base(2)
    ledger.apply_action(3)
    assert ledger.current_net == Decimal(6)
    assert ledger.last_delta == Decimal(6)
    assert ledger.round_count == 1
    assert ledger.round_history[0].multiplier == 3
    stored = _stored(store, 'alice')
    assert stored.current_net == Decimal(6)
    assert stored.base_stake == Decimal(2)
    assert stored.round_count == 1


def test_undo_restores_previous_net_and_truncates_history(store, room):
    ledger = _player_ledger(store, room)
    ledger.set_base(5)
    ledger.apply_action(1)
    ledger.apply_action(-2)
    assert ledger.current_net == Decimal(-5)
    ledger.undo()
    assert ledger.current_net == Decimal(5)
    assert ledger.last_delta == 0
    assert [e.multiplier for e in ledger.round_history] == [1]
    # Second undo is a no-op
    ledger.undo()
    assert ledger.current_net == Decimal(5)
    assert _stored(store, 'alice').current_net == Decimal(5)


def test_actions_need_player_role_and_positive_base(store, room):
    directory, code = room
    banker = ParticipantLedger(store, directory.join_room('banker-1', code).record)
    banker.set_base(10)
    banker.apply_action(2)
    assert banker.current_net == 0
    assert banker.round_count == 0

    ledger = _player_ledger(store, room)
    calls = store.update_calls
    ledger.apply_action(4)
    ledger.undo()
    assert ledger.current_net == 0
    assert store.update_calls == calls


def test_failed_action_rolls_back(store, room):
    ledger = _player_ledger(store, room)
    ledger.set_base(2)
    ledger.apply_action(3)
    before = ledger.snapshot()
    store.fail_updates = True
    with pytest.raises(WriteFailure):
        ledger.apply_action(5)
    assert ledger.snapshot() == before
    assert ledger.current_net == Decimal(6)
    assert ledger.last_delta == Decimal(6)


def test_failed_undo_rolls_back(store, room):
    ledger = _player_ledger(store, room)
    ledger.set_base(2)
    ledger.apply_action(3)
    store.fail_updates = True
    with pytest.raises(WriteFailure):
        ledger.undo()
    assert ledger.current_net == Decimal(6)
    assert ledger.last_delta == Decimal(6)
    assert ledger.round_count == 1


def test_base_write_is_best_effort(store, room):
    ledger = _player_ledger(store, room)
    store.fail_updates = True
    ledger.set_base(7)
    assert ledger.base_stake == Decimal(7)


def test_mass_tie_adds_rounds_without_touching_net(store, room):
    ledger = _player_ledger(store, room)
    ledger.set_base(2)
    ledger.apply_action(3)
    ledger.mass_tie(2)
    assert ledger.round_count == 3
    assert ledger.current_net == Decimal(6)
    assert ledger.last_delta == 0
    assert [e.multiplier for e in ledger.round_history[:2]] == [0, 0]
    assert all(e.amount == 0 for e in ledger.round_history[:2])
    assert _stored(store, 'alice').round_count == 3
    # With last_delta zeroed, undo cannot eat into the ties
    ledger.undo()
    assert ledger.round_count == 3


def test_mass_tie_failure_rolls_back(store, room):
    ledger = _player_ledger(store, room)
    store.fail_updates = True
    with pytest.raises(WriteFailure):
        ledger.mass_tie(3)
    assert ledger.round_count == 0


def test_snapshot_restore_is_exact(store, room):
    ledger = _player_ledger(store, room)
    ledger.set_base(3)
    ledger.apply_action(2)
    snap = ledger.snapshot()
    ledger.record.current_net = Decimal(999)
    ledger.record.round_history.clear()
    ledger.restore(snap)
    assert ledger.snapshot() == snap
    assert ledger.record.role is Role.PLAYER


def test_late_failure_after_close_is_discarded(store, room):
    ledger = _player_ledger(store, room)
    ledger.set_base(1)
    ledger.close()
    store.fail_updates = True
    ledger.apply_action(2)

from decimal import Decimal

from tally.core.errors import RoomEnded, RoomFull, RoomNotFound, StorageUnavailable, WriteFailure
from tally.core.records import PARTICIPANTS, Role, RoomStatus
from tally.core.rooms import RoomDirectory
from tally.core.session import GameSession, Mode
from tally.core.storage import AUTO_REJOIN_KEY, DISPLAY_NAME_KEY, MemoryStorage


def _device(store, code='4821'):
    directory = RoomDirectory(store, code_factory=lambda: code)
    return GameSession(MemoryStorage(), store, directory=directory)


def test_starts_unselected():
    session = GameSession(MemoryStorage(), None)
    assert session.mode is Mode.UNSELECTED
    session.apply_action(2)
    assert session.error is not None


def test_single_player_flow(storage):
    session = GameSession(storage, None)
    solo = session.start_single()
    assert session.mode is Mode.SINGLE
    session.set_base(3)
    session.apply_action(-2)
    assert solo.current_net == Decimal(-6)
    session.undo()
    assert solo.current_net == 0
    session.exit_single()
    assert session.mode is Mode.UNSELECTED


def test_single_player_survives_broken_storage(broken_storage):
    session = GameSession(broken_storage, None)
    solo = session.start_single()
    session.set_base(1)
    session.apply_action(5)
    assert solo.current_net == Decimal(5)
    assert session.error is None
    # Multiplayer needs a persisted identity
    assert session.create_room() is None
    assert isinstance(session.error, StorageUnavailable)


def test_banker_and_players_scenario(store):
    banker = _device(store)
    code = banker.create_room()
    assert code == '4821'
    assert banker.role is Role.BANKER
    assert banker.directory.get_room(code).status is RoomStatus.ACTIVE

    alice = _device(store)
    assert alice.join_room(code) is Role.PLAYER
    alice.set_base(2)
    alice.apply_action(3)
    ledger = alice.state.ledger
    assert ledger.current_net == Decimal(6)
    assert ledger.last_delta == Decimal(6)
    alice.undo()
    assert ledger.current_net == 0
    assert ledger.last_delta == 0

    bob = _device(store)
    bob.join_room(code)
    bob.set_base(5)
    bob.apply_action(-2)
    assert bob.state.ledger.current_net == Decimal(-10)

    assert banker.summary.player_count == 2
    assert banker.summary.banker_net == Decimal(10)


def test_banker_actions_are_no_ops(store):
    banker = _device(store)
    banker.create_room()
    banker.set_base(10)
    banker.apply_action(3)
    assert banker.state.ledger.current_net == 0
    assert banker.error is None


def test_join_errors_are_reported_not_raised(store):
    banker = _device(store)
    code = banker.create_room()
    alice = _device(store)
    assert alice.join_room('0000') is None
    assert isinstance(alice.error, RoomNotFound)
    assert alice.mode is Mode.UNSELECTED

    banker.leave_room()
    assert banker.mode is Mode.UNSELECTED
    alice.clear_error()
    alice.join_room(code)
    assert isinstance(alice.error, RoomEnded)


def test_room_full_for_newcomers_only(store):
    banker = _device(store)
    code = banker.create_room()
    players = [_device(store) for _ in range(14)]
    for player in players:
        assert player.join_room(code) is Role.PLAYER
    late = _device(store)
    assert late.join_room(code) is None
    assert isinstance(late.error, RoomFull)
    players[0].close()
    assert players[0].join_room(code) is Role.PLAYER


def test_write_failure_rolls_back_and_is_recoverable(store):
    banker = _device(store)
    code = banker.create_room()
    alice = _device(store)
    alice.join_room(code)
    alice.set_base(2)
    alice.apply_action(3)
    store.fail_updates = True
    alice.apply_action(4)
    assert isinstance(alice.error, WriteFailure)
    assert alice.state.ledger.current_net == Decimal(6)
    assert alice.state.ledger.last_delta == Decimal(6)
    assert alice.mode is Mode.MULTI
    # Retrying once the store is back works
    store.fail_updates = False
    alice.clear_error()
    alice.apply_action(4)
    assert alice.error is None
    assert alice.state.ledger.current_net == Decimal(14)


def test_reconnection_restores_state(store):
    banker = _device(store)
    code = banker.create_room()
    storage = MemoryStorage()
    alice = GameSession(storage, store, directory=banker.directory)
    alice.join_room(code)
    alice.set_base(2)
    alice.apply_action(3)
    alice.close()

    again = GameSession(storage, store, directory=banker.directory)
    assert again.auto_rejoin() is Role.PLAYER
    assert again.state.ledger.current_net == Decimal(6)
    assert again.state.ledger.last_delta == Decimal(6)
    assert again.state.ledger.base_stake == Decimal(2)
    assert again.state.ledger.round_count == 1


def test_auto_rejoin_forgets_ended_room(store):
    banker = _device(store)
    code = banker.create_room()
    storage = MemoryStorage()
    alice = GameSession(storage, store, directory=banker.directory)
    alice.join_room(code)
    alice.close()
    banker.leave_room()

    again = GameSession(storage, store, directory=banker.directory)
    assert again.auto_rejoin() is None
    assert isinstance(again.error, RoomEnded)
    assert storage.get(AUTO_REJOIN_KEY) is None


def test_display_name_is_kept_locally_and_remotely(store):
    banker = _device(store)
    code = banker.create_room()
    storage = MemoryStorage()
    alice = GameSession(storage, store, directory=banker.directory)
    alice.set_display_name('Alice')
    alice.join_room(code)
    alice.set_display_name('Al')
    assert storage.get(DISPLAY_NAME_KEY) == 'Al'
    row = store.select(PARTICIPANTS, {'identity': alice.identity, 'room_code': code})[0]
    assert row['display_name'] == 'Al'


def test_catch_up_through_sessions(store):
    banker = _device(store)
    code = banker.create_room()
    alice, bob = _device(store), _device(store)
    alice.join_room(code)
    bob.join_room(code)
    alice.set_base(1)
    bob.set_base(1)
    for m in (1, 2, 3):
        alice.apply_action(m)
    for m in (1, 2, 3, -1, -2):
        bob.apply_action(m)

    assert banker.summary.missing_rounds == {alice.identity: 2}
    banker.prompt_catch_up(alice.identity)
    assert banker.error is None
    assert alice.pending_catch_up == 2
    assert bob.pending_catch_up is None

    net = alice.state.ledger.current_net
    alice.resolve_catch_up(True)
    assert alice.pending_catch_up is None
    assert alice.state.ledger.round_count == 5
    assert alice.state.ledger.current_net == net
    assert banker.summary.missing_rounds == {}

    banker.prompt_catch_up(bob.identity)
    assert banker.error is not None


def test_leaving_tears_down_subscriptions(store):
    banker = _device(store)
    code = banker.create_room()
    alice = _device(store)
    alice.join_room(code)
    assert store.subscriber_count == 2
    alice.leave_room()
    assert store.subscriber_count == 1
    # Player leaving keeps the record and the room
    assert store.count(PARTICIPANTS, {'room_code': code}) == 2
    assert banker.directory.get_room(code).is_active
    banker.leave_room()
    assert store.subscriber_count == 0
    assert not banker.directory.get_room(code).is_active


def test_non_finite_stake_is_rejected(storage):
    session = GameSession(storage, None)
    solo = session.start_single()
    session.set_base(2)
    session.set_base('Infinity')
    assert session.error is not None
    session.clear_error()
    session.apply_action(0)
    assert session.error is None
    assert solo.base_stake == Decimal(2)
    session.set_base('NaN')
    assert session.error is not None


def test_non_finite_stake_in_room_is_rejected(store):
    banker = _device(store)
    code = banker.create_room()
    alice = _device(store)
    alice.join_room(code)
    alice.set_base('-Infinity')
    assert alice.error is not None
    alice.clear_error()
    alice.apply_action(3)
    assert alice.error is None
    assert alice.state.ledger.current_net == 0


def test_failed_subscription_leaves_the_room(store):
    storage = MemoryStorage()
    banker = GameSession(storage, store, directory=RoomDirectory(store, code_factory=lambda: '4821'))
    store.fail_subscribe = True
    assert banker.create_room() is None
    assert banker.mode is Mode.UNSELECTED
    assert 'socket down' in banker.error.message
    assert storage.get(AUTO_REJOIN_KEY) is None
    assert store.subscriber_count == 0

    # The room exists, so the banker can take it up again once the feed is back
    store.fail_subscribe = False
    banker.clear_error()
    assert banker.join_room('4821') is Role.BANKER
    assert banker.state.synchronizer.active
    assert banker.summary is not None

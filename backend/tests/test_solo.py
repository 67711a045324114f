from decimal import Decimal

from tally.core.identity import IdentityProvider
from tally.core.solo import LocalSessionStore
from tally.core.storage import IDENTITY_KEY, SOLO_NET_KEY, JsonFileStorage


def test_identity_is_generated_once_and_persisted(storage):
    first = IdentityProvider(storage).get_or_create_identity()
    assert first
    assert storage.get(IDENTITY_KEY) == first
    # A fresh provider over the same storage returns the same identity
    assert IdentityProvider(storage).get_or_create_identity() == first


def test_json_file_storage_round_trips_values(tmp_path):
    path = tmp_path / 'nested' / 'storage.json'
    storage = JsonFileStorage(str(path))
    assert storage.get('missing') is None
    storage.set('display_name', 'Alice')
    assert JsonFileStorage(str(path)).get('display_name') == 'Alice'
    storage.remove('display_name')
    assert storage.get('display_name') is None


def test_apply_and_undo(storage):
    solo = LocalSessionStore(storage)
    solo.set_base(2)
    solo.apply_action(3)
    assert solo.current_net == Decimal(6)
    assert solo.last_delta == Decimal(6)
    solo.apply_action(-5)
    assert solo.current_net == Decimal(-4)
    solo.undo()
    assert solo.current_net == Decimal(6)
    assert solo.last_delta == 0
    # Undo depth is one
    solo.undo()
    assert solo.current_net == Decimal(6)


def test_action_ignored_without_positive_base(storage):
    solo = LocalSessionStore(storage)
    solo.apply_action(5)
    assert solo.current_net == 0
    solo.set_base(-3)
    solo.apply_action(5)
    assert solo.current_net == 0
    assert solo.last_delta == 0


def test_state_is_restored_from_storage(storage):
    solo = LocalSessionStore(storage)
    solo.set_base('1.5')
    solo.apply_action(2)
    restored = LocalSessionStore(storage)
    assert restored.base_stake == Decimal('1.5')
    assert restored.current_net == Decimal('3.0')
    assert restored.last_delta == Decimal('3.0')


def test_exit_clears_state_and_keys(storage):
    solo = LocalSessionStore(storage)
    solo.set_base(4)
    solo.apply_action(1)
    solo.exit()
    assert solo.current_net == 0 and solo.base_stake == 0
    assert storage.get(SOLO_NET_KEY) is None


def test_storage_failure_degrades_to_memory(broken_storage):
    solo = LocalSessionStore(broken_storage)
    solo.set_base(10)
    solo.apply_action(-2)
    assert solo.current_net == Decimal(-20)
    solo.undo()
    assert solo.current_net == 0
    solo.exit()

import os
import sys
import pytest

# Ensure the backend root (containing the `tally` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from tally import create_app, db, socketio
from tally.core.errors import StorageUnavailable, StoreError
from tally.core.records import PARTICIPANTS
from tally.core.storage import MemoryStorage
from tally.core.store import MemoryStore


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    MAX_PARTICIPANTS = 15
    ROOM_CODE_ATTEMPTS = 5
    TALLY_STORE_URL = 'http://testserver'
    TALLY_STORE_TIMEOUT_SEC = 5.0
    TALLY_LOCAL_STORAGE = os.path.join(CURRENT_DIR, 'unused-storage.json')


class FlakyStore(MemoryStore):
    """MemoryStore whose participant updates and subscriptions can be made to fail on demand."""

    def __init__(self):
        super().__init__()
        self.fail_updates = False
        self.fail_subscribe = False
        self.update_calls = 0

    def update(self, table, match, changes):
        self.update_calls += 1
        if self.fail_updates and table == PARTICIPANTS:
            raise StoreError('simulated network failure')
        return super().update(table, match, changes)

    def subscribe(self, room_code, on_change=None, on_broadcast=None):
        if self.fail_subscribe:
            raise StoreError('socket down')
        return super().subscribe(room_code, on_change=on_change, on_broadcast=on_broadcast)


class BrokenStorage(MemoryStorage):
    def get(self, key):
        raise StorageUnavailable('disk gone')

    def set(self, key, value):
        raise StorageUnavailable('disk gone')

    def remove(self, key):
        raise StorageUnavailable('disk gone')


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import tally.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')


@pytest.fixture()
def store():
    return FlakyStore()


@pytest.fixture()
def storage():
    return MemoryStorage()


@pytest.fixture()
def broken_storage():
    return BrokenStorage()

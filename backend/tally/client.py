"""Wiring for a device-side session that talks to a running store service."""
import logging

from config import Config
from tally.core.remote import RemoteStore
from tally.core.rooms import RoomDirectory
from tally.core.session import GameSession
from tally.core.storage import JsonFileStorage

logger = logging.getLogger(__name__)


def build_session(config_class=Config, storage=None, store=None):
    """Build a `GameSession` from config, reconnecting to the last room if there was one."""
    storage = storage or JsonFileStorage(config_class.TALLY_LOCAL_STORAGE)
    store = store or RemoteStore(
        config_class.TALLY_STORE_URL,
        timeout_seconds=config_class.TALLY_STORE_TIMEOUT_SEC,
    )
    directory = RoomDirectory(
        store,
        max_participants=config_class.MAX_PARTICIPANTS,
        code_attempts=config_class.ROOM_CODE_ATTEMPTS,
    )
    session = GameSession(storage, store, directory=directory)
    role = session.auto_rejoin()
    if role is not None:
        logger.info(f"[auto-rejoin] room={session.room_code} role={role.value}")
    return session

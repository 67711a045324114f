import logging
import uuid
from typing import Optional

from .storage import IDENTITY_KEY, LocalStorage

logger = logging.getLogger(__name__)


class IdentityProvider:
    """Stable opaque per-device identity, generated once and kept in local storage."""

    def __init__(self, storage: LocalStorage) -> None:
        self._storage = storage
        self._identity: Optional[str] = None

    def get_or_create_identity(self) -> str:
        # StorageUnavailable propagates; an identity is never handed out unpersisted.
        if self._identity:
            return self._identity
        identity = self._storage.get(IDENTITY_KEY)
        if not identity:
            identity = str(uuid.uuid4())
            self._storage.set(IDENTITY_KEY, identity)
            logger.info(f"[identity-new] identity={identity}")
        self._identity = identity
        return identity

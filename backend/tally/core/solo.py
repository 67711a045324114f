import logging
from decimal import Decimal

from .errors import StorageUnavailable
from .records import to_decimal
from .storage import SOLO_BASE_KEY, SOLO_LAST_DELTA_KEY, SOLO_NET_KEY, LocalStorage

logger = logging.getLogger(__name__)

_KEYS = (SOLO_BASE_KEY, SOLO_NET_KEY, SOLO_LAST_DELTA_KEY)


class LocalSessionStore:
    """Single-player tally kept entirely on the device.

    Mirrors the multiplayer ledger contract (base stake, running net, one
    level of undo) without any network. State is restored from local storage
    on construction and written back after every change; a storage failure
    only costs persistence for that call.
    """

    def __init__(self, storage: LocalStorage) -> None:
        self._storage = storage
        self.base_stake = Decimal(0)
        self.current_net = Decimal(0)
        self.last_delta = Decimal(0)
        self._restore()

    def _restore(self) -> None:
        try:
            saved = [self._storage.get(key) for key in _KEYS]
        except StorageUnavailable as exc:
            logger.warning(f"[solo-restore] storage unavailable, starting fresh: {exc}")
            return
        try:
            self.base_stake, self.current_net, self.last_delta = (to_decimal(v) for v in saved)
        except ValueError as exc:
            logger.warning(f"[solo-restore] ignoring corrupt saved state: {exc}")
            self.base_stake = self.current_net = self.last_delta = Decimal(0)

    def _persist(self) -> None:
        try:
            self._storage.set(SOLO_BASE_KEY, str(self.base_stake))
            self._storage.set(SOLO_NET_KEY, str(self.current_net))
            self._storage.set(SOLO_LAST_DELTA_KEY, str(self.last_delta))
        except StorageUnavailable as exc:
            logger.warning(f"[solo-persist] keeping state in memory only: {exc}")

    def set_base(self, amount) -> None:
        self.base_stake = to_decimal(amount)
        self._persist()

    def apply_action(self, multiplier: int) -> None:
        if self.base_stake <= 0:
            return
        delta = self.base_stake * int(multiplier)
        self.current_net += delta
        self.last_delta = delta
        self._persist()

    def undo(self) -> None:
        if self.last_delta == 0:
            return
        self.current_net -= self.last_delta
        self.last_delta = Decimal(0)
        self._persist()

    def exit(self) -> None:
        self.base_stake = Decimal(0)
        self.current_net = Decimal(0)
        self.last_delta = Decimal(0)
        try:
            for key in _KEYS:
                self._storage.remove(key)
        except StorageUnavailable as exc:
            logger.warning(f"[solo-exit] could not clear saved state: {exc}")

from __future__ import annotations

import copy
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Tuple

from .errors import StoreError
from .records import PARTICIPANTS, TABLE_KEYS

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[Dict[str, Any]], None]
BroadcastHandler = Callable[[str, Dict[str, Any]], None]


class Subscription(Protocol):
    """A per-room channel handle returned by `BackingStore.subscribe`."""

    def send(self, event: str, payload: Dict[str, Any]) -> None:
        """Broadcast an application message to the other subscribers of the room."""

        ...

    def close(self) -> None:
        ...


class BackingStore(Protocol):
    """
    The remote relational store plus its per-room change feed.

    Implementations raise `StoreError` for any failed call. Writes are
    last-writer-wins per record; there are no concurrency tokens.
    """

    def insert(self, table: str, record: Mapping[str, Any]) -> Dict[str, Any]:
        ...

    def upsert(self, table: str, record: Mapping[str, Any]) -> Dict[str, Any]:
        ...

    def update(
        self, table: str, match: Mapping[str, Any], changes: Mapping[str, Any]
    ) -> List[Dict[str, Any]]:
        ...

    def select(self, table: str, match: Mapping[str, Any]) -> List[Dict[str, Any]]:
        ...

    def count(self, table: str, match: Mapping[str, Any]) -> int:
        ...

    def subscribe(
        self,
        room_code: str,
        on_change: Optional[ChangeHandler] = None,
        on_broadcast: Optional[BroadcastHandler] = None,
    ) -> Subscription:
        ...


def _matches(record: Mapping[str, Any], match: Mapping[str, Any]) -> bool:
    return all(str(record.get(k)) == str(v) for k, v in match.items())


class MemorySubscription:
    def __init__(
        self,
        store: 'MemoryStore',
        room_code: str,
        on_change: Optional[ChangeHandler],
        on_broadcast: Optional[BroadcastHandler],
    ) -> None:
        self._store = store
        self.room_code = room_code
        self.on_change = on_change
        self.on_broadcast = on_broadcast
        self.closed = False

    def send(self, event: str, payload: Dict[str, Any]) -> None:
        if self.closed:
            raise StoreError('Subscription is closed')
        self._store._dispatch_broadcast(self, event, payload)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._store._detach(self)


class MemoryStore:
    """
    In-process backing store with synchronous notifications.

    Used for offline play and as the test double for the HTTP store service.
    Records are deep-copied in and out so callers never share state with the
    store.
    """

    def __init__(self) -> None:
        self._tables: Dict[str, Dict[Tuple[str, ...], Dict[str, Any]]] = {
            table: {} for table in TABLE_KEYS
        }
        self._subscriptions: List[MemorySubscription] = []

    # ------------------------------------------------------------------ helpers
    def _table(self, table: str) -> Dict[Tuple[str, ...], Dict[str, Any]]:
        try:
            return self._tables[table]
        except KeyError:
            raise StoreError(f'Unknown table: {table}') from None

    @staticmethod
    def _key(table: str, record: Mapping[str, Any]) -> Tuple[str, ...]:
        try:
            return tuple(str(record[col]) for col in TABLE_KEYS[table])
        except KeyError as exc:
            raise StoreError(f'Missing key column {exc} for {table}') from None

    def _notify_change(self, table: str, event: str, record: Dict[str, Any]) -> None:
        if table != PARTICIPANTS:
            return
        room_code = str(record.get('room_code'))
        for sub in list(self._subscriptions):
            if sub.room_code == room_code and sub.on_change and not sub.closed:
                sub.on_change({'event': event, 'record': copy.deepcopy(record)})

    def _dispatch_broadcast(
        self, sender: MemorySubscription, event: str, payload: Dict[str, Any]
    ) -> None:
        for sub in list(self._subscriptions):
            if sub is sender or sub.closed or sub.room_code != sender.room_code:
                continue
            if sub.on_broadcast:
                sub.on_broadcast(event, copy.deepcopy(payload))

    def _detach(self, sub: MemorySubscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)

    # ------------------------------------------------------------------ CRUD
    def insert(self, table: str, record: Mapping[str, Any]) -> Dict[str, Any]:
        rows = self._table(table)
        key = self._key(table, record)
        if key in rows:
            raise StoreError(f'Duplicate key {key} in {table}')
        rows[key] = copy.deepcopy(dict(record))
        self._notify_change(table, 'INSERT', rows[key])
        return copy.deepcopy(rows[key])

    def upsert(self, table: str, record: Mapping[str, Any]) -> Dict[str, Any]:
        rows = self._table(table)
        key = self._key(table, record)
        event = 'UPDATE' if key in rows else 'INSERT'
        merged = rows.get(key, {})
        merged.update(copy.deepcopy(dict(record)))
        rows[key] = merged
        self._notify_change(table, event, merged)
        return copy.deepcopy(merged)

    def update(
        self, table: str, match: Mapping[str, Any], changes: Mapping[str, Any]
    ) -> List[Dict[str, Any]]:
        rows = self._table(table)
        key_cols = set(TABLE_KEYS[table])
        if key_cols & set(changes):
            raise StoreError(f'Cannot change key columns of {table}')
        updated = []
        for row in rows.values():
            if _matches(row, match):
                row.update(copy.deepcopy(dict(changes)))
                updated.append(row)
        for row in updated:
            self._notify_change(table, 'UPDATE', row)
        return [copy.deepcopy(row) for row in updated]

    def select(self, table: str, match: Mapping[str, Any]) -> List[Dict[str, Any]]:
        rows = self._table(table)
        return [copy.deepcopy(row) for row in rows.values() if _matches(row, match)]

    def count(self, table: str, match: Mapping[str, Any]) -> int:
        rows = self._table(table)
        return sum(1 for row in rows.values() if _matches(row, match))

    # ------------------------------------------------------------------ pub/sub
    def subscribe(
        self,
        room_code: str,
        on_change: Optional[ChangeHandler] = None,
        on_broadcast: Optional[BroadcastHandler] = None,
    ) -> MemorySubscription:
        sub = MemorySubscription(self, str(room_code), on_change, on_broadcast)
        self._subscriptions.append(sub)
        logger.debug(f"[subscribe] room={room_code} subscribers={len(self._subscriptions)}")
        return sub

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

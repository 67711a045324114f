"""Backing store client for the tally store service (HTTP for CRUD, Socket.IO for the feed)."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx
import socketio
from socketio.exceptions import SocketIOError

from .errors import StoreError
from .store import BroadcastHandler, ChangeHandler

logger = logging.getLogger(__name__)

NAMESPACE = '/ws'


class RemoteSubscription:
    def __init__(self, client: Any, room_code: str) -> None:
        self._client = client
        self.room_code = room_code
        self.closed = False

    def send(self, event: str, payload: Dict[str, Any]) -> None:
        if self.closed:
            raise StoreError('Subscription is closed')
        try:
            self._client.emit(
                'broadcast',
                {'room_code': self.room_code, 'event': event, 'payload': payload},
                namespace=NAMESPACE,
            )
        except SocketIOError as exc:
            raise StoreError(f'Broadcast failed: {exc}') from exc

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self._client.emit('unsubscribe_room', {'room_code': self.room_code}, namespace=NAMESPACE)
        except SocketIOError as exc:
            logger.info(f"[unsubscribe] room={self.room_code} already gone: {exc}")
        self._client.disconnect()


class RemoteStore:
    """
    `BackingStore` implementation talking to the Flask store service.

    An `httpx.Client` can be injected (tests pass one bound to the WSGI app);
    otherwise one is created lazily for `base_url`. Every subscription opens
    its own Socket.IO connection so closing it cannot affect other rooms.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.Client] = None,
        socket_factory: Optional[Callable[[], Any]] = None,
    ) -> None:
        if not isinstance(base_url, str) or not base_url.strip():
            raise ValueError('base_url must be a non-empty string')
        self.base_url = base_url.rstrip('/')
        self.timeout_seconds = float(timeout_seconds)
        self._client = client
        self._owns_client = False
        self._socket_factory = socket_factory or socketio.Client

    # ------------------------------------------------------------------ helpers
    def _ensure_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(base_url=self.base_url, timeout=self.timeout_seconds)
            self._owns_client = True
        return self._client

    def close(self) -> None:
        if self._owns_client and self._client is not None:
            self._client.close()
        self._client = None
        self._owns_client = False

    def _request(
        self,
        method: str,
        table: str,
        suffix: str = '',
        params: Optional[Mapping[str, Any]] = None,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        client = self._ensure_client()
        path = f'/api/tables/{table}{suffix}'
        try:
            response = client.request(
                method,
                path,
                params={k: str(v) for k, v in (params or {}).items()},
                json=dict(payload) if payload is not None else None,
            )
        except httpx.HTTPError as exc:
            raise StoreError(f'{method} {path} failed: {exc}') from exc
        if response.status_code >= 400:
            try:
                detail = response.json().get('error')
            except ValueError:
                detail = response.text
            raise StoreError(f'{method} {path} returned {response.status_code}: {detail}')
        return response.json()

    # ------------------------------------------------------------------ CRUD
    def insert(self, table: str, record: Mapping[str, Any]) -> Dict[str, Any]:
        return self._request('POST', table, payload=record)

    def upsert(self, table: str, record: Mapping[str, Any]) -> Dict[str, Any]:
        return self._request('PUT', table, payload=record)

    def update(
        self, table: str, match: Mapping[str, Any], changes: Mapping[str, Any]
    ) -> List[Dict[str, Any]]:
        return self._request('PATCH', table, params=match, payload=changes)

    def select(self, table: str, match: Mapping[str, Any]) -> List[Dict[str, Any]]:
        return self._request('GET', table, params=match)

    def count(self, table: str, match: Mapping[str, Any]) -> int:
        return int(self._request('GET', table, suffix='/count', params=match)['count'])

    # ------------------------------------------------------------------ pub/sub
    def subscribe(
        self,
        room_code: str,
        on_change: Optional[ChangeHandler] = None,
        on_broadcast: Optional[BroadcastHandler] = None,
    ) -> RemoteSubscription:
        client = self._socket_factory()
        sub = RemoteSubscription(client, str(room_code))

        def _change(data):
            if not sub.closed and on_change:
                on_change(data or {})

        def _broadcast(data):
            data = data or {}
            if not sub.closed and on_broadcast:
                on_broadcast(str(data.get('event')), data.get('payload') or {})

        client.on('participant_change', _change, namespace=NAMESPACE)
        client.on('broadcast', _broadcast, namespace=NAMESPACE)
        try:
            client.connect(self.base_url, namespaces=[NAMESPACE], wait_timeout=self.timeout_seconds)
            client.emit('subscribe_room', {'room_code': sub.room_code}, namespace=NAMESPACE)
        except SocketIOError as exc:
            sub.closed = True
            client.disconnect()
            raise StoreError(f'Cannot subscribe to room {room_code}: {exc}') from exc
        logger.info(f"[subscribe] room={room_code} url={self.base_url}")
        return sub

"""Local key/value persistence for a single device.

Values are plain strings, like browser local storage. `MemoryStorage` keeps
them in a dict; `JsonFileStorage` keeps them in one JSON document on disk.
"""
from __future__ import annotations

import json
import os
from typing import Dict, Optional, Protocol

from .errors import StorageUnavailable

IDENTITY_KEY = 'device_identity'
DISPLAY_NAME_KEY = 'display_name'
AUTO_REJOIN_KEY = 'auto_rejoin_room'
SOLO_BASE_KEY = 'solo_base_stake'
SOLO_NET_KEY = 'solo_current_net'
SOLO_LAST_DELTA_KEY = 'solo_last_delta'


class LocalStorage(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class MemoryStorage:
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = str(value)

    def remove(self, key: str) -> None:
        self._values.pop(key, None)


class JsonFileStorage:
    """
    File-backed storage. The whole document is rewritten on every change,
    which is fine for the handful of keys a device keeps.

    Any I/O or decoding problem surfaces as `StorageUnavailable`.
    """

    def __init__(self, path: str) -> None:
        self._path = path

    def _load(self) -> Dict[str, str]:
        try:
            with open(self._path, 'r', encoding='utf-8') as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            raise StorageUnavailable(f'Cannot read {self._path}: {exc}') from exc
        if not isinstance(data, dict):
            raise StorageUnavailable(f'Unexpected content in {self._path}')
        return {str(k): str(v) for k, v in data.items()}

    def _dump(self, values: Dict[str, str]) -> None:
        tmp_path = f'{self._path}.tmp'
        try:
            directory = os.path.dirname(self._path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as fh:
                json.dump(values, fh, sort_keys=True)
            os.replace(tmp_path, self._path)
        except OSError as exc:
            raise StorageUnavailable(f'Cannot write {self._path}: {exc}') from exc

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        values = self._load()
        values[key] = str(value)
        self._dump(values)

    def remove(self, key: str) -> None:
        values = self._load()
        if key in values:
            del values[key]
            self._dump(values)

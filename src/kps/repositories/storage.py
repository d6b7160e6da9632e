from __future__ import annotations

import json
import sqlite3
import logging
from typing import Any, Optional

from kps.repositories.contracts import KeyValueStore

log = logging.getLogger(__name__)


class InMemoryStore:
    """Dict-backed store. Several services sharing one instance behave like
    several devices sharing one storage medium."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def keys_with_prefix(self, prefix: str) -> list[str]:
        return [k for k in self._data if k.startswith(prefix)]

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


def load_json(store: KeyValueStore, key: str, default: Any = None) -> Any:
    """Read and decode a JSON value; missing or corrupted entries yield ``default``."""
    raw = store.get(key)
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        log.warning("storage_corrupted key=%s error=%s", key, e)
        return default


def save_json(store: KeyValueStore, key: str, value: Any) -> bool:
    try:
        store.set(key, json.dumps(value, ensure_ascii=False))
        return True
    except (sqlite3.Error, OSError, TypeError, ValueError) as e:
        log.error("storage_write_failed key=%s error=%s", key, e)
        return False

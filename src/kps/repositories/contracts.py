from __future__ import annotations

from typing import Optional, Protocol


class KeyValueStore(Protocol):
    """Shared storage medium. Values are serialized text."""

    def keys_with_prefix(self, prefix: str) -> list[str]: ...
    def get(self, key: str) -> Optional[str]: ...
    def set(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> None: ...

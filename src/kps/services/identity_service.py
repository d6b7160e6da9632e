from __future__ import annotations

import secrets
import string

_ALPHABET = string.digits + string.ascii_lowercase


class DeviceIdentityProvider:
    """Generates the device id once and keeps it in the store."""

    def __init__(self, store, key: str = "kps_device_id"):
        self.store = store
        self.key = key

    @staticmethod
    def generate() -> str:
        return "DEV_" + "".join(secrets.choice(_ALPHABET) for _ in range(9))

    def get_device_id(self) -> str:
        existing = self.store.get(self.key)
        if existing and existing.strip():
            return existing.strip()
        device_id = self.generate()
        self.store.set(self.key, device_id)
        return device_id

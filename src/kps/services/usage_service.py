from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from kps.repositories.storage import load_json, save_json
from kps.services.clock import iso_timestamp, utc_now

log = logging.getLogger(__name__)


class UsageTracker:
    """Per-day usage buckets (``<prefix>YYYY-MM-DD``), newest ``daily_cap`` entries kept."""

    def __init__(
        self,
        store,
        device_id: str,
        version: str,
        mode_provider: Callable[[], str],
        prefix: str = "kps_usage_",
        daily_cap: int = 100,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.device_id = device_id
        self.version = version
        self.mode_provider = mode_provider
        self.prefix = prefix
        self.daily_cap = daily_cap
        self.clock = clock

    def bucket_key(self, day: str) -> str:
        return f"{self.prefix}{day}"

    def track(self, action: str, data: dict[str, Any] | None = None) -> None:
        now = self.clock()
        entry = {
            "timestamp": iso_timestamp(now),
            "action": action,
            "data": dict(data or {}),
            "version": self.version,
            "mode": self.mode_provider(),
            "device_id": self.device_id,
        }
        key = self.bucket_key(now.astimezone(timezone.utc).date().isoformat())
        bucket = load_json(self.store, key, default=[])
        if not isinstance(bucket, list):
            bucket = []
        bucket.append(entry)
        save_json(self.store, key, bucket[-self.daily_cap:])

    def events_for_day(self, day: str) -> list[dict]:
        bucket = load_json(self.store, self.bucket_key(day), default=[])
        return bucket if isinstance(bucket, list) else []

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from kps.services.ledger_service import SalesLedger

log = logging.getLogger(__name__)


class LedgerMaintenance:
    """Runs reconciliation and retention cleanup on fixed intervals.

    Both jobs only touch the ledger's lists, so they can interleave freely
    with cart and scan work on the same loop.
    """

    def __init__(self, ledger: SalesLedger, sync_interval: float, cleanup_interval: float):
        self.ledger = ledger
        self.sync_interval = sync_interval
        self.cleanup_interval = cleanup_interval
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    async def _every(self, interval: float, job: Callable[[], object], name: str) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                job()
            except Exception:
                log.exception("maintenance_job_failed job=%s", name)

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.ensure_future(self._every(self.sync_interval, self.ledger.reconcile, "reconcile")),
            asyncio.ensure_future(self._every(self.cleanup_interval, self.ledger.cleanup_old_entries, "cleanup")),
        ]
        log.info("maintenance_started sync=%ss cleanup=%ss", self.sync_interval, self.cleanup_interval)

    async def stop(self, timeout: Optional[float] = None) -> None:
        tasks, self._tasks = self._tasks, []
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.wait(tasks, timeout=timeout)

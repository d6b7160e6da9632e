from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Optional

from kps.domain.models import AppEvent, DeviceLedger, LedgerStats, SaleItem, SaleRecord
from kps.repositories.storage import load_json, save_json
from kps.services.clock import EPOCH, iso_timestamp, local_midnight, parse_timestamp, utc_now

log = logging.getLogger("kps.sales")


class SalesLedger:
    """Append-only sales and event history of one device.

    Each device persists its own bundle under ``<prefix><device_id>``.
    Reconciliation unions every other device's bundle into ours (sales by
    ``sale_id``, events by ``(timestamp, action)``), sorts by time and keeps
    the newest ``sales_cap`` / ``events_cap`` entries. The cap can drop an
    entry before another device has merged it; that divergence is accepted.
    """

    def __init__(
        self,
        store,
        device_id: str,
        prefix: str = "kps_logs_",
        sales_cap: int = 1000,
        events_cap: int = 500,
        cleanup_days: int = 30,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.device_id = device_id
        self.prefix = prefix
        self.sales_cap = sales_cap
        self.events_cap = events_cap
        self.cleanup_days = cleanup_days
        self.clock = clock
        self.sales: list[SaleRecord] = []
        self.app_events: list[AppEvent] = []

    @property
    def storage_key(self) -> str:
        return f"{self.prefix}{self.device_id}"

    # ---- persistence ----

    def _read_ledger(self, key: str) -> Optional[DeviceLedger]:
        raw = load_json(self.store, key)
        if raw is None:
            return None
        try:
            ledger = DeviceLedger.from_dict(raw)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            log.warning("ledger_parse_failed key=%s error=%s", key, e)
            return None
        if ledger.dropped:
            log.warning("ledger_entries_skipped key=%s count=%s", key, ledger.dropped)
        return ledger

    def load(self) -> None:
        own = self._read_ledger(self.storage_key)
        if own is None:
            self.sales, self.app_events = [], []
            return
        self.sales = list(own.sales)
        self.app_events = list(own.app_events)

    def save(self) -> None:
        bundle = DeviceLedger(
            device_id=self.device_id,
            app_events=tuple(self.app_events[-self.events_cap:]),
            sales=tuple(self.sales[-self.sales_cap:]),
            last_updated=iso_timestamp(self.clock()),
        )
        save_json(self.store, self.storage_key, bundle.to_dict())

    # ---- reconciliation ----

    def _foreign_ledgers(self) -> Iterable[DeviceLedger]:
        by_device: dict[str, DeviceLedger] = {}
        for key in self.store.keys_with_prefix(self.prefix):
            ledger = self._read_ledger(key)
            if ledger is None or ledger.device_id == self.device_id:
                continue
            by_device[ledger.device_id] = ledger
        return by_device.values()

    def reconcile(self) -> tuple[int, int]:
        """Merge other devices' ledgers into ours. Returns (sales, events) added."""
        sales = list(self.sales)
        events = list(self.app_events)
        sale_ids = {s.sale_id for s in sales}
        event_keys = {e.key for e in events}
        added_sales = added_events = 0

        for ledger in self._foreign_ledgers():
            for sale in ledger.sales:
                if sale.sale_id not in sale_ids:
                    sale_ids.add(sale.sale_id)
                    sales.append(sale)
                    added_sales += 1
            for event in ledger.app_events:
                if event.key not in event_keys:
                    event_keys.add(event.key)
                    events.append(event)
                    added_events += 1

        sales.sort(key=lambda s: parse_timestamp(s.timestamp))
        events.sort(key=lambda e: parse_timestamp(e.timestamp))

        self.sales = sales[-self.sales_cap:]
        self.app_events = events[-self.events_cap:]
        self.save()
        log.info(
            "ledger_reconciled sales=%s events=%s added_sales=%s added_events=%s",
            len(self.sales), len(self.app_events), added_sales, added_events,
        )
        return added_sales, added_events

    def cleanup_old_entries(self) -> None:
        cutoff = self.clock() - timedelta(days=self.cleanup_days)
        self.sales = [s for s in self.sales if parse_timestamp(s.timestamp) > cutoff]
        self.app_events = self.app_events[-self.events_cap:]
        self.save()
        log.info("ledger_cleanup sales=%s events=%s", len(self.sales), len(self.app_events))

    def clear_all(self) -> int:
        """Erase every device's ledger from the shared store."""
        keys = self.store.keys_with_prefix(self.prefix)
        for key in keys:
            self.store.delete(key)
        self.sales = []
        self.app_events = []
        log.warning("ledger_cleared keys=%s", len(keys))
        return len(keys)

    # ---- appends ----

    def _next_sale_id(self, now: datetime) -> str:
        millis = int((now - EPOCH).total_seconds() * 1000)
        existing = {s.sale_id for s in self.sales}
        sale_id = f"SALE_{millis}_{self.device_id}"
        while sale_id in existing:
            millis += 1
            sale_id = f"SALE_{millis}_{self.device_id}"
        return sale_id

    def log_sale(self, items: Iterable[SaleItem]) -> SaleRecord:
        items = tuple(items)
        now = self.clock()
        sale = SaleRecord(
            sale_id=self._next_sale_id(now),
            timestamp=iso_timestamp(now),
            items=items,
            total_amount=sum(it.line_total for it in items),
            total_items=sum(it.quantity for it in items),
            device_id=self.device_id,
        )
        self.sales.append(sale)
        self.save()
        log.info("sale_logged sale_id=%s total=%s items=%s", sale.sale_id, sale.total_amount, sale.total_items)
        return sale

    def log_app_action(self, action: str, details: dict[str, Any] | None = None) -> AppEvent:
        event = AppEvent(
            timestamp=iso_timestamp(self.clock()),
            action=action,
            details=dict(details or {}),
            device_id=self.device_id,
        )
        self.app_events.append(event)
        self.save()
        log.info("app_action action=%s details=%s", action, event.details)
        return event

    # ---- queries ----

    def _is_today(self, sale: SaleRecord, midnight: datetime) -> bool:
        return parse_timestamp(sale.timestamp) >= midnight

    def get_stats(self, now: Optional[datetime] = None) -> LedgerStats:
        midnight = local_midnight(now or self.clock())
        today = [s for s in self.sales if self._is_today(s, midnight)]
        return LedgerStats(
            total_sales=len(self.sales),
            total_revenue=sum(s.total_amount for s in self.sales),
            total_items=sum(s.total_items for s in self.sales),
            today_sales=len(today),
            today_revenue=sum(s.total_amount for s in today),
            today_items=sum(s.total_items for s in today),
        )

    def get_sales_by_period(self, tag: str, now: Optional[datetime] = None) -> list[SaleRecord]:
        """``today-*`` tags select today's sales; every other tag selects all."""
        if "today" in (tag or ""):
            midnight = local_midnight(now or self.clock())
            return [s for s in self.sales if self._is_today(s, midnight)]
        return list(self.sales)

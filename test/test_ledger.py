import json
from datetime import timedelta

from conftest import NOON, fixed_clock

from kps.domain.models import SaleItem, SaleRecord
from kps.repositories.storage import InMemoryStore
from kps.services.clock import iso_timestamp
from kps.services.ledger_service import SalesLedger

ITEM = SaleItem(name="Halo Infinite", platform="XBOX ONE", unit_price=3299, quantity=1, line_total=3299)


def _ledger(store, device_id, clock=None, **kw) -> SalesLedger:
    ledger = SalesLedger(store, device_id, clock=clock or fixed_clock(), **kw)
    ledger.load()
    return ledger


def _sale(i: int, device_id: str, at) -> dict:
    return SaleRecord(
        sale_id=f"SALE_{i}_{device_id}",
        timestamp=iso_timestamp(at),
        items=(ITEM,),
        total_amount=3299,
        total_items=1,
        device_id=device_id,
    ).to_dict()


def _bundle(device_id: str, sales: list[dict], events: list[dict] | None = None) -> str:
    return json.dumps({"device_id": device_id, "sales": sales, "app_events": events or [], "last_updated": None})


def test_reconcile_unions_both_devices_and_is_idempotent():
    store = InMemoryStore()
    a = _ledger(store, "DEV_aaaaaaaaa", clock=fixed_clock(NOON))
    b = _ledger(store, "DEV_bbbbbbbbb", clock=fixed_clock(NOON - timedelta(minutes=5)))
    a.log_sale([ITEM])
    b.log_sale([ITEM])
    b.log_app_action("SALE_COMPLETED", {"n": 1})

    assert a.reconcile() == (1, 1)
    assert [s.device_id for s in a.sales] == ["DEV_bbbbbbbbb", "DEV_aaaaaaaaa"]
    assert a.reconcile() == (0, 0)
    assert len(a.sales) == 2

    b.reconcile()
    assert {s.sale_id for s in b.sales} == {s.sale_id for s in a.sales}


def test_reconciled_ledger_is_persisted_under_own_key():
    store = InMemoryStore()
    a = _ledger(store, "DEV_aaaaaaaaa")
    store.set("kps_logs_DEV_bbbbbbbbb", _bundle("DEV_bbbbbbbbb", [_sale(1, "DEV_bbbbbbbbb", NOON)]))

    a.reconcile()
    reloaded = _ledger(store, "DEV_aaaaaaaaa")
    assert [s.sale_id for s in reloaded.sales] == ["SALE_1_DEV_bbbbbbbbb"]


def test_merge_keeps_newest_thousand_sales():
    store = InMemoryStore()
    start = NOON - timedelta(days=2)
    sales = [_sale(i, "DEV_bbbbbbbbb", start + timedelta(minutes=i)) for i in range(1200)]
    store.set("kps_logs_DEV_bbbbbbbbb", _bundle("DEV_bbbbbbbbb", sales))

    a = _ledger(store, "DEV_aaaaaaaaa")
    assert a.reconcile() == (1200, 0)
    assert len(a.sales) == 1000
    assert a.sales[0].sale_id == "SALE_200_DEV_bbbbbbbbb"
    assert a.sales[-1].sale_id == "SALE_1199_DEV_bbbbbbbbb"

    saved = json.loads(store.get("kps_logs_DEV_aaaaaaaaa"))
    assert len(saved["sales"]) == 1000


def test_events_are_deduplicated_by_timestamp_and_action():
    store = InMemoryStore()
    ts = iso_timestamp(NOON)
    events = [
        {"timestamp": ts, "action": "SCAN_SUCCESS", "details": {}},
        {"timestamp": ts, "action": "SCAN_SUCCESS", "details": {"dup": True}},
        {"timestamp": ts, "action": "SCAN_FAILED", "details": {}},
    ]
    store.set("kps_logs_DEV_bbbbbbbbb", _bundle("DEV_bbbbbbbbb", [], events))
    store.set("kps_logs_DEV_ccccccccc", _bundle("DEV_ccccccccc", [], events))

    a = _ledger(store, "DEV_aaaaaaaaa")
    assert a.reconcile() == (0, 2)


def test_malformed_foreign_ledgers_are_skipped():
    store = InMemoryStore()
    store.set("kps_logs_broken", "{not json")
    store.set("kps_logs_nodevice", json.dumps({"sales": []}))
    store.set("kps_logs_nosales", json.dumps({"device_id": "DEV_x", "sales": "oops"}))
    store.set("kps_logs_DEV_bbbbbbbbb", _bundle("DEV_bbbbbbbbb", [_sale(1, "DEV_bbbbbbbbb", NOON)]))

    a = _ledger(store, "DEV_aaaaaaaaa")
    assert a.reconcile() == (1, 0)


def test_corrupted_own_ledger_loads_empty_and_is_overwritten():
    store = InMemoryStore({"kps_logs_DEV_aaaaaaaaa": "{broken"})
    a = _ledger(store, "DEV_aaaaaaaaa")
    assert a.sales == [] and a.app_events == []

    a.log_sale([ITEM])
    assert len(json.loads(store.get("kps_logs_DEV_aaaaaaaaa"))["sales"]) == 1


def test_cleanup_drops_sales_older_than_thirty_days():
    store = InMemoryStore()
    sales = [
        _sale(1, "DEV_aaaaaaaaa", NOON - timedelta(days=31)),
        _sale(2, "DEV_aaaaaaaaa", NOON - timedelta(days=29)),
    ]
    store.set("kps_logs_DEV_aaaaaaaaa", _bundle("DEV_aaaaaaaaa", sales))
    a = _ledger(store, "DEV_aaaaaaaaa")

    a.cleanup_old_entries()
    assert [s.sale_id for s in a.sales] == ["SALE_2_DEV_aaaaaaaaa"]


def test_stats_and_period_filter():
    store = InMemoryStore()
    sales = [
        _sale(1, "DEV_aaaaaaaaa", NOON - timedelta(days=2)),
        _sale(2, "DEV_aaaaaaaaa", NOON - timedelta(hours=1)),
    ]
    store.set("kps_logs_DEV_aaaaaaaaa", _bundle("DEV_aaaaaaaaa", sales))
    a = _ledger(store, "DEV_aaaaaaaaa")

    stats = a.get_stats()
    assert (stats.total_sales, stats.total_items, stats.total_revenue) == (2, 2, 6598)
    assert (stats.today_sales, stats.today_items, stats.today_revenue) == (1, 1, 3299)

    assert [s.sale_id for s in a.get_sales_by_period("today-sales")] == ["SALE_2_DEV_aaaaaaaaa"]
    assert len(a.get_sales_by_period("all-sales")) == 2


def test_clear_all_removes_every_device_ledger():
    store = InMemoryStore({"kps_cart": "[]"})
    a = _ledger(store, "DEV_aaaaaaaaa")
    b = _ledger(store, "DEV_bbbbbbbbb")
    a.log_sale([ITEM])
    b.log_sale([ITEM])

    assert a.clear_all() == 2
    assert store.keys_with_prefix("kps_logs_") == []
    assert store.get("kps_cart") == "[]"
    assert a.sales == []


def test_one_broken_sale_does_not_wipe_own_history():
    store = InMemoryStore()
    broken = _sale(3, "DEV_aaaaaaaaa", NOON)
    broken["total_amount"] = None
    sales = [_sale(1, "DEV_aaaaaaaaa", NOON - timedelta(hours=2)), _sale(2, "DEV_aaaaaaaaa", NOON - timedelta(hours=1)), broken]
    events = [{"timestamp": iso_timestamp(NOON), "action": "SCAN_START"}, {"action": "no timestamp"}]
    store.set("kps_logs_DEV_aaaaaaaaa", _bundle("DEV_aaaaaaaaa", sales, events))

    a = _ledger(store, "DEV_aaaaaaaaa")
    assert [s.sale_id for s in a.sales] == ["SALE_1_DEV_aaaaaaaaa", "SALE_2_DEV_aaaaaaaaa"]
    assert [e.action for e in a.app_events] == ["SCAN_START"]

    a.log_sale([ITEM])
    persisted = json.loads(store.get("kps_logs_DEV_aaaaaaaaa"))
    assert len(persisted["sales"]) == 3


def test_one_broken_foreign_sale_keeps_the_rest_of_that_device():
    store = InMemoryStore()
    broken = _sale(2, "DEV_bbbbbbbbb", NOON)
    broken["total_items"] = "x"
    store.set("kps_logs_DEV_bbbbbbbbb", _bundle("DEV_bbbbbbbbb", [_sale(1, "DEV_bbbbbbbbb", NOON), broken, 7]))

    a = _ledger(store, "DEV_aaaaaaaaa")
    assert a.reconcile() == (1, 0)
    assert [s.sale_id for s in a.sales] == ["SALE_1_DEV_bbbbbbbbb"]

import asyncio
import json
from pathlib import Path

from conftest import NOON

from kps.application.container import build_container
from kps.application.maintenance import LedgerMaintenance
from kps.config import AppConfig
from kps.domain.models import SaleRecord
from kps.repositories.storage import InMemoryStore
from kps.services.catalog_service import DEMO_CATALOG
from kps.services.clock import iso_timestamp
from kps.services.ledger_service import SalesLedger


def _foreign_bundle(device_id: str) -> str:
    sale = SaleRecord(
        sale_id=f"SALE_1_{device_id}",
        timestamp=iso_timestamp(NOON),
        items=(),
        total_amount=0,
        total_items=0,
        device_id=device_id,
    )
    return json.dumps({"device_id": device_id, "sales": [sale.to_dict()], "app_events": []})


def test_config_from_env_overrides_typed_fields():
    config = AppConfig.from_env(
        {
            "KPS_PRICE_MARKUP": "500",
            "KPS_CAMERA_SETTLE_SECONDS": "0.5",
            "KPS_SYNC_INTERVAL_SECONDS": "60",
            "KPS_FORCED_MODE": "client",
            "UNRELATED": "x",
        }
    )
    assert config.price_markup == 500
    assert config.camera_settle_seconds == 0.5
    assert config.sync_interval_seconds == 60.0
    assert config.forced_mode == "client"
    assert config.sales_cap == 1000


def test_maintenance_runs_reconciliation_periodically():
    store = InMemoryStore()
    ledger = SalesLedger(store, "DEV_aaaaaaaaa")
    maintenance = LedgerMaintenance(ledger, sync_interval=0.01, cleanup_interval=3600)

    async def run():
        maintenance.start()
        assert maintenance.running
        store.set("kps_logs_DEV_bbbbbbbbb", _foreign_bundle("DEV_bbbbbbbbb"))
        await asyncio.sleep(0.05)
        await maintenance.stop()

    asyncio.run(run())
    assert not maintenance.running
    assert [s.device_id for s in ledger.sales] == ["DEV_bbbbbbbbb"]


def test_maintenance_survives_failing_job():
    calls = []

    class FlakyLedger:
        def reconcile(self):
            calls.append("reconcile")
            raise RuntimeError("boom")

        def cleanup_old_entries(self):
            pass

    maintenance = LedgerMaintenance(FlakyLedger(), sync_interval=0.005, cleanup_interval=3600)

    async def run():
        maintenance.start()
        await asyncio.sleep(0.05)
        await maintenance.stop()

    asyncio.run(run())
    assert len(calls) >= 2


def test_container_shares_store_and_reconciles_on_build():
    store = InMemoryStore()
    store.set("kps_logs_DEV_bbbbbbbbb", _foreign_bundle("DEV_bbbbbbbbb"))

    c = build_container(store=store, config=AppConfig(forced_mode="client"))

    assert c.device_id.startswith("DEV_")
    assert c.modes.is_client_mode
    assert [s.sale_id for s in c.ledger.sales] == ["SALE_1_DEV_bbbbbbbbb"]
    assert len(c.catalog) == 0
    assert build_container(store=store).device_id == c.device_id


def test_container_with_sqlite_file(tmp_path: Path):
    c = build_container(tmp_path / "kiosk.db")
    c.cart.add(DEMO_CATALOG[0])
    again = build_container(tmp_path / "kiosk.db")

    assert again.device_id == c.device_id
    assert len(again.cart) == 1


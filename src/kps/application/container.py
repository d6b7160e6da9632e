from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import requests

from kps.application.maintenance import LedgerMaintenance
from kps.config import AppConfig
from kps.domain.models import ProductRecord
from kps.repositories.sqlite_repo import SqliteKeyValueStore
from kps.services.auth_service import ModeService, SharedSecretAuthorizer
from kps.services.cart_service import Cart
from kps.services.catalog_parser import CsvCatalogParser
from kps.services.catalog_service import CatalogStore
from kps.services.identity_service import DeviceIdentityProvider
from kps.services.ledger_service import SalesLedger
from kps.services.matching import BarcodeMatcher
from kps.services.pricing import final_price
from kps.services.reporting_service import ReportingService
from kps.services.sales_service import CheckoutService
from kps.services.scan_session import Camera, Decoder, ScanSession
from kps.services.search_service import SearchEngine
from kps.services.usage_service import UsageTracker


@dataclass(frozen=True)
class AppContainer:
    config: AppConfig
    store: object
    device_id: str
    catalog: CatalogStore
    cart: Cart
    ledger: SalesLedger
    tracker: UsageTracker
    modes: ModeService
    matcher: BarcodeMatcher
    search: SearchEngine
    checkout: CheckoutService
    reporting: ReportingService
    maintenance: LedgerMaintenance


def build_container(
    db_path: Path | str | None = None,
    config: Optional[AppConfig] = None,
    store=None,
    http: Optional[requests.Session] = None,
) -> AppContainer:
    """Wire every service around one storage medium.

    Pass ``store`` to share an existing store (tests, several simulated
    devices); otherwise a SQLite store is opened at ``db_path``.
    """
    config = config or AppConfig()
    if store is None:
        if db_path is None:
            raise ValueError("db_path or store is required")
        store = SqliteKeyValueStore(db_path)
        store.init_db()

    device_id = DeviceIdentityProvider(store, config.device_id_key).get_device_id()

    modes = ModeService(
        store,
        SharedSecretAuthorizer(config.operator_password),
        key=config.mode_key,
        forced_mode=config.forced_mode,
    )
    tracker = UsageTracker(
        store,
        device_id=device_id,
        version=config.app_version,
        mode_provider=lambda: modes.mode,
        prefix=config.usage_prefix,
        daily_cap=config.usage_daily_cap,
    )
    modes.tracker = tracker

    catalog = CatalogStore(
        store,
        url=config.catalog_url,
        cache_key=config.catalog_key,
        parser=CsvCatalogParser(delimiter=config.csv_delimiter),
        timeout=config.catalog_timeout_seconds,
        min_length=config.catalog_min_length,
        session=http,
    )

    pricer: Callable[[str], int] = lambda text: final_price(text, config.price_markup)
    cart = Cart(store, key=config.cart_key, pricer=pricer)
    cart.load()

    ledger = SalesLedger(
        store,
        device_id=device_id,
        prefix=config.ledger_prefix,
        sales_cap=config.sales_cap,
        events_cap=config.events_cap,
        cleanup_days=config.cleanup_days,
    )
    ledger.load()
    ledger.cleanup_old_entries()
    ledger.reconcile()

    return AppContainer(
        config=config,
        store=store,
        device_id=device_id,
        catalog=catalog,
        cart=cart,
        ledger=ledger,
        tracker=tracker,
        modes=modes,
        matcher=BarcodeMatcher(),
        search=SearchEngine(),
        checkout=CheckoutService(cart, ledger, tracker),
        reporting=ReportingService(ledger, config.app_version, file_prefix=config.export_prefix),
        maintenance=LedgerMaintenance(ledger, config.sync_interval_seconds, config.cleanup_interval_seconds),
    )


def build_scan_session(
    container: AppContainer,
    camera: Camera,
    decoder: Decoder,
    on_product: Optional[Callable[[ProductRecord], None]] = None,
    on_status: Optional[Callable[[str, str], None]] = None,
) -> ScanSession:
    return ScanSession(
        camera=camera,
        decoder=decoder,
        catalog=container.catalog,
        cart=container.cart,
        modes=container.modes,
        config=container.config,
        matcher=container.matcher,
        tracker=container.tracker,
        on_product=on_product,
        on_status=on_status,
    )

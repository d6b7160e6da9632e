from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
import os
import sys


DEFAULT_CATALOG_URL = (
    "https://docs.google.com/spreadsheets/d/1fMWJan1HP7tcKwa_hm86oCm0KPtC_zN50UhU72Q8xeA"
    "/export?format=csv&gid=1995791598"
)


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path
    exports_dir: Path


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "KioskPriceScanner") -> AppPaths:
    if sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    exports = base / "exports"
    db = base / "kiosk.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs, exports_dir=exports)


@dataclass(frozen=True)
class AppConfig:
    app_version: str = "5.1"
    catalog_url: str = DEFAULT_CATALOG_URL
    catalog_timeout_seconds: float = 10.0
    catalog_min_length: int = 100
    csv_delimiter: str = ","

    price_markup: int = 1000

    min_code_length: int = 6
    scan_cooldown_ms: int = 300
    camera_settle_seconds: float = 1.0
    success_stop_seconds: float = 1.0
    not_found_restart_seconds: float = 0.3
    decoder_restart_seconds: float = 0.2
    camera_restart_seconds: float = 0.3
    camera_error_stop_seconds: float = 3.0
    max_decoder_restarts: int = 5
    search_result_limit: int = 15

    sales_cap: int = 1000
    events_cap: int = 500
    cleanup_days: int = 30
    sync_interval_seconds: float = 5 * 60.0
    cleanup_interval_seconds: float = 24 * 60 * 60.0
    usage_daily_cap: int = 100

    catalog_key: str = "kps_catalog"
    cart_key: str = "kps_cart"
    device_id_key: str = "kps_device_id"
    mode_key: str = "kps_mode"
    ledger_prefix: str = "kps_logs_"
    usage_prefix: str = "kps_usage_"
    export_prefix: str = "kps_"

    operator_password: str = "gamezone"
    # "client" or "operator"; overrides the persisted mode when set.
    forced_mode: str = ""

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "AppConfig":
        """Build a config, overriding any field from a ``KPS_<FIELD>`` variable."""
        env = os.environ if environ is None else environ
        base = cls()
        overrides: dict[str, object] = {}
        for f in fields(cls):
            raw = env.get(f"KPS_{f.name.upper()}")
            if raw is None:
                continue
            current = getattr(base, f.name)
            if isinstance(current, int):
                overrides[f.name] = int(raw)
            elif isinstance(current, float):
                overrides[f.name] = float(raw)
            else:
                overrides[f.name] = raw
        return replace(base, **overrides)

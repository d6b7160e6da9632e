from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

import requests

from kps.domain.models import ProductRecord
from kps.repositories.storage import load_json, save_json
from kps.services.catalog_parser import CsvCatalogParser

log = logging.getLogger("kps.catalog")


DEMO_CATALOG: tuple[ProductRecord, ...] = (
    ProductRecord(
        platform="PS4",
        barcode="711719803278",
        name="The Last of Us Part II",
        code="CUSA-18278",
        code_type="CUSA",
        language="RUS",
        wholesale_price="1999",
        marketplace_price="2499",
    ),
    ProductRecord(
        platform="PS5",
        barcode="711719998653",
        name="Spider-Man: Miles Morales",
        code="PPSA-01462",
        code_type="PPSA",
        language="RUS",
        wholesale_price="2499",
        marketplace_price="3499",
    ),
    ProductRecord(
        platform="NS",
        barcode="045496873285",
        name="The Legend of Zelda: Breath of the Wild",
        language="ENG",
        wholesale_price="2999",
        marketplace_price="3999",
    ),
    ProductRecord(
        platform="XBOX ONE",
        barcode="889842414205",
        name="Halo Infinite",
        language="RUS",
        wholesale_price="2299",
        marketplace_price="3299",
    ),
)


@dataclass(frozen=True)
class CatalogLoadResult:
    source: str  # "remote" | "cache" | "demo"
    count: int


class CatalogStore:
    def __init__(
        self,
        store,
        url: str,
        cache_key: str = "kps_catalog",
        parser: Optional[CsvCatalogParser] = None,
        timeout: float = 10.0,
        min_length: int = 100,
        session: Optional[requests.Session] = None,
    ):
        self.store = store
        self.url = url
        self.cache_key = cache_key
        self.parser = parser or CsvCatalogParser()
        self.timeout = timeout
        self.min_length = min_length
        self.http = session or requests.Session()
        self._records: list[ProductRecord] = []

    @property
    def records(self) -> list[ProductRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def _fetch_text(self) -> str:
        sep = "&" if "?" in self.url else "?"
        r = self.http.get(f"{self.url}{sep}t={int(time.time() * 1000)}", timeout=self.timeout)
        r.raise_for_status()
        return r.text

    def refresh(self) -> bool:
        """Pull the remote export. Returns True only when the catalog was replaced."""
        try:
            text = self._fetch_text()
        except requests.RequestException as e:
            log.warning("catalog_refresh_failed url=%s error=%s", self.url, e)
            return False

        if not text or len(text) < self.min_length:
            log.warning("catalog_refresh_empty length=%s", len(text or ""))
            return False

        records = self.parser.parse(text)
        if not records:
            log.warning("catalog_refresh_no_records")
            return False

        self._records = records
        self.save_cache()
        log.info("catalog_refreshed count=%s", len(records))
        return True

    def load_cache(self) -> int:
        raw = load_json(self.store, self.cache_key, default=[])
        if not isinstance(raw, list):
            log.warning("catalog_cache_invalid type=%s", type(raw).__name__)
            raw = []

        records: list[ProductRecord] = []
        for item in raw:
            try:
                records.append(ProductRecord.from_dict(item))
            except (KeyError, TypeError, AttributeError) as e:
                log.warning("catalog_cache_entry_skipped error=%s", e)
        self._records = records
        return len(records)

    def save_cache(self) -> None:
        save_json(self.store, self.cache_key, [r.to_dict() for r in self._records])

    def load_demo(self) -> int:
        self._records = list(DEMO_CATALOG)
        self.save_cache()
        return len(self._records)

    def load(self) -> CatalogLoadResult:
        """Remote export first, then the cached copy, then demo data."""
        if self.refresh():
            return CatalogLoadResult("remote", len(self._records))
        if self.load_cache():
            log.info("catalog_loaded_from_cache count=%s", len(self._records))
            return CatalogLoadResult("cache", len(self._records))
        self.load_demo()
        log.warning("catalog_demo_loaded count=%s", len(self._records))
        return CatalogLoadResult("demo", len(self._records))

import json

import requests

from kps.repositories.storage import InMemoryStore
from kps.services.catalog_service import DEMO_CATALOG, CatalogStore

HEADER = "platform,barcode,name,code,lang,opt,market"
ROW = ",".join(
    ["PS4", "711719803278", "The Last of Us Part II", "CUSA-18278", "RUS", "1999", "2499"] + [""] * 22
)
CSV = HEADER + "\n" + ROW + "\n"


class FakeResponse:
    def __init__(self, text: str, status: int = 200):
        self.text = text
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeHttp:
    def __init__(self, response=None, error: Exception | None = None):
        self.response = response
        self.error = error
        self.calls: list[tuple[str, float]] = []

    def get(self, url: str, timeout: float):
        self.calls.append((url, timeout))
        if self.error is not None:
            raise self.error
        return self.response


def _catalog(store, http) -> CatalogStore:
    return CatalogStore(store, url="https://example.test/export?format=csv", session=http)


def test_remote_catalog_replaces_and_caches():
    store = InMemoryStore()
    http = FakeHttp(FakeResponse(CSV))
    catalog = _catalog(store, http)

    result = catalog.load()

    assert (result.source, result.count) == ("remote", 1)
    assert catalog.records[0].name == "The Last of Us Part II"
    assert json.loads(store.get("kps_catalog"))[0]["barcode"] == "711719803278"

    url, timeout = http.calls[0]
    assert url.startswith("https://example.test/export?format=csv&t=")
    assert timeout == 10.0


def test_network_failure_falls_back_to_cache():
    store = InMemoryStore()
    _catalog(store, FakeHttp(FakeResponse(CSV))).load()

    catalog = _catalog(store, FakeHttp(error=requests.ConnectionError("offline")))
    result = catalog.load()
    assert (result.source, result.count) == ("cache", 1)


def test_http_error_and_short_body_are_no_update():
    store = InMemoryStore()
    catalog = _catalog(store, FakeHttp(FakeResponse(CSV)))
    catalog.load()

    catalog.http = FakeHttp(FakeResponse("server error", status=500))
    assert catalog.refresh() is False
    catalog.http = FakeHttp(FakeResponse("platform,barcode\n"))
    assert catalog.refresh() is False
    catalog.http = FakeHttp(FakeResponse(HEADER + "\n" + "x," * 60))
    assert catalog.refresh() is False

    assert len(catalog) == 1


def test_demo_catalog_when_nothing_else_is_available():
    store = InMemoryStore({"kps_catalog": "{corrupted"})
    catalog = _catalog(store, FakeHttp(error=requests.Timeout("slow")))

    result = catalog.load()

    assert result.source == "demo"
    assert catalog.records == list(DEMO_CATALOG)
    assert len(json.loads(store.get("kps_catalog"))) == len(DEMO_CATALOG)


def test_cache_skips_bad_entries():
    good = DEMO_CATALOG[0].to_dict()
    store = InMemoryStore({"kps_catalog": json.dumps([good, {"name": "no barcode"}, 7])})
    catalog = _catalog(store, FakeHttp(error=requests.ConnectionError("offline")))
    assert catalog.load_cache() == 1

from .auth_service import ModeService, SharedSecretAuthorizer
from .cart_service import Cart
from .catalog_parser import CsvCatalogParser
from .catalog_service import CatalogStore
from .identity_service import DeviceIdentityProvider
from .ledger_service import SalesLedger
from .matching import BarcodeMatcher
from .reporting_service import ReportingService
from .sales_service import CheckoutService
from .scan_session import ScanSession, ScanState
from .search_service import SearchEngine
from .usage_service import UsageTracker

__all__ = [
    "ModeService",
    "SharedSecretAuthorizer",
    "Cart",
    "CsvCatalogParser",
    "CatalogStore",
    "DeviceIdentityProvider",
    "SalesLedger",
    "BarcodeMatcher",
    "ReportingService",
    "CheckoutService",
    "ScanSession",
    "ScanState",
    "SearchEngine",
    "UsageTracker",
]

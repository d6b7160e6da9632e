from .models import (
    AppEvent,
    CartLine,
    DetectedCode,
    DeviceLedger,
    LedgerStats,
    ProductRecord,
    SaleItem,
    SaleRecord,
)
from .errors import AuthorizationError, CameraError, CameraFailure, NotFoundError, ValidationError

__all__ = [
    "AppEvent",
    "CartLine",
    "DetectedCode",
    "DeviceLedger",
    "LedgerStats",
    "ProductRecord",
    "SaleItem",
    "SaleRecord",
    "AuthorizationError",
    "CameraError",
    "CameraFailure",
    "NotFoundError",
    "ValidationError",
]

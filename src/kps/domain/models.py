from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Optional, TypeVar

T = TypeVar("T")


def split_alternates(barcode: str) -> list[str]:
    """Split a composite barcode field ("a / b") into its trimmed alternates."""
    if not barcode:
        return []
    return [b.strip() for b in barcode.split("/")]


@dataclass(frozen=True)
class ProductRecord:
    platform: str
    barcode: str
    name: str
    code: str = ""
    code_type: str = ""
    language: str = ""
    wholesale_price: str = ""
    marketplace_price: str = ""

    @property
    def alternates(self) -> list[str]:
        return split_alternates(self.barcode)

    @property
    def identity(self) -> tuple[str, str]:
        alts = self.alternates
        return (alts[0] if alts else "", self.platform)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ProductRecord":
        return cls(
            platform=str(data["platform"]),
            barcode=str(data["barcode"]),
            name=str(data["name"]),
            code=str(data.get("code") or ""),
            code_type=str(data.get("code_type") or ""),
            language=str(data.get("language") or ""),
            wholesale_price=str(data.get("wholesale_price") or ""),
            marketplace_price=str(data.get("marketplace_price") or ""),
        )


@dataclass
class CartLine:
    name: str
    barcode: str
    unit_price: int
    platform: str
    source: ProductRecord
    quantity: int = 1

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "barcode": self.barcode,
            "unit_price": self.unit_price,
            "platform": self.platform,
            "quantity": self.quantity,
            "source": self.source.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CartLine":
        quantity = int(data.get("quantity") or 1)
        return cls(
            name=str(data["name"]),
            barcode=str(data["barcode"]),
            unit_price=int(data["unit_price"]),
            platform=str(data.get("platform") or ""),
            source=ProductRecord.from_dict(data["source"]),
            quantity=max(quantity, 1),
        )


@dataclass(frozen=True)
class SaleItem:
    name: str
    platform: str
    unit_price: int
    quantity: int
    line_total: int

    @classmethod
    def from_dict(cls, data: dict) -> "SaleItem":
        return cls(
            name=str(data["name"]),
            platform=str(data.get("platform") or ""),
            unit_price=int(data["unit_price"]),
            quantity=int(data["quantity"]),
            line_total=int(data["line_total"]),
        )


@dataclass(frozen=True)
class SaleRecord:
    sale_id: str
    timestamp: str
    items: tuple[SaleItem, ...]
    total_amount: int
    total_items: int
    device_id: str

    def to_dict(self) -> dict:
        return {
            "sale_id": self.sale_id,
            "timestamp": self.timestamp,
            "items": [asdict(it) for it in self.items],
            "total_amount": self.total_amount,
            "total_items": self.total_items,
            "device_id": self.device_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SaleRecord":
        return cls(
            sale_id=str(data["sale_id"]),
            timestamp=str(data["timestamp"]),
            items=tuple(SaleItem.from_dict(it) for it in data.get("items") or []),
            total_amount=int(data["total_amount"]),
            total_items=int(data["total_items"]),
            device_id=str(data.get("device_id") or ""),
        )


@dataclass(frozen=True)
class AppEvent:
    timestamp: str
    action: str
    details: dict[str, Any] = field(default_factory=dict)
    device_id: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return (self.timestamp, self.action)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "action": self.action,
            "details": dict(self.details),
            "device_id": self.device_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AppEvent":
        details = data.get("details")
        return cls(
            timestamp=str(data["timestamp"]),
            action=str(data["action"]),
            details=dict(details) if isinstance(details, dict) else {},
            device_id=str(data.get("device_id") or ""),
        )



def _parse_each(items: list, factory: Callable[[Any], T]) -> tuple[list[T], int]:
    parsed: list[T] = []
    bad = 0
    for item in items:
        try:
            parsed.append(factory(item))
        except (KeyError, TypeError, ValueError, AttributeError):
            bad += 1
    return parsed, bad


@dataclass(frozen=True)
class DeviceLedger:
    device_id: str
    app_events: tuple[AppEvent, ...]
    sales: tuple[SaleRecord, ...]
    last_updated: Optional[str] = None
    dropped: int = field(default=0, compare=False)

    def to_dict(self) -> dict:
        return {
            "device_id": self.device_id,
            "app_events": [e.to_dict() for e in self.app_events],
            "sales": [s.to_dict() for s in self.sales],
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DeviceLedger":
        """Only the bundle shape is mandatory. Broken sales or events are
        left out one by one and counted in ``dropped``."""
        if not isinstance(data, dict) or not data.get("device_id") or not isinstance(data.get("sales"), list):
            raise ValueError("Not a device ledger")
        events = data.get("app_events")
        sales, bad_sales = _parse_each(data["sales"], SaleRecord.from_dict)
        app_events, bad_events = _parse_each(events if isinstance(events, list) else [], AppEvent.from_dict)
        return cls(
            device_id=str(data["device_id"]),
            app_events=tuple(app_events),
            sales=tuple(sales),
            last_updated=data.get("last_updated"),
            dropped=bad_sales + bad_events,
        )


@dataclass(frozen=True)
class LedgerStats:
    total_sales: int
    total_revenue: int
    total_items: int
    today_sales: int
    today_revenue: int
    today_items: int


@dataclass(frozen=True)
class DetectedCode:
    code: str
    format: str = ""

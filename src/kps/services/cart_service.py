from __future__ import annotations

import logging
from typing import Callable

from kps.domain.errors import NotFoundError
from kps.domain.models import CartLine, ProductRecord, SaleItem
from kps.repositories.storage import load_json, save_json
from kps.services.pricing import final_price

log = logging.getLogger(__name__)


class Cart:
    """Open cart of the current session. Every mutation is written through."""

    def __init__(self, store, key: str = "kps_cart", pricer: Callable[[str], int] = final_price):
        self.store = store
        self.key = key
        self.pricer = pricer
        self._lines: list[CartLine] = []

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines)

    def is_empty(self) -> bool:
        return not self._lines

    def __len__(self) -> int:
        return len(self._lines)

    def load(self) -> int:
        raw = load_json(self.store, self.key, default=[])
        lines: list[CartLine] = []
        seen: set[str] = set()
        for item in raw if isinstance(raw, list) else []:
            try:
                line = CartLine.from_dict(item)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                log.warning("cart_line_skipped error=%s", e)
                continue
            if line.barcode in seen:
                continue
            seen.add(line.barcode)
            lines.append(line)
        self._lines = lines
        return len(lines)

    def _save(self) -> None:
        save_json(self.store, self.key, [line.to_dict() for line in self._lines])

    def _line_at(self, index: int) -> CartLine:
        if index < 0 or index >= len(self._lines):
            raise NotFoundError("Cart line not found.")
        return self._lines[index]

    def add(self, product: ProductRecord) -> CartLine:
        for line in self._lines:
            if line.barcode == product.barcode:
                line.quantity += 1
                self._save()
                return line

        line = CartLine(
            name=product.name,
            barcode=product.barcode,
            unit_price=self.pricer(product.wholesale_price),
            platform=product.platform,
            source=product,
        )
        self._lines.append(line)
        self._save()
        return line

    def adjust_quantity(self, index: int, delta: int) -> None:
        line = self._line_at(index)
        if line.quantity + delta < 1:
            self.remove(index)
            return
        line.quantity += delta
        self._save()

    def remove(self, index: int) -> CartLine:
        self._line_at(index)
        line = self._lines.pop(index)
        self._save()
        return line

    def clear(self) -> None:
        self._lines = []
        self._save()

    def totals(self) -> tuple[int, int]:
        amount = sum(line.line_total for line in self._lines)
        items = sum(line.quantity for line in self._lines)
        return amount, items

    def sale_items(self) -> list[SaleItem]:
        return [
            SaleItem(
                name=line.name,
                platform=line.platform,
                unit_price=line.unit_price,
                quantity=line.quantity,
                line_total=line.line_total,
            )
            for line in self._lines
        ]

from __future__ import annotations

import logging

from kps.domain.errors import ValidationError
from kps.domain.models import SaleRecord
from kps.services.cart_service import Cart
from kps.services.ledger_service import SalesLedger

log = logging.getLogger("kps.sales")


class CheckoutService:
    def __init__(self, cart: Cart, ledger: SalesLedger, tracker=None):
        self.cart = cart
        self.ledger = ledger
        self.tracker = tracker

    def complete_sale(self) -> SaleRecord:
        """Record the open cart as a sale and empty it."""
        items = self.cart.sale_items()
        if not items:
            raise ValidationError("Cart is empty.")

        sale = self.ledger.log_sale(items)
        self.cart.clear()
        details = {"sale_id": sale.sale_id, "amount": sale.total_amount, "items": sale.total_items}
        self.ledger.log_app_action("SALE_COMPLETED", details)
        if self.tracker is not None:
            self.tracker.track("SALE_COMPLETED", details)
        log.info("sale_completed sale_id=%s amount=%s items=%s", sale.sale_id, sale.total_amount, sale.total_items)
        return sale

import json

import pytest
from conftest import RecordingTracker, fixed_clock, make_record

from kps.domain.errors import NotFoundError, ValidationError
from kps.repositories.storage import InMemoryStore
from kps.services.cart_service import Cart
from kps.services.ledger_service import SalesLedger
from kps.services.sales_service import CheckoutService

GAME = make_record("711719803278", "The Last of Us Part II", wholesale_price="1999")
OTHER = make_record("889842414205", "Halo Infinite", platform="XBOX ONE", wholesale_price="2299")


def test_adding_same_product_twice_increments_quantity():
    cart = Cart(InMemoryStore())
    cart.add(GAME)
    line = cart.add(GAME)

    assert len(cart) == 1
    assert line.quantity == 2
    assert line.unit_price == 2999
    assert cart.totals() == (5998, 2)


def test_every_mutation_is_written_through():
    store = InMemoryStore()
    cart = Cart(store)
    cart.add(GAME)
    cart.add(GAME)
    cart.add(OTHER)

    restored = Cart(store)
    assert restored.load() == 2
    assert [(ln.barcode, ln.quantity) for ln in restored.lines] == [("711719803278", 2), ("889842414205", 1)]
    assert restored.lines[0].source == GAME

    cart.remove(0)
    assert len(json.loads(store.get("kps_cart"))) == 1


def test_adjust_quantity_removes_line_below_one():
    cart = Cart(InMemoryStore())
    cart.add(GAME)
    cart.adjust_quantity(0, 2)
    assert cart.lines[0].quantity == 3

    cart.adjust_quantity(0, -3)
    assert cart.is_empty()


def test_bad_index_raises():
    cart = Cart(InMemoryStore())
    cart.add(GAME)
    with pytest.raises(NotFoundError, match="Cart line not found"):
        cart.remove(3)
    with pytest.raises(NotFoundError):
        cart.adjust_quantity(-1, 1)


def test_load_tolerates_corrupted_and_partial_snapshots():
    assert Cart(InMemoryStore({"kps_cart": "{oops"})).load() == 0
    assert Cart(InMemoryStore({"kps_cart": '{"not": "a list"}'})).load() == 0

    good = Cart(InMemoryStore())
    good.add(GAME)
    raw = [good.lines[0].to_dict(), {"name": "broken"}, good.lines[0].to_dict()]
    cart = Cart(InMemoryStore({"kps_cart": json.dumps(raw)}))
    assert cart.load() == 1


def _checkout(store=None):
    store = store or InMemoryStore()
    cart = Cart(store)
    ledger = SalesLedger(store, "DEV_test00001", clock=fixed_clock())
    tracker = RecordingTracker()
    return cart, ledger, tracker, CheckoutService(cart, ledger, tracker)


def test_empty_cart_cannot_be_sold():
    _cart, ledger, _tracker, checkout = _checkout()
    with pytest.raises(ValidationError, match="Cart is empty"):
        checkout.complete_sale()
    assert ledger.sales == []


def test_complete_sale_records_and_clears_cart():
    store = InMemoryStore()
    cart, ledger, tracker, checkout = _checkout(store)
    cart.add(GAME)
    cart.add(GAME)
    cart.add(OTHER)

    sale = checkout.complete_sale()

    assert sale.total_items == 3
    assert sale.total_amount == 2 * 2999 + 3299
    assert sale.sale_id.startswith("SALE_") and sale.sale_id.endswith("_DEV_test00001")
    assert cart.is_empty()
    assert json.loads(store.get("kps_cart")) == []
    assert ledger.app_events[-1].action == "SALE_COMPLETED"
    assert tracker.actions() == ["SALE_COMPLETED"]


def test_sales_in_same_millisecond_get_distinct_ids():
    cart, ledger, _tracker, checkout = _checkout()
    cart.add(GAME)
    first = checkout.complete_sale()
    cart.add(GAME)
    second = checkout.complete_sale()
    assert first.sale_id != second.sale_id

import pytest

from shiftpos.services import catalog_service
from shiftpos.services.cart import Cart, cart_from_snapshot
from shiftpos.services.errors import (
    CartLineNotFoundError,
    InvalidQuantityError,
    OutOfStockError,
    PriceOverrideError,
    ProductNotFoundError,
    ValidationError,
)


def test_add_merges_same_product(make_product):
    product = make_product(price_cents=500, stock_quantity=10)
    cart = Cart()

    first = cart.add(product, 2)
    second = cart.add(product, 3)

    assert first is second
    assert len(cart) == 1
    assert second.quantity == 5


def test_add_clamps_to_stock(make_product):
    product = make_product(stock_quantity=3)
    cart = Cart()

    line = cart.add(product, 5)

    assert line.quantity == 3
    assert cart.add(product, 1).quantity == 3


def test_add_rejects_out_of_stock_and_bad_quantity(make_product):
    cart = Cart()

    with pytest.raises(OutOfStockError):
        cart.add(make_product(stock_quantity=0), 1)
    with pytest.raises(InvalidQuantityError):
        cart.add(make_product(stock_quantity=5), 0)

    assert cart.is_empty


def test_set_quantity_clamps_and_validates(make_product):
    cart = Cart()
    line = cart.add(make_product(stock_quantity=4), 1)

    assert cart.set_quantity(line.line_id, 9).quantity == 4
    assert cart.set_quantity(line.line_id, 2).quantity == 2

    with pytest.raises(InvalidQuantityError):
        cart.set_quantity(line.line_id, -1)
    with pytest.raises(CartLineNotFoundError):
        cart.set_quantity(999, 1)


def test_remove_line(make_product):
    cart = Cart()
    a = cart.add(make_product(), 1)
    b = cart.add(make_product(), 1)

    cart.remove(a.line_id)

    assert [line.line_id for line in cart.lines] == [b.line_id]
    with pytest.raises(CartLineNotFoundError):
        cart.remove(a.line_id)


@pytest.mark.parametrize("policy,expected", [("allow", 300), ("clamp", 500)])
def test_price_override_below_catalog(make_product, policy, expected):
    cart = Cart(price_override_policy=policy)
    line = cart.add(make_product(price_cents=500), 1)

    assert cart.set_unit_price(line.line_id, 300).unit_price_cents == expected


def test_price_override_reject_policy(make_product):
    cart = Cart(price_override_policy="reject")
    line = cart.add(make_product(price_cents=500), 1)

    with pytest.raises(PriceOverrideError):
        cart.set_unit_price(line.line_id, 300)
    assert cart.set_unit_price(line.line_id, 700).unit_price_cents == 700


def test_negative_price_rejected(make_product):
    cart = Cart()
    line = cart.add(make_product(), 1)

    with pytest.raises(ValidationError):
        cart.set_unit_price(line.line_id, -1)


def test_cart_from_snapshot(make_product):
    a = make_product(price_cents=500, stock_quantity=2)
    b = make_product(price_cents=250, stock_quantity=10)

    cart = cart_from_snapshot([
        {"product_id": a.id, "quantity": 5},
        {"product_id": b.id, "quantity": "2", "unit_price_cents": 200, "discount_cents": 10},
    ])

    assert [(line.product_id, line.quantity) for line in cart.lines] == [(a.id, 2), (b.id, 2)]
    assert cart.lines[1].unit_price_cents == 200
    assert cart.lines[1].discount_cents == 10


def test_cart_from_snapshot_errors(make_product):
    with pytest.raises(ProductNotFoundError):
        cart_from_snapshot([{"product_id": 12345, "quantity": 1}])
    with pytest.raises(ValidationError):
        cart_from_snapshot([{"quantity": 1}])


@pytest.mark.parametrize("line_extra", [
    {"unit_price_cents": "abc"},
    {"discount_cents": "ten"},
    {"unit_price_cents": [500]},
])
def test_cart_from_snapshot_rejects_non_integer_amounts(make_product, line_extra):
    product = make_product()

    with pytest.raises(ValidationError) as exc:
        cart_from_snapshot([{"product_id": product.id, "quantity": 1, **line_extra}])

    assert exc.value.details["line"]["product_id"] == product.id


def test_cart_from_snapshot_reports_clamped_lines(make_product):
    product = make_product(stock_quantity=2)

    cart = cart_from_snapshot([{"product_id": product.id, "quantity": 5}])

    assert [(w["type"], w["requested"], w["quantity"]) for w in cart.clamp_warnings] == [
        ("cart.quantity_clamped", 5, 2)
    ]


def test_set_quantity_uses_current_stock(make_product):
    product = make_product(stock_quantity=4)
    cart = Cart()
    line = cart.add(product, 1)

    catalog_service.set_stock(product.id, 10)
    assert cart.set_quantity(line.line_id, 8).quantity == 8

    catalog_service.set_stock(product.id, 3)
    assert cart.set_quantity(line.line_id, 8).quantity == 3

    catalog_service.set_stock(product.id, 0)
    with pytest.raises(OutOfStockError):
        cart.set_quantity(line.line_id, 1)


def test_line_carries_catalog_cost(make_product):
    cart = Cart()
    line = cart.add(make_product(price_cents=500, cost_cents=320), 2)

    assert line.unit_cost_cents == 320
    assert cart.clamp_warnings == []

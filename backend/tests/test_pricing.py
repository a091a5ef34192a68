from decimal import Decimal

import pytest

from shiftpos.services.cart import Cart, CartLine
from shiftpos.services.errors import ValidationError
from shiftpos.services.pricing import Discount, compute_totals, round_cents


def _line(price, qty, discount=0, line_id=1):
    return CartLine(
        line_id=line_id,
        product_id=line_id,
        name="P",
        base_price_cents=price,
        unit_price_cents=price,
        quantity=qty,
        available_stock=qty,
        discount_cents=discount,
    )


def test_tax_on_subtotal():
    totals = compute_totals([_line(500, 2)], 10)

    assert totals.subtotal_cents == 1000
    assert totals.tax_cents == 100
    assert totals.gross_cents == 1100
    assert totals.discount_cents == 0
    assert totals.net_cents == 1100


def test_fixed_discount_applies_after_tax():
    totals = compute_totals([_line(500, 2)], 10, Discount("fixed", Decimal("200")))

    assert totals.net_cents == 900
    assert totals.discount_cents == 200


def test_percent_discount_over_100_floors_at_zero():
    totals = compute_totals([_line(500, 2)], 10, Discount("percent", Decimal("150")))

    assert totals.net_cents == 0
    assert totals.discount_cents == totals.gross_cents


def test_percent_discount_is_taken_from_gross():
    totals = compute_totals([_line(500, 2)], 10, Discount("percent", Decimal("10")))

    assert totals.net_cents == 990


@pytest.mark.parametrize("discount", [
    Discount("fixed", Decimal("0")),
    Discount("fixed", Decimal("1099")),
    Discount("fixed", Decimal("1101")),
    Discount("fixed", Decimal("1000000")),
    Discount("percent", Decimal("99.9")),
    Discount("percent", Decimal("100")),
    Discount("percent", Decimal("1000")),
])
def test_net_never_negative(discount):
    totals = compute_totals([_line(500, 2), _line(333, 3, line_id=2)], Decimal("16"), discount)

    assert totals.net_cents >= 0
    assert totals.net_cents == max(0, totals.gross_cents - totals.discount_cents)


def test_line_discounts_join_order_discount():
    totals = compute_totals([_line(500, 2, discount=50)], 0, Discount("fixed", Decimal("25")))

    assert totals.subtotal_cents == 1000
    assert totals.net_cents == 925


def test_tax_rounds_half_up_to_the_cent():
    totals = compute_totals([_line(5, 1)], 10)

    assert totals.tax_cents == 1  # 0.5 -> 1
    assert round_cents(Decimal("2.5")) == 3


def test_empty_lines_total_zero():
    totals = compute_totals([], 10)

    assert totals.net_cents == 0


def test_negative_tax_rate_rejected():
    with pytest.raises(ValidationError):
        compute_totals([_line(500, 1)], -1)


def test_discount_validation():
    with pytest.raises(ValidationError):
        Discount("bogus", Decimal("1"))
    with pytest.raises(ValidationError):
        Discount("fixed", Decimal("-5"))


def test_discount_from_dict():
    assert Discount.from_dict(None) is None
    assert Discount.from_dict({"type": "PERCENT", "value": "12.5"}) == Discount("percent", Decimal("12.5"))

    with pytest.raises(ValidationError):
        Discount.from_dict({"type": "fixed", "value": "abc"})


@pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity", "sNaN"])
def test_non_finite_discount_rejected(value):
    with pytest.raises(ValidationError):
        Discount.from_dict({"type": "percent", "value": value})
    with pytest.raises(ValidationError):
        Discount("fixed", Decimal(value))


def test_huge_discount_floors_at_zero():
    totals = compute_totals([_line(500, 2)], 10, Discount.from_dict({"type": "fixed", "value": "1e30"}))

    assert totals.net_cents == 0
    assert totals.discount_cents == 1100


def test_cart_compute_totals_is_pure():
    cart = Cart()
    cart.lines.append(_line(500, 2))

    first = cart.compute_totals(10)
    second = cart.compute_totals(10)

    assert first == second
    assert cart.lines[0].quantity == 2

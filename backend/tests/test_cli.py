from shiftpos.models import Product, Shift
from tests.conftest import TERMINAL, reload, sale_count, stock_of


def _invoke(app, *args, **kwargs):
    return app.test_cli_runner().invoke(args=list(args), **kwargs)


def test_catalog_add_and_low_stock(app, db_session):
    result = _invoke(app, "catalog", "add", "--name", "Beard trim", "--price-cents", "1500", "--stock", "1", "--reorder-level", "3")

    assert result.exit_code == 0
    assert "PASS Created product" in result.output
    product = db_session.query(Product).filter_by(name="Beard trim").one()
    assert product.price_cents == 1500

    report = _invoke(app, "catalog", "low-stock")
    assert "Beard trim" in report.output


def test_catalog_add_rejects_negative_price(app, db_session):
    result = _invoke(app, "catalog", "add", "--name", "Broken", "--price-cents=-1")

    assert result.exit_code == 1
    assert "FAIL" in result.output


def test_shift_open_close_list(app, db_session):
    assert "No open shift." in _invoke(app, "shifts", "current").output

    opened = _invoke(app, "shifts", "open", "--operator", "cashier-1")
    assert opened.exit_code == 0
    shift = db_session.query(Shift).filter_by(terminal_id=TERMINAL, closed=False).one()

    closed = _invoke(app, "shifts", "close", str(shift.id))
    assert closed.exit_code == 0
    assert reload(Shift, shift.id).closed is True

    listing = _invoke(app, "shifts", "list", "--status", "closed")
    assert "CLOSED" in listing.output


def test_shift_close_unknown(app, db_session):
    result = _invoke(app, "shifts", "close", "999")

    assert result.exit_code == 1
    assert "not found" in result.output


def test_void_requires_confirmation(app, processor, make_product, cart_with):
    product = make_product(stock_quantity=3)
    settled = processor.settle(cart_with((product, 2)), "cash", "op")

    declined = _invoke(app, "sales", "void", str(settled.sale.id), input="n\n")
    assert declined.exit_code != 0
    assert sale_count() == 1

    confirmed = _invoke(app, "sales", "void", str(settled.sale.id), "--operator", "admin", "--yes")
    assert confirmed.exit_code == 0
    assert "PASS Voided sale" in confirmed.output
    assert sale_count() == 0
    assert stock_of(product.id) == 3


def test_pending_sales_empty(app, db_session):
    result = _invoke(app, "sales", "pending")

    assert result.exit_code == 0
    assert "No sales need reconciliation." in result.output


def test_audit_trail_lists_shortfall(app, processor, make_product, cart_with):
    product = make_product(stock_quantity=3)
    cart_a = cart_with((product, 2))
    cart_b = cart_with((product, 2))
    processor.settle(cart_a, "cash", "op")
    settled = processor.settle(cart_b, "cash", "op")

    result = _invoke(app, "sales", "audit", "--type", "stock.shortfall")

    assert result.exit_code == 0
    assert f"sale={settled.sale.id}" in result.output
    assert "Stock short by 1" in result.output


def test_expenses_add_and_list(app, db_session):
    refused = _invoke(app, "expenses", "add", "--amount-cents", "800", "--category", "supplies", "--operator", "cashier-1")
    assert refused.exit_code == 1
    assert "No active shift" in refused.output

    _invoke(app, "shifts", "open", "--operator", "cashier-1")
    added = _invoke(app, "expenses", "add", "--amount-cents", "800", "--category", "supplies", "--operator", "cashier-1")
    assert added.exit_code == 0
    assert "PASS Recorded expense" in added.output

    shift = db_session.query(Shift).filter_by(terminal_id=TERMINAL, closed=False).one()
    assert reload(Shift, shift.id).total_expenses_cents == 800
    listing = _invoke(app, "expenses", "list", "--shift", str(shift.id))
    assert "supplies" in listing.output
    assert "8.00" in listing.output

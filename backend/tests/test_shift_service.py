from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from shiftpos.extensions import db
from shiftpos.models import AuditEvent, Shift
from shiftpos.services import concurrency, shift_service
from shiftpos.services.errors import ShiftClosedError, ShiftNotFoundError, ValidationError
from shiftpos.services.shift_service import ShiftManager, ShiftTotals, aggregate_sales
from tests.conftest import TERMINAL, backdate, open_shift_count, reload


def test_ensure_open_shift_opens_once(shift_manager):
    first = shift_manager.ensure_open_shift("cashier-1")
    second = shift_manager.ensure_open_shift("cashier-2")

    assert first.id == second.id
    assert first.closed is False
    assert first.total_sales_cents == 0
    assert open_shift_count() == 1
    assert db.session.query(AuditEvent).filter_by(event_type="shift.opened").count() == 1


def test_operator_required(shift_manager):
    with pytest.raises(ValidationError):
        shift_manager.ensure_open_shift("")


def test_closed_shift_is_replaced_not_reopened(shift_manager):
    first = shift_manager.ensure_open_shift("cashier-1")
    shift_manager.close_shift(first.id)

    second = shift_manager.ensure_open_shift("cashier-1")

    assert second.id != first.id
    assert reload(Shift, first.id).closed is True
    assert open_shift_count() == 1


def test_terminals_have_independent_shifts(db_session):
    a = ShiftManager("A").ensure_open_shift("op")
    b = ShiftManager("B").ensure_open_shift("op")

    assert a.id != b.id
    assert open_shift_count("A") == 1
    assert open_shift_count("B") == 1


def test_store_rejects_second_open_shift_for_terminal(shift_manager):
    shift = shift_manager.ensure_open_shift("op")

    db.session.add(Shift(terminal_id=TERMINAL, operator_id="intruder", start_time=shift.start_time, closed=False))
    with pytest.raises(IntegrityError):
        db.session.commit()
    db.session.rollback()

    assert open_shift_count() == 1


def test_stale_shift_rotates(shift_manager):
    old = shift_manager.ensure_open_shift("night")
    backdate(old)

    fresh = shift_manager.ensure_open_shift("morning")

    old = reload(Shift, old.id)
    assert fresh.id != old.id
    assert old.closed is True
    assert old.end_time is not None
    assert fresh.operator_id == "morning"
    assert open_shift_count() == 1
    assert db.session.query(AuditEvent).filter_by(event_type="shift.auto_closed", shift_id=old.id).count() == 1


def test_rotation_can_be_disabled(db_session):
    manager = ShiftManager(TERMINAL, daily_rotation=False)
    old = manager.ensure_open_shift("night")
    backdate(old)

    assert manager.ensure_open_shift("morning").id == old.id


def test_rotation_follows_business_timezone(db_session):
    # 22:30 UTC on the 1st is already the 2nd in Nairobi (UTC+3)
    opened = datetime(2026, 3, 1, 20, 0)
    now = datetime(2026, 3, 1, 22, 30)

    utc_manager = ShiftManager(TERMINAL, timezone="UTC", clock=lambda: opened)
    shift = utc_manager.ensure_open_shift("op")

    utc_manager.clock = lambda: now
    assert utc_manager.ensure_open_shift("op").id == shift.id

    nairobi = ShiftManager(TERMINAL, timezone="Africa/Nairobi", clock=lambda: now)
    assert nairobi.ensure_open_shift("op").id != shift.id


def test_apply_sale_and_recompute_share_bucketing(shift_manager, processor, make_product, cart_with):
    product = make_product(price_cents=500, stock_quantity=10)
    processor.settle(cart_with((product, 1)), "cash", "op")
    processor.settle(cart_with((product, 2)), "card", "op")
    processor.settle(cart_with((product, 3)), "mobile_money", "op")

    shift = shift_manager.get_open_shift()
    running = ShiftTotals.from_shift(shift)
    recomputed = aggregate_sales(shift_service.get_shift_sales(shift.id))

    assert running == recomputed
    assert running.total_cash_cents == 500
    assert running.total_card_cents == 1000
    assert running.total_mobile_money_cents == 1500
    assert running.total_sales_cents == 3000
    assert running.sales_count == 3


def test_close_recomputes_and_is_idempotent(shift_manager, processor, make_product, cart_with):
    product = make_product(price_cents=700, stock_quantity=10)
    processor.settle(cart_with((product, 1)), "cash", "op")
    processor.settle(cart_with((product, 2)), "card", "op")
    shift = shift_manager.get_open_shift()

    # Corrupt the running counters; close must not trust them
    shift.total_cash_cents = 99999
    shift.total_sales_cents = 1
    db.session.commit()

    first = shift_manager.close_shift(shift.id)
    first_totals, first_end = first.totals(), first.end_time
    second = shift_manager.close_shift(shift.id)

    assert first_totals == second.totals()
    assert second.end_time == first_end
    assert second.total_sales_cents == 2100
    assert second.total_cash_cents == 700
    assert second.total_card_cents == 1400
    assert db.session.query(AuditEvent).filter_by(event_type="shift.closed", shift_id=shift.id).count() == 1


def test_apply_sale_rejects_closed_shift(shift_manager, processor, make_product, cart_with):
    product = make_product(stock_quantity=5)
    result = processor.settle(cart_with((product, 1)), "cash", "op")
    shift_manager.close_shift(result.sale.shift_id)

    with pytest.raises(ShiftClosedError):
        shift_manager.apply_sale(result.sale.shift_id, result.sale)


def test_recompute_keeps_closed_flag(shift_manager):
    shift = shift_manager.ensure_open_shift("op")

    recomputed = shift_manager.recompute_from_sales(shift.id)

    assert recomputed.closed is False
    assert recomputed.total_sales_cents == 0


def test_unknown_shift(shift_manager):
    with pytest.raises(ShiftNotFoundError):
        shift_manager.close_shift(424242)
    with pytest.raises(ShiftNotFoundError):
        shift_service.shift_summary(424242)


def test_list_and_summary(shift_manager, processor, make_product, cart_with):
    product = make_product(price_cents=250, stock_quantity=10)
    processor.settle(cart_with((product, 2)), "cash", "op")
    first = shift_manager.get_open_shift()
    shift_manager.close_shift(first.id)
    second = shift_manager.ensure_open_shift("op")

    assert [s.id for s in shift_service.list_shifts(closed=True)] == [first.id]
    assert [s.id for s in shift_service.list_shifts(closed=False)] == [second.id]
    assert len(shift_service.list_shifts()) == 2

    summary = shift_service.shift_summary(first.id)
    assert summary["computed_totals"]["total_cash_cents"] == 500
    assert summary["drift_cents"] == 0
    assert summary["needs_reconciliation_count"] == 0
    assert len(summary["recent_sales"]) == 1


def test_shift_locks_come_from_a_fixed_pool():
    locks = {id(concurrency.lock_for_shift(shift_id)) for shift_id in range(10 * concurrency.SHIFT_LOCK_POOL_SIZE)}

    assert len(locks) == concurrency.SHIFT_LOCK_POOL_SIZE
    assert concurrency.lock_for_shift(7) is concurrency.lock_for_shift(7 + concurrency.SHIFT_LOCK_POOL_SIZE)

    # Reentrant: close inside a held settlement lock must not deadlock
    with concurrency.shift_lock(7):
        with concurrency.shift_lock(7):
            pass

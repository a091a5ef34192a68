# Overview: Flask CLI command groups for setup, shifts, sales follow-up, and catalog checks.

# backend/shiftpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask catalog add --name "Haircut" --price-cents 50000 --stock 10
# - python -m flask catalog low-stock
#
# Shifts:
# - python -m flask shifts current [--terminal main]
# - python -m flask shifts open --operator cashier-1
# - python -m flask shifts close 12
# - python -m flask shifts list --status open --limit 20
#
# Sales:
# - python -m flask sales void 42 --operator admin-1 --reason "Wrong item"
#   Irreversible; prompts for confirmation unless --yes.
# - python -m flask sales pending
#   Sales whose settlement did not complete.
# - python -m flask sales reconcile 42
# - python -m flask sales audit --type stock.shortfall
#
# Expenses:
# - python -m flask expenses add --amount-cents 1500 --category supplies --operator cashier-1
#   Refused when the terminal has no open shift.
# - python -m flask expenses list --shift 12

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import audit_service, catalog_service, checkout_service, expense_service, shift_service, void_service
from .services.errors import PosError


def _fail(exc: PosError):
    click.echo(f"FAIL Error: {str(exc)}")
    raise SystemExit(1)


@click.group('system')
def system_group():
    """Database setup commands."""


@system_group.command('init-db')
@with_appcontext
def init_db_cli():
    """Create all tables."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db_cli(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('catalog')
def catalog_group():
    """Catalog seeding and stock reports."""


@catalog_group.command('add')
@click.option('--name', required=True, help='Product name')
@click.option('--price-cents', type=int, required=True, help='Unit price in cents')
@click.option('--cost-cents', type=int, default=0, show_default=True)
@click.option('--stock', type=int, default=0, show_default=True)
@click.option('--reorder-level', type=int, default=0, show_default=True)
@click.option('--category', help='Category label')
@with_appcontext
def add_product_cli(name, price_cents, cost_cents, stock, reorder_level, category):
    """Add a product to the catalog."""
    try:
        product = catalog_service.create_product(
            name,
            price_cents,
            category=category,
            cost_cents=cost_cents,
            stock_quantity=stock,
            reorder_level=reorder_level,
        )
    except PosError as e:
        _fail(e)
    click.echo(f"PASS Created product {product.id}: {product.name} ({product.stock_quantity} in stock)")


@catalog_group.command('low-stock')
@with_appcontext
def low_stock_cli():
    """List products at or below their reorder level."""
    products = catalog_service.low_stock_products()
    if not products:
        click.echo("No products need restocking.")
        return

    click.echo(f"{'ID':<6} {'Name':<30} {'Stock':>8} {'Reorder':>8}")
    click.echo("-" * 56)
    for p in products:
        click.echo(f"{p.id:<6} {p.name[:30]:<30} {p.stock_quantity:>8} {p.reorder_level:>8}")


@click.group('shifts')
def shifts_group():
    """Shift inspection and lifecycle commands."""


@shifts_group.command('current')
@click.option('--terminal', help='Terminal id (defaults to TERMINAL_ID)')
@with_appcontext
def current_shift_cli(terminal):
    """Show the terminal's open shift."""
    shift = shift_service.ShiftManager(terminal).get_open_shift()
    if shift is None:
        click.echo("No open shift.")
        return
    _echo_shift(shift)


@shifts_group.command('open')
@click.option('--operator', required=True, help='Operator id')
@click.option('--terminal', help='Terminal id (defaults to TERMINAL_ID)')
@with_appcontext
def open_shift_cli(operator, terminal):
    """Open a shift, or show the one already open."""
    try:
        shift = shift_service.open_or_get_shift(operator, terminal_id=terminal)
    except PosError as e:
        _fail(e)
    _echo_shift(shift)


@shifts_group.command('close')
@click.argument('shift_id', type=int)
@click.option('--operator', help='Operator closing the shift')
@with_appcontext
def close_shift_cli(shift_id, operator):
    """Close a shift; totals are recomputed from its sales."""
    try:
        shift = shift_service.close_shift(shift_id, operator_id=operator)
    except PosError as e:
        _fail(e)
    click.echo(f"PASS Closed shift {shift.id}")
    _echo_shift(shift)


@shifts_group.command('list')
@click.option('--status', type=click.Choice(['open', 'closed']), help='Filter by status')
@click.option('--terminal', help='Filter by terminal id')
@click.option('--limit', type=int, default=20, help='Max shifts to show')
@with_appcontext
def list_shifts_cli(status, terminal, limit):
    """List recent shifts."""
    closed = None if status is None else status == 'closed'
    shifts = shift_service.list_shifts(terminal_id=terminal, closed=closed, limit=limit)
    if not shifts:
        click.echo("No shifts found.")
        return

    click.echo(f"{'ID':<6} {'Terminal':<10} {'Operator':<14} {'Status':<8} {'Sales':>6} {'Total':>12} {'Cash':>12}")
    click.echo("-" * 76)
    for s in shifts:
        click.echo(
            f"{s.id:<6} {s.terminal_id[:10]:<10} {s.operator_id[:14]:<14} "
            f"{'CLOSED' if s.closed else 'OPEN':<8} {s.sales_count:>6} "
            f"{_money(s.total_sales_cents):>12} {_money(s.total_cash_cents):>12}"
        )


@click.group('sales')
def sales_group():
    """Void and reconciliation commands."""


@sales_group.command('void')
@click.argument('sale_id', type=int)
@click.option('--operator', help='Operator performing the void')
@click.option('--reason', help='Reason recorded in the audit trail')
@click.option('--yes', is_flag=True, help='Skip the confirmation prompt')
@with_appcontext
def void_sale_cli(sale_id, operator, reason, yes):
    """Void a sale: restock its items and rebuild its shift's totals."""
    if not yes:
        click.confirm(f"Void sale {sale_id}? This cannot be undone", abort=True)
    try:
        result = void_service.void_sale(sale_id, operator_id=operator, reason=reason)
    except PosError as e:
        _fail(e)

    click.echo(f"PASS Voided sale {sale_id} ({_money(result.sale['total_cents'])})")
    for warning in result.warnings:
        click.echo(f"WARN {warning['message']}")
    _echo_shift(result.shift)


@sales_group.command('pending')
@with_appcontext
def pending_sales_cli():
    """List sales whose settlement did not complete."""
    sales = checkout_service.list_needing_reconciliation()
    if not sales:
        click.echo("No sales need reconciliation.")
        return

    click.echo(f"{'ID':<6} {'Shift':<6} {'State':<22} {'Total':>12}  Last error")
    click.echo("-" * 80)
    for s in sales:
        click.echo(f"{s.id:<6} {s.shift_id:<6} {s.settlement_state:<22} {_money(s.total_cents):>12}  {s.last_error or ''}")


@sales_group.command('reconcile')
@click.argument('sale_id', type=int)
@with_appcontext
def reconcile_sale_cli(sale_id):
    """Resume settlement of a flagged sale."""
    try:
        result = checkout_service.reconcile_sale(sale_id)
    except PosError as e:
        _fail(e)

    if result.needs_reconciliation:
        click.echo(f"FAIL Sale {sale_id} still needs reconciliation: {result.sale.last_error}")
        raise SystemExit(1)
    click.echo(f"PASS Sale {sale_id} settled")


@sales_group.command('audit')
@click.option('--sale', 'sale_id', type=int, help='Only events for this sale')
@click.option('--type', 'event_type', help='Only events of this type (e.g. stock.shortfall)')
@click.option('--limit', type=int, default=50, help='Max events to show')
@with_appcontext
def audit_events_cli(sale_id, event_type, limit):
    """Show the audit trail (warnings, voids, reconciliations)."""
    events = audit_service.list_audit_events(event_type=event_type, sale_id=sale_id, limit=limit)
    if not events:
        click.echo("No audit events.")
        return

    for ev in events:
        click.echo(f"{ev.id:<6} {ev.severity:<8} {ev.event_type:<26} sale={ev.sale_id or '-'} {ev.note or ''}")

@click.group('expenses')
def expenses_group():
    """Shift expense commands."""


@expenses_group.command('add')
@click.option('--amount-cents', type=int, required=True, help='Amount paid out, in cents')
@click.option('--category', required=True, help='Expense category (e.g. supplies)')
@click.option('--operator', required=True, help='Operator recording the expense')
@click.option('--description', help='Free-text note')
@click.option('--terminal', help='Terminal id (defaults to TERMINAL_ID)')
@with_appcontext
def add_expense_cli(amount_cents, category, operator, description, terminal):
    """Record an expense on the terminal's open shift."""
    try:
        expense = expense_service.record_expense(
            amount_cents, category, operator, description=description, terminal_id=terminal,
        )
    except PosError as e:
        _fail(e)
    click.echo(f"PASS Recorded expense {expense.id}: {_money(expense.amount_cents)} ({expense.category}) on shift {expense.shift_id}")


@expenses_group.command('list')
@click.option('--shift', 'shift_id', type=int, help='Only expenses of this shift')
@click.option('--limit', type=int, default=50, help='Max expenses to show')
@with_appcontext
def list_expenses_cli(shift_id, limit):
    """List recorded expenses."""
    expenses = expense_service.list_expenses(shift_id=shift_id, limit=limit)
    if not expenses:
        click.echo("No expenses found.")
        return

    click.echo(f"{'ID':<6} {'Shift':<6} {'Date':<10} {'Category':<16} {'Amount':>12}")
    click.echo("-" * 54)
    for e in expenses:
        click.echo(f"{e.id:<6} {e.shift_id:<6} {e.expense_date.isoformat():<10} {e.category[:16]:<16} {_money(e.amount_cents):>12}")



def _money(cents: int | None) -> str:
    return f"{(cents or 0) / 100:,.2f}"


def _echo_shift(shift):
    click.echo(f"Shift {shift.id} on {shift.terminal_id} ({'CLOSED' if shift.closed else 'OPEN'})")
    click.echo(f"   Operator: {shift.operator_id}")
    click.echo(f"   Sales:    {shift.sales_count}")
    click.echo(f"   Total:    {_money(shift.total_sales_cents)}")
    click.echo(f"   Cash:     {_money(shift.total_cash_cents)}")
    click.echo(f"   Card:     {_money(shift.total_card_cents)}")
    click.echo(f"   Mobile:   {_money(shift.total_mobile_money_cents)}")
    click.echo(f"   Expenses: {_money(shift.total_expenses_cents)}")
    click.echo(f"   COGS:     {_money(shift.total_cogs_cents)}")
    click.echo(f"   Profit:   {_money(shift.profit_cents)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(shifts_group)
    app.cli.add_command(sales_group)
    app.cli.add_command(expenses_group)

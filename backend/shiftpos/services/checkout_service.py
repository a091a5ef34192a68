"""
Checkout: turn a cart into a settled sale.

Settlement runs as a small persisted state machine on the Sale row:

    CREATED -> ITEMS_WRITTEN -> STOCK_ADJUSTED -> SHIFT_UPDATED -> DONE

Each transition is its own commit, together with the effect it records.
Anything that fails after the sale exists is retried from the last
committed state. When retries run out the sale is flagged
NEEDS_RECONCILIATION (never deleted) and reconcile() can pick it up later.

Failures before the sale row is written leave nothing behind.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Sale, SaleItem
from ..models.sales import (
    PAYMENT_METHODS,
    STATE_CREATED,
    STATE_DONE,
    STATE_ITEMS_WRITTEN,
    STATE_NEEDS_RECONCILIATION,
    STATE_SHIFT_UPDATED,
    STATE_STOCK_ADJUSTED,
)
from shiftpos.time_utils import utcnow
from . import catalog_service, settings_service
from .audit_service import SEVERITY_ERROR, SEVERITY_WARNING, record_event
from .cart import Cart, cart_from_snapshot
from .concurrency import backoff_delay, run_with_retry, shift_lock
from .errors import (
    EmptyCartError,
    InvalidPaymentMethodError,
    SaleNotFoundError,
    ShiftClosedError,
    ValidationError,
)
from .pricing import Discount, Totals
from .shift_service import ShiftManager

logger = logging.getLogger(__name__)

STATUS_SETTLED = "settled"
STATUS_NEEDS_RECONCILIATION = "needs_reconciliation"


@dataclass
class SettlementResult:
    sale: Sale
    status: str
    totals: Totals | None = None
    warnings: list[dict] = field(default_factory=list)

    @property
    def needs_reconciliation(self) -> bool:
        return self.status == STATUS_NEEDS_RECONCILIATION

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "sale": self.sale.to_dict(include_items=True),
            "totals": self.totals.to_dict() if self.totals else None,
            "warnings": self.warnings,
        }


def normalize_payment_method(payment_method: str) -> str:
    method = (payment_method or "").strip().lower().replace("-", "_")
    if method == "mpesa":
        method = "mobile_money"
    if method not in PAYMENT_METHODS:
        raise InvalidPaymentMethodError(
            f"Unknown payment method '{payment_method}'",
            details={"allowed": list(PAYMENT_METHODS)},
        )
    return method


class TransactionProcessor:
    """Settles carts against one terminal's shift."""

    def __init__(
        self,
        shift_manager: ShiftManager,
        *,
        max_attempts: int | None = None,
        backoff_base: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.shift_manager = shift_manager
        if max_attempts is None:
            max_attempts = current_app.config.get("SETTLEMENT_MAX_ATTEMPTS", 3)
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self.max_attempts = max_attempts
        if backoff_base is None:
            backoff_base = current_app.config.get("SETTLEMENT_BACKOFF_BASE", 0.05)
        self.backoff_base = backoff_base
        self.sleep = sleep
        self._steps = {
            STATE_CREATED: self._write_items,
            STATE_ITEMS_WRITTEN: self._adjust_stock,
            STATE_STOCK_ADJUSTED: self._update_shift,
            STATE_SHIFT_UPDATED: self._finish,
        }

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def settle(
        self,
        cart: Cart,
        payment_method: str,
        operator_id: str,
        discount: Discount | None = None,
    ) -> SettlementResult:
        if cart is None or cart.is_empty:
            raise EmptyCartError("Cannot check out an empty cart")
        method = normalize_payment_method(payment_method)
        if not operator_id:
            raise ValidationError("operator_id is required")

        # Priced before a shift is touched, so a bad discount opens nothing
        totals = cart.compute_totals(settings_service.tax_rate_percent(), discount)
        warnings = [dict(w) for w in cart.clamp_warnings]

        for _ in range(self.max_attempts):
            shift = self.shift_manager.ensure_open_shift(operator_id)
            with shift_lock(shift.id):
                db.session.refresh(shift)
                if shift.closed:
                    # Closed or rotated between lookup and lock
                    logger.info("Shift %s closed before settlement could start; retrying", shift.id)
                    continue
                sale = self._create_sale(cart, totals, method, str(operator_id), shift.id)
                warnings.extend(self._drive(sale.id, fast_path=True))
            return self._result(sale.id, totals, warnings)

        raise ShiftClosedError(
            "No open shift could be held for settlement",
            details={"terminal_id": self.shift_manager.terminal_id},
        )

    def reconcile(self, sale_id: int) -> SettlementResult:
        """
        Resume a sale that did not reach DONE.

        Shift totals are recomputed rather than incremented here, because
        a close or void may already have counted this sale.
        """
        sale = db.session.get(Sale, sale_id)
        if not sale:
            raise SaleNotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
        if sale.settlement_state == STATE_DONE:
            return self._result(sale_id, None, [])

        with shift_lock(sale.shift_id):
            warnings = self._drive(sale_id, fast_path=False)
            sale = db.session.get(Sale, sale_id)
            if sale.settlement_state == STATE_DONE:
                record_event(
                    event_type="sale.reconciled",
                    shift_id=sale.shift_id,
                    sale_id=sale.id,
                    operator_id=sale.operator_id,
                    note="Settlement completed by reconciliation",
                )
                db.session.commit()
                logger.info("Reconciled sale %s", sale_id)

        return self._result(sale_id, None, warnings)

    # =========================================================================
    # STATE MACHINE
    # =========================================================================

    def _create_sale(self, cart: Cart, totals: Totals, method: str, operator_id: str, shift_id: int) -> Sale:
        pending = [
            {
                "product_id": line.product_id,
                "product_name": line.name,
                "quantity": line.quantity,
                "unit_price_cents": line.unit_price_cents,
                "unit_cost_cents": line.unit_cost_cents,
            }
            for line in cart.lines
        ]
        cost = sum(line.unit_cost_cents * line.quantity for line in cart.lines)

        def _op():
            sale = Sale(
                sale_date=utcnow(),
                subtotal_cents=totals.subtotal_cents,
                tax_cents=totals.tax_cents,
                discount_cents=totals.discount_cents,
                total_cents=totals.net_cents,
                cost_cents=cost,
                payment_method=method,
                operator_id=operator_id,
                shift_id=shift_id,
                settlement_state=STATE_CREATED,
                settlement_attempts=0,
                pending_lines=pending,
            )
            db.session.add(sale)
            db.session.commit()
            return sale

        return run_with_retry(_op)

    def _drive(self, sale_id: int, *, fast_path: bool) -> list[dict]:
        warnings: list[dict] = []
        attempt = 0
        while True:
            attempt += 1
            try:
                sale = db.session.get(Sale, sale_id)
                if sale is None:
                    logger.warning("Sale %s disappeared during settlement", sale_id)
                    return warnings
                state = sale.settlement_state
                if state == STATE_NEEDS_RECONCILIATION:
                    state = sale.resume_state or STATE_CREATED
                    sale.settlement_state = state
                while state != STATE_DONE:
                    self._steps[state](sale, warnings, fast_path=fast_path)
                    state = sale.settlement_state
                return warnings
            except Exception as exc:
                db.session.rollback()
                if attempt >= self.max_attempts:
                    self._flag(sale_id, exc, attempt)
                    return warnings
                logger.warning("Settlement step failed for sale %s (attempt %s): %s", sale_id, attempt, exc)
                self.sleep(backoff_delay(attempt - 1, self.backoff_base))

    def _write_items(self, sale: Sale, warnings: list[dict], *, fast_path: bool) -> None:
        existing = db.session.query(SaleItem).filter_by(sale_id=sale.id).count()
        if not existing:
            for line in sale.pending_lines or []:
                db.session.add(SaleItem(
                    sale_id=sale.id,
                    product_id=line["product_id"],
                    product_name=line.get("product_name"),
                    quantity=line["quantity"],
                    unit_price_cents=line["unit_price_cents"],
                    unit_cost_cents=line.get("unit_cost_cents", 0),
                    line_total_cents=line["unit_price_cents"] * line["quantity"],
                    stock_applied=False,
                ))
        sale.pending_lines = None
        sale.settlement_state = STATE_ITEMS_WRITTEN
        db.session.commit()

    def _adjust_stock(self, sale: Sale, warnings: list[dict], *, fast_path: bool) -> None:
        items = db.session.query(SaleItem).filter_by(sale_id=sale.id).order_by(SaleItem.id).all()
        for item in items:
            if item.stock_applied:
                continue
            adjustment = catalog_service.adjust_stock(item.product_id, -item.quantity, commit=False)
            if adjustment is None:
                warnings.append(self._warn(
                    sale, "stock.product_missing", item.product_id,
                    f"Product {item.product_id} missing; stock not adjusted",
                    {"quantity": item.quantity},
                ))
            elif adjustment.shortfall:
                warnings.append(self._warn(
                    sale, "stock.shortfall", item.product_id,
                    f"Stock short by {adjustment.shortfall} for product {item.product_id}",
                    {
                        "requested": item.quantity,
                        "stock_before": adjustment.stock_before,
                        "shortfall": adjustment.shortfall,
                    },
                ))
            else:
                product = catalog_service.find_product(item.product_id)
                if product is not None and product.is_low_stock:
                    logger.info("Product %s at or below reorder level (%s left)", product.id, product.stock_quantity)
            item.stock_applied = True
            db.session.commit()

        sale.settlement_state = STATE_STOCK_ADJUSTED
        db.session.commit()

    def _update_shift(self, sale: Sale, warnings: list[dict], *, fast_path: bool) -> None:
        if fast_path:
            try:
                self.shift_manager.apply_sale(sale.shift_id, sale, commit=False)
            except ShiftClosedError:
                # Closed under us; its totals come from the sales, this one included
                self.shift_manager.recompute_from_sales(sale.shift_id, commit=False)
        else:
            self.shift_manager.recompute_from_sales(sale.shift_id, commit=False)
        sale.settlement_state = STATE_SHIFT_UPDATED
        db.session.commit()

    def _finish(self, sale: Sale, warnings: list[dict], *, fast_path: bool) -> None:
        sale.settlement_state = STATE_DONE
        sale.resume_state = None
        sale.last_error = None
        record_event(
            event_type="sale.settled",
            shift_id=sale.shift_id,
            sale_id=sale.id,
            operator_id=sale.operator_id,
            occurred_at=sale.sale_date,
            payload={"total_cents": sale.total_cents, "payment_method": sale.payment_method},
        )
        db.session.commit()

    def _warn(self, sale: Sale, event_type: str, product_id: int, note: str, payload: dict) -> dict:
        logger.warning("Sale %s: %s", sale.id, note)
        record_event(
            event_type=event_type,
            severity=SEVERITY_WARNING,
            shift_id=sale.shift_id,
            sale_id=sale.id,
            product_id=product_id,
            operator_id=sale.operator_id,
            note=note,
            payload=payload,
        )
        return {"type": event_type, "sale_id": sale.id, "product_id": product_id, "message": note, **payload}

    def _flag(self, sale_id: int, exc: Exception, attempts: int) -> None:
        logger.error(
            "SettlementInconsistency: sale %s needs reconciliation after %s attempts: %s",
            sale_id, attempts, exc,
        )
        try:
            sale = db.session.get(Sale, sale_id)
            if sale is None:
                return
            if sale.settlement_state != STATE_NEEDS_RECONCILIATION:
                sale.resume_state = sale.settlement_state
                sale.settlement_state = STATE_NEEDS_RECONCILIATION
            sale.settlement_attempts = (sale.settlement_attempts or 0) + attempts
            sale.last_error = f"{type(exc).__name__}: {exc}"
            record_event(
                event_type="settlement.inconsistency",
                severity=SEVERITY_ERROR,
                shift_id=sale.shift_id,
                sale_id=sale.id,
                operator_id=sale.operator_id,
                note=f"Settlement stopped at {sale.resume_state}",
                payload={"error": sale.last_error, "attempts": attempts},
            )
            db.session.commit()
        except SQLAlchemyError:
            # Sale stays in its intermediate state, which the pending list also reports
            db.session.rollback()
            logger.exception("Could not flag sale %s for reconciliation", sale_id)

    def _result(self, sale_id: int, totals: Totals | None, warnings: list[dict]) -> SettlementResult:
        db.session.expire_all()
        sale = db.session.get(Sale, sale_id)
        status = STATUS_SETTLED if sale.settlement_state == STATE_DONE else STATUS_NEEDS_RECONCILIATION
        return SettlementResult(sale=sale, status=status, totals=totals, warnings=warnings)


# =============================================================================
# MODULE API
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise SaleNotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def list_needing_reconciliation() -> list[Sale]:
    """Sales whose settlement did not reach DONE, oldest first."""
    return db.session.query(Sale).filter(
        Sale.settlement_state != STATE_DONE
    ).order_by(Sale.sale_date, Sale.id).all()


def checkout(
    cart_snapshot: list[dict],
    payment_method: str,
    operator_id: str,
    *,
    discount: dict | Discount | None = None,
    terminal_id: str | None = None,
) -> SettlementResult:
    """Settle a serialized cart on the terminal's current shift."""
    if not cart_snapshot:
        raise EmptyCartError("Cannot check out an empty cart")
    if isinstance(discount, dict):
        discount = Discount.from_dict(discount)
    elif discount is not None and not isinstance(discount, Discount):
        raise ValidationError("discount must be an object with type and value", details={"discount": discount})
    policy = settings_service.get_pricing_policy()
    cart = cart_from_snapshot(cart_snapshot, policy["price_override_policy"])
    processor = TransactionProcessor(ShiftManager(terminal_id))
    return processor.settle(cart, payment_method, operator_id, discount=discount)


def reconcile_sale(sale_id: int, *, terminal_id: str | None = None) -> SettlementResult:
    return TransactionProcessor(ShiftManager(terminal_id)).reconcile(sale_id)

"""
Void: reverse a settled sale.

Restores stock for every line whose stock was actually taken, deletes the
items and then the sale, and rebuilds the shift's totals from the sales
that remain. Totals are never decremented in place, so a void also repairs
any drift the running totals had picked up.

Destructive and irreversible. Confirmation belongs to the caller (route or
CLI); this module assumes it has been given.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..extensions import db
from ..models import Sale, SaleItem, Shift
from . import catalog_service, settings_service
from .audit_service import SEVERITY_WARNING, record_event
from .concurrency import run_with_retry, shift_lock
from .errors import SaleNotFoundError, VoidNotPermittedError
from .shift_service import ShiftManager

logger = logging.getLogger(__name__)


@dataclass
class VoidResult:
    sale: dict  # snapshot of the deleted sale, items included
    shift: Shift
    warnings: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "voided_sale": self.sale,
            "shift": self.shift.to_dict(),
            "warnings": self.warnings,
        }


class VoidReconciler:

    def __init__(self, shift_manager: ShiftManager):
        self.shift_manager = shift_manager

    def _check_policy(self, sale: Sale) -> None:
        if settings_service.get_setting("void_policy") != "open_shift_only":
            return
        shift = db.session.get(Shift, sale.shift_id)
        if shift is not None and shift.closed:
            raise VoidNotPermittedError(
                "Sales from closed shifts cannot be voided",
                details={"sale_id": sale.id, "shift_id": sale.shift_id},
            )

    def void(self, sale_id: int, operator_id: str | None = None, reason: str | None = None) -> VoidResult:
        sale = db.session.get(Sale, sale_id)
        if not sale:
            raise SaleNotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
        self._check_policy(sale)
        shift_id = sale.shift_id

        def _op():
            warnings: list[dict] = []
            sale = db.session.get(Sale, sale_id)
            if not sale:
                raise SaleNotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})

            items = db.session.query(SaleItem).filter_by(sale_id=sale.id).order_by(SaleItem.id).all()
            snapshot = sale.to_dict()
            snapshot["items"] = [item.to_dict() for item in items]

            for item in items:
                if not item.stock_applied:
                    continue
                adjustment = catalog_service.adjust_stock(item.product_id, item.quantity, commit=False)
                if adjustment is None:
                    note = f"Product {item.product_id} no longer in catalog; {item.quantity} units not restocked"
                    logger.warning("Void of sale %s: %s", sale.id, note)
                    record_event(
                        event_type="void.product_missing",
                        severity=SEVERITY_WARNING,
                        shift_id=sale.shift_id,
                        sale_id=sale.id,
                        product_id=item.product_id,
                        operator_id=operator_id,
                        note=note,
                        payload={"quantity": item.quantity},
                    )
                    warnings.append({
                        "type": "void.product_missing",
                        "product_id": item.product_id,
                        "quantity": item.quantity,
                        "message": note,
                    })

            db.session.query(SaleItem).filter_by(sale_id=sale.id).delete(synchronize_session=False)
            db.session.expire(sale, ["items"])
            db.session.delete(sale)
            db.session.flush()

            shift = self.shift_manager.recompute_from_sales(sale.shift_id, commit=False)

            record_event(
                event_type="sale.voided",
                shift_id=sale.shift_id,
                sale_id=sale.id,
                operator_id=operator_id,
                note=reason,
                payload=snapshot,
            )
            db.session.commit()
            return VoidResult(sale=snapshot, shift=shift, warnings=warnings)

        with shift_lock(shift_id):
            result = run_with_retry(_op)

        logger.info(
            "Voided sale %s (%s cents, %s); shift %s total now %s",
            sale_id, result.sale["total_cents"], result.sale["payment_method"],
            shift_id, result.shift.total_sales_cents,
        )
        return result


def void_sale(
    sale_id: int,
    operator_id: str | None = None,
    reason: str | None = None,
    *,
    terminal_id: str | None = None,
) -> VoidResult:
    return VoidReconciler(ShiftManager(terminal_id)).void(sale_id, operator_id=operator_id, reason=reason)

from __future__ import annotations

from ..extensions import db
from shiftpos.time_utils import to_utc_z


class AuditEvent(db.Model):
    """
    Append-only record of shift/sale lifecycle events and consistency findings.

    Stock shortfalls, missing products during void, and settlements that ran
    out of retries land here for manual audit. Rows are never updated.
    Ids are plain columns (no foreign keys) so events outlive voided sales.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_type_occurred", "event_type", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(64), nullable=False, index=True)
    severity = db.Column(db.String(16), nullable=False, default="INFO")  # INFO, WARNING, ERROR

    shift_id = db.Column(db.Integer, nullable=True, index=True)
    sale_id = db.Column(db.Integer, nullable=True, index=True)
    product_id = db.Column(db.Integer, nullable=True)
    operator_id = db.Column(db.String(64), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "severity": self.severity,
            "shift_id": self.shift_id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "operator_id": self.operator_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "note": self.note,
            "payload": self.payload,
        }

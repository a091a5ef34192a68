# Overview: Append-only audit trail for shift/sale events and consistency findings.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import AuditEvent
from shiftpos.time_utils import utcnow


"""
Audit trail invariants

- Append-only. No updates or deletes of existing events.
- Events are added to the caller's session and flushed, never committed
  here, so they land in the same commit as the change they describe.
- occurred_at is business time; created_at is system time (DB default).
"""

SEVERITY_INFO = "INFO"
SEVERITY_WARNING = "WARNING"
SEVERITY_ERROR = "ERROR"


def record_event(
    *,
    event_type: str,
    severity: str = SEVERITY_INFO,
    shift_id: int | None = None,
    sale_id: int | None = None,
    product_id: int | None = None,
    operator_id: str | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> AuditEvent:
    ev = AuditEvent(
        event_type=event_type,
        severity=severity,
        shift_id=shift_id,
        sale_id=sale_id,
        product_id=product_id,
        operator_id=operator_id,
        occurred_at=occurred_at or utcnow(),
        note=note[:255] if note else None,
        payload=payload,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_audit_events(
    *,
    event_type: str | None = None,
    sale_id: int | None = None,
    shift_id: int | None = None,
    severity: str | None = None,
    limit: int = 200,
) -> list[AuditEvent]:
    query = db.session.query(AuditEvent)
    if event_type:
        query = query.filter(AuditEvent.event_type == event_type)
    if sale_id is not None:
        query = query.filter(AuditEvent.sale_id == sale_id)
    if shift_id is not None:
        query = query.filter(AuditEvent.shift_id == shift_id)
    if severity:
        query = query.filter(AuditEvent.severity == severity)
    return query.order_by(AuditEvent.occurred_at, AuditEvent.id).limit(limit).all()

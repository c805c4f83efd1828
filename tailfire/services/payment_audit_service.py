"""
Append-only audit trail for payment schedule changes.

Entries are added to the caller's session, so they commit (or roll back)
together with the change they describe. Snapshot helpers produce the
before/after dictionaries stored in old_values/new_values.
"""

from __future__ import annotations

import enum
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from tailfire.infra.models import (
    AuditAction,
    AuditEntityType,
    ExpectedPaymentItemORM,
    PaymentAuditLogORM,
    PaymentScheduleConfigORM,
    PaymentScheduleTemplateORM,
)

logger = logging.getLogger(__name__)

Snapshot = dict[str, Any]


def _jsonable(v: Any) -> Any:
    if isinstance(v, enum.Enum):
        return v.value
    if isinstance(v, (date, datetime)):
        return v.isoformat()
    if isinstance(v, Decimal):
        return str(v)
    return v


def snapshot_item(item: ExpectedPaymentItemORM) -> Snapshot:
    return {
        "payment_name": item.payment_name,
        "expected_amount_cents": item.expected_amount_cents,
        "due_date": _jsonable(item.due_date),
        "sequence_order": item.sequence_order,
        "status": _jsonable(item.status),
        "paid_amount_cents": item.paid_amount_cents,
        "is_locked": item.is_locked,
    }


def snapshot_config(config: PaymentScheduleConfigORM) -> Snapshot:
    return {
        "activity_pricing_id": config.activity_pricing_id,
        "schedule_type": _jsonable(config.schedule_type),
        "allow_partial_payments": config.allow_partial_payments,
        "deposit_type": _jsonable(config.deposit_type),
        "deposit_percentage": _jsonable(config.deposit_percentage),
        "deposit_amount_cents": config.deposit_amount_cents,
        "template_id": config.template_id,
        "template_version": config.template_version,
        "items": [snapshot_item(i) for i in config.items],
    }


def snapshot_template(template: PaymentScheduleTemplateORM) -> Snapshot:
    return {
        "name": template.name,
        "schedule_type": _jsonable(template.schedule_type),
        "is_default": template.is_default,
        "is_active": template.is_active,
        "version": template.version,
        "item_count": len(template.items),
    }


def log_entry(
    db: Session,
    *,
    entity_type: AuditEntityType,
    entity_id: int,
    agency_id: str,
    action: AuditAction,
    performed_by: str,
    old_values: Optional[Snapshot] = None,
    new_values: Optional[Snapshot] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> PaymentAuditLogORM:
    entry = PaymentAuditLogORM(
        entity_type=entity_type,
        entity_id=entity_id,
        agency_id=agency_id,
        action=action,
        old_values=old_values,
        new_values=new_values,
        performed_by=performed_by,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(entry)
    logger.debug(
        "Audit log: %s on %s:%s by %s", action.value, entity_type.value, entity_id, performed_by
    )
    return entry


def log_created(db: Session, entity_type: AuditEntityType, entity_id: int, agency_id: str,
                performed_by: str, new_values: Snapshot) -> PaymentAuditLogORM:
    return log_entry(
        db, entity_type=entity_type, entity_id=entity_id, agency_id=agency_id,
        action=AuditAction.CREATED, performed_by=performed_by, new_values=new_values,
    )


def log_updated(db: Session, entity_type: AuditEntityType, entity_id: int, agency_id: str,
                performed_by: str, old_values: Snapshot, new_values: Snapshot) -> PaymentAuditLogORM:
    return log_entry(
        db, entity_type=entity_type, entity_id=entity_id, agency_id=agency_id,
        action=AuditAction.UPDATED, performed_by=performed_by,
        old_values=old_values, new_values=new_values,
    )


def log_deleted(db: Session, entity_type: AuditEntityType, entity_id: int, agency_id: str,
                performed_by: str, old_values: Snapshot) -> PaymentAuditLogORM:
    return log_entry(
        db, entity_type=entity_type, entity_id=entity_id, agency_id=agency_id,
        action=AuditAction.DELETED, performed_by=performed_by, old_values=old_values,
    )


def log_status_changed(db: Session, item: ExpectedPaymentItemORM, performed_by: str,
                       old_status: str, new_status: str) -> PaymentAuditLogORM:
    return log_entry(
        db, entity_type=AuditEntityType.ITEM, entity_id=item.id, agency_id=item.agency_id,
        action=AuditAction.STATUS_CHANGED, performed_by=performed_by,
        old_values={"status": _jsonable(old_status)}, new_values={"status": _jsonable(new_status)},
    )


def log_locked(db: Session, item: ExpectedPaymentItemORM, performed_by: str) -> PaymentAuditLogORM:
    return log_entry(
        db, entity_type=AuditEntityType.ITEM, entity_id=item.id, agency_id=item.agency_id,
        action=AuditAction.LOCKED, performed_by=performed_by,
        old_values={"is_locked": False},
        new_values={"is_locked": True, "locked_at": _jsonable(item.locked_at), "locked_by": performed_by},
    )


def log_unlocked(db: Session, item: ExpectedPaymentItemORM, performed_by: str,
                 reason: str) -> PaymentAuditLogORM:
    return log_entry(
        db, entity_type=AuditEntityType.ITEM, entity_id=item.id, agency_id=item.agency_id,
        action=AuditAction.UNLOCKED, performed_by=performed_by,
        old_values={"is_locked": True},
        new_values={
            "is_locked": False,
            "reason": reason,
            "unlocked_at": datetime.now(timezone.utc).isoformat(),
        },
    )


def log_template_applied(db: Session, config: PaymentScheduleConfigORM, agency_id: str,
                         performed_by: str, old_values: Optional[Snapshot]) -> PaymentAuditLogORM:
    return log_entry(
        db, entity_type=AuditEntityType.CONFIG, entity_id=config.id, agency_id=agency_id,
        action=AuditAction.TEMPLATE_APPLIED, performed_by=performed_by,
        old_values=old_values, new_values=snapshot_config(config),
    )


def list_entries(
    db: Session,
    *,
    agency_id: str,
    entity_type: Optional[AuditEntityType] = None,
    entity_id: Optional[int] = None,
    action: Optional[AuditAction] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[PaymentAuditLogORM]:
    stmt = select(PaymentAuditLogORM).where(PaymentAuditLogORM.agency_id == agency_id)

    if entity_type is not None:
        stmt = stmt.where(PaymentAuditLogORM.entity_type == entity_type)
    if entity_id is not None:
        stmt = stmt.where(PaymentAuditLogORM.entity_id == entity_id)
    if action is not None:
        stmt = stmt.where(PaymentAuditLogORM.action == action)
    if date_from is not None:
        stmt = stmt.where(PaymentAuditLogORM.performed_at >= date_from)
    if date_to is not None:
        stmt = stmt.where(PaymentAuditLogORM.performed_at <= date_to)

    stmt = stmt.order_by(PaymentAuditLogORM.performed_at.desc(), PaymentAuditLogORM.id.desc())
    return list(db.execute(stmt.limit(limit).offset(offset)).scalars().all())

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from tailfire.infra.models import (
    AuditEntityType,
    ExpectedPaymentItemORM,
    PaymentMethod,
    PaymentTransactionORM,
    TransactionType,
)
from tailfire.services import payment_audit_service as audit
from tailfire.services import payment_schedules_service as schedules
from tailfire.services.errors import NotFoundError, ScheduleInputError
from tailfire.services.payment_status import derive_item_status, net_paid_cents
from tailfire.services.schedule_types import ExpectedPaymentStatus

logger = logging.getLogger(__name__)

SYSTEM_USER = "system"


def _today_utc() -> date:
    return datetime.now(timezone.utc).date()


def _snapshot(tx: PaymentTransactionORM) -> dict:
    return {
        "expected_payment_item_id": tx.expected_payment_item_id,
        "transaction_type": tx.transaction_type.value,
        "amount_cents": tx.amount_cents,
        "currency": tx.currency,
        "payment_method": tx.payment_method.value if tx.payment_method else None,
        "reference_number": tx.reference_number,
        "transaction_date": tx.transaction_date.isoformat(),
    }


def sync_paid_amount(
    db: Session,
    item: ExpectedPaymentItemORM,
    *,
    performed_by: str,
    today: Optional[date] = None,
) -> ExpectedPaymentItemORM:
    """Recompute paid_amount_cents and status from the item's transactions."""
    db.flush()
    rows = db.execute(
        select(PaymentTransactionORM.transaction_type, PaymentTransactionORM.amount_cents).where(
            PaymentTransactionORM.expected_payment_item_id == item.id
        )
    ).all()

    paid = net_paid_cents((tx_type.value, amount) for tx_type, amount in rows)
    new_status = derive_item_status(paid, item.expected_amount_cents, item.due_date, today or _today_utc())

    old_status = item.status
    item.paid_amount_cents = paid
    item.status = new_status
    db.flush()

    if new_status != old_status:
        audit.log_status_changed(db, item, performed_by, old_status, new_status)
    return item


def create_transaction(
    db: Session,
    *,
    agency_id: str,
    user_id: str,
    item_id: int,
    transaction_type: TransactionType,
    amount_cents: int,
    currency: str,
    payment_method: Optional[PaymentMethod] = None,
    reference_number: Optional[str] = None,
    transaction_date: Optional[datetime] = None,
    notes: Optional[str] = None,
    today: Optional[date] = None,
) -> PaymentTransactionORM:
    """
    Record money against an expected payment item.

    A payment locks the item so its amount/date can no longer be edited
    without an explicit unlock. The item's paid amount and status are
    recomputed from all of its transactions.
    """
    item = schedules.get_item_or_raise(db, item_id, agency_id)

    if amount_cents is None or amount_cents < 0:
        raise ScheduleInputError("amount_cents must be non-negative")

    pricing_currency = item.config.activity_pricing.currency
    currency = (currency or "").upper()
    if currency != pricing_currency:
        raise ScheduleInputError(
            f"Transaction currency {currency} does not match activity currency {pricing_currency}"
        )

    tx = PaymentTransactionORM(
        agency_id=agency_id,
        expected_payment_item_id=item.id,
        transaction_type=TransactionType(transaction_type),
        amount_cents=amount_cents,
        currency=currency,
        payment_method=PaymentMethod(payment_method) if payment_method else None,
        reference_number=reference_number,
        transaction_date=transaction_date or datetime.now(timezone.utc),
        notes=notes,
        created_by=user_id,
    )
    db.add(tx)
    db.flush()

    audit.log_created(db, AuditEntityType.TRANSACTION, tx.id, agency_id, user_id, _snapshot(tx))

    sync_paid_amount(db, item, performed_by=user_id, today=today)
    if tx.transaction_type == TransactionType.PAYMENT:
        schedules.lock_item(db, item, user_id=user_id)

    logger.info(
        "Recorded %s of %s %s on item %s (paid %s/%s)",
        tx.transaction_type.value, tx.amount_cents, tx.currency, item.id,
        item.paid_amount_cents, item.expected_amount_cents,
    )
    return tx


def list_transactions(db: Session, *, agency_id: str, item_id: int) -> list[PaymentTransactionORM]:
    schedules.get_item_or_raise(db, item_id, agency_id)
    stmt = (
        select(PaymentTransactionORM)
        .where(
            PaymentTransactionORM.expected_payment_item_id == item_id,
            PaymentTransactionORM.agency_id == agency_id,
        )
        .order_by(PaymentTransactionORM.transaction_date.desc(), PaymentTransactionORM.id.desc())
    )
    return list(db.execute(stmt).scalars().all())


def delete_transaction(
    db: Session,
    transaction_id: int,
    *,
    agency_id: str,
    user_id: str,
    today: Optional[date] = None,
) -> None:
    tx = db.get(PaymentTransactionORM, transaction_id)
    if not tx or tx.agency_id != agency_id:
        raise NotFoundError(f"Payment transaction {transaction_id} not found")

    item = tx.item
    old_values = _snapshot(tx)
    db.delete(tx)
    db.flush()

    audit.log_deleted(db, AuditEntityType.TRANSACTION, transaction_id, agency_id, user_id, old_values)
    sync_paid_amount(db, item, performed_by=user_id, today=today)


def mark_overdue_items(db: Session, *, today: Optional[date] = None) -> int:
    """Flip unpaid items whose due date has passed to overdue. Returns the count."""
    today = today or _today_utc()
    stmt = select(ExpectedPaymentItemORM).where(
        ExpectedPaymentItemORM.status == ExpectedPaymentStatus.PENDING,
        ExpectedPaymentItemORM.due_date.is_not(None),
        ExpectedPaymentItemORM.due_date < today,
    )

    n = 0
    for item in db.execute(stmt).scalars().all():
        old_status = item.status
        item.status = ExpectedPaymentStatus.OVERDUE
        audit.log_status_changed(db, item, SYSTEM_USER, old_status, item.status)
        n += 1

    if n:
        db.flush()
        logger.info("Marked %s expected payment item(s) overdue", n)
    return n

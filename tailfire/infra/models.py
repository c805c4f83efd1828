from __future__ import annotations

import enum
from datetime import datetime, date, timezone
from decimal import Decimal
from typing import Any, Optional, List

from sqlalchemy import (
    String, Integer, BigInteger, Boolean, DateTime, Date, Numeric, ForeignKey, Text, JSON,
    Enum as SAEnum, UniqueConstraint, Index, CheckConstraint, event, func
)

from sqlalchemy.orm import (
    DeclarativeBase, Mapped, mapped_column, relationship
)

from tailfire.services.schedule_types import DepositType, ExpectedPaymentStatus, ScheduleType


# base
class Base(DeclarativeBase):
    pass


def _values(enum_cls):
    return [m.value for m in enum_cls]


def _enum(enum_cls, name: str) -> SAEnum:
    # store the lowercase values, not the member names
    return SAEnum(enum_cls, name=name, values_callable=_values)


# enums = status
class TransactionType(str, enum.Enum):
    PAYMENT = "payment"
    REFUND = "refund"
    ADJUSTMENT = "adjustment"

class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CHECK = "check"
    CREDIT_CARD = "credit_card"
    BANK_TRANSFER = "bank_transfer"
    STRIPE = "stripe"
    OTHER = "other"

class AuditAction(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    STATUS_CHANGED = "status_changed"
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    TEMPLATE_APPLIED = "template_applied"

class AuditEntityType(str, enum.Enum):
    TEMPLATE = "template"
    CONFIG = "config"
    ITEM = "item"
    TRANSACTION = "transaction"


# models
class ActivityPricingORM(Base):
    """Priced activity a payment schedule hangs off (owned by the trips domain)."""

    __tablename__ = "activity_pricing"
    __table_args__ = (
        Index("ix_activity_pricing_agency", "agency_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    agency_id: Mapped[str] = mapped_column(String(64), nullable=False)
    activity_name: Mapped[str] = mapped_column(String(200), nullable=False)

    total_price_cents: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="CAD")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    schedule: Mapped[Optional["PaymentScheduleConfigORM"]] = relationship(
        back_populates="activity_pricing", uselist=False
    )


class PaymentScheduleConfigORM(Base):
    __tablename__ = "payment_schedule_config"
    __table_args__ = (
        UniqueConstraint("activity_pricing_id", name="uq_payment_schedule_config_pricing"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    activity_pricing_id: Mapped[int] = mapped_column(
        ForeignKey("activity_pricing.id", ondelete="CASCADE"), nullable=False
    )

    schedule_type: Mapped[ScheduleType] = mapped_column(
        _enum(ScheduleType, "schedule_type"), nullable=False, default=ScheduleType.FULL
    )
    allow_partial_payments: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    deposit_type: Mapped[Optional[DepositType]] = mapped_column(
        _enum(DepositType, "deposit_type"), nullable=True
    )
    deposit_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    deposit_amount_cents: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    # stamped when the items came from a template
    template_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("payment_schedule_templates.id", ondelete="SET NULL"), nullable=True
    )
    template_version: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    activity_pricing: Mapped["ActivityPricingORM"] = relationship(back_populates="schedule")

    items: Mapped[List["ExpectedPaymentItemORM"]] = relationship(
        back_populates="config",
        cascade="all, delete-orphan",
        order_by="ExpectedPaymentItemORM.sequence_order",
    )
    guarantee: Mapped[Optional["CreditCardGuaranteeORM"]] = relationship(
        back_populates="config", cascade="all, delete-orphan", uselist=False
    )


class ExpectedPaymentItemORM(Base):
    __tablename__ = "expected_payment_items"
    __table_args__ = (
        Index("ix_expected_payment_items_config", "payment_schedule_config_id", "sequence_order"),
        Index("ix_expected_payment_items_due", "due_date", "status"),
        CheckConstraint("expected_amount_cents >= 0", name="ck_expected_amount_non_negative"),
        CheckConstraint("paid_amount_cents >= 0", name="ck_paid_amount_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    payment_schedule_config_id: Mapped[int] = mapped_column(
        ForeignKey("payment_schedule_config.id", ondelete="CASCADE"), nullable=False
    )
    agency_id: Mapped[str] = mapped_column(String(64), nullable=False)

    payment_name: Mapped[str] = mapped_column(String(120), nullable=False)
    expected_amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[ExpectedPaymentStatus] = mapped_column(
        _enum(ExpectedPaymentStatus, "expected_payment_status"),
        nullable=False,
        default=ExpectedPaymentStatus.PENDING,
    )
    paid_amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # edit protection once money has been received
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    config: Mapped["PaymentScheduleConfigORM"] = relationship(back_populates="items")
    transactions: Mapped[List["PaymentTransactionORM"]] = relationship(
        back_populates="item",
        cascade="all, delete-orphan",
        order_by="PaymentTransactionORM.transaction_date",
    )


class CreditCardGuaranteeORM(Base):
    __tablename__ = "credit_card_guarantees"
    __table_args__ = (
        UniqueConstraint("payment_schedule_config_id", name="uq_credit_card_guarantee_config"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    payment_schedule_config_id: Mapped[int] = mapped_column(
        ForeignKey("payment_schedule_config.id", ondelete="CASCADE"), nullable=False
    )

    card_holder_name: Mapped[str] = mapped_column(String(140), nullable=False)
    # last 4 digits only, the full PAN is never stored
    card_last4: Mapped[str] = mapped_column(String(4), nullable=False)
    authorization_code: Mapped[str] = mapped_column(String(64), nullable=False)
    authorization_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    authorization_amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    config: Mapped["PaymentScheduleConfigORM"] = relationship(back_populates="guarantee")


class PaymentTransactionORM(Base):
    __tablename__ = "payment_transactions"
    __table_args__ = (
        Index("ix_payment_transactions_item", "expected_payment_item_id"),
        CheckConstraint("amount_cents >= 0", name="ck_transaction_amount_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    agency_id: Mapped[str] = mapped_column(String(64), nullable=False)
    expected_payment_item_id: Mapped[int] = mapped_column(
        ForeignKey("expected_payment_items.id", ondelete="CASCADE"), nullable=False
    )

    transaction_type: Mapped[TransactionType] = mapped_column(
        _enum(TransactionType, "payment_transaction_type"), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        _enum(PaymentMethod, "payment_method"), nullable=True
    )
    reference_number: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    transaction_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    item: Mapped["ExpectedPaymentItemORM"] = relationship(back_populates="transactions")


class PaymentScheduleTemplateORM(Base):
    __tablename__ = "payment_schedule_templates"
    __table_args__ = (
        Index("ix_payment_schedule_templates_agency", "agency_id", "is_active"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    agency_id: Mapped[str] = mapped_column(String(64), nullable=False)

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    schedule_type: Mapped[ScheduleType] = mapped_column(
        _enum(ScheduleType, "template_schedule_type"), nullable=False
    )

    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    items: Mapped[List["PaymentScheduleTemplateItemORM"]] = relationship(
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="PaymentScheduleTemplateItemORM.sequence_order",
    )


class PaymentScheduleTemplateItemORM(Base):
    __tablename__ = "payment_schedule_template_items"
    __table_args__ = (
        UniqueConstraint("template_id", "sequence_order", name="uq_template_items_sequence"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    template_id: Mapped[int] = mapped_column(
        ForeignKey("payment_schedule_templates.id", ondelete="CASCADE"), nullable=False
    )

    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_name: Mapped[str] = mapped_column(String(120), nullable=False)

    # exactly one of each pair; checked when the template is saved
    percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    fixed_amount_cents: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    days_from_booking: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    days_before_departure: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    template: Mapped["PaymentScheduleTemplateORM"] = relationship(back_populates="items")


class PaymentAuditLogORM(Base):
    __tablename__ = "payment_schedule_audit_log"
    __table_args__ = (
        Index("ix_payment_audit_entity", "entity_type", "entity_id"),
        Index("ix_payment_audit_agency_time", "agency_id", "performed_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    entity_type: Mapped[AuditEntityType] = mapped_column(
        _enum(AuditEntityType, "audit_entity_type"), nullable=False
    )
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    agency_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[AuditAction] = mapped_column(_enum(AuditAction, "audit_action"), nullable=False)

    old_values: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    new_values: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    performed_by: Mapped[str] = mapped_column(String(64), nullable=False)
    performed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)


# append-only
@event.listens_for(PaymentAuditLogORM, "before_update")
def _audit_no_update(mapper, connection, target) -> None:
    raise RuntimeError("payment_schedule_audit_log is append-only (update refused)")


@event.listens_for(PaymentAuditLogORM, "before_delete")
def _audit_no_delete(mapper, connection, target) -> None:
    raise RuntimeError("payment_schedule_audit_log is append-only (delete refused)")

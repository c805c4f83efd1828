from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from tailfire.infra.models import (
    AuditEntityType,
    PaymentScheduleTemplateORM,
    PaymentScheduleTemplateItemORM,
)
from tailfire.services import payment_audit_service as audit
from tailfire.services.errors import NotFoundError, ScheduleInputError
from tailfire.services.schedule_types import (
    PERCENTAGE_SUM_TOLERANCE,
    Percentage,
    ScheduleTemplate,
    ScheduleType,
    TemplateItem,
)

logger = logging.getLogger(__name__)


# helpers
def _to_domain_item(row: PaymentScheduleTemplateItemORM) -> TemplateItem:
    return TemplateItem.from_fields(
        sequence_order=row.sequence_order,
        payment_name=row.payment_name,
        percentage=row.percentage,
        fixed_amount_cents=row.fixed_amount_cents,
        days_from_booking=row.days_from_booking,
        days_before_departure=row.days_before_departure,
    )


def validate_template_items(items: list[dict[str, Any]]) -> list[TemplateItem]:
    """
    Check raw template items and return their domain form.

    Every item needs exactly one amount (percentage | fixed_amount_cents)
    and exactly one timing (days_from_booking | days_before_departure).
    When every item is a percentage, they must add up to 100.
    """
    if not items:
        raise ScheduleInputError("At least one template item is required")

    parsed = [TemplateItem.from_fields(**item) for item in items]

    orders = [i.sequence_order for i in parsed]
    if len(set(orders)) != len(orders):
        raise ScheduleInputError("Template item sequence_order values must be unique")

    if all(isinstance(i.amount, Percentage) for i in parsed):
        total = sum((i.amount.value for i in parsed), Decimal(0))
        if abs(total - 100) > PERCENTAGE_SUM_TOLERANCE:
            raise ScheduleInputError(
                f"Template item percentages must sum to 100 (current sum: {total})"
            )
    return parsed


def to_domain_template(template: PaymentScheduleTemplateORM) -> ScheduleTemplate:
    return ScheduleTemplate(
        id=template.id,
        name=template.name,
        version=template.version,
        schedule_type=ScheduleType(template.schedule_type),
        items=tuple(_to_domain_item(row) for row in template.items),
    )


def _build_item_rows(items: Iterable[dict[str, Any]]) -> list[PaymentScheduleTemplateItemORM]:
    return [
        PaymentScheduleTemplateItemORM(
            sequence_order=item["sequence_order"],
            payment_name=item["payment_name"],
            percentage=(Decimal(str(item["percentage"])) if item.get("percentage") is not None else None),
            fixed_amount_cents=item.get("fixed_amount_cents"),
            days_from_booking=item.get("days_from_booking"),
            days_before_departure=item.get("days_before_departure"),
        )
        for item in items
    ]


def _clear_default(db: Session, agency_id: str, *, keep_id: Optional[int] = None) -> None:
    stmt = (
        update(PaymentScheduleTemplateORM)
        .where(
            PaymentScheduleTemplateORM.agency_id == agency_id,
            PaymentScheduleTemplateORM.is_default.is_(True),
        )
        .values(is_default=False)
    )
    if keep_id is not None:
        stmt = stmt.where(PaymentScheduleTemplateORM.id != keep_id)
    db.execute(stmt.execution_options(synchronize_session="fetch"))


# queries
def list_templates(
    db: Session, agency_id: str, *, include_inactive: bool = False
) -> list[PaymentScheduleTemplateORM]:
    stmt = select(PaymentScheduleTemplateORM).where(PaymentScheduleTemplateORM.agency_id == agency_id)
    if not include_inactive:
        stmt = stmt.where(PaymentScheduleTemplateORM.is_active.is_(True))
    stmt = stmt.order_by(
        PaymentScheduleTemplateORM.is_default.desc(),
        PaymentScheduleTemplateORM.updated_at.desc(),
        PaymentScheduleTemplateORM.id.desc(),
    )
    return list(db.execute(stmt).scalars().all())


def get_template(db: Session, template_id: int, agency_id: str) -> Optional[PaymentScheduleTemplateORM]:
    return db.scalar(
        select(PaymentScheduleTemplateORM).where(
            PaymentScheduleTemplateORM.id == template_id,
            PaymentScheduleTemplateORM.agency_id == agency_id,
        )
    )


def get_template_or_raise(db: Session, template_id: int, agency_id: str) -> PaymentScheduleTemplateORM:
    template = get_template(db, template_id, agency_id)
    if not template:
        raise NotFoundError(f"Template {template_id} not found")
    return template


def get_default_template(db: Session, agency_id: str) -> Optional[PaymentScheduleTemplateORM]:
    return db.scalar(
        select(PaymentScheduleTemplateORM).where(
            PaymentScheduleTemplateORM.agency_id == agency_id,
            PaymentScheduleTemplateORM.is_default.is_(True),
            PaymentScheduleTemplateORM.is_active.is_(True),
        )
    )


# commands
def create_template(
    db: Session,
    *,
    agency_id: str,
    user_id: str,
    name: str,
    schedule_type: ScheduleType,
    items: list[dict[str, Any]],
    description: Optional[str] = None,
    is_default: bool = False,
) -> PaymentScheduleTemplateORM:
    validate_template_items(items)

    if is_default:
        _clear_default(db, agency_id)

    template = PaymentScheduleTemplateORM(
        agency_id=agency_id,
        name=name,
        description=description,
        schedule_type=ScheduleType(schedule_type),
        is_default=is_default,
        is_active=True,
        version=1,
        created_by=user_id,
        items=_build_item_rows(items),
    )
    db.add(template)
    db.flush()

    audit.log_created(db, AuditEntityType.TEMPLATE, template.id, agency_id, user_id,
                      audit.snapshot_template(template))

    logger.info('Created payment template "%s" (%s) for agency %s', template.name, template.id, agency_id)
    return template


def update_template(
    db: Session,
    template_id: int,
    *,
    agency_id: str,
    user_id: str,
    changes: dict[str, Any],
) -> PaymentScheduleTemplateORM:
    """
    Apply a partial update. Replacing the items bumps the version so that
    schedules stamped with the old version stay traceable.
    """
    template = get_template_or_raise(db, template_id, agency_id)
    old_values = audit.snapshot_template(template)

    new_items = changes.get("items")
    if new_items is not None:
        validate_template_items(new_items)

    if changes.get("is_default") and not template.is_default:
        _clear_default(db, agency_id, keep_id=template.id)

    if "description" in changes:
        template.description = changes["description"]
    for key in ("name", "is_default", "is_active"):
        if changes.get(key) is not None:
            setattr(template, key, changes[key])
    if changes.get("schedule_type") is not None:
        template.schedule_type = ScheduleType(changes["schedule_type"])
    if not template.is_active:
        template.is_default = False

    if new_items is not None:
        template.items.clear()
        db.flush()
        template.items.extend(_build_item_rows(new_items))
        template.version += 1

    db.flush()
    audit.log_updated(db, AuditEntityType.TEMPLATE, template.id, agency_id, user_id,
                      old_values, audit.snapshot_template(template))

    logger.info('Updated payment template "%s" (%s) to version %s', template.name, template.id, template.version)
    return template


def delete_template(db: Session, template_id: int, *, agency_id: str, user_id: str) -> None:
    template = get_template_or_raise(db, template_id, agency_id)
    old_values = audit.snapshot_template(template)

    # soft delete
    template.is_active = False
    template.is_default = False
    db.flush()

    audit.log_deleted(db, AuditEntityType.TEMPLATE, template.id, agency_id, user_id, old_values)
    logger.info('Soft deleted payment template "%s" (%s)', template.name, template.id)

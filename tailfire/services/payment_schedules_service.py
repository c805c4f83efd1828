from __future__ import annotations

import logging
import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from tailfire.infra.models import (
    ActivityPricingORM,
    AuditEntityType,
    CreditCardGuaranteeORM,
    ExpectedPaymentItemORM,
    PaymentScheduleConfigORM,
)
from tailfire.services import payment_audit_service as audit
from tailfire.services import payment_templates_service as templates
from tailfire.services.errors import ItemLockedError, NotFoundError, ScheduleInputError
from tailfire.services.schedule_calculator import calculate_schedule
from tailfire.services.schedule_types import (
    DEFAULT_TICO_RULES,
    AmountSpec,
    ApplyTemplateRequest,
    DepositType,
    ExpectedPaymentStatus,
    FixedAmount,
    Percentage,
    ResolvedItem,
    ScheduleType,
    TicoRules,
    ValidationResult,
)
from tailfire.services.template_resolver import ApplyOutcome, apply_template as resolve_and_apply

logger = logging.getLogger(__name__)

MIN_UNLOCK_REASON_LENGTH = 10
_LAST4_RE = re.compile(r"^\d{4}$")


# helpers
def _now() -> datetime:
    return datetime.now(timezone.utc)


def get_pricing_or_raise(db: Session, pricing_id: int, agency_id: str) -> ActivityPricingORM:
    pricing = db.get(ActivityPricingORM, pricing_id)
    if not pricing or pricing.agency_id != agency_id:
        raise NotFoundError(f"Activity pricing {pricing_id} not found")
    return pricing


def _require_total(pricing: ActivityPricingORM) -> int:
    if not pricing.total_price_cents:
        raise ScheduleInputError(
            "Activity pricing must have a total_price_cents before creating a payment schedule"
        )
    return pricing.total_price_cents


def _deposit_spec(
    deposit_type: Optional[DepositType],
    deposit_percentage: Optional[Decimal],
    deposit_amount_cents: Optional[int],
    total_cents: int,
) -> AmountSpec:
    if deposit_type is None:
        raise ScheduleInputError('deposit_type is required when schedule_type is "deposit"')

    if DepositType(deposit_type) == DepositType.PERCENTAGE:
        if deposit_percentage is None:
            raise ScheduleInputError('deposit_percentage is required when deposit_type is "percentage"')
        pct = Decimal(str(deposit_percentage))
        if pct <= 0 or pct > 100:
            raise ScheduleInputError("deposit_percentage must be greater than 0 and at most 100")
        return Percentage(pct)

    if deposit_amount_cents is None:
        raise ScheduleInputError('deposit_amount_cents is required when deposit_type is "fixed_amount"')
    if deposit_amount_cents <= 0:
        raise ScheduleInputError("deposit_amount_cents must be greater than zero")
    if deposit_amount_cents > total_cents:
        raise ScheduleInputError("deposit_amount_cents cannot exceed total_price_cents")
    return FixedAmount(deposit_amount_cents)


def _check_items_sum(items: list[dict[str, Any]], total_cents: int) -> None:
    for item in items:
        if item["expected_amount_cents"] < 0:
            raise ScheduleInputError("Expected payment amounts must be non-negative")
    s = sum(i["expected_amount_cents"] for i in items)
    if s != total_cents:
        raise ScheduleInputError(
            f"Expected payment items must sum to total_price_cents. Expected: {total_cents}, Got: {s}"
        )


def _check_guarantee(data: dict[str, Any]) -> None:
    if not _LAST4_RE.match(str(data.get("card_last4") or "")):
        raise ScheduleInputError("card_last4 must be exactly 4 digits")


def has_locked_items(config: Optional[PaymentScheduleConfigORM]) -> bool:
    return bool(config and any(i.is_locked for i in config.items))


def _ensure_unlocked(config: PaymentScheduleConfigORM) -> None:
    if has_locked_items(config):
        raise ItemLockedError("Payment schedule has locked items; unlock them first")


def _item_rows(agency_id: str, items: list[dict[str, Any]]) -> list[ExpectedPaymentItemORM]:
    return [
        ExpectedPaymentItemORM(
            agency_id=agency_id,
            payment_name=item["payment_name"],
            expected_amount_cents=item["expected_amount_cents"],
            due_date=item.get("due_date"),
            sequence_order=item["sequence_order"],
            status=ExpectedPaymentStatus.PENDING,
            paid_amount_cents=0,
        )
        for item in items
    ]


def _generated_items(
    schedule_type: ScheduleType,
    total_cents: int,
    deposit: Optional[AmountSpec],
    installment_count: Optional[int],
    rules: TicoRules,
) -> list[dict[str, Any]]:
    calculated = calculate_schedule(
        total_cents,
        schedule_type,
        deposit=deposit,
        installment_count=installment_count,
        rules=rules,
    )
    return [
        {
            "payment_name": c.payment_name,
            "expected_amount_cents": c.amount_cents,
            "due_date": None,
            "sequence_order": c.sequence_order,
        }
        for c in calculated
    ]


# config
def get_config(db: Session, pricing_id: int, agency_id: str) -> Optional[PaymentScheduleConfigORM]:
    get_pricing_or_raise(db, pricing_id, agency_id)
    return db.scalar(
        select(PaymentScheduleConfigORM).where(PaymentScheduleConfigORM.activity_pricing_id == pricing_id)
    )


def get_config_or_raise(db: Session, pricing_id: int, agency_id: str) -> PaymentScheduleConfigORM:
    config = get_config(db, pricing_id, agency_id)
    if not config:
        raise NotFoundError(f"Payment schedule config for activity pricing {pricing_id} not found")
    return config


def create_config(
    db: Session,
    pricing_id: int,
    *,
    agency_id: str,
    user_id: str,
    schedule_type: ScheduleType,
    allow_partial_payments: bool = False,
    deposit_type: Optional[DepositType] = None,
    deposit_percentage: Optional[Decimal] = None,
    deposit_amount_cents: Optional[int] = None,
    installment_count: Optional[int] = None,
    expected_payment_items: Optional[list[dict[str, Any]]] = None,
    credit_card_guarantee: Optional[dict[str, Any]] = None,
    rules: TicoRules = DEFAULT_TICO_RULES,
) -> PaymentScheduleConfigORM:
    """
    Create the schedule of an activity pricing.

    Explicit items must add up to the pricing total; without them the items
    are generated by the calculator (deposit/balance, equal installments...).
    """
    pricing = get_pricing_or_raise(db, pricing_id, agency_id)
    total = _require_total(pricing)
    schedule_type = ScheduleType(schedule_type)

    if get_config(db, pricing_id, agency_id):
        raise ScheduleInputError(
            f"Payment schedule already exists for activity pricing {pricing_id}. Use update instead."
        )

    deposit = None
    if schedule_type == ScheduleType.DEPOSIT:
        deposit = _deposit_spec(deposit_type, deposit_percentage, deposit_amount_cents, total)

    if schedule_type == ScheduleType.GUARANTEE:
        if not credit_card_guarantee:
            raise ScheduleInputError('credit_card_guarantee is required when schedule_type is "guarantee"')
        _check_guarantee(credit_card_guarantee)

    if expected_payment_items:
        _check_items_sum(expected_payment_items, total)
        items = expected_payment_items
    else:
        items = _generated_items(schedule_type, total, deposit, installment_count, rules)

    config = PaymentScheduleConfigORM(
        activity_pricing_id=pricing.id,
        schedule_type=schedule_type,
        allow_partial_payments=allow_partial_payments,
        deposit_type=DepositType(deposit_type) if deposit_type else None,
        deposit_percentage=deposit_percentage,
        deposit_amount_cents=deposit_amount_cents,
        items=_item_rows(agency_id, items),
    )
    if credit_card_guarantee:
        config.guarantee = CreditCardGuaranteeORM(**credit_card_guarantee)

    db.add(config)
    db.flush()

    audit.log_created(db, AuditEntityType.CONFIG, config.id, agency_id, user_id,
                      audit.snapshot_config(config))
    logger.info("Created %s payment schedule %s for activity pricing %s",
                schedule_type.value, config.id, pricing_id)
    return config


def update_config(
    db: Session,
    pricing_id: int,
    *,
    agency_id: str,
    user_id: str,
    changes: dict[str, Any],
    rules: TicoRules = DEFAULT_TICO_RULES,
) -> PaymentScheduleConfigORM:
    config = get_config_or_raise(db, pricing_id, agency_id)
    total = _require_total(config.activity_pricing)
    old_values = audit.snapshot_config(config)

    schedule_type = ScheduleType(changes.get("schedule_type") or config.schedule_type)
    deposit_type = changes.get("deposit_type", config.deposit_type)
    deposit_percentage = changes.get("deposit_percentage", config.deposit_percentage)
    deposit_amount_cents = changes.get("deposit_amount_cents", config.deposit_amount_cents)

    deposit = None
    if schedule_type == ScheduleType.DEPOSIT:
        deposit = _deposit_spec(deposit_type, deposit_percentage, deposit_amount_cents, total)

    guarantee_data = changes.get("credit_card_guarantee")
    if schedule_type == ScheduleType.GUARANTEE and not guarantee_data and config.guarantee is None:
        raise ScheduleInputError('credit_card_guarantee is required when schedule_type is "guarantee"')
    if guarantee_data and "card_last4" in guarantee_data:
        _check_guarantee(guarantee_data)

    new_items = changes.get("expected_payment_items")
    regenerate = schedule_type != config.schedule_type or changes.get("installment_count") is not None
    if new_items:
        _check_items_sum(new_items, total)
    elif regenerate:
        new_items = _generated_items(schedule_type, total, deposit, changes.get("installment_count"), rules)

    if new_items is not None:
        _ensure_unlocked(config)

    config.schedule_type = schedule_type
    if changes.get("allow_partial_payments") is not None:
        config.allow_partial_payments = changes["allow_partial_payments"]
    config.deposit_type = DepositType(deposit_type) if deposit_type else None
    config.deposit_percentage = deposit_percentage
    config.deposit_amount_cents = deposit_amount_cents

    if new_items is not None:
        config.items.clear()
        db.flush()
        config.items.extend(_item_rows(agency_id, new_items))
        config.template_id = None
        config.template_version = None

    if guarantee_data:
        if config.guarantee is None:
            _check_guarantee(guarantee_data)
            config.guarantee = CreditCardGuaranteeORM(**guarantee_data)
        else:
            for key, value in guarantee_data.items():
                setattr(config.guarantee, key, value)

    db.flush()
    audit.log_updated(db, AuditEntityType.CONFIG, config.id, agency_id, user_id,
                      old_values, audit.snapshot_config(config))
    return config


def delete_config(db: Session, pricing_id: int, *, agency_id: str, user_id: str) -> None:
    config = get_config_or_raise(db, pricing_id, agency_id)
    _ensure_unlocked(config)

    old_values = audit.snapshot_config(config)
    config_id = config.id
    db.delete(config)
    db.flush()

    audit.log_deleted(db, AuditEntityType.CONFIG, config_id, agency_id, user_id, old_values)
    logger.info("Deleted payment schedule %s for activity pricing %s", config_id, pricing_id)


# items
def get_item_or_raise(db: Session, item_id: int, agency_id: str) -> ExpectedPaymentItemORM:
    item = db.get(ExpectedPaymentItemORM, item_id)
    if not item or item.agency_id != agency_id:
        raise NotFoundError(f"Expected payment item {item_id} not found")
    return item


def ensure_item_not_locked(item: ExpectedPaymentItemORM) -> None:
    if item.is_locked:
        raise ItemLockedError(f"Expected payment item {item.id} is locked")


def update_item(
    db: Session,
    item_id: int,
    *,
    agency_id: str,
    user_id: str,
    changes: dict[str, Any],
) -> ExpectedPaymentItemORM:
    item = get_item_or_raise(db, item_id, agency_id)
    ensure_item_not_locked(item)

    old_values = audit.snapshot_item(item)
    old_status = item.status

    for key in ("payment_name", "expected_amount_cents", "due_date", "sequence_order",
                "paid_amount_cents"):
        if key in changes:
            setattr(item, key, changes[key])
    if changes.get("status") is not None:
        item.status = ExpectedPaymentStatus(changes["status"])

    if item.expected_amount_cents < 0 or item.paid_amount_cents < 0:
        raise ScheduleInputError("Amounts must be non-negative")

    db.flush()
    audit.log_updated(db, AuditEntityType.ITEM, item.id, agency_id, user_id,
                      old_values, audit.snapshot_item(item))
    if item.status != old_status:
        audit.log_status_changed(db, item, user_id, old_status, item.status)
    return item


def lock_item(db: Session, item: ExpectedPaymentItemORM, *, user_id: str) -> ExpectedPaymentItemORM:
    if item.is_locked:
        return item

    item.is_locked = True
    item.locked_at = _now()
    item.locked_by = user_id
    db.flush()

    audit.log_locked(db, item, user_id)
    logger.info("Locked expected payment item %s (by %s)", item.id, user_id)
    return item


def unlock_item(
    db: Session,
    item_id: int,
    *,
    agency_id: str,
    user_id: str,
    reason: str,
) -> ExpectedPaymentItemORM:
    reason = (reason or "").strip()
    if len(reason) < MIN_UNLOCK_REASON_LENGTH:
        raise ScheduleInputError(
            f"Unlock reason must be at least {MIN_UNLOCK_REASON_LENGTH} characters"
        )

    item = get_item_or_raise(db, item_id, agency_id)
    if not item.is_locked:
        return item

    item.is_locked = False
    item.locked_at = None
    item.locked_by = None
    db.flush()

    audit.log_unlocked(db, item, user_id, reason)
    logger.info("Unlocked expected payment item %s (by %s): %s", item.id, user_id, reason)
    return item


# templates
def apply_template(
    db: Session,
    pricing_id: int,
    *,
    agency_id: str,
    user_id: str,
    template_id: int,
    request: ApplyTemplateRequest,
    rules: TicoRules = DEFAULT_TICO_RULES,
    today: Optional[date] = None,
) -> ApplyOutcome:
    """
    Apply an agency template to an activity pricing.

    Dates are resolved and TICO-validated before anything is written; on a
    failed validation the outcome carries the errors and the session is left
    untouched. On success the config's items are replaced, stamped with the
    template id/version, and a template_applied audit entry is added.
    """
    pricing = get_pricing_or_raise(db, pricing_id, agency_id)
    if request.currency and request.currency.upper() != pricing.currency:
        raise ScheduleInputError(
            f"Request currency {request.currency.upper()} does not match activity currency {pricing.currency}"
        )
    template_row = templates.get_template_or_raise(db, template_id, agency_id)
    if not template_row.is_active:
        raise ScheduleInputError(f"Template {template_id} is inactive")

    template = templates.to_domain_template(template_row)
    existing = get_config(db, pricing_id, agency_id)

    def persist(items: list[ResolvedItem], validation: ValidationResult) -> PaymentScheduleConfigORM:
        old_values = audit.snapshot_config(existing) if existing else None

        config = existing
        if config is None:
            config = PaymentScheduleConfigORM(
                activity_pricing_id=pricing.id,
                schedule_type=template.schedule_type,
                allow_partial_payments=False,
            )
            db.add(config)
        else:
            config.schedule_type = template.schedule_type
            config.items.clear()
            db.flush()

        config.template_id = template.id
        config.template_version = template.version
        config.items.extend(
            _item_rows(
                agency_id,
                [
                    {
                        "payment_name": i.payment_name,
                        "expected_amount_cents": i.expected_amount_cents,
                        "due_date": i.due_date,
                        "sequence_order": i.sequence_order,
                    }
                    for i in items
                ],
            )
        )
        db.flush()

        audit.log_template_applied(db, config, agency_id, user_id, old_values)
        logger.info('Applied template "%s" (v%s) to activity pricing %s',
                    template.name, template.version, pricing.id)
        return config

    return resolve_and_apply(
        template,
        request,
        persist=persist,
        rules=rules,
        has_locked_items=has_locked_items(existing),
        today=today,
    )

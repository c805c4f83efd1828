"""
Expansion of payment schedule templates into dated payment items.

Resolution order matters: every amount and due date is computed before the
TICO validator runs, and nothing is persisted unless validation passes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_FLOOR
from typing import Any, Callable, Optional, Sequence

from tailfire.services.errors import ItemLockedError, ScheduleInputError
from tailfire.services.schedule_calculator import percentage_share
from tailfire.services.schedule_types import (
    DEFAULT_TICO_RULES,
    PERCENTAGE_SUM_TOLERANCE,
    ApplyTemplateRequest,
    DaysBeforeDeparture,
    DaysFromBooking,
    FixedAmount,
    Percentage,
    ResolvedItem,
    ScheduleTemplate,
    TemplateItem,
    TicoRules,
    ValidationResult,
)
from tailfire.services.tico_validator import validate_schedule

logger = logging.getLogger(__name__)

PersistFn = Callable[[list[ResolvedItem], ValidationResult], Any]


@dataclass(frozen=True)
class ApplyOutcome:
    validation: ValidationResult
    items: tuple[ResolvedItem, ...]
    template_id: int
    template_version: int
    persisted: Any = None


def _check_inputs(
    items: Sequence[TemplateItem],
    *,
    total_amount_cents: int,
    booking_date: Optional[date],
    departure_date: Optional[date],
) -> None:
    if departure_date is None:
        raise ScheduleInputError("departure_date is required")
    if total_amount_cents <= 0:
        raise ScheduleInputError("total_amount_cents must be greater than zero")
    if not items:
        raise ScheduleInputError("template has no payment items")
    if booking_date is None:
        needs_booking = [i.payment_name for i in items if isinstance(i.timing, DaysFromBooking)]
        if needs_booking:
            raise ScheduleInputError(
                f"booking_date is required for booking-relative items: {', '.join(needs_booking)}"
            )


def _resolve_amounts(items: Sequence[TemplateItem], total: int) -> list[int]:
    amounts = []
    pct_sum = Decimal(0)
    exact_pct_total = Decimal(0)
    floored_pct_total = 0

    for item in items:
        if isinstance(item.amount, Percentage):
            share = percentage_share(total, item.amount.value)
            pct_sum += item.amount.value
            exact_pct_total += Decimal(total) * item.amount.value / Decimal(100)
            floored_pct_total += share
            amounts.append(share)
        elif isinstance(item.amount, FixedAmount):
            amounts.append(item.amount.cents)
        else:
            raise ScheduleInputError(f"{item.payment_name}: unsupported amount {item.amount!r}")

    all_pct = all(isinstance(i.amount, Percentage) for i in items)
    if all_pct and abs(pct_sum - 100) <= PERCENTAGE_SUM_TOLERANCE:
        # a template accepted as 100% always covers the total
        drift = total - sum(amounts)
    else:
        # cents dropped by per-item truncation go to the last item
        drift = int(exact_pct_total.to_integral_value(rounding=ROUND_FLOOR)) - floored_pct_total
    if drift and amounts:
        amounts[-1] += drift
        logger.debug("Adjusted last payment item by %s cents (rounding correction)", drift)
    return amounts


def _resolve_due_date(item: TemplateItem, booking_date: Optional[date], departure_date: date) -> date:
    if isinstance(item.timing, DaysFromBooking):
        return booking_date + timedelta(days=item.timing.days)
    if isinstance(item.timing, DaysBeforeDeparture):
        return departure_date - timedelta(days=item.timing.days)
    raise ScheduleInputError(f"{item.payment_name}: unsupported timing {item.timing!r}")


def resolve_items(
    template_items: Sequence[TemplateItem],
    *,
    total_amount_cents: int,
    booking_date: Optional[date],
    departure_date: Optional[date],
) -> list[ResolvedItem]:
    _check_inputs(
        template_items,
        total_amount_cents=total_amount_cents,
        booking_date=booking_date,
        departure_date=departure_date,
    )

    ordered = sorted(template_items, key=lambda i: i.sequence_order)
    amounts = _resolve_amounts(ordered, total_amount_cents)

    return [
        ResolvedItem(
            payment_name=item.payment_name,
            expected_amount_cents=amount,
            due_date=_resolve_due_date(item, booking_date, departure_date),
            sequence_order=item.sequence_order,
        )
        for item, amount in zip(ordered, amounts)
    ]


def apply_template(
    template: ScheduleTemplate,
    request: ApplyTemplateRequest,
    *,
    persist: PersistFn,
    rules: TicoRules = DEFAULT_TICO_RULES,
    has_locked_items: bool = False,
    today: Optional[date] = None,
) -> ApplyOutcome:
    """
    Resolve a template for one activity, validate it and persist on success.

    `persist` receives the resolved items and the (passing) validation
    result; it is never called when validation fails, so a failed
    application writes nothing.

    Raises:
        ScheduleInputError: missing departure date, non-positive total,
            empty template or booking-relative items without booking date.
        ItemLockedError: the target schedule has locked items.
    """
    if has_locked_items:
        raise ItemLockedError("payment schedule has locked items and cannot be re-applied")

    items = resolve_items(
        template.items,
        total_amount_cents=request.total_amount_cents,
        booking_date=request.booking_date,
        departure_date=request.departure_date,
    )

    validation = validate_schedule(
        items,
        request.total_amount_cents,
        request.departure_date,
        rules=rules,
        today=today,
    )

    outcome = ApplyOutcome(
        validation=validation,
        items=tuple(items),
        template_id=template.id,
        template_version=template.version,
    )
    if not validation.is_valid:
        logger.info(
            "Template %s (v%s) failed TICO validation: %s",
            template.id,
            template.version,
            ", ".join(validation.error_codes()),
        )
        return outcome

    if validation.warnings:
        logger.warning(
            "Template %s (v%s) applied with warnings: %s",
            template.id,
            template.version,
            ", ".join(validation.warning_codes()),
        )

    persisted = persist(items, validation)
    return ApplyOutcome(
        validation=validation,
        items=tuple(items),
        template_id=template.id,
        template_version=template.version,
        persisted=persisted,
    )

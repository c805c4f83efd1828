"""
TICO compliance checks for a resolved payment schedule.

Rule failures are returned as data (ValidationResult); only missing or
malformed inputs raise. Every rule runs on every call so callers get the
complete list of problems at once.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from tailfire.services.errors import ScheduleInputError, UnresolvedScheduleError
from tailfire.services.schedule_types import (
    DEFAULT_TICO_RULES,
    ResolvedItem,
    TicoRules,
    ValidationIssue,
    ValidationResult,
)

SUM_MISMATCH = "SUM_MISMATCH"
FINAL_PAYMENT_TOO_LATE = "FINAL_PAYMENT_TOO_LATE"
PAYMENT_TOO_SMALL = "PAYMENT_TOO_SMALL"
TOO_MANY_INSTALLMENTS = "TOO_MANY_INSTALLMENTS"
HIGH_DEPOSIT = "HIGH_DEPOSIT"
PAST_DUE_DATE = "PAST_DUE_DATE"


def _check_sum(items: Sequence[ResolvedItem], total: int) -> list[ValidationIssue]:
    s = sum(i.expected_amount_cents for i in items)
    if s == total:
        return []
    return [
        ValidationIssue(
            SUM_MISMATCH,
            f"Payment items sum to {s} cents but total is {total} cents",
            {"sum_cents": s, "total_cents": total, "difference": total - s},
        )
    ]


def _check_final_payment(
    items: Sequence[ResolvedItem], departure: date, rules: TicoRules
) -> list[ValidationIssue]:
    if not items:
        return []

    latest = max(i.due_date for i in items)
    issues = []
    # items tied on the latest date are all final payments
    for item in items:
        if item.due_date != latest:
            continue
        days = (departure - item.due_date).days
        if days < rules.min_final_payment_days:
            issues.append(
                ValidationIssue(
                    FINAL_PAYMENT_TOO_LATE,
                    f'Final payment "{item.payment_name}" must be at least '
                    f"{rules.min_final_payment_days} days before departure. Current: {days} days",
                    {
                        "payment_name": item.payment_name,
                        "days_before_departure": days,
                        "required": rules.min_final_payment_days,
                    },
                )
            )
    return issues


def _check_min_amounts(items: Sequence[ResolvedItem], rules: TicoRules) -> list[ValidationIssue]:
    return [
        ValidationIssue(
            PAYMENT_TOO_SMALL,
            f'Payment "{i.payment_name}" is below minimum ({rules.min_payment_cents} cents): '
            f"{i.expected_amount_cents} cents",
            {
                "payment_name": i.payment_name,
                "amount_cents": i.expected_amount_cents,
                "minimum_cents": rules.min_payment_cents,
            },
        )
        for i in items
        if i.expected_amount_cents < rules.min_payment_cents
    ]


def _check_count(items: Sequence[ResolvedItem], rules: TicoRules) -> list[ValidationIssue]:
    if len(items) <= rules.max_installments:
        return []
    return [
        ValidationIssue(
            TOO_MANY_INSTALLMENTS,
            f"Too many payment items ({len(items)}). Maximum allowed: {rules.max_installments}",
            {"count": len(items), "maximum": rules.max_installments},
        )
    ]


def _check_deposit(items: Sequence[ResolvedItem], total: int, rules: TicoRules) -> list[ValidationIssue]:
    # a single item is a full payment, not a deposit
    if len(items) < 2 or total <= 0:
        return []

    first = min(items, key=lambda i: i.sequence_order)
    pct = Decimal(first.expected_amount_cents) * 100 / Decimal(total)
    if pct <= rules.deposit_warning_pct:
        return []
    return [
        ValidationIssue(
            HIGH_DEPOSIT,
            f"Deposit is {pct:.1f}% of total (exceeds {rules.deposit_warning_pct}% threshold)",
            {"deposit_percent": float(round(pct, 2)), "threshold": rules.deposit_warning_pct},
        )
    ]


def _check_past_due(items: Sequence[ResolvedItem], today: date) -> list[ValidationIssue]:
    return [
        ValidationIssue(
            PAST_DUE_DATE,
            f'Payment "{i.payment_name}" has a due date in the past: {i.due_date.isoformat()}',
            {"payment_name": i.payment_name, "due_date": i.due_date.isoformat()},
        )
        for i in items
        if i.due_date < today
    ]


def validate_schedule(
    items: Sequence[ResolvedItem],
    total_amount_cents: int,
    departure_date: Optional[date],
    *,
    rules: TicoRules = DEFAULT_TICO_RULES,
    today: Optional[date] = None,
) -> ValidationResult:
    """
    Validate resolved payment items against TICO rules.

    Errors (block persistence): SUM_MISMATCH, FINAL_PAYMENT_TOO_LATE,
    PAYMENT_TOO_SMALL, TOO_MANY_INSTALLMENTS.
    Warnings (advisory): HIGH_DEPOSIT, PAST_DUE_DATE.

    Raises:
        ScheduleInputError: departure date missing or total not an integer.
        UnresolvedScheduleError: an item has no due date.
    """
    if departure_date is None:
        raise ScheduleInputError("departure_date is required")
    if isinstance(total_amount_cents, bool) or not isinstance(total_amount_cents, int):
        raise ScheduleInputError("total_amount_cents must be an integer number of cents")

    unresolved = [i.payment_name for i in items if i.due_date is None]
    if unresolved:
        raise UnresolvedScheduleError(
            f"validator called with unresolved due dates: {', '.join(unresolved)}"
        )

    today = today or date.today()

    errors = (
        _check_sum(items, total_amount_cents)
        + _check_final_payment(items, departure_date, rules)
        + _check_min_amounts(items, rules)
        + _check_count(items, rules)
    )
    warnings = _check_deposit(items, total_amount_cents, rules) + _check_past_due(items, today)

    return ValidationResult(errors=tuple(errors), warnings=tuple(warnings))

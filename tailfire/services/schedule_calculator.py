"""
Deposit and installment calculation for payment schedules.

All amounts are integer cents. Percentage shares are truncated (fractional
cents dropped) and the remainder always lands on the last item, so the
items of a schedule add up to the total exactly.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_FLOOR
from typing import Optional

from tailfire.services.errors import ScheduleInputError
from tailfire.services.schedule_types import (
    DEFAULT_TICO_RULES,
    AmountSpec,
    CalculatedItem,
    FixedAmount,
    Percentage,
    ResolvedItem,
    ScheduleType,
    TicoRules,
)


@dataclass(frozen=True)
class DepositCalculation:
    deposit_amount_cents: int
    remaining_amount_cents: int
    total_amount_cents: int


def percentage_share(total_cents: int, pct: Decimal) -> int:
    return int((Decimal(total_cents) * pct / Decimal(100)).to_integral_value(rounding=ROUND_FLOOR))


def _check_total(total_cents: int) -> None:
    if total_cents <= 0:
        raise ScheduleInputError("total_amount_cents must be greater than zero")


def calculate_deposit(total_cents: int, deposit: AmountSpec) -> DepositCalculation:
    _check_total(total_cents)

    if isinstance(deposit, Percentage):
        if deposit.value <= 0 or deposit.value > 100:
            raise ScheduleInputError("deposit percentage must be greater than 0 and at most 100")
        deposit_cents = percentage_share(total_cents, deposit.value)
    elif isinstance(deposit, FixedAmount):
        if deposit.cents <= 0:
            raise ScheduleInputError("deposit amount must be greater than zero")
        if deposit.cents > total_cents:
            raise ScheduleInputError("deposit amount cannot exceed total price")
        deposit_cents = deposit.cents
    else:
        raise ScheduleInputError(f"unsupported deposit: {deposit!r}")

    return DepositCalculation(
        deposit_amount_cents=deposit_cents,
        remaining_amount_cents=total_cents - deposit_cents,
        total_amount_cents=total_cents,
    )


def split_installments(
    total_cents: int,
    count: int,
    *,
    rules: TicoRules = DEFAULT_TICO_RULES,
) -> list[int]:
    _check_total(total_cents)
    if count < 1 or count > rules.max_installments:
        raise ScheduleInputError(
            f"installment count must be between 1 and {rules.max_installments}"
        )

    base = total_cents // count
    amounts = [base] * count
    amounts[-1] += total_cents - base * count
    return amounts


def calculate_schedule(
    total_cents: int,
    schedule_type: ScheduleType,
    *,
    deposit: Optional[AmountSpec] = None,
    installment_count: Optional[int] = None,
    rules: TicoRules = DEFAULT_TICO_RULES,
) -> list[CalculatedItem]:
    """
    Compute the payment lines of a schedule.

    Args:
        total_cents: Total price, must be positive.
        schedule_type: full, deposit, installments or guarantee.
        deposit: Percentage or FixedAmount, required for deposit schedules.
        installment_count: Number of installments, required for installments.
        rules: Limits applied to the installment count.

    Returns:
        Items in sequence order. Guarantee schedules have none.

    Raises:
        ScheduleInputError: on a non-positive total or missing/out of range
            deposit or installment parameters.
    """
    _check_total(total_cents)
    schedule_type = ScheduleType(schedule_type)

    if schedule_type == ScheduleType.FULL:
        return [CalculatedItem("Full Payment", total_cents, 0)]

    if schedule_type == ScheduleType.DEPOSIT:
        if deposit is None:
            raise ScheduleInputError("a deposit is required for deposit schedules")
        calc = calculate_deposit(total_cents, deposit)
        items = [CalculatedItem("Deposit", calc.deposit_amount_cents, 0)]
        if calc.remaining_amount_cents > 0:
            items.append(CalculatedItem("Final Balance", calc.remaining_amount_cents, 1))
        return items

    if schedule_type == ScheduleType.INSTALLMENTS:
        if installment_count is None:
            raise ScheduleInputError("installment_count is required for installment schedules")
        amounts = split_installments(total_cents, installment_count, rules=rules)
        return [
            CalculatedItem(f"Installment {i + 1} of {installment_count}", amount, i)
            for i, amount in enumerate(amounts)
        ]

    # guarantee: backed by a credit card authorization, nothing scheduled
    return []


def generate_deposit_schedule(
    total_cents: int,
    deposit: AmountSpec,
    *,
    deposit_due_date: Optional[date] = None,
    final_due_date: Optional[date] = None,
) -> list[ResolvedItem]:
    calc = calculate_deposit(total_cents, deposit)
    items = [ResolvedItem("Deposit", calc.deposit_amount_cents, deposit_due_date, 0)]
    if calc.remaining_amount_cents > 0:
        items.append(ResolvedItem("Final Balance", calc.remaining_amount_cents, final_due_date, 1))
    return items

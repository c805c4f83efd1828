"""
Value types shared by the payment schedule calculator, template resolver
and TICO validator.

Everything here is immutable. Amount and timing of a template item are
tagged variants, so an item can never carry both a percentage and a fixed
amount (or both timing offsets) once it has been built.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union

from tailfire.services.errors import ScheduleInputError


class ScheduleType(str, enum.Enum):
    FULL = "full"
    DEPOSIT = "deposit"
    INSTALLMENTS = "installments"
    GUARANTEE = "guarantee"


class DepositType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


class ExpectedPaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"


@dataclass(frozen=True)
class TicoRules:
    """Regulatory thresholds, passed explicitly to every check."""

    min_final_payment_days: int = 45
    max_installments: int = 12
    min_payment_cents: int = 100
    deposit_warning_pct: int = 50


DEFAULT_TICO_RULES = TicoRules()

# all-percentage templates may sum to 100 within this margin
PERCENTAGE_SUM_TOLERANCE = Decimal("0.01")


# amount variants
@dataclass(frozen=True)
class Percentage:
    value: Decimal


@dataclass(frozen=True)
class FixedAmount:
    cents: int


AmountSpec = Union[Percentage, FixedAmount]


# timing variants
@dataclass(frozen=True)
class DaysFromBooking:
    days: int


@dataclass(frozen=True)
class DaysBeforeDeparture:
    days: int


TimingSpec = Union[DaysFromBooking, DaysBeforeDeparture]


def _is_set(v: Any) -> bool:
    return v is not None


@dataclass(frozen=True)
class TemplateItem:
    sequence_order: int
    payment_name: str
    amount: AmountSpec
    timing: TimingSpec

    @classmethod
    def from_fields(
        cls,
        *,
        sequence_order: int,
        payment_name: str,
        percentage: Optional[Decimal | float | str] = None,
        fixed_amount_cents: Optional[int] = None,
        days_from_booking: Optional[int] = None,
        days_before_departure: Optional[int] = None,
    ) -> "TemplateItem":
        """
        Build an item from the raw optional columns/fields.

        Raises ScheduleInputError when a mutually exclusive pair has both or
        neither side set, or when a value is out of range.
        """
        prefix = f"Item {sequence_order + 1} ({payment_name})"

        has_pct, has_fixed = _is_set(percentage), _is_set(fixed_amount_cents)
        if has_pct and has_fixed:
            raise ScheduleInputError(f"{prefix}: cannot set both percentage and fixed_amount_cents")
        if not has_pct and not has_fixed:
            raise ScheduleInputError(f"{prefix}: either percentage or fixed_amount_cents must be set")

        has_booking, has_departure = _is_set(days_from_booking), _is_set(days_before_departure)
        if has_booking and has_departure:
            raise ScheduleInputError(
                f"{prefix}: cannot set both days_from_booking and days_before_departure"
            )
        if not has_booking and not has_departure:
            raise ScheduleInputError(
                f"{prefix}: either days_from_booking or days_before_departure must be set"
            )

        amount: AmountSpec
        if has_pct:
            pct = Decimal(str(percentage))
            if pct <= 0 or pct > 100:
                raise ScheduleInputError(f"{prefix}: percentage must be greater than 0 and at most 100")
            amount = Percentage(pct)
        else:
            if int(fixed_amount_cents) <= 0:
                raise ScheduleInputError(f"{prefix}: fixed amount must be positive")
            amount = FixedAmount(int(fixed_amount_cents))

        timing: TimingSpec
        if has_booking:
            if int(days_from_booking) < 0:
                raise ScheduleInputError(f"{prefix}: days_from_booking must be non-negative")
            timing = DaysFromBooking(int(days_from_booking))
        else:
            if int(days_before_departure) < 0:
                raise ScheduleInputError(f"{prefix}: days_before_departure must be non-negative")
            timing = DaysBeforeDeparture(int(days_before_departure))

        return cls(
            sequence_order=sequence_order,
            payment_name=payment_name,
            amount=amount,
            timing=timing,
        )


@dataclass(frozen=True)
class ScheduleTemplate:
    id: int
    name: str
    version: int
    schedule_type: ScheduleType
    items: tuple[TemplateItem, ...]


@dataclass(frozen=True)
class ApplyTemplateRequest:
    total_amount_cents: int
    departure_date: Optional[date]
    booking_date: Optional[date] = None
    currency: Optional[str] = None


@dataclass(frozen=True)
class CalculatedItem:
    payment_name: str
    amount_cents: int
    sequence_order: int


@dataclass(frozen=True)
class ResolvedItem:
    payment_name: str
    expected_amount_cents: int
    due_date: Optional[date]
    sequence_order: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "payment_name": self.payment_name,
            "expected_amount_cents": self.expected_amount_cents,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "sequence_order": self.sequence_order,
        }


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.details}


@dataclass(frozen=True)
class ValidationResult:
    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def error_codes(self) -> list[str]:
        return [e.code for e in self.errors]

    def warning_codes(self) -> list[str]:
        return [w.code for w in self.warnings]

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }

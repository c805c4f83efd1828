from __future__ import annotations

from datetime import date
from typing import Iterable, Optional, Tuple

from tailfire.services.schedule_types import ExpectedPaymentStatus


def net_paid_cents(transactions: Iterable[Tuple[str, int]]) -> int:
    """(transaction_type, amount_cents) pairs -> net paid, never negative."""
    net = 0
    for tx_type, amount in transactions:
        if tx_type == "refund":
            net -= amount
        elif tx_type in ("payment", "adjustment"):
            net += amount
    return max(0, net)


def derive_item_status(
    paid_cents: int,
    expected_cents: int,
    due_date: Optional[date],
    today: date,
) -> ExpectedPaymentStatus:
    if paid_cents >= expected_cents:
        return ExpectedPaymentStatus.PAID
    if paid_cents > 0:
        return ExpectedPaymentStatus.PARTIAL
    if due_date is not None and due_date < today:
        return ExpectedPaymentStatus.OVERDUE
    return ExpectedPaymentStatus.PENDING

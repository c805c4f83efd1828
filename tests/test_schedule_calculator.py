from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from tailfire.services.errors import ScheduleInputError
from tailfire.services.schedule_calculator import (
    calculate_deposit,
    calculate_schedule,
    generate_deposit_schedule,
    percentage_share,
    split_installments,
)
from tailfire.services.schedule_types import FixedAmount, Percentage, ScheduleType, TicoRules


class TestPercentageShare:
    def test_exact(self):
        assert percentage_share(600000, Decimal("25")) == 150000

    def test_truncates_fraction(self):
        # 33.33% of 10001 = 3333.3333
        assert percentage_share(10001, Decimal("33.33")) == 3333

    def test_never_rounds_up(self):
        # 1/3 of 100 cents = 33.33... -> 33, 2/3 = 66.66... -> 66
        assert percentage_share(100, Decimal("33.3333")) == 33
        assert percentage_share(100, Decimal("66.6666")) == 66


class TestCalculateDeposit:
    def test_percentage(self):
        calc = calculate_deposit(100000, Percentage(Decimal("20")))
        assert calc.deposit_amount_cents == 20000
        assert calc.remaining_amount_cents == 80000
        assert calc.total_amount_cents == 100000

    def test_fixed_amount(self):
        calc = calculate_deposit(100000, FixedAmount(25000))
        assert calc.deposit_amount_cents == 25000
        assert calc.remaining_amount_cents == 75000

    def test_fixed_amount_above_total(self):
        with pytest.raises(ScheduleInputError, match="cannot exceed"):
            calculate_deposit(100000, FixedAmount(100001))

    @pytest.mark.parametrize("pct", [Decimal("0"), Decimal("-5"), Decimal("100.01")])
    def test_percentage_out_of_range(self, pct):
        with pytest.raises(ScheduleInputError):
            calculate_deposit(100000, Percentage(pct))

    def test_zero_fixed_amount(self):
        with pytest.raises(ScheduleInputError):
            calculate_deposit(100000, FixedAmount(0))

    def test_non_positive_total(self):
        with pytest.raises(ScheduleInputError, match="greater than zero"):
            calculate_deposit(0, Percentage(Decimal("10")))


class TestSplitInstallments:
    def test_even_split(self):
        assert split_installments(90000, 3) == [30000, 30000, 30000]

    def test_remainder_on_last_item(self):
        amounts = split_installments(10001, 3)
        assert amounts == [3333, 3333, 3335]
        assert sum(amounts) == 10001

    @pytest.mark.parametrize("count", range(1, 13))
    @pytest.mark.parametrize("total", [1001, 10001, 99999, 123457])
    def test_any_count_sums_to_total(self, total, count):
        amounts = split_installments(total, count)

        assert len(amounts) == count
        assert sum(amounts) == total
        assert amounts[:-1] == [total // count] * (count - 1)
        assert amounts[-1] == total // count + total % count

    def test_single_installment(self):
        assert split_installments(12345, 1) == [12345]

    def test_count_above_maximum(self):
        with pytest.raises(ScheduleInputError, match="between 1 and 12"):
            split_installments(100000, 13)

    def test_maximum_comes_from_rules(self):
        rules = TicoRules(max_installments=4)
        with pytest.raises(ScheduleInputError, match="between 1 and 4"):
            split_installments(100000, 5, rules=rules)

    def test_zero_count(self):
        with pytest.raises(ScheduleInputError):
            split_installments(100000, 0)


class TestCalculateSchedule:
    def test_full(self):
        items = calculate_schedule(50000, ScheduleType.FULL)
        assert [(i.payment_name, i.amount_cents, i.sequence_order) for i in items] == [
            ("Full Payment", 50000, 0)
        ]

    def test_deposit(self):
        items = calculate_schedule(100000, ScheduleType.DEPOSIT, deposit=Percentage(Decimal("30")))
        assert [(i.payment_name, i.amount_cents, i.sequence_order) for i in items] == [
            ("Deposit", 30000, 0),
            ("Final Balance", 70000, 1),
        ]

    def test_thirty_three_percent_deposit(self):
        items = calculate_schedule(10000, ScheduleType.DEPOSIT, deposit=Percentage(Decimal("33")))
        assert [i.amount_cents for i in items] == [3300, 6700]

    def test_full_deposit_has_no_zero_balance_item(self):
        items = calculate_schedule(100000, ScheduleType.DEPOSIT, deposit=Percentage(Decimal("100")))
        assert len(items) == 1
        assert items[0].amount_cents == 100000

    def test_deposit_requires_deposit(self):
        with pytest.raises(ScheduleInputError, match="deposit is required"):
            calculate_schedule(100000, ScheduleType.DEPOSIT)

    def test_installments(self):
        items = calculate_schedule(10001, ScheduleType.INSTALLMENTS, installment_count=3)
        assert [i.payment_name for i in items] == [
            "Installment 1 of 3",
            "Installment 2 of 3",
            "Installment 3 of 3",
        ]
        assert [i.sequence_order for i in items] == [0, 1, 2]
        assert sum(i.amount_cents for i in items) == 10001

    def test_installments_require_count(self):
        with pytest.raises(ScheduleInputError, match="installment_count"):
            calculate_schedule(10000, ScheduleType.INSTALLMENTS)

    def test_guarantee_has_no_items(self):
        assert calculate_schedule(10000, ScheduleType.GUARANTEE) == []

    def test_accepts_raw_schedule_type_value(self):
        items = calculate_schedule(10000, "full")
        assert items[0].payment_name == "Full Payment"

    def test_items_always_sum_to_total(self):
        for total in (1, 99, 10001, 123457, 999999):
            for pct in ("1", "12.5", "33.33", "99.99"):
                items = calculate_schedule(total, ScheduleType.DEPOSIT, deposit=Percentage(Decimal(pct)))
                assert sum(i.amount_cents for i in items) == total


def test_generate_deposit_schedule_carries_dates():
    items = generate_deposit_schedule(
        100000,
        FixedAmount(20000),
        deposit_due_date=date(2025, 1, 1),
        final_due_date=date(2025, 4, 1),
    )
    assert [(i.payment_name, i.expected_amount_cents, i.due_date) for i in items] == [
        ("Deposit", 20000, date(2025, 1, 1)),
        ("Final Balance", 80000, date(2025, 4, 1)),
    ]

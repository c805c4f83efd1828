from __future__ import annotations

from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from conftest import TODAY
from tailfire.services import tico_validator
from tailfire.services.errors import ItemLockedError, ScheduleInputError
from tailfire.services.schedule_types import (
    ApplyTemplateRequest,
    DaysBeforeDeparture,
    DaysFromBooking,
    FixedAmount,
    Percentage,
    ScheduleTemplate,
    ScheduleType,
    TemplateItem,
    TicoRules,
)
from tailfire.services.template_resolver import apply_template, resolve_items

BOOKING = date(2025, 1, 1)
DEPARTURE = date(2025, 6, 1)


def _template(*items: TemplateItem) -> ScheduleTemplate:
    return ScheduleTemplate(id=7, name="Custom", version=3, schedule_type=ScheduleType.INSTALLMENTS, items=items)


def _request(total=600000, booking=BOOKING, departure=DEPARTURE) -> ApplyTemplateRequest:
    return ApplyTemplateRequest(total_amount_cents=total, departure_date=departure, booking_date=booking)


class TestResolveItems:
    def test_standard_three_pay(self, standard_template):
        items = resolve_items(
            standard_template.items,
            total_amount_cents=600000,
            booking_date=BOOKING,
            departure_date=DEPARTURE,
        )

        assert [i.expected_amount_cents for i in items] == [150000, 150000, 300000]
        assert [i.due_date for i in items] == [date(2025, 1, 1), date(2025, 3, 3), date(2025, 4, 17)]
        assert sum(i.expected_amount_cents for i in items) == 600000

    def test_sorted_by_sequence_order(self):
        items = resolve_items(
            [
                TemplateItem(2, "Last", Percentage(Decimal("50")), DaysBeforeDeparture(60)),
                TemplateItem(0, "First", Percentage(Decimal("50")), DaysFromBooking(0)),
            ],
            total_amount_cents=1000,
            booking_date=BOOKING,
            departure_date=DEPARTURE,
        )
        assert [i.payment_name for i in items] == ["First", "Last"]

    def test_truncation_drift_goes_to_last_item(self):
        items = resolve_items(
            [
                TemplateItem(0, "A", Percentage(Decimal("33.33")), DaysFromBooking(0)),
                TemplateItem(1, "B", Percentage(Decimal("33.33")), DaysFromBooking(30)),
                TemplateItem(2, "C", Percentage(Decimal("33.34")), DaysBeforeDeparture(60)),
            ],
            total_amount_cents=10001,
            booking_date=BOOKING,
            departure_date=DEPARTURE,
        )
        assert [i.expected_amount_cents for i in items] == [3333, 3333, 3335]
        assert sum(i.expected_amount_cents for i in items) == 10001

    def test_near_hundred_percent_template_covers_total(self):
        items = resolve_items(
            [
                TemplateItem(0, "A", Percentage(Decimal("33.33")), DaysFromBooking(0)),
                TemplateItem(1, "B", Percentage(Decimal("33.33")), DaysFromBooking(30)),
                TemplateItem(2, "C", Percentage(Decimal("33.33")), DaysBeforeDeparture(60)),
            ],
            total_amount_cents=600000,
            booking_date=BOOKING,
            departure_date=DEPARTURE,
        )
        assert [i.expected_amount_cents for i in items] == [199980, 199980, 200040]

    def test_resolution_is_repeatable(self, standard_template):
        def resolve():
            return resolve_items(
                standard_template.items,
                total_amount_cents=123457,
                booking_date=BOOKING,
                departure_date=DEPARTURE,
            )

        assert resolve() == resolve()

    def test_fixed_and_percentage_mix(self):
        items = resolve_items(
            [
                TemplateItem(0, "Deposit", FixedAmount(50000), DaysFromBooking(0)),
                TemplateItem(1, "Balance", Percentage(Decimal("50")), DaysBeforeDeparture(60)),
            ],
            total_amount_cents=100000,
            booking_date=BOOKING,
            departure_date=DEPARTURE,
        )
        assert [i.expected_amount_cents for i in items] == [50000, 50000]

    def test_departure_only_template_needs_no_booking_date(self):
        items = resolve_items(
            [TemplateItem(0, "Full", Percentage(Decimal("100")), DaysBeforeDeparture(60))],
            total_amount_cents=1000,
            booking_date=None,
            departure_date=DEPARTURE,
        )
        assert items[0].due_date == date(2025, 4, 2)

    def test_booking_relative_item_without_booking_date(self, standard_template):
        with pytest.raises(ScheduleInputError, match="booking_date is required"):
            resolve_items(
                standard_template.items,
                total_amount_cents=600000,
                booking_date=None,
                departure_date=DEPARTURE,
            )

    def test_missing_departure_date(self, standard_template):
        with pytest.raises(ScheduleInputError, match="departure_date"):
            resolve_items(
                standard_template.items,
                total_amount_cents=600000,
                booking_date=BOOKING,
                departure_date=None,
            )

    @pytest.mark.parametrize("total", [0, -100])
    def test_non_positive_total(self, standard_template, total):
        with pytest.raises(ScheduleInputError, match="greater than zero"):
            resolve_items(
                standard_template.items,
                total_amount_cents=total,
                booking_date=BOOKING,
                departure_date=DEPARTURE,
            )

    def test_empty_template(self):
        with pytest.raises(ScheduleInputError, match="no payment items"):
            resolve_items([], total_amount_cents=1000, booking_date=BOOKING, departure_date=DEPARTURE)


class TestApplyTemplate:
    def test_persists_valid_schedule(self, standard_template):
        persist = MagicMock(return_value="saved")

        outcome = apply_template(standard_template, _request(), persist=persist, today=TODAY)

        assert outcome.validation.is_valid
        assert outcome.validation.warnings == ()
        assert outcome.persisted == "saved"
        assert outcome.template_id == 1
        assert outcome.template_version == 1
        persist.assert_called_once()
        items, validation = persist.call_args.args
        assert [i.due_date for i in items] == [date(2025, 1, 1), date(2025, 3, 3), date(2025, 4, 17)]
        assert validation is outcome.validation

    def test_does_not_persist_when_final_payment_too_late(self, standard_template):
        persist = MagicMock()
        short_trip = _request(booking=date(2025, 5, 1), departure=date(2025, 6, 1))

        outcome = apply_template(standard_template, short_trip, persist=persist, today=TODAY)

        assert not outcome.validation.is_valid
        assert "FINAL_PAYMENT_TOO_LATE" in outcome.validation.error_codes()
        assert outcome.persisted is None
        persist.assert_not_called()

    def test_does_not_persist_on_sum_mismatch(self):
        template = _template(
            TemplateItem(0, "Deposit", FixedAmount(50000), DaysFromBooking(0)),
            TemplateItem(1, "Balance", Percentage(Decimal("100")), DaysBeforeDeparture(60)),
        )
        persist = MagicMock()

        outcome = apply_template(template, _request(total=100000), persist=persist, today=TODAY)

        assert outcome.validation.error_codes() == ["SUM_MISMATCH"]
        error = outcome.validation.errors[0]
        assert error.details == {"sum_cents": 150000, "total_cents": 100000, "difference": -50000}
        persist.assert_not_called()

    def test_warnings_do_not_block(self):
        template = _template(
            TemplateItem(0, "Deposit", Percentage(Decimal("80")), DaysFromBooking(0)),
            TemplateItem(1, "Balance", Percentage(Decimal("20")), DaysBeforeDeparture(60)),
        )
        persist = MagicMock(return_value=42)

        outcome = apply_template(template, _request(total=100000), persist=persist, today=TODAY)

        assert outcome.validation.is_valid
        assert outcome.validation.warning_codes() == ["HIGH_DEPOSIT"]
        assert outcome.persisted == 42

    def test_locked_schedule_is_refused_before_resolution(self, standard_template):
        persist = MagicMock()
        with pytest.raises(ItemLockedError):
            apply_template(
                standard_template,
                _request(booking=None),
                persist=persist,
                has_locked_items=True,
            )
        persist.assert_not_called()

    def test_rules_are_injected(self, standard_template):
        persist = MagicMock()
        strict = TicoRules(min_final_payment_days=60)

        outcome = apply_template(standard_template, _request(), persist=persist, rules=strict, today=TODAY)

        assert outcome.validation.error_codes() == ["FINAL_PAYMENT_TOO_LATE"]
        persist.assert_not_called()

    def test_only_past_due_warnings_depend_on_today(self, standard_template):
        before = apply_template(standard_template, _request(), persist=MagicMock(), today=TODAY)
        later = apply_template(standard_template, _request(), persist=MagicMock(), today=date(2025, 3, 10))

        assert before.items == later.items
        assert before.validation.errors == later.validation.errors
        assert before.validation.warning_codes() == []
        assert later.validation.warning_codes() == ["PAST_DUE_DATE", "PAST_DUE_DATE"]

    def test_validator_never_sees_unresolved_dates(self, standard_template, monkeypatch):
        seen = []
        real = tico_validator.validate_schedule

        def spy(items, *args, **kwargs):
            seen.extend(items)
            return real(items, *args, **kwargs)

        monkeypatch.setattr("tailfire.services.template_resolver.validate_schedule", spy)
        apply_template(standard_template, _request(), persist=MagicMock(), today=TODAY)

        assert len(seen) == 3
        assert all(i.due_date is not None for i in seen)

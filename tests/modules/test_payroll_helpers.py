"""
Tests for payroll execution pure helpers.

Validates:
- normalize_period, period_bounds, generate_run_id
- calculate_proration (hire mid-period, contract end, outside window)
- unpaid_leave_days and unpaid_leave_contribution
- tax and insurance lines
- apply_minimum_wage_floor and settle_payslip
- reprice_contributions
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_kernel.exceptions import InvalidPeriodError
from payroll_modules.execution.helpers import (
    aggregate_deductions,
    aggregate_earnings,
    apply_minimum_wage_floor,
    calculate_proration,
    generate_run_id,
    insurance_contributions,
    normalize_period,
    period_bounds,
    reprice_contributions,
    settle_payslip,
    tax_contributions,
    unpaid_leave_contribution,
    unpaid_leave_days,
)
from payroll_modules.execution.models import (
    Contribution,
    ContributionKind,
    InsuranceBracket,
    TaxRule,
)

APRIL_START = date(2026, 4, 1)
APRIL_END = date(2026, 4, 30)


# =============================================================================
# Periods
# =============================================================================


class TestNormalizePeriod:

    @pytest.mark.parametrize("value, expected", [
        ("2026-02", date(2026, 2, 1)),
        ("2026-02-17", date(2026, 2, 1)),
        (" 2026-12 ", date(2026, 12, 1)),
        (date(2026, 3, 31), date(2026, 3, 1)),
        (datetime(2026, 5, 9, 8, 30), date(2026, 5, 1)),
    ])
    def test_normalizes_to_first_of_month(self, value, expected):
        assert normalize_period(value) == expected

    @pytest.mark.parametrize("value", ["", "   ", "2026-13", "Feb 2026", "2026/02", None])
    def test_rejects_unparseable(self, value):
        with pytest.raises(InvalidPeriodError):
            normalize_period(value)


class TestPeriodBounds:

    def test_february_non_leap(self):
        assert period_bounds(date(2026, 2, 1)) == (date(2026, 2, 1), date(2026, 2, 28), 28)

    def test_february_leap(self):
        assert period_bounds(date(2028, 2, 1))[2] == 29

    def test_thirty_day_month(self):
        assert period_bounds(APRIL_START) == (APRIL_START, APRIL_END, 30)


class TestGenerateRunId:

    def test_format(self):
        run_id = generate_run_id(datetime(2026, 2, 1, tzinfo=timezone.utc))
        assert re.fullmatch(r"RUN-\d+-[0-9a-f]{6}", run_id)

    def test_unique_for_same_instant(self):
        now = datetime(2026, 2, 1, tzinfo=timezone.utc)
        assert generate_run_id(now) != generate_run_id(now)


# =============================================================================
# Proration
# =============================================================================


class TestProration:

    def test_hired_on_day_ten_of_thirty(self):
        result = calculate_proration(date(2026, 4, 10), None, APRIL_START, APRIL_END)

        assert result.payable_days == 21
        assert result.days_in_period == 30
        assert result.factor == Decimal(21) / Decimal(30)
        assert result.apply(Decimal("3000")) == Decimal("2100.00")

    def test_full_period_factor_is_one(self):
        result = calculate_proration(date(2020, 1, 1), None, APRIL_START, APRIL_END)
        assert result.is_full
        assert result.factor == Decimal("1")
        assert result.apply(Decimal("3000")) == Decimal("3000.00")

    def test_missing_hire_date_does_not_truncate(self):
        assert calculate_proration(None, None, APRIL_START, APRIL_END).is_full

    def test_contract_ends_mid_period(self):
        result = calculate_proration(date(2020, 1, 1), date(2026, 4, 15), APRIL_START, APRIL_END)
        assert result.payable_days == 15
        assert result.apply(Decimal("3000")) == Decimal("1500.00")

    def test_hired_after_period_pays_nothing(self):
        result = calculate_proration(date(2026, 5, 2), None, APRIL_START, APRIL_END)
        assert result.payable_days == 0
        assert result.factor == Decimal("0")

    def test_hired_on_last_day(self):
        result = calculate_proration(APRIL_END, None, APRIL_START, APRIL_END)
        assert result.payable_days == 1
        assert result.apply(Decimal("3000")) == Decimal("100.00")


# =============================================================================
# Unpaid leave
# =============================================================================


class TestUnpaidLeave:

    def test_three_day_leave_in_thirty_day_period(self):
        days = unpaid_leave_days(date(2026, 4, 6), date(2026, 4, 8), APRIL_START, APRIL_END)
        line = unpaid_leave_contribution(days, Decimal("3000"), 30)

        assert days == 3
        assert line.kind == ContributionKind.UNPAID_LEAVE
        assert line.amount == Decimal("300.00")
        assert line.attributes == {"days": 3}
        assert line.label == "Unpaid Leave"

    def test_leave_straddling_period_start(self):
        assert unpaid_leave_days(date(2026, 3, 28), date(2026, 4, 2), APRIL_START, APRIL_END) == 2

    def test_leave_outside_period(self):
        assert unpaid_leave_days(date(2026, 3, 1), date(2026, 3, 5), APRIL_START, APRIL_END) == 0


# =============================================================================
# Tax and insurance
# =============================================================================


class TestDeductionLines:

    def test_tax_is_rate_of_base(self):
        rules = (
            TaxRule(id=uuid4(), name="Income Tax", rate=Decimal("10")),
            TaxRule(id=uuid4(), name="Solidarity", rate=Decimal("2.5")),
        )
        lines = tax_contributions(Decimal("3000"), rules)

        assert [line.amount for line in lines] == [Decimal("300.00"), Decimal("75.00")]
        assert [line.label for line in lines] == ["Income Tax", "Solidarity"]
        assert lines[1].rate == Decimal("2.5")

    def test_insurance_only_for_covering_brackets(self):
        low = InsuranceBracket(
            id=uuid4(), name="Low", min_salary=Decimal("0"), max_salary=Decimal("5000"),
            employee_rate=Decimal("11"), employer_rate=Decimal("18.75"),
        )
        high = InsuranceBracket(
            id=uuid4(), name="High", min_salary=Decimal("5000.01"), max_salary=Decimal("99999"),
            employee_rate=Decimal("5"),
        )
        lines = insurance_contributions(Decimal("4000"), (low, high))

        assert len(lines) == 1
        assert lines[0].amount == Decimal("440.00")
        assert lines[0].attributes["employer_rate"] == "18.75"

    def test_bracket_bounds_are_inclusive(self):
        bracket = InsuranceBracket(
            id=uuid4(), name="B", min_salary=Decimal("1000"), max_salary=Decimal("2000"),
            employee_rate=Decimal("10"),
        )
        assert bracket.covers(Decimal("1000"))
        assert bracket.covers(Decimal("2000"))
        assert not bracket.covers(Decimal("2000.01"))


# =============================================================================
# Aggregation and minimum wage floor
# =============================================================================


def _line(kind: ContributionKind, amount: str, rate: str | None = None, **attrs) -> Contribution:
    return Contribution(
        kind=kind,
        amount=Decimal(amount),
        label=kind.value,
        rate=Decimal(rate) if rate is not None else None,
        attributes=attrs,
    )


class TestAggregation:

    def test_earnings_add_to_gross_base(self):
        lines = (
            _line(ContributionKind.ALLOWANCE, "200"),
            _line(ContributionKind.BONUS, "1000"),
            _line(ContributionKind.TAX, "300"),
        )
        assert aggregate_earnings(Decimal("3000"), lines) == Decimal("4200")

    def test_deduction_totals_by_kind(self):
        lines = (
            _line(ContributionKind.TAX, "300"),
            _line(ContributionKind.INSURANCE, "110"),
            _line(ContributionKind.UNPAID_LEAVE, "100"),
            _line(ContributionKind.PENALTY, "50"),
            _line(ContributionKind.PENALTY, "25"),
        )
        assert aggregate_deductions(lines) == (
            Decimal("300"), Decimal("110"), Decimal("100"), Decimal("75"),
        )


class TestMinimumWageFloor:

    def test_penalty_untouched_when_net_stays_above_floor(self):
        deducted = apply_minimum_wage_floor(
            Decimal("10000"), Decimal("1000"), Decimal("500"), Decimal("0"),
            Decimal("1000"), Decimal("6000"),
        )
        assert deducted == Decimal("1000")

    def test_penalty_capped_to_keep_minimum_wage(self):
        deducted = apply_minimum_wage_floor(
            Decimal("10000"), Decimal("1000"), Decimal("500"), Decimal("0"),
            Decimal("3000"), Decimal("6000"),
        )
        assert deducted == Decimal("2500")

    def test_penalty_dropped_when_already_below_floor(self):
        # gross 6000, taxes 400, insurance 200 -> pre-penalty net 5400 < 6000
        deducted = apply_minimum_wage_floor(
            Decimal("6000"), Decimal("400"), Decimal("200"), Decimal("0"),
            Decimal("1500"), Decimal("6000"),
        )
        assert deducted == Decimal("0")

    def test_settle_keeps_pre_penalty_net(self):
        lines = (
            _line(ContributionKind.TAX, "400"),
            _line(ContributionKind.INSURANCE, "200"),
            _line(ContributionKind.PENALTY, "1500"),
        )
        totals = settle_payslip(Decimal("6000"), lines, Decimal("6000"))

        assert totals.penalties == Decimal("1500")
        assert totals.penalties_deducted == Decimal("0")
        assert totals.penalty_capped
        assert totals.net_pay == Decimal("5400")
        assert totals.net_pay == totals.gross - totals.total_deductions

    def test_taxes_never_capped(self):
        lines = (_line(ContributionKind.TAX, "5000"),)
        totals = settle_payslip(Decimal("6000"), lines, Decimal("6000"))
        assert totals.net_pay == Decimal("1000")


# =============================================================================
# Repricing after edits
# =============================================================================


class TestRepriceContributions:

    def test_rates_follow_new_base(self):
        lines = (
            _line(ContributionKind.ALLOWANCE, "500"),
            _line(ContributionKind.TAX, "300", rate="10"),
            _line(ContributionKind.INSURANCE, "385", rate="11"),
            _line(ContributionKind.UNPAID_LEAVE, "300", days=3),
            _line(ContributionKind.PENALTY, "50"),
        )
        repriced, gross = reprice_contributions(Decimal("4000"), 30, lines)

        assert gross == Decimal("4500")
        amounts = {c.kind: c.amount for c in repriced}
        assert amounts[ContributionKind.TAX] == Decimal("400.00")
        assert amounts[ContributionKind.INSURANCE] == Decimal("495.00")
        assert amounts[ContributionKind.UNPAID_LEAVE] == Decimal("400.00")
        assert amounts[ContributionKind.PENALTY] == Decimal("50")
        assert amounts[ContributionKind.ALLOWANCE] == Decimal("500")

    def test_order_is_preserved(self):
        lines = (
            _line(ContributionKind.BONUS, "100"),
            _line(ContributionKind.TAX, "10", rate="1"),
        )
        repriced, _ = reprice_contributions(Decimal("1000"), 30, lines)
        assert [c.kind for c in repriced] == [ContributionKind.BONUS, ContributionKind.TAX]

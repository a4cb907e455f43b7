"""
Payroll Execution Helpers (``payroll_modules.execution.helpers``).

Responsibility
--------------
Pure calculation functions for the per-employee pipeline: period
normalization, proration, unpaid-leave overlap, tax and insurance lines,
earnings and deductions aggregation, and the minimum-wage floor on
penalties.

Architecture position
---------------------
**Modules layer** -- pure helper functions.  No I/O, no session, no
clock, no database access.  Called by ``PayslipCalculator``,
``PayrollExecutionService`` or from tests.

Invariants enforced
-------------------
* All numeric inputs and outputs use ``Decimal`` -- NEVER ``float``.
* Money results are quantized to 2 decimal places, ROUND_HALF_UP.
* ``0 <= ProrationResult.factor <= 1``.
* ``settle_payslip`` always returns ``net_pay == gross - total_deductions``.

Failure modes
-------------
* Unparseable period -> ``InvalidPeriodError``.
* Employment window outside the period -> zero payable days, factor 0.
* Penalties above what the minimum wage allows -> capped, never negative.
"""

from __future__ import annotations

import calendar
import uuid
from collections.abc import Iterable
from datetime import date, datetime
from decimal import Decimal

from payroll_kernel.db.types import ZERO, round_money
from payroll_kernel.exceptions import InvalidPeriodError
from payroll_modules.execution.models import (
    Contribution,
    ContributionKind,
    EARNING_KINDS,
    InsuranceBracket,
    PayslipTotals,
    ProrationResult,
    TaxRule,
    sum_amounts,
)

HUNDRED = Decimal("100")
UNPAID_LEAVE_LABEL = "Unpaid Leave"


# -----------------------------------------------------------------------------
# Periods
# -----------------------------------------------------------------------------


def normalize_period(value: str | date | datetime) -> date:
    """
    Normalize a payroll period to the first day of its month.

    Accepts ``YYYY-MM``, ``YYYY-MM-DD`` or a date/datetime.

    Raises:
        InvalidPeriodError: If the value cannot be parsed.
    """
    if isinstance(value, datetime):
        return value.date().replace(day=1)
    if isinstance(value, date):
        return value.replace(day=1)
    if not isinstance(value, str) or not value.strip():
        raise InvalidPeriodError(str(value))

    text = value.strip()
    try:
        if len(text) == 7:
            year, month = text.split("-")
            return date(int(year), int(month), 1)
        return date.fromisoformat(text[:10]).replace(day=1)
    except ValueError as exc:
        raise InvalidPeriodError(value) from exc


def period_bounds(period: date) -> tuple[date, date, int]:
    """Return (first day, last day, number of days) of the period's month."""
    days = calendar.monthrange(period.year, period.month)[1]
    start = period.replace(day=1)
    return start, start.replace(day=days), days


def generate_run_id(now: datetime) -> str:
    """Public run identifier: ``RUN-<epoch-ms>-<6 hex>``."""
    millis = int(now.timestamp() * 1000)
    return f"RUN-{millis}-{uuid.uuid4().hex[:6]}"


# -----------------------------------------------------------------------------
# Proration and leave
# -----------------------------------------------------------------------------


def calculate_proration(
    hire_date: date | None,
    contract_end: date | None,
    period_start: date,
    period_end: date,
) -> ProrationResult:
    """
    Share of the period an employee is employed for.

    The payable window is ``[max(period_start, hire_date),
    min(period_end, contract_end)]``; a missing hire date or contract end
    does not truncate it.

    Postconditions:
        - ``payable_days`` is the inclusive day count, 0 if the window is empty.
        - ``factor`` is clamped to 1 once the window covers the period.
    """
    days_in_period = (period_end - period_start).days + 1

    start = max(period_start, hire_date) if hire_date else period_start
    end = min(period_end, contract_end) if contract_end else period_end

    payable_days = (end - start).days + 1 if start <= end else 0

    if payable_days >= days_in_period:
        return ProrationResult(days_in_period, days_in_period, Decimal("1"))
    return ProrationResult(
        payable_days=payable_days,
        days_in_period=days_in_period,
        factor=Decimal(payable_days) / Decimal(days_in_period),
    )


def unpaid_leave_days(
    leave_start: date,
    leave_end: date,
    period_start: date,
    period_end: date,
) -> int:
    """Inclusive number of leave days falling inside the period."""
    overlap = (min(leave_end, period_end) - max(leave_start, period_start)).days + 1
    return max(0, overlap)


# -----------------------------------------------------------------------------
# Deduction lines
# -----------------------------------------------------------------------------


def tax_contributions(
    base_salary: Decimal,
    taxes: Iterable[TaxRule],
) -> tuple[Contribution, ...]:
    """One TAX line per rule: ``base_salary * rate / 100``."""
    return tuple(
        Contribution(
            kind=ContributionKind.TAX,
            amount=round_money(base_salary * rule.rate / HUNDRED),
            label=rule.name,
            source_id=rule.id,
            rate=rule.rate,
        )
        for rule in taxes
    )


def insurance_contributions(
    gross: Decimal,
    brackets: Iterable[InsuranceBracket],
) -> tuple[Contribution, ...]:
    """
    One INSURANCE line per bracket covering ``gross``.

    Only the employee rate is deducted; the employer rate is recorded.
    """
    return tuple(
        Contribution(
            kind=ContributionKind.INSURANCE,
            amount=round_money(gross * bracket.employee_rate / HUNDRED),
            label=bracket.name,
            source_id=bracket.id,
            rate=bracket.employee_rate,
            attributes={
                "min_salary": str(bracket.min_salary),
                "max_salary": str(bracket.max_salary),
                "employer_rate": str(bracket.employer_rate),
            },
        )
        for bracket in brackets
        if bracket.covers(gross)
    )


def unpaid_leave_contribution(
    days: int,
    base_salary: Decimal,
    days_in_period: int,
    label: str | None = None,
    source_id: uuid.UUID | None = None,
) -> Contribution:
    """UNPAID_LEAVE line: ``days * base_salary / days_in_period``."""
    return Contribution(
        kind=ContributionKind.UNPAID_LEAVE,
        amount=round_money(Decimal(days) * base_salary / Decimal(days_in_period)),
        label=label or UNPAID_LEAVE_LABEL,
        source_id=source_id,
        attributes={"days": days},
    )


# -----------------------------------------------------------------------------
# Aggregation
# -----------------------------------------------------------------------------


def aggregate_earnings(gross_base: Decimal, contributions: Iterable[Contribution]) -> Decimal:
    """Gross pay: the (prorated) starting point plus every earning line."""
    return gross_base + sum(
        (c.amount for c in contributions if c.kind in EARNING_KINDS),
        ZERO,
    )


def aggregate_deductions(
    contributions: Iterable[Contribution],
) -> tuple[Decimal, Decimal, Decimal, Decimal]:
    """Return (taxes, insurance, unpaid_leave, penalties) totals."""
    contributions = tuple(contributions)
    return (
        sum_amounts(contributions, ContributionKind.TAX),
        sum_amounts(contributions, ContributionKind.INSURANCE),
        sum_amounts(contributions, ContributionKind.UNPAID_LEAVE),
        sum_amounts(contributions, ContributionKind.PENALTY),
    )


def apply_minimum_wage_floor(
    gross: Decimal,
    taxes: Decimal,
    insurance: Decimal,
    unpaid_leave: Decimal,
    penalties: Decimal,
    minimum_wage: Decimal,
) -> Decimal:
    """
    Penalty amount actually deducted.

    Penalties are reduced (never below zero) when deducting them in full
    would take net pay under the minimum wage.  Taxes, insurance and
    unpaid leave are never capped.

    Example:
        gross 10000, taxes 1000, insurance 500, penalties 3000,
        minimum wage 6000 -> cap = 10000 - 1000 - 500 - 6000 = 2500.
    """
    if penalties <= 0:
        return penalties
    net = gross - taxes - insurance - unpaid_leave - penalties
    if net >= minimum_wage:
        return penalties
    cap = max(ZERO, gross - taxes - insurance - unpaid_leave - minimum_wage)
    return min(cap, penalties)


def settle_payslip(
    gross: Decimal,
    contributions: Iterable[Contribution],
    minimum_wage: Decimal,
) -> PayslipTotals:
    """Totals for a payslip with the minimum-wage floor applied."""
    taxes, insurance, unpaid, penalties = aggregate_deductions(contributions)
    deducted = apply_minimum_wage_floor(gross, taxes, insurance, unpaid, penalties, minimum_wage)
    total_deductions = taxes + insurance + unpaid + deducted
    return PayslipTotals(
        gross=gross,
        taxes=taxes,
        insurance=insurance,
        unpaid_leave=unpaid,
        penalties=penalties,
        penalties_deducted=deducted,
        total_deductions=total_deductions,
        net_pay=gross - total_deductions,
    )


def reprice_contributions(
    base_salary: Decimal,
    days_in_period: int,
    contributions: Iterable[Contribution],
) -> tuple[tuple[Contribution, ...], Decimal]:
    """
    Recompute rate-driven lines after a manual payslip edit.

    Gross is ``base_salary`` plus every earning line.  Taxes are repriced
    on the base, insurance on the new gross, unpaid leave on its recorded
    days.  Earnings and penalties keep their amounts.

    Returns:
        (repriced contributions, gross)
    """
    contributions = tuple(contributions)
    gross = aggregate_earnings(base_salary, contributions)

    repriced: list[Contribution] = []
    for c in contributions:
        if c.kind == ContributionKind.TAX and c.rate is not None:
            c = c.with_amount(round_money(base_salary * c.rate / HUNDRED))
        elif c.kind == ContributionKind.INSURANCE and c.rate is not None:
            c = c.with_amount(round_money(gross * c.rate / HUNDRED))
        elif c.kind == ContributionKind.UNPAID_LEAVE:
            days = int(c.attributes.get("days", 0))
            c = c.with_amount(
                round_money(Decimal(days) * base_salary / Decimal(days_in_period))
            )
        repriced.append(c)
    return tuple(repriced), gross

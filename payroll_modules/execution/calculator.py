"""
Per-employee payslip calculator (``payroll_modules.execution.calculator``).

Responsibility
--------------
Runs one employee through the calculation pipeline: proration, earnings
aggregation (bonuses, benefits, allowances, refunds), deductions (taxes,
insurance, penalties, unpaid leave) and the minimum-wage floor.  Returns
a ``PayslipDraft``; persistence belongs to ``PayslipWriter``.

Failure modes
-------------
* A bonus or benefit whose policy row is missing is dropped with a
  warning; the rest of the payslip is still produced.
* A missing amount on a collaborator row counts as zero.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_kernel.db.types import round_money
from payroll_kernel.logging_config import get_logger
from payroll_modules.execution.config import PayrollExecutionConfig
from payroll_modules.execution.helpers import (
    aggregate_earnings,
    calculate_proration,
    insurance_contributions,
    settle_payslip,
    tax_contributions,
    unpaid_leave_contribution,
    unpaid_leave_days,
)
from payroll_modules.execution.models import (
    ConfigSnapshot,
    Contribution,
    ContributionKind,
    PayslipDraft,
)
from payroll_modules.execution.snapshot import numeric_or_zero
from payroll_modules.sources.models import (
    BenefitStatus,
    BonusStatus,
    LeaveStatus,
    RefundStatus,
)
from payroll_modules.sources.orm import (
    EmployeeModel,
    EmployeeSigningBonusModel,
    EmployeeTerminationBenefitModel,
    LeaveRequestModel,
    LeaveTypeModel,
    PayGradeModel,
    PenaltyModel,
    RefundModel,
    SigningBonusPolicyModel,
    TerminationBenefitPolicyModel,
)

logger = get_logger("modules.payroll.execution.calculator")


class PayslipCalculator:
    """
    Prices one employee for one period.

    Contract:
        Reads collaborator tables through the session; never writes.
        Identical inputs give identical drafts (rows are read in a stable
        order).
    """

    def __init__(self, session: Session, config: PayrollExecutionConfig):
        self._session = session
        self._config = config

    def calculate(
        self,
        employee: EmployeeModel,
        pay_grade: PayGradeModel,
        snapshot: ConfigSnapshot,
        period_start: date,
        period_end: date,
    ) -> PayslipDraft:
        proration = calculate_proration(
            employee.hire_date, employee.contract_end_date, period_start, period_end,
        )
        grade_base = numeric_or_zero(pay_grade.base_salary, "pay_grade", pay_grade.id, "base_salary")
        grade_gross = (
            numeric_or_zero(pay_grade.gross_salary, "pay_grade", pay_grade.id, "gross_salary")
            if pay_grade.gross_salary is not None
            else grade_base
        )
        base_salary = proration.apply(grade_base)
        gross_base = proration.apply(grade_gross)

        earnings = (
            self._allowances(snapshot)
            + self._bonuses(employee)
            + self._benefits(employee)
            + self._refunds(employee)
        )
        gross = aggregate_earnings(gross_base, earnings)

        deductions = (
            tax_contributions(base_salary, snapshot.taxes)
            + insurance_contributions(gross, snapshot.insurance_brackets)
            + self._penalties(employee, period_start, period_end)
            + self._unpaid_leave(
                employee, base_salary, period_start, period_end, proration.days_in_period,
            )
        )

        contributions = earnings + deductions
        totals = settle_payslip(gross, contributions, self._config.minimum_wage)

        if totals.penalty_capped:
            logger.warning(
                "penalty_capped_to_minimum_wage",
                extra={
                    "employee_id": str(employee.id),
                    "penalties": str(totals.penalties),
                    "penalties_deducted": str(totals.penalties_deducted),
                    "minimum_wage": str(self._config.minimum_wage),
                },
            )

        logger.debug(
            "payslip_calculated",
            extra={
                "employee_id": str(employee.id),
                "payable_days": proration.payable_days,
                "gross": str(totals.gross),
                "net_pay": str(totals.net_pay),
            },
        )

        return PayslipDraft(
            employee_id=employee.id,
            base_salary=base_salary,
            contributions=contributions,
            totals=totals,
            days_in_period=proration.days_in_period,
        )

    # Earnings

    def _allowances(self, snapshot: ConfigSnapshot) -> tuple[Contribution, ...]:
        return tuple(
            Contribution(
                kind=ContributionKind.ALLOWANCE,
                amount=round_money(a.amount),
                label=a.name,
                source_id=a.id,
            )
            for a in snapshot.allowances
        )

    def _bonuses(self, employee: EmployeeModel) -> tuple[Contribution, ...]:
        rows = self._session.execute(
            select(EmployeeSigningBonusModel)
            .where(
                EmployeeSigningBonusModel.employee_id == employee.id,
                EmployeeSigningBonusModel.status == BonusStatus.APPROVED.value,
            )
            .order_by(EmployeeSigningBonusModel.created_at, EmployeeSigningBonusModel.id)
        ).scalars().all()

        lines = []
        for row in rows:
            policy = (
                self._session.get(SigningBonusPolicyModel, row.policy_id)
                if row.policy_id else None
            )
            if policy is None:
                logger.warning(
                    "signing_bonus_policy_missing",
                    extra={"employee_id": str(employee.id), "bonus_id": str(row.id)},
                )
                continue
            lines.append(Contribution(
                kind=ContributionKind.BONUS,
                amount=round_money(numeric_or_zero(row.given_amount, "signing_bonus", row.id, "given_amount")),
                label=policy.position_name,
                source_id=row.id,
            ))
        return tuple(lines)

    def _benefits(self, employee: EmployeeModel) -> tuple[Contribution, ...]:
        rows = self._session.execute(
            select(EmployeeTerminationBenefitModel)
            .where(
                EmployeeTerminationBenefitModel.employee_id == employee.id,
                EmployeeTerminationBenefitModel.status == BenefitStatus.APPROVED.value,
            )
            .order_by(EmployeeTerminationBenefitModel.created_at, EmployeeTerminationBenefitModel.id)
        ).scalars().all()

        lines = []
        for row in rows:
            policy = (
                self._session.get(TerminationBenefitPolicyModel, row.policy_id)
                if row.policy_id else None
            )
            if policy is None:
                logger.warning(
                    "termination_benefit_policy_missing",
                    extra={"employee_id": str(employee.id), "benefit_id": str(row.id)},
                )
                continue
            lines.append(Contribution(
                kind=ContributionKind.BENEFIT,
                amount=round_money(numeric_or_zero(row.given_amount, "termination_benefit", row.id, "given_amount")),
                label=policy.name,
                source_id=row.id,
                attributes={"terms": policy.terms},
            ))
        return tuple(lines)

    def _refunds(self, employee: EmployeeModel) -> tuple[Contribution, ...]:
        rows = self._session.execute(
            select(RefundModel)
            .where(
                RefundModel.employee_id == employee.id,
                RefundModel.status == RefundStatus.PENDING.value,
            )
            .order_by(RefundModel.created_at, RefundModel.id)
        ).scalars().all()

        return tuple(
            Contribution(
                kind=ContributionKind.REFUND,
                amount=round_money(numeric_or_zero(row.amount, "refund", row.id, "amount")),
                label=row.description,
                source_id=row.id,
            )
            for row in rows
        )

    # Deductions

    def _penalties(
        self,
        employee: EmployeeModel,
        period_start: date,
        period_end: date,
    ) -> tuple[Contribution, ...]:
        rows = self._session.execute(
            select(PenaltyModel)
            .where(
                PenaltyModel.employee_id == employee.id,
                PenaltyModel.recorded_on >= period_start,
                PenaltyModel.recorded_on <= period_end,
            )
            .order_by(PenaltyModel.recorded_on, PenaltyModel.id)
        ).scalars().all()

        return tuple(
            Contribution(
                kind=ContributionKind.PENALTY,
                amount=round_money(numeric_or_zero(row.amount, "penalty", row.id, "amount")),
                label=row.reason,
                source_id=row.id,
            )
            for row in rows
        )

    def _unpaid_leave(
        self,
        employee: EmployeeModel,
        base_salary: Decimal,
        period_start: date,
        period_end: date,
        days_in_period: int,
    ) -> tuple[Contribution, ...]:
        rows = self._session.execute(
            select(LeaveRequestModel, LeaveTypeModel)
            .join(LeaveTypeModel, LeaveRequestModel.leave_type_id == LeaveTypeModel.id)
            .where(
                LeaveRequestModel.employee_id == employee.id,
                LeaveRequestModel.status == LeaveStatus.APPROVED.value,
                LeaveRequestModel.start_date <= period_end,
                LeaveRequestModel.end_date >= period_start,
                LeaveTypeModel.paid.is_(False),
            )
            .order_by(LeaveRequestModel.start_date, LeaveRequestModel.id)
        ).all()

        lines = []
        for leave, leave_type in rows:
            days = unpaid_leave_days(leave.start_date, leave.end_date, period_start, period_end)
            if days > 0:
                lines.append(unpaid_leave_contribution(
                    days, base_salary, days_in_period, leave_type.name, leave.id,
                ))
        return tuple(lines)

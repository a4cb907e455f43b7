"""
Payroll run reports (``payroll_modules.execution.reports``).

Pure aggregation over a run's payslips: the summary report (gross,
deduction and net totals with a per-kind breakdown) and the tax report
(per-employee tax lines).  Callers load the rows; nothing here touches
the session.
"""

from collections.abc import Iterable, Mapping
from uuid import UUID

from payroll_kernel.db.types import ZERO
from payroll_kernel.logging_config import get_logger
from payroll_modules.execution.models import (
    ContributionKind,
    EmployeeTaxDetail,
    Payslip,
    PayrollRun,
    PayrollSummaryReport,
    SummaryBreakdown,
    TaxLine,
    TaxReport,
    sum_amounts,
)
from payroll_modules.sources.orm import EmployeeModel

logger = get_logger("modules.payroll.execution.reports")

DEFAULT_TAX_BRACKET = "Standard"
UNKNOWN_EMPLOYEE = "Unknown"


def summary_report(run: PayrollRun, payslips: Iterable[Payslip]) -> PayrollSummaryReport:
    """Run totals with a breakdown by contribution kind."""
    payslips = tuple(payslips)
    lines = [c for p in payslips for c in p.contributions]

    breakdown = SummaryBreakdown(
        total_base_salary=sum((p.base_salary for p in payslips), ZERO),
        total_allowances=sum_amounts(lines, ContributionKind.ALLOWANCE),
        total_bonuses=sum_amounts(lines, ContributionKind.BONUS),
        total_benefits=sum_amounts(lines, ContributionKind.BENEFIT),
        total_refunds=sum_amounts(lines, ContributionKind.REFUND),
        total_taxes=sum_amounts(lines, ContributionKind.TAX),
        total_insurance=sum_amounts(lines, ContributionKind.INSURANCE),
        total_penalties=sum((p.penalties_deducted for p in payslips), ZERO),
        total_unpaid_leave=sum_amounts(lines, ContributionKind.UNPAID_LEAVE),
    )

    report = PayrollSummaryReport(
        run_id=run.run_id,
        period=run.period,
        entity=run.entity,
        status=run.status,
        employees_processed=len(payslips),
        total_gross_salary=sum((p.total_gross_salary for p in payslips), ZERO),
        total_deductions=sum((p.total_deductions for p in payslips), ZERO),
        total_net_pay=sum((p.net_pay for p in payslips), ZERO),
        breakdown=breakdown,
    )

    logger.info(
        "payroll_summary_report_generated",
        extra={
            "run_id": run.run_id,
            "employees_processed": report.employees_processed,
            "total_net_pay": str(report.total_net_pay),
        },
    )
    return report


def tax_report(
    run: PayrollRun,
    payslips: Iterable[Payslip],
    employees: Mapping[UUID, EmployeeModel],
) -> TaxReport:
    """Per-employee tax lines; each line is labelled by its tax rule."""
    details = []
    for payslip in payslips:
        employee = employees.get(payslip.employee_id)
        taxes = payslip.lines(ContributionKind.TAX)
        details.append(EmployeeTaxDetail(
            employee_id=payslip.employee_id,
            employee_name=employee.full_name if employee else UNKNOWN_EMPLOYEE,
            employee_number=employee.employee_number if employee else "",
            gross_salary=payslip.total_gross_salary,
            tax_breakdown=tuple(
                TaxLine(bracket=t.label or DEFAULT_TAX_BRACKET, rate=t.rate, amount=t.amount)
                for t in taxes
            ),
            total_tax=sum_amounts(taxes),
        ))

    report = TaxReport(
        run_id=run.run_id,
        period=run.period,
        entity=run.entity,
        grand_total_tax=sum((d.total_tax for d in details), ZERO),
        employee_count=len(details),
        tax_details=tuple(details),
    )

    logger.info(
        "payroll_tax_report_generated",
        extra={
            "run_id": run.run_id,
            "employee_count": report.employee_count,
            "grand_total_tax": str(report.grand_total_tax),
        },
    )
    return report

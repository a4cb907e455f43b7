"""
Payroll Execution (``payroll_modules.execution``).

Responsibility
--------------
Runs payroll for a (period, entity) pair: the Phase 0 gate on signing
bonuses and termination benefits, per-employee payslip calculation, the
specialist -> manager -> finance approval chain, execution with its
payment sweep, unfreeze, anomaly review, reports and the bank transfer
PDF.

Architecture position
---------------------
**Modules layer** -- ``PayrollExecutionService`` owns the transaction;
``helpers.py`` holds the pure money arithmetic; ``workflows.py`` declares
the run state machine; audit goes through the kernel ``AuditorService``.
"""

from payroll_modules.execution.config import PayrollExecutionConfig, load_config
from payroll_modules.execution.models import (
    Anomaly,
    CalculationResult,
    Contribution,
    ContributionKind,
    ExecutionResult,
    PaymentStatus,
    PayrollRole,
    PayrollRun,
    PayrollRunStatus,
    PayrollSummaryReport,
    Payslip,
    PayslipEdit,
    PendingItem,
    PendingItemKind,
    PendingItems,
    TaxReport,
)
from payroll_modules.execution.service import PayrollExecutionService
from payroll_modules.execution.workflows import PAYROLL_RUN_WORKFLOW

__all__ = [
    "Anomaly",
    "CalculationResult",
    "Contribution",
    "ContributionKind",
    "ExecutionResult",
    "PAYROLL_RUN_WORKFLOW",
    "PaymentStatus",
    "PayrollExecutionConfig",
    "PayrollExecutionService",
    "PayrollRole",
    "PayrollRun",
    "PayrollRunStatus",
    "PayrollSummaryReport",
    "Payslip",
    "PayslipEdit",
    "PendingItem",
    "PendingItemKind",
    "PendingItems",
    "TaxReport",
    "load_config",
]

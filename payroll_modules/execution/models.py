"""
Payroll Execution Domain Models (``payroll_modules.execution.models``).

Responsibility
--------------
Frozen dataclass value objects representing the nouns of payroll
execution: runs, payslips, the contribution tagged union that carries
every earning and deduction line, proration results, configuration
snapshots, anomalies, Phase 0 pending items, and the results returned by
calculation, execution and reporting.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Consumed by
``PayrollExecutionService`` and its sub-services and returned to callers.

Invariants enforced
-------------------
* All models are ``frozen=True`` (immutable after construction).
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* A payslip's ``net_pay == total_gross_salary - total_deductions``.

Audit relevance
---------------
* Contributions carry the collaborator row id they came from, so the
  execution sweep can mark exactly those bonuses, benefits and refunds
  PAID and an auditor can trace every payslip line to its source.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from payroll_kernel.db.types import ZERO, round_money
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.payroll.execution.models")


class PayrollRunStatus(Enum):
    """Payroll run lifecycle states."""
    DRAFT = "draft"
    UNDER_REVIEW = "under_review"
    PENDING_FINANCE_APPROVAL = "pending_finance_approval"
    APPROVED = "approved"
    LOCKED = "locked"
    REJECTED = "rejected"


class PaymentStatus(Enum):
    """Payment state of a run or payslip."""
    PENDING = "pending"
    PAID = "paid"


class PayrollRole(Enum):
    """Roles that may drive run transitions."""
    PAYROLL_SPECIALIST = "payroll_specialist"
    PAYROLL_MANAGER = "payroll_manager"
    FINANCE_STAFF = "finance_staff"


class ContributionKind(Enum):
    """Kinds of payslip line.  Earnings add to gross; deductions subtract."""
    ALLOWANCE = "allowance"
    BONUS = "bonus"
    BENEFIT = "benefit"
    REFUND = "refund"
    TAX = "tax"
    INSURANCE = "insurance"
    PENALTY = "penalty"
    UNPAID_LEAVE = "unpaid_leave"

    @property
    def is_earning(self) -> bool:
        return self in EARNING_KINDS


EARNING_KINDS = frozenset({
    ContributionKind.ALLOWANCE,
    ContributionKind.BONUS,
    ContributionKind.BENEFIT,
    ContributionKind.REFUND,
})

DEDUCTION_KINDS = frozenset({
    ContributionKind.TAX,
    ContributionKind.INSURANCE,
    ContributionKind.PENALTY,
    ContributionKind.UNPAID_LEAVE,
})

# Earning kinds whose source rows are marked PAID by execution.
SETTLED_KINDS = (ContributionKind.BONUS, ContributionKind.BENEFIT, ContributionKind.REFUND)


class PendingItemKind(Enum):
    """Phase 0 item kinds."""
    SIGNING_BONUS = "signing_bonus"
    TERMINATION_BENEFIT = "termination_benefit"


# -----------------------------------------------------------------------------
# Contributions
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class Contribution:
    """
    One earning or deduction line on a payslip.

    ``rate`` is the tax percentage or insurance employee percentage.
    ``attributes`` holds kind-specific extras: benefit ``terms``; insurance
    ``min_salary``, ``max_salary`` and ``employer_rate``; unpaid leave
    ``days``.  Attribute values are JSON-native (Decimals kept as strings).
    """
    kind: ContributionKind
    amount: Decimal
    label: str
    source_id: UUID | None = None
    rate: Decimal | None = None
    attributes: dict[str, Any] = field(default_factory=dict)

    def with_amount(self, amount: Decimal) -> "Contribution":
        return Contribution(
            kind=self.kind,
            amount=amount,
            label=self.label,
            source_id=self.source_id,
            rate=self.rate,
            attributes=dict(self.attributes),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "amount": str(self.amount),
            "label": self.label,
            "source_id": str(self.source_id) if self.source_id else None,
            "rate": str(self.rate) if self.rate is not None else None,
            "attributes": {
                k: (str(v) if isinstance(v, Decimal) else v)
                for k, v in self.attributes.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Contribution":
        return cls(
            kind=ContributionKind(data["kind"]),
            amount=Decimal(data["amount"]),
            label=data.get("label") or "",
            source_id=UUID(data["source_id"]) if data.get("source_id") else None,
            rate=Decimal(data["rate"]) if data.get("rate") is not None else None,
            attributes=dict(data.get("attributes") or {}),
        )


def sum_amounts(contributions, kind: ContributionKind | None = None) -> Decimal:
    """Sum contribution amounts, optionally restricted to one kind."""
    return sum(
        (c.amount for c in contributions if kind is None or c.kind == kind),
        ZERO,
    )


# -----------------------------------------------------------------------------
# Calculation values
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class ProrationResult:
    """Share of the period an employee is payable for."""
    payable_days: int
    days_in_period: int
    factor: Decimal

    @property
    def is_full(self) -> bool:
        return self.factor == Decimal("1")

    def apply(self, amount: Decimal) -> Decimal:
        """Prorate and round an amount."""
        if self.is_full:
            return round_money(amount)
        return round_money(amount * self.payable_days / self.days_in_period)


@dataclass(frozen=True)
class TaxRule:
    """An APPROVED tax rule in a configuration snapshot."""
    id: UUID
    name: str
    rate: Decimal


@dataclass(frozen=True)
class InsuranceBracket:
    """An APPROVED insurance bracket in a configuration snapshot."""
    id: UUID
    name: str
    min_salary: Decimal
    max_salary: Decimal
    employee_rate: Decimal
    employer_rate: Decimal = ZERO

    def covers(self, gross: Decimal) -> bool:
        return self.min_salary <= gross <= self.max_salary


@dataclass(frozen=True)
class Allowance:
    """An APPROVED flat allowance in a configuration snapshot."""
    id: UUID
    name: str
    amount: Decimal


@dataclass(frozen=True)
class ConfigSnapshot:
    """Approved configuration read once per calculation batch."""
    taxes: tuple[TaxRule, ...]
    insurance_brackets: tuple[InsuranceBracket, ...]
    allowances: tuple[Allowance, ...]
    loaded_at: datetime


@dataclass(frozen=True)
class PayslipTotals:
    """Totals of one payslip after the minimum-wage floor."""
    gross: Decimal
    taxes: Decimal
    insurance: Decimal
    unpaid_leave: Decimal
    penalties: Decimal
    penalties_deducted: Decimal
    total_deductions: Decimal
    net_pay: Decimal

    @property
    def penalty_capped(self) -> bool:
        return self.penalties_deducted < self.penalties


@dataclass(frozen=True)
class PayslipDraft:
    """A calculated payslip not yet persisted."""
    employee_id: UUID
    base_salary: Decimal
    contributions: tuple[Contribution, ...]
    totals: PayslipTotals
    days_in_period: int


@dataclass(frozen=True)
class PayslipEdit:
    """
    Manual override of a payslip.

    ``None`` leaves a field untouched; a tuple replaces every line of that
    kind.  Unpaid leave is never overridden; it is recomputed from its
    recorded days.
    """
    base_salary: Decimal | None = None
    allowances: tuple[Contribution, ...] | None = None
    bonuses: tuple[Contribution, ...] | None = None
    benefits: tuple[Contribution, ...] | None = None
    refunds: tuple[Contribution, ...] | None = None
    taxes: tuple[Contribution, ...] | None = None
    insurances: tuple[Contribution, ...] | None = None
    penalties: tuple[Contribution, ...] | None = None

    def overrides(self) -> dict[ContributionKind, tuple[Contribution, ...]]:
        pairs = {
            ContributionKind.ALLOWANCE: self.allowances,
            ContributionKind.BONUS: self.bonuses,
            ContributionKind.BENEFIT: self.benefits,
            ContributionKind.REFUND: self.refunds,
            ContributionKind.TAX: self.taxes,
            ContributionKind.INSURANCE: self.insurances,
            ContributionKind.PENALTY: self.penalties,
        }
        return {k: v for k, v in pairs.items() if v is not None}

    @property
    def changed_fields(self) -> list[str]:
        fields = ["base_salary"] if self.base_salary is not None else []
        fields.extend(k.value for k in self.overrides())
        return fields


# -----------------------------------------------------------------------------
# Runs and payslips
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class PayrollRun:
    """A payroll run for one (period, entity) pair."""
    id: UUID
    run_id: str
    period: date
    entity: str
    status: PayrollRunStatus
    payment_status: PaymentStatus
    employee_count: int = 0
    exception_count: int = 0
    total_net_pay: Decimal = ZERO
    payroll_specialist_id: UUID | None = None
    payroll_manager_id: UUID | None = None
    finance_staff_id: UUID | None = None
    manager_approval_date: datetime | None = None
    finance_approval_date: datetime | None = None
    rejection_reason: str | None = None
    rejected_by_id: UUID | None = None
    unlock_reason: str | None = None
    unlocked_by_id: UUID | None = None
    executed_at: datetime | None = None
    version: int = 1


def _line(c: Contribution) -> dict[str, Any]:
    line: dict[str, Any] = {
        "source_id": c.source_id,
        "label": c.label,
        "amount": c.amount,
    }
    if c.rate is not None:
        line["rate"] = c.rate
    line.update(c.attributes)
    return line


@dataclass(frozen=True)
class Payslip:
    """A per-employee payslip within a run."""
    id: UUID
    run_pk: UUID
    employee_id: UUID
    base_salary: Decimal
    contributions: tuple[Contribution, ...]
    penalties_deducted: Decimal
    total_gross_salary: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    payment_status: PaymentStatus
    days_in_period: int
    calculated_at: datetime

    def lines(self, kind: ContributionKind) -> tuple[Contribution, ...]:
        return tuple(c for c in self.contributions if c.kind == kind)

    @property
    def earnings_details(self) -> dict[str, Any]:
        """Earnings re-projected into the nested payslip shape."""
        return {
            "base_salary": self.base_salary,
            "allowances": [_line(c) for c in self.lines(ContributionKind.ALLOWANCE)],
            "bonuses": [_line(c) for c in self.lines(ContributionKind.BONUS)],
            "benefits": [_line(c) for c in self.lines(ContributionKind.BENEFIT)],
            "refunds": [_line(c) for c in self.lines(ContributionKind.REFUND)],
        }

    @property
    def deductions_details(self) -> dict[str, Any]:
        """Deductions re-projected into the nested payslip shape."""
        penalties = self.lines(ContributionKind.PENALTY)
        leaves = self.lines(ContributionKind.UNPAID_LEAVE)
        return {
            "taxes": [_line(c) for c in self.lines(ContributionKind.TAX)],
            "insurances": [_line(c) for c in self.lines(ContributionKind.INSURANCE)],
            "penalties": {
                "items": [_line(c) for c in penalties],
                "amount_deducted": self.penalties_deducted,
            } if penalties else None,
            "unpaid_leaves": {
                "days": sum(int(c.attributes.get("days", 0)) for c in leaves),
                "deduction": sum_amounts(leaves),
                "details": [_line(c) for c in leaves],
            } if leaves else None,
        }


# -----------------------------------------------------------------------------
# Phase 0
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class PendingItem:
    """A signing bonus or termination benefit awaiting a Phase 0 decision."""
    kind: PendingItemKind
    id: UUID
    employee_id: UUID
    label: str | None
    given_amount: Decimal | None
    status: str


@dataclass(frozen=True)
class PendingItems:
    """Everything blocking run initiation."""
    bonuses: tuple[PendingItem, ...] = ()
    benefits: tuple[PendingItem, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.bonuses and not self.benefits


# -----------------------------------------------------------------------------
# Anomalies
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class Anomaly:
    """A flagged payslip joined with its resolution overlay."""
    payslip_id: UUID
    employee_id: UUID
    employee_name: str
    net_pay: Decimal
    reasons: tuple[str, ...]
    resolved: bool = False
    resolved_at: datetime | None = None
    resolution_notes: str | None = None


# -----------------------------------------------------------------------------
# Operation results
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class SkippedEmployee:
    """An employee left out of a calculation batch."""
    employee_id: UUID
    reason: str


@dataclass(frozen=True)
class FailedEmployee:
    """An employee whose pipeline raised; only that employee was rolled back."""
    employee_id: UUID
    error: str


@dataclass(frozen=True)
class CalculationResult:
    """Outcome of a full payslip recompute for a run."""
    run_id: str
    employees_considered: int
    payslips_written: int
    exception_count: int
    total_net_pay: Decimal
    skipped: tuple[SkippedEmployee, ...] = ()
    failed: tuple[FailedEmployee, ...] = ()


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of execution or payment reconciliation."""
    run_id: str
    payslips_paid: int = 0
    bonuses_paid: int = 0
    benefits_paid: int = 0
    refunds_paid: int = 0
    already_paid: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def items_paid(self) -> int:
        return self.bonuses_paid + self.benefits_paid + self.refunds_paid


# -----------------------------------------------------------------------------
# Reports
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class SummaryBreakdown:
    """Per-kind totals across a run."""
    total_base_salary: Decimal = ZERO
    total_allowances: Decimal = ZERO
    total_bonuses: Decimal = ZERO
    total_benefits: Decimal = ZERO
    total_refunds: Decimal = ZERO
    total_taxes: Decimal = ZERO
    total_insurance: Decimal = ZERO
    total_penalties: Decimal = ZERO
    total_unpaid_leave: Decimal = ZERO


@dataclass(frozen=True)
class PayrollSummaryReport:
    """Run-level totals."""
    run_id: str
    period: date
    entity: str
    status: PayrollRunStatus
    employees_processed: int
    total_gross_salary: Decimal
    total_deductions: Decimal
    total_net_pay: Decimal
    breakdown: SummaryBreakdown


@dataclass(frozen=True)
class TaxLine:
    """One tax rule's deduction on a payslip."""
    bracket: str
    rate: Decimal | None
    amount: Decimal


@dataclass(frozen=True)
class EmployeeTaxDetail:
    """Tax deductions of one employee in a run."""
    employee_id: UUID
    employee_name: str
    employee_number: str
    gross_salary: Decimal
    tax_breakdown: tuple[TaxLine, ...]
    total_tax: Decimal


@dataclass(frozen=True)
class TaxReport:
    """Per-employee tax breakdown for a run."""
    run_id: str
    period: date
    entity: str
    grand_total_tax: Decimal
    employee_count: int
    tax_details: tuple[EmployeeTaxDetail, ...]


@dataclass(frozen=True)
class BankTransferLine:
    """One row of the bank transfer file."""
    employee_name: str
    bank_account: str
    bank_name: str
    net_pay: Decimal


@dataclass(frozen=True)
class BankTransferFile:
    """Data of a bank transfer file before rendering."""
    run_id: str
    company_name: str
    currency: str
    generated_on: date
    lines: tuple[BankTransferLine, ...]
    total: Decimal


@dataclass(frozen=True)
class AuditLogEntry:
    """A payroll audit log row."""
    seq: int
    action: str
    entity_type: str
    entity_id: UUID
    actor_id: UUID
    occurred_at: datetime
    payload: dict[str, Any]

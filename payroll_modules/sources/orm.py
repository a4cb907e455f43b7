"""
Collaborator ORM Models (``payroll_modules.sources.orm``).

Responsibility:
    SQLAlchemy tables for the systems the payroll engine consumes: the
    employee directory, departments, pay grades, approved tax/insurance/
    allowance configuration, signing bonuses, termination benefits,
    refunds, penalties and leave.  Upstream systems own these rows; the
    payroll engine reads them and writes only Phase 0 decisions, amount
    edits, and PAID markers.

Architecture position:
    **Modules layer** -- persistence for external inputs.  Inherits from
    ``TrackedBase`` which provides id (UUID PK), created_at, updated_at,
    created_by_id (NOT NULL UUID) and updated_by_id.

Invariants enforced:
    - All monetary fields use Decimal (Numeric(38,9)) -- NEVER float.
    - Enum fields stored as String(50) containing the enum .value string.
    - Policy references on bonus/benefit records are plain UUID columns:
      a dangling reference is tolerated and only drops that line item.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase

# ---------------------------------------------------------------------------
# Organization
# ---------------------------------------------------------------------------


class DepartmentModel(TrackedBase):
    """A department.  A run whose entity equals the name is scoped to it."""

    __tablename__ = "payroll_departments"

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    __table_args__ = (
        UniqueConstraint("name", name="uq_payroll_department_name"),
    )

    def __repr__(self) -> str:
        return f"<DepartmentModel {self.name}>"


class PayGradeModel(TrackedBase):
    """
    A pay grade.

    ``gross_salary`` is optional; when absent, the base salary is the
    starting point for gross.
    """

    __tablename__ = "payroll_pay_grades"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    base_salary: Mapped[Decimal | None] = mapped_column(nullable=True)
    gross_salary: Mapped[Decimal | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("name", name="uq_payroll_pay_grade_name"),
    )

    def __repr__(self) -> str:
        return f"<PayGradeModel {self.name}: base={self.base_salary}>"


class EmployeeModel(TrackedBase):
    """
    An employee directory entry.

    Guarantees:
        - ``employee_number`` is unique.
        - ``status`` stores an ``EmployeeStatus`` .value string.
    """

    __tablename__ = "payroll_employees"

    employee_number: Mapped[str] = mapped_column(String(50), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active")
    department_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_departments.id"), nullable=True,
    )
    pay_grade_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_pay_grades.id"), nullable=True,
    )
    hire_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    contract_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    bank_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    bank_account_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    __table_args__ = (
        UniqueConstraint("employee_number", name="uq_payroll_employee_number"),
        Index("idx_payroll_employee_status", "status"),
        Index("idx_payroll_employee_department", "department_id"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<EmployeeModel {self.employee_number}: {self.full_name} ({self.status})>"


# ---------------------------------------------------------------------------
# Approved configuration
# ---------------------------------------------------------------------------


class TaxRuleModel(TrackedBase):
    """A tax rule; ``rate`` is a percentage of base salary."""

    __tablename__ = "payroll_tax_rules"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")

    __table_args__ = (
        Index("idx_payroll_tax_rule_status", "status"),
    )


class InsuranceBracketModel(TrackedBase):
    """
    An insurance bracket.

    Applies when min_salary <= gross <= max_salary.  ``employee_rate`` is
    deducted; ``employer_rate`` is recorded only.
    """

    __tablename__ = "payroll_insurance_brackets"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    min_salary: Mapped[Decimal] = mapped_column(nullable=False)
    max_salary: Mapped[Decimal] = mapped_column(nullable=False)
    employee_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    employer_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")

    __table_args__ = (
        Index("idx_payroll_insurance_status", "status"),
    )


class AllowanceModel(TrackedBase):
    """A flat allowance paid to every employee while APPROVED."""

    __tablename__ = "payroll_allowances"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")

    __table_args__ = (
        Index("idx_payroll_allowance_status", "status"),
    )


# ---------------------------------------------------------------------------
# One-off earnings (Phase 0 items and refunds)
# ---------------------------------------------------------------------------


class SigningBonusPolicyModel(TrackedBase):
    """Signing bonus policy for a position."""

    __tablename__ = "payroll_signing_bonus_policies"

    position_name: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)


class EmployeeSigningBonusModel(TrackedBase):
    """
    A signing bonus granted to an employee.

    Lifecycle: PENDING -> APPROVED/REJECTED (Phase 0) -> PAID (execution).
    """

    __tablename__ = "payroll_employee_signing_bonuses"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_employees.id"), nullable=False,
    )
    policy_id: Mapped[UUID | None] = mapped_column(nullable=True)
    given_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        Index("idx_payroll_signing_bonus_employee", "employee_id"),
        Index("idx_payroll_signing_bonus_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<EmployeeSigningBonusModel {self.id}: {self.given_amount} ({self.status})>"


class TerminationBenefitPolicyModel(TrackedBase):
    """Termination or resignation benefit policy."""

    __tablename__ = "payroll_termination_benefit_policies"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    terms: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)


class EmployeeTerminationBenefitModel(TrackedBase):
    """
    A termination/resignation benefit granted to an employee.

    Lifecycle: PENDING -> APPROVED/REJECTED (Phase 0) -> PAID (execution).
    """

    __tablename__ = "payroll_employee_termination_benefits"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_employees.id"), nullable=False,
    )
    policy_id: Mapped[UUID | None] = mapped_column(nullable=True)
    given_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")

    __table_args__ = (
        Index("idx_payroll_term_benefit_employee", "employee_id"),
        Index("idx_payroll_term_benefit_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<EmployeeTerminationBenefitModel {self.id}: {self.given_amount} ({self.status})>"


class RefundModel(TrackedBase):
    """A refund owed to an employee, settled by the next executed run."""

    __tablename__ = "payroll_refunds"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_employees.id"), nullable=False,
    )
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    paid_in_run_pk: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        Index("idx_payroll_refund_employee_status", "employee_id", "status"),
    )


# ---------------------------------------------------------------------------
# Deduction sources
# ---------------------------------------------------------------------------


class PenaltyModel(TrackedBase):
    """A penalty line recorded against an employee."""

    __tablename__ = "payroll_penalties"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_employees.id"), nullable=False,
    )
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    recorded_on: Mapped[date] = mapped_column(Date, nullable=False)

    __table_args__ = (
        Index("idx_payroll_penalty_employee_date", "employee_id", "recorded_on"),
    )


class LeaveTypeModel(TrackedBase):
    """A leave type; unpaid types are deducted from base salary."""

    __tablename__ = "payroll_leave_types"

    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class LeaveRequestModel(TrackedBase):
    """A leave request covering an inclusive date range."""

    __tablename__ = "payroll_leave_requests"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_employees.id"), nullable=False,
    )
    leave_type_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_leave_types.id"), nullable=False,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")

    __table_args__ = (
        Index("idx_payroll_leave_employee_status", "employee_id", "status"),
    )

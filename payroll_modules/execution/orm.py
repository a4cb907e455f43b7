"""
Payroll Execution ORM Persistence Models (``payroll_modules.execution.orm``).

Responsibility:
    SQLAlchemy ORM models that persist payroll runs, payslips and the
    anomaly resolution overlay.  Each ORM class mirrors a DTO in
    ``payroll_modules.execution.models`` and provides ``to_dto()``.

Architecture position:
    **Modules layer** -- persistence companions to the pure DTO models.
    Inherits from ``TrackedBase`` (kernel DB base) which provides:
    id (UUID PK, auto-generated), created_at, updated_at,
    created_by_id (NOT NULL UUID), updated_by_id (nullable UUID).

Invariants enforced:
    - All monetary fields use Decimal (maps to Numeric(38,9)) -- NEVER float.
    - Enum fields stored as String(50) containing the enum .value string.
    - A (period, entity) pair has at most one run (uq_payroll_run_period_entity).
    - Payslip contributions are stored as a JSON list of tagged records.
    - ``version`` is bumped by every compare-and-set status transition.

Audit relevance:
    Runs are never deleted.  Payslips of a run are deleted and reinserted
    only by recalculation, which is itself audited.  Resolutions never
    alter payslip data.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import TrackedBase

# ---------------------------------------------------------------------------
# PayrollRunModel
# ---------------------------------------------------------------------------


class PayrollRunModel(TrackedBase):
    """
    ORM model for ``PayrollRun`` -- one month of pay for one entity.

    Contract:
        ``run_id`` is the public identifier handed to callers; ``id`` is
        the internal key payslips point to.  Status changes go through
        ``PayrollExecutionService`` as compare-and-set updates on
        (id, status, version).

    Guarantees:
        - ``run_id`` is unique (uq_payroll_run_run_id).
        - ``period`` is always the first day of a month.
    """

    __tablename__ = "payroll_runs"

    run_id: Mapped[str] = mapped_column(String(50), nullable=False)
    period: Mapped[date] = mapped_column(Date, nullable=False)
    entity: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")
    payment_status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    employee_count: Mapped[int] = mapped_column(nullable=False, default=0)
    exception_count: Mapped[int] = mapped_column(nullable=False, default=0)
    total_net_pay: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    payroll_specialist_id: Mapped[UUID | None] = mapped_column(nullable=True)
    payroll_manager_id: Mapped[UUID | None] = mapped_column(nullable=True)
    finance_staff_id: Mapped[UUID | None] = mapped_column(nullable=True)
    manager_approval_date: Mapped[datetime | None] = mapped_column(nullable=True)
    finance_approval_date: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    rejected_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    unlock_reason: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    unlocked_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    executed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    version: Mapped[int] = mapped_column(nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("run_id", name="uq_payroll_run_run_id"),
        UniqueConstraint("period", "entity", name="uq_payroll_run_period_entity"),
        Index("idx_payroll_run_status", "status"),
    )

    def to_dto(self):
        from payroll_modules.execution.models import (
            PaymentStatus,
            PayrollRun,
            PayrollRunStatus,
        )
        return PayrollRun(
            id=self.id,
            run_id=self.run_id,
            period=self.period,
            entity=self.entity,
            status=PayrollRunStatus(self.status),
            payment_status=PaymentStatus(self.payment_status),
            employee_count=self.employee_count,
            exception_count=self.exception_count,
            total_net_pay=self.total_net_pay,
            payroll_specialist_id=self.payroll_specialist_id,
            payroll_manager_id=self.payroll_manager_id,
            finance_staff_id=self.finance_staff_id,
            manager_approval_date=self.manager_approval_date,
            finance_approval_date=self.finance_approval_date,
            rejection_reason=self.rejection_reason,
            rejected_by_id=self.rejected_by_id,
            unlock_reason=self.unlock_reason,
            unlocked_by_id=self.unlocked_by_id,
            executed_at=self.executed_at,
            version=self.version,
        )

    def __repr__(self) -> str:
        return f"<PayrollRunModel {self.run_id}: {self.entity} {self.period} ({self.status})>"


# ---------------------------------------------------------------------------
# PayslipModel
# ---------------------------------------------------------------------------


class PayslipModel(TrackedBase):
    """
    ORM model for ``Payslip`` -- one employee's pay within a run.

    Guarantees:
        - ``net_pay == total_gross_salary - total_deductions`` after every
          write by ``PayslipWriter`` or a payslip edit.
        - ``contributions`` is a list of ``Contribution.to_dict()`` records.
    """

    __tablename__ = "payroll_payslips"

    run_pk: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_runs.id"), nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    base_salary: Mapped[Decimal] = mapped_column(nullable=False)
    contributions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    penalties_deducted: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_gross_salary: Mapped[Decimal] = mapped_column(nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(nullable=False)
    payment_status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    days_in_period: Mapped[int] = mapped_column(nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("run_pk", "employee_id", name="uq_payroll_payslip_run_employee"),
        Index("idx_payroll_payslip_employee", "employee_id", "calculated_at"),
    )

    def to_dto(self):
        from payroll_modules.execution.models import Contribution, PaymentStatus, Payslip
        return Payslip(
            id=self.id,
            run_pk=self.run_pk,
            employee_id=self.employee_id,
            base_salary=self.base_salary,
            contributions=tuple(Contribution.from_dict(c) for c in self.contributions or ()),
            penalties_deducted=self.penalties_deducted,
            total_gross_salary=self.total_gross_salary,
            total_deductions=self.total_deductions,
            net_pay=self.net_pay,
            payment_status=PaymentStatus(self.payment_status),
            days_in_period=self.days_in_period,
            calculated_at=self.calculated_at,
        )

    def __repr__(self) -> str:
        return f"<PayslipModel {self.id}: employee={self.employee_id} net={self.net_pay}>"


# ---------------------------------------------------------------------------
# AnomalyResolutionModel
# ---------------------------------------------------------------------------


class AnomalyResolutionModel(TrackedBase):
    """
    ORM model for an anomaly resolution -- an overlay keyed by payslip.

    Contract:
        At most one row per payslip.  Re-resolving overwrites it; unresolve
        deletes it.  No foreign key: payslips are deleted and reinserted
        on recalculation and a stale resolution simply stops matching.
    """

    __tablename__ = "payroll_anomaly_resolutions"

    payslip_id: Mapped[UUID] = mapped_column(nullable=False)
    resolved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notes: Mapped[str] = mapped_column(String(4000), nullable=False)
    resolved_by_id: Mapped[UUID] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint("payslip_id", name="uq_payroll_anomaly_resolution_payslip"),
    )

    def __repr__(self) -> str:
        return f"<AnomalyResolutionModel payslip={self.payslip_id}>"

"""
Payroll Execution Service (``payroll_modules.execution.service``).

Responsibility
--------------
Orchestrates a payroll run from initiation to irrevocable execution:
the Phase 0 gate, payslip calculation, the review/approval state machine,
execution with its payment sweep, unfreeze, payslip edits, anomalies,
reports and the bank transfer file.  Pure computation is delegated to
``helpers.py`` and ``PayslipCalculator``; persistence of payslips to
``PayslipWriter``; audit to the kernel ``AuditorService``.

Architecture position
---------------------
**Modules layer** -- ``PayrollExecutionService`` is the sole public entry
point for payroll execution.  Sub-services (gate, calculator, anomaly
detector, writer) only flush; this facade owns the transaction.

Invariants enforced
-------------------
* Each public command owns the transaction boundary (``commit`` on
  success, ``rollback`` and re-raise on any exception).
* Status transitions are compare-and-set on (id, status, version) and
  bump ``version``; a lost race raises ``OptimisticLockError``.
* The actor's role is checked before the run's state.
* Calculation and execution of one run are serialized by the per-run lock
  registry and a row lock.
* Execution marks each bonus, benefit and refund PAID at most once.

Failure modes
-------------
* Validation, not-found and authorization errors propagate unchanged.
* One employee's pipeline failing rolls back that employee only and is
  reported in ``CalculationResult.failed``.
* One payment sweep item failing rolls back that item only and is counted
  in ``ExecutionResult.failed``; ``reconcile_payments`` retries it.

Audit relevance
---------------
Every state change, calculation, execution, Phase 0 decision, amount edit,
payslip edit and anomaly resolution appends a hash-chained audit event.

Usage::

    service = PayrollExecutionService(session, clock=clock)
    run = service.initiate("2026-02", "Engineering", specialist_id, manager_id)
    service.calculate(run.run_id, specialist_id)
    service.submit_for_review(run.run_id, specialist_id)
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from payroll_kernel.db.types import round_money
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.exceptions import (
    DuplicateRunError,
    InvalidRunTransitionError,
    MissingRequiredFieldError,
    OptimisticLockError,
    PayrollRunNotFoundError,
    PayrollValidationError,
    PayslipNotEditableError,
    PayslipNotFoundError,
    Phase0IncompleteError,
    RunAlreadyExecutedError,
    UnauthorizedTransitionError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_kernel.models.audit_event import AuditAction
from payroll_kernel.services.auditor_service import AuditorService
from payroll_modules.execution.anomalies import AnomalyDetector
from payroll_modules.execution.bank_file import (
    build_bank_transfer_file,
    render_bank_transfer_pdf,
)
from payroll_modules.execution.calculator import PayslipCalculator
from payroll_modules.execution.config import PayrollExecutionConfig
from payroll_modules.execution.gate import PreRunGateService
from payroll_modules.execution.helpers import (
    generate_run_id,
    normalize_period,
    period_bounds,
    reprice_contributions,
    settle_payslip,
)
from payroll_modules.execution.models import (
    SETTLED_KINDS,
    Anomaly,
    AuditLogEntry,
    CalculationResult,
    Contribution,
    ContributionKind,
    ExecutionResult,
    FailedEmployee,
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
    SkippedEmployee,
    TaxReport,
)
from payroll_modules.execution.orm import PayrollRunModel, PayslipModel
from payroll_modules.execution.reports import summary_report, tax_report
from payroll_modules.execution.snapshot import ConfigSnapshotLoader
from payroll_modules.execution.workflows import EDITABLE_STATES, PAYROLL_RUN_WORKFLOW
from payroll_modules.execution.writer import (
    RUN_LOCKS,
    PayslipWriter,
    RunLockRegistry,
    lock_run_row,
)
from payroll_modules.sources.models import (
    BenefitStatus,
    BonusStatus,
    EmployeeStatus,
    RefundStatus,
)
from payroll_modules.sources.orm import (
    DepartmentModel,
    EmployeeModel,
    EmployeeSigningBonusModel,
    EmployeeTerminationBenefitModel,
    PayGradeModel,
    RefundModel,
)

logger = get_logger("modules.payroll.execution.service")

SKIP_MISSING_PAY_GRADE = "missing_pay_grade"
SKIP_CONTRACT_EXPIRED = "contract_expired"

# Sweep outcomes
_PAID = "paid"
_ALREADY_PAID = "already_paid"
_SKIPPED = "skipped"

# Per settled kind: source table, payable status, paid status
_SETTLEMENT = {
    ContributionKind.BONUS: (
        EmployeeSigningBonusModel, BonusStatus.APPROVED.value, BonusStatus.PAID.value,
    ),
    ContributionKind.BENEFIT: (
        EmployeeTerminationBenefitModel, BenefitStatus.APPROVED.value, BenefitStatus.PAID.value,
    ),
    ContributionKind.REFUND: (
        RefundModel, RefundStatus.PENDING.value, RefundStatus.PAID.value,
    ),
}

# Actions that rewrite payslips; refused once a run has disbursed payments
_PRE_EXECUTION_ACTIONS = frozenset({"initiate", "calculate", "edit_period"})


class PayrollExecutionService:
    """
    Orchestrates payroll runs through the calculation pipeline and the
    approval state machine.

    Contract
    --------
    * Commands return frozen DTOs (``PayrollRun``, ``Payslip``,
      ``CalculationResult``, ``ExecutionResult``), never ORM rows.
    * Runs are addressed by their public ``run_id`` string.

    Guarantees
    ----------
    * Session is committed only when the whole command succeeded.
    * Clock is injectable for deterministic testing.

    Non-goals
    ---------
    * Does NOT authenticate actors -- the caller supplies ``PayrollRole``.
    * Does NOT revert PAID markers on unfreeze.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: PayrollExecutionConfig | None = None,
        run_locks: RunLockRegistry | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or PayrollExecutionConfig.with_defaults()
        self._run_locks = run_locks or RUN_LOCKS

        self._auditor = AuditorService(session, self._clock)
        self._gate = PreRunGateService(session, self._auditor)
        self._snapshots = ConfigSnapshotLoader(session, self._clock)
        self._calculator = PayslipCalculator(session, self._config)
        self._anomalies = AnomalyDetector(session, self._config, self._auditor, self._clock)
        self._writer = PayslipWriter(session, self._clock)

    @property
    def config(self) -> PayrollExecutionConfig:
        return self._config

    # =========================================================================
    # Phase 0
    # =========================================================================

    def is_phase0_complete(self) -> bool:
        return self._gate.is_phase0_complete()

    def list_pending_items(self) -> PendingItems:
        return self._gate.list_pending_items()

    def decide_pending_item(
        self,
        kind: PendingItemKind,
        item_id: UUID,
        decision: str | BonusStatus | BenefitStatus,
        actor_id: UUID,
    ) -> PendingItem:
        """Approve or reject a signing bonus or termination benefit."""
        try:
            item = self._gate.decide(kind, item_id, decision, actor_id)
            self._session.commit()
            return item
        except Exception:
            self._session.rollback()
            raise

    def edit_pending_item_amount(
        self,
        kind: PendingItemKind,
        item_id: UUID,
        amount: Decimal,
        actor_id: UUID,
    ) -> PendingItem:
        """Change the amount of a PENDING signing bonus or termination benefit."""
        try:
            item = self._gate.edit_amount(kind, item_id, amount, actor_id)
            self._session.commit()
            return item
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Initiation
    # =========================================================================

    def initiate(
        self,
        period: str | date | None,
        entity: str | None,
        specialist_id: UUID | None,
        manager_id: UUID | None,
        actor_role: PayrollRole = PayrollRole.PAYROLL_SPECIALIST,
    ) -> PayrollRun:
        """
        Create the run for (period, entity), or reset the existing one to DRAFT.

        Raises:
            MissingRequiredFieldError: If any argument is missing.
            InvalidPeriodError: If the period cannot be parsed.
            UnauthorizedTransitionError: If the role may not initiate.
            Phase0IncompleteError: If bonuses or benefits are pending.
            InvalidRunTransitionError: If the existing run is LOCKED.
        """
        try:
            if not period:
                raise MissingRequiredFieldError("period")
            if not entity:
                raise MissingRequiredFieldError("entity")
            if specialist_id is None:
                raise MissingRequiredFieldError("payroll_specialist_id")
            if manager_id is None:
                raise MissingRequiredFieldError("payroll_manager_id")

            self._check_role("initiate", actor_role)
            normalized = normalize_period(period)

            pending_bonuses, pending_benefits = self._gate.pending_counts()
            if pending_bonuses or pending_benefits:
                logger.warning(
                    "phase0_incomplete",
                    extra={
                        "pending_bonuses": pending_bonuses,
                        "pending_benefits": pending_benefits,
                    },
                )
                raise Phase0IncompleteError(pending_bonuses, pending_benefits)

            run = self._session.execute(
                select(PayrollRunModel)
                .where(
                    PayrollRunModel.period == normalized,
                    PayrollRunModel.entity == entity,
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()

            if run is None:
                run = PayrollRunModel(
                    run_id=generate_run_id(self._clock.now()),
                    period=normalized,
                    entity=entity,
                    status=PayrollRunStatus.DRAFT.value,
                    payment_status=PaymentStatus.PENDING.value,
                    employee_count=0,
                    exception_count=0,
                    total_net_pay=Decimal("0"),
                    payroll_specialist_id=specialist_id,
                    payroll_manager_id=manager_id,
                    version=1,
                    created_by_id=specialist_id,
                )
                self._session.add(run)
                self._session.flush()
                self._auditor.record_run_event(
                    run.id,
                    AuditAction.PAYROLL_RUN_INITIATED,
                    specialist_id,
                    {"run_id": run.run_id, "period": normalized, "entity": entity},
                )
                created = True
            else:
                self._apply_transition(
                    run, "initiate", specialist_id, actor_role,
                    values={
                        "payroll_specialist_id": specialist_id,
                        "payroll_manager_id": manager_id,
                    },
                )
                created = False

            self._session.commit()

            logger.info(
                "payroll_run_initiated",
                extra={
                    "run_id": run.run_id,
                    "period": normalized.isoformat(),
                    "entity": entity,
                    "run_created": created,
                },
            )
            return run.to_dto()

        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Calculation
    # =========================================================================

    def calculate(
        self,
        run_id: str,
        actor_id: UUID,
        actor_role: PayrollRole = PayrollRole.PAYROLL_SPECIALIST,
    ) -> CalculationResult:
        """
        Recompute every payslip of a DRAFT or REJECTED run.

        The run's payslips are deleted and reinserted; run totals are
        overwritten.  Each employee runs inside its own savepoint.

        Raises:
            RunLockedError: If another calculation of the run holds the lock.
            PayrollRunNotFoundError: If the run does not exist.
            InvalidRunTransitionError: If the run is not DRAFT or REJECTED.
        """
        self._check_role("calculate", actor_role)

        with self._run_locks.hold(run_id, self._config.calculation_lock_timeout_seconds), \
                LogContext.bind(correlation_id=run_id, run_id=run_id, actor_id=str(actor_id)):
            try:
                run = lock_run_row(self._session, run_id)
                self._find_transition(run, "calculate")

                period_start, period_end, _ = period_bounds(run.period)
                snapshot = self._snapshots.load()
                employees = self._employees_in_scope(run.entity)

                logger.info(
                    "payroll_calculation_started",
                    extra={
                        "run_id": run_id,
                        "period": run.period.isoformat(),
                        "employee_count": len(employees),
                    },
                )

                self._writer.delete_run_payslips(run)

                skipped: list[SkippedEmployee] = []
                failed: list[FailedEmployee] = []
                written = 0
                exception_count = 0

                for employee in employees:
                    pay_grade = (
                        self._session.get(PayGradeModel, employee.pay_grade_id)
                        if employee.pay_grade_id else None
                    )
                    if pay_grade is None:
                        logger.warning(
                            "employee_skipped_missing_pay_grade",
                            extra={"employee_id": str(employee.id)},
                        )
                        skipped.append(SkippedEmployee(employee.id, SKIP_MISSING_PAY_GRADE))
                        continue
                    if employee.contract_end_date and employee.contract_end_date < period_start:
                        logger.warning(
                            "employee_skipped_contract_expired",
                            extra={
                                "employee_id": str(employee.id),
                                "contract_end_date": employee.contract_end_date.isoformat(),
                            },
                        )
                        skipped.append(SkippedEmployee(employee.id, SKIP_CONTRACT_EXPIRED))
                        continue

                    try:
                        with self._session.begin_nested():
                            draft = self._calculator.calculate(
                                employee, pay_grade, snapshot, period_start, period_end,
                            )
                            payslip = self._writer.add_payslip(run, draft, actor_id)
                            reasons = self._anomalies.detect_reasons(payslip, employee)
                    except (SQLAlchemyError, ArithmeticError, ValueError) as exc:
                        logger.warning(
                            "employee_calculation_failed",
                            extra={"employee_id": str(employee.id), "error": str(exc)},
                            exc_info=True,
                        )
                        failed.append(FailedEmployee(employee.id, str(exc)))
                        continue

                    written += 1
                    if reasons:
                        exception_count += 1
                        logger.info(
                            "payslip_flagged",
                            extra={"employee_id": str(employee.id), "reasons": reasons},
                        )

                self._writer.update_run_totals(
                    run, employee_count=len(employees), exception_count=exception_count,
                )

                result = CalculationResult(
                    run_id=run_id,
                    employees_considered=len(employees),
                    payslips_written=written,
                    exception_count=exception_count,
                    total_net_pay=run.total_net_pay,
                    skipped=tuple(skipped),
                    failed=tuple(failed),
                )

                self._auditor.record_run_event(
                    run.id,
                    AuditAction.PAYROLL_RUN_CALCULATED,
                    actor_id,
                    {
                        "run_id": run_id,
                        "payslips_written": written,
                        "skipped": len(skipped),
                        "failed": len(failed),
                        "exception_count": exception_count,
                        "total_net_pay": run.total_net_pay,
                    },
                )

                self._session.commit()

                logger.info(
                    "payroll_calculation_completed",
                    extra={
                        "run_id": run_id,
                        "payslips_written": written,
                        "skipped": len(skipped),
                        "failed": len(failed),
                        "exception_count": exception_count,
                        "total_net_pay": str(result.total_net_pay),
                    },
                )
                return result

            except Exception:
                self._session.rollback()
                raise

    def _employees_in_scope(self, entity: str) -> list[EmployeeModel]:
        """ACTIVE employees, restricted to the department named ``entity`` if one exists."""
        stmt = select(EmployeeModel).where(
            EmployeeModel.status == EmployeeStatus.ACTIVE.value,
        )
        department = self._session.execute(
            select(DepartmentModel).where(DepartmentModel.name == entity)
        ).scalar_one_or_none()
        if department is not None:
            stmt = stmt.where(EmployeeModel.department_id == department.id)
        return list(
            self._session.execute(stmt.order_by(EmployeeModel.employee_number)).scalars().all()
        )

    # =========================================================================
    # Review and approval
    # =========================================================================

    def submit_for_review(
        self,
        run_id: str,
        actor_id: UUID,
        actor_role: PayrollRole = PayrollRole.PAYROLL_SPECIALIST,
    ) -> PayrollRun:
        return self._transition_command(run_id, "submit_for_review", actor_id, actor_role)

    def approve_by_manager(
        self,
        run_id: str,
        manager_id: UUID,
        actor_role: PayrollRole = PayrollRole.PAYROLL_MANAGER,
    ) -> PayrollRun:
        return self._transition_command(
            run_id, "approve_by_manager", manager_id, actor_role,
            values={
                "payroll_manager_id": manager_id,
                "manager_approval_date": self._clock.now(),
            },
        )

    def reject_by_manager(
        self,
        run_id: str,
        manager_id: UUID,
        reason: str | None,
        actor_role: PayrollRole = PayrollRole.PAYROLL_MANAGER,
    ) -> PayrollRun:
        return self._transition_command(
            run_id, "reject_by_manager", manager_id, actor_role, reason=reason,
            values={
                "payroll_manager_id": manager_id,
                "rejection_reason": reason,
                "rejected_by_id": manager_id,
            },
        )

    def approve_by_finance(
        self,
        run_id: str,
        finance_id: UUID,
        actor_role: PayrollRole = PayrollRole.FINANCE_STAFF,
    ) -> PayrollRun:
        return self._transition_command(
            run_id, "approve_by_finance", finance_id, actor_role,
            values={
                "finance_staff_id": finance_id,
                "finance_approval_date": self._clock.now(),
            },
        )

    def reject_by_finance(
        self,
        run_id: str,
        finance_id: UUID,
        reason: str | None,
        actor_role: PayrollRole = PayrollRole.FINANCE_STAFF,
    ) -> PayrollRun:
        return self._transition_command(
            run_id, "reject_by_finance", finance_id, actor_role, reason=reason,
            values={
                "finance_staff_id": finance_id,
                "rejection_reason": reason,
                "rejected_by_id": finance_id,
            },
        )

    def reject_period(
        self,
        run_id: str,
        actor_id: UUID,
        reason: str | None,
        actor_role: PayrollRole = PayrollRole.PAYROLL_SPECIALIST,
    ) -> PayrollRun:
        """Withdraw a DRAFT run."""
        return self._transition_command(
            run_id, "reject_period", actor_id, actor_role, reason=reason,
            values={"rejection_reason": reason, "rejected_by_id": actor_id},
        )

    def unfreeze(
        self,
        run_id: str,
        manager_id: UUID,
        reason: str | None,
        actor_role: PayrollRole = PayrollRole.PAYROLL_MANAGER,
    ) -> PayrollRun:
        """
        Return a LOCKED run to APPROVED.

        Payslips, bonuses, benefits and refunds already marked PAID stay PAID.
        """
        return self._transition_command(
            run_id, "unfreeze", manager_id, actor_role, reason=reason,
            values={"unlock_reason": reason, "unlocked_by_id": manager_id},
        )

    def edit_period(
        self,
        run_id: str,
        actor_id: UUID,
        period: str | date | None = None,
        entity: str | None = None,
        actor_role: PayrollRole = PayrollRole.PAYROLL_SPECIALIST,
    ) -> PayrollRun:
        """
        Move a DRAFT or REJECTED run to another (period, entity) and back to DRAFT.

        Raises:
            MissingRequiredFieldError: If neither period nor entity is given.
            DuplicateRunError: If another run covers the target pair.
        """
        try:
            if not period and not entity:
                raise MissingRequiredFieldError("period")
            self._check_role("edit_period", actor_role)

            run = lock_run_row(self._session, run_id)
            new_period = normalize_period(period) if period else run.period
            new_entity = entity or run.entity

            other = self._session.execute(
                select(PayrollRunModel).where(
                    PayrollRunModel.period == new_period,
                    PayrollRunModel.entity == new_entity,
                    PayrollRunModel.id != run.id,
                )
            ).scalar_one_or_none()
            if other is not None:
                raise DuplicateRunError(new_period.isoformat(), new_entity, other.run_id)

            old_period, old_entity = run.period, run.entity
            self._apply_transition(
                run, "edit_period", actor_id, actor_role,
                values={"period": new_period, "entity": new_entity},
            )
            self._auditor.record_run_event(
                run.id,
                AuditAction.PAYROLL_RUN_PERIOD_EDITED,
                actor_id,
                {
                    "run_id": run_id,
                    "old_period": old_period,
                    "new_period": new_period,
                    "old_entity": old_entity,
                    "new_entity": new_entity,
                },
            )
            self._session.commit()
            return run.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def transition(
        self,
        run_id: str,
        action: str,
        actor_id: UUID,
        actor_role: PayrollRole,
        reason: str | None = None,
    ) -> PayrollRun:
        """
        Perform a run action by name.

        ``initiate`` and ``edit_period`` need extra arguments and are not
        dispatched here.

        Raises:
            InvalidRunTransitionError: For unknown or non-dispatchable actions,
                or actions not permitted from the run's status.
        """
        handlers = {
            "submit_for_review": lambda: self.submit_for_review(run_id, actor_id, actor_role),
            "approve_by_manager": lambda: self.approve_by_manager(run_id, actor_id, actor_role),
            "reject_by_manager": lambda: self.reject_by_manager(run_id, actor_id, reason, actor_role),
            "approve_by_finance": lambda: self.approve_by_finance(run_id, actor_id, actor_role),
            "reject_by_finance": lambda: self.reject_by_finance(run_id, actor_id, reason, actor_role),
            "reject_period": lambda: self.reject_period(run_id, actor_id, reason, actor_role),
            "unfreeze": lambda: self.unfreeze(run_id, actor_id, reason, actor_role),
            "calculate": lambda: self.calculate(run_id, actor_id, actor_role),
            "execute": lambda: self.execute(run_id, actor_id, actor_role),
        }
        handler = handlers.get(action)
        if handler is None:
            run = self._load_run(run_id)
            raise InvalidRunTransitionError(run_id, run.status, action)
        result = handler()
        return result if isinstance(result, PayrollRun) else self.get_run(run_id)

    # =========================================================================
    # Execution
    # =========================================================================

    def execute(
        self,
        run_id: str,
        actor_id: UUID,
        actor_role: PayrollRole = PayrollRole.PAYROLL_SPECIALIST,
    ) -> ExecutionResult:
        """
        Lock an APPROVED run and mark everything it pays as PAID.

        Raises:
            InvalidRunTransitionError: If the run is not APPROVED.
        """
        self._check_role("execute", actor_role)

        with self._run_locks.hold(run_id, self._config.calculation_lock_timeout_seconds), \
                LogContext.bind(correlation_id=run_id, run_id=run_id, actor_id=str(actor_id)):
            try:
                run = lock_run_row(self._session, run_id)
                now = self._clock.now()
                self._apply_transition(
                    run, "execute", actor_id, actor_role,
                    values={
                        "payment_status": PaymentStatus.PAID.value,
                        "executed_at": now,
                    },
                )

                payslips_paid = self._mark_payslips_paid(run)
                result = self._sweep(run, payslips_paid)

                self._auditor.record_run_event(
                    run.id,
                    AuditAction.PAYROLL_EXECUTED,
                    actor_id,
                    _execution_payload(result),
                )
                self._session.commit()

                logger.info("payroll_executed", extra=_execution_payload(result))
                return result

            except Exception:
                self._session.rollback()
                raise

    def reconcile_payments(
        self,
        run_id: str,
        actor_id: UUID,
        actor_role: PayrollRole = PayrollRole.PAYROLL_SPECIALIST,
    ) -> ExecutionResult:
        """
        Re-run the payment sweep of a LOCKED run.  Idempotent.

        Raises:
            InvalidRunTransitionError: If the run is not LOCKED.
        """
        self._check_role("execute", actor_role)

        with self._run_locks.hold(run_id, self._config.calculation_lock_timeout_seconds), \
                LogContext.bind(correlation_id=run_id, run_id=run_id, actor_id=str(actor_id)):
            try:
                run = lock_run_row(self._session, run_id)
                if run.status != PayrollRunStatus.LOCKED.value:
                    raise InvalidRunTransitionError(run_id, run.status, "reconcile_payments")

                payslips_paid = self._mark_payslips_paid(run)
                result = self._sweep(run, payslips_paid)

                self._auditor.record_run_event(
                    run.id,
                    AuditAction.PAYMENTS_RECONCILED,
                    actor_id,
                    _execution_payload(result),
                )
                self._session.commit()

                logger.info("payments_reconciled", extra=_execution_payload(result))
                return result

            except Exception:
                self._session.rollback()
                raise

    def _mark_payslips_paid(self, run: PayrollRunModel) -> int:
        result = self._session.execute(
            update(PayslipModel)
            .where(
                PayslipModel.run_pk == run.id,
                PayslipModel.payment_status == PaymentStatus.PENDING.value,
            )
            .values(payment_status=PaymentStatus.PAID.value)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def _sweep(self, run: PayrollRunModel, payslips_paid: int) -> ExecutionResult:
        """Mark the run's bonuses, benefits and refunds PAID, each in its own savepoint."""
        payslips = self._session.execute(
            select(PayslipModel)
            .where(PayslipModel.run_pk == run.id)
            .order_by(PayslipModel.employee_id)
        ).scalars().all()

        counts = {
            ContributionKind.BONUS: 0,
            ContributionKind.BENEFIT: 0,
            ContributionKind.REFUND: 0,
        }
        already_paid = skipped = failed = 0
        seen: set[tuple[ContributionKind, UUID]] = set()

        for payslip in payslips:
            for line in payslip.to_dto().contributions:
                if line.kind not in SETTLED_KINDS or line.source_id is None:
                    continue
                key = (line.kind, line.source_id)
                if key in seen:
                    continue
                seen.add(key)

                try:
                    with self._session.begin_nested():
                        outcome = self._settle(line, run)
                except SQLAlchemyError as exc:
                    failed += 1
                    logger.error(
                        "payment_sweep_item_failed",
                        extra={
                            "kind": line.kind.value,
                            "source_id": str(line.source_id),
                            "error": str(exc),
                        },
                    )
                    continue

                if outcome == _PAID:
                    counts[line.kind] += 1
                elif outcome == _ALREADY_PAID:
                    already_paid += 1
                else:
                    skipped += 1

        return ExecutionResult(
            run_id=run.run_id,
            payslips_paid=payslips_paid,
            bonuses_paid=counts[ContributionKind.BONUS],
            benefits_paid=counts[ContributionKind.BENEFIT],
            refunds_paid=counts[ContributionKind.REFUND],
            already_paid=already_paid,
            skipped=skipped,
            failed=failed,
        )

    def _settle(self, line: Contribution, run: PayrollRunModel) -> str:
        """Mark one source row PAID after checking its current status."""
        model, payable, paid = _SETTLEMENT[line.kind]
        row = self._session.get(model, line.source_id, populate_existing=True)

        if row is None:
            return _SKIPPED
        if row.status == paid:
            return _ALREADY_PAID
        if row.status != payable:
            logger.warning(
                "payment_sweep_item_not_payable",
                extra={
                    "kind": line.kind.value,
                    "source_id": str(line.source_id),
                    "status": row.status,
                },
            )
            return _SKIPPED

        row.status = paid
        if line.kind == ContributionKind.BONUS:
            row.payment_date = self._clock.today()
        elif line.kind == ContributionKind.REFUND:
            row.paid_in_run_pk = run.id
        self._session.flush()
        return _PAID

    # =========================================================================
    # Payslip edit
    # =========================================================================

    def edit_payslip(
        self,
        payslip_id: UUID,
        edit: PayslipEdit,
        actor_id: UUID,
    ) -> Payslip:
        """
        Override payslip fields and recompute its totals.

        Raises:
            PayslipNotFoundError: If the payslip does not exist.
            PayslipNotEditableError: If its run is not DRAFT or REJECTED.
            PayrollValidationError: If an override line has the wrong kind.
        """
        try:
            payslip = self._session.get(PayslipModel, payslip_id)
            if payslip is None:
                raise PayslipNotFoundError(str(payslip_id))
            run_id = self._session.get(PayrollRunModel, payslip.run_pk).run_id

            with self._run_locks.hold(run_id, self._config.calculation_lock_timeout_seconds):
                # Status is read only after both locks are held
                run = lock_run_row(self._session, run_id)
                if PayrollRunStatus(run.status) not in EDITABLE_STATES:
                    raise PayslipNotEditableError(str(payslip_id), run.status)
                payslip = self._session.get(PayslipModel, payslip_id, populate_existing=True)
                if payslip is None:
                    raise PayslipNotFoundError(str(payslip_id))

                current = payslip.to_dto()
                overrides = edit.overrides()
                for kind, lines in overrides.items():
                    if any(c.kind != kind for c in lines):
                        raise PayrollValidationError(
                            f"Override for {kind.value} contains lines of another kind"
                        )

                base_salary = (
                    round_money(edit.base_salary) if edit.base_salary is not None
                    else current.base_salary
                )
                contributions = []
                for kind in ContributionKind:
                    contributions.extend(overrides.get(kind, current.lines(kind)))

                repriced, gross = reprice_contributions(
                    base_salary, current.days_in_period, contributions,
                )
                totals = settle_payslip(gross, repriced, self._config.minimum_wage)

                payslip.base_salary = base_salary
                payslip.contributions = [c.to_dict() for c in repriced]
                payslip.penalties_deducted = totals.penalties_deducted
                payslip.total_gross_salary = totals.gross
                payslip.total_deductions = totals.total_deductions
                payslip.net_pay = totals.net_pay
                payslip.updated_by_id = actor_id
                self._session.flush()

                self._writer.update_run_totals(run)
                self._auditor.record_payslip_edited(
                    payslip.id,
                    run.run_id,
                    actor_id,
                    edit.changed_fields,
                    current.net_pay,
                    totals.net_pay,
                )
                self._session.commit()

            logger.info(
                "payslip_edited",
                extra={
                    "payslip_id": str(payslip_id),
                    "run_id": run.run_id,
                    "changed_fields": edit.changed_fields,
                    "old_net_pay": str(current.net_pay),
                    "new_net_pay": str(totals.net_pay),
                },
            )
            return payslip.to_dto()

        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Anomalies
    # =========================================================================

    def list_anomalies(self, run_id: str) -> list[Anomaly]:
        return self._anomalies.list_anomalies(self._load_run(run_id))

    def resolve_anomaly(self, payslip_id: UUID, notes: str | None, actor_id: UUID) -> Anomaly | None:
        """Mark a payslip's anomaly resolved; returns the refreshed anomaly, if still flagged."""
        try:
            self._anomalies.resolve(payslip_id, notes, actor_id)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        return self._find_anomaly(payslip_id)

    def unresolve_anomaly(self, payslip_id: UUID, actor_id: UUID) -> Anomaly | None:
        try:
            self._anomalies.unresolve(payslip_id, actor_id)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        return self._find_anomaly(payslip_id)

    def _find_anomaly(self, payslip_id: UUID) -> Anomaly | None:
        payslip = self._session.get(PayslipModel, payslip_id)
        if payslip is None:
            return None
        run = self._session.get(PayrollRunModel, payslip.run_pk)
        for anomaly in self._anomalies.list_anomalies(run):
            if anomaly.payslip_id == payslip_id:
                return anomaly
        return None

    # =========================================================================
    # Queries and reports
    # =========================================================================

    def get_current_run(self) -> PayrollRun | None:
        run = self._session.execute(
            select(PayrollRunModel)
            .order_by(PayrollRunModel.period.desc(), PayrollRunModel.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()
        return run.to_dto() if run else None

    def list_runs(self) -> list[PayrollRun]:
        """Run history ordered by period."""
        runs = self._session.execute(
            select(PayrollRunModel)
            .order_by(PayrollRunModel.period, PayrollRunModel.created_at)
        ).scalars().all()
        return [r.to_dto() for r in runs]

    def get_run(self, run_id: str) -> PayrollRun:
        return self._load_run(run_id).to_dto()

    def list_payslips(self, run_id: str) -> list[Payslip]:
        run = self._load_run(run_id)
        return [p.to_dto() for p in self._run_payslips(run)]

    def get_payslip(self, payslip_id: UUID) -> Payslip:
        payslip = self._session.get(PayslipModel, payslip_id)
        if payslip is None:
            raise PayslipNotFoundError(str(payslip_id))
        return payslip.to_dto()

    def get_employee_payslips(self, employee_id: UUID) -> list[Payslip]:
        """An employee's payslips, newest first."""
        rows = self._session.execute(
            select(PayslipModel)
            .where(PayslipModel.employee_id == employee_id)
            .order_by(PayslipModel.calculated_at.desc(), PayslipModel.id)
        ).scalars().all()
        return [p.to_dto() for p in rows]

    def summary_report(self, run_id: str) -> PayrollSummaryReport:
        run = self._load_run(run_id)
        return summary_report(run.to_dto(), [p.to_dto() for p in self._run_payslips(run)])

    def tax_report(self, run_id: str) -> TaxReport:
        run = self._load_run(run_id)
        payslips = [p.to_dto() for p in self._run_payslips(run)]
        return tax_report(run.to_dto(), payslips, self._employees_by_id(payslips))

    def export_bank_file(self, run_id: str) -> bytes:
        """Render the bank transfer PDF for a run."""
        run = self._load_run(run_id)
        payslips = [p.to_dto() for p in self._run_payslips(run)]
        transfer = build_bank_transfer_file(
            run.run_id,
            payslips,
            self._employees_by_id(payslips),
            self._config,
            self._clock.today(),
        )
        return render_bank_transfer_pdf(transfer, compress=self._config.compress_pdf)

    def get_audit_log(self, limit: int = 100) -> list[AuditLogEntry]:
        """Most recent audit events, newest first."""
        return [
            AuditLogEntry(
                seq=event.seq,
                action=event.action,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                actor_id=event.actor_id,
                occurred_at=event.occurred_at,
                payload=event.payload or {},
            )
            for event in self._auditor.get_recent_events(limit=limit)
        ]

    # =========================================================================
    # Internals
    # =========================================================================

    def _load_run(self, run_id: str) -> PayrollRunModel:
        run = self._session.execute(
            select(PayrollRunModel).where(PayrollRunModel.run_id == run_id)
        ).scalar_one_or_none()
        if run is None:
            raise PayrollRunNotFoundError(run_id)
        return run

    def _run_payslips(self, run: PayrollRunModel) -> list[PayslipModel]:
        return list(self._session.execute(
            select(PayslipModel)
            .join(EmployeeModel, PayslipModel.employee_id == EmployeeModel.id, isouter=True)
            .where(PayslipModel.run_pk == run.id)
            .order_by(EmployeeModel.employee_number, PayslipModel.id)
        ).scalars().all())

    def _employees_by_id(self, payslips: list[Payslip]) -> dict[UUID, EmployeeModel]:
        ids = {p.employee_id for p in payslips}
        if not ids:
            return {}
        rows = self._session.execute(
            select(EmployeeModel).where(EmployeeModel.id.in_(ids))
        ).scalars().all()
        return {e.id: e for e in rows}

    def _check_role(self, action: str, actor_role: PayrollRole) -> None:
        allowed = PAYROLL_RUN_WORKFLOW.roles_for(action)
        if allowed and actor_role.value not in allowed:
            logger.warning(
                "payroll_run_transition_unauthorized",
                extra={"action": action, "actor_role": actor_role.value},
            )
            raise UnauthorizedTransitionError(action, actor_role.value, allowed)

    def _find_transition(self, run: PayrollRunModel, action: str):
        transition = PAYROLL_RUN_WORKFLOW.find(action, run.status)
        if transition is None:
            logger.warning(
                "payroll_run_transition_rejected",
                extra={"run_id": run.run_id, "action": action, "status": run.status},
            )
            raise InvalidRunTransitionError(run.run_id, run.status, action)
        if action in _PRE_EXECUTION_ACTIONS and self._is_disbursed(run):
            logger.warning(
                "payroll_run_already_executed",
                extra={"run_id": run.run_id, "action": action, "status": run.status},
            )
            raise RunAlreadyExecutedError(run.run_id, run.status, action)
        return transition

    @staticmethod
    def _is_disbursed(run: PayrollRunModel) -> bool:
        return run.executed_at is not None or run.payment_status == PaymentStatus.PAID.value

    def _apply_transition(
        self,
        run: PayrollRunModel,
        action: str,
        actor_id: UUID,
        actor_role: PayrollRole,
        reason: str | None = None,
        values: dict[str, Any] | None = None,
    ) -> None:
        """Role check, state check, then compare-and-set on (id, status, version)."""
        self._check_role(action, actor_role)
        transition = self._find_transition(run, action)
        if transition.requires_reason and not (reason and reason.strip()):
            raise MissingRequiredFieldError("reason")

        from_status = run.status
        result = self._session.execute(
            update(PayrollRunModel)
            .where(
                PayrollRunModel.id == run.id,
                PayrollRunModel.status == from_status,
                PayrollRunModel.version == run.version,
            )
            .values(
                status=transition.to_state,
                version=run.version + 1,
                updated_by_id=actor_id,
                **(values or {}),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "payroll_run_transition_conflict",
                extra={"run_id": run.run_id, "action": action, "status": from_status},
            )
            raise OptimisticLockError("PayrollRun", run.run_id)
        self._session.refresh(run)

        self._auditor.record_run_transition(
            run.id, run.run_id, action, from_status, transition.to_state, actor_id, reason,
        )
        logger.info(
            "payroll_run_transitioned",
            extra={
                "run_id": run.run_id,
                "action": action,
                "from_status": from_status,
                "to_status": transition.to_state,
                "version": run.version,
            },
        )

    def _transition_command(
        self,
        run_id: str,
        action: str,
        actor_id: UUID,
        actor_role: PayrollRole,
        reason: str | None = None,
        values: dict[str, Any] | None = None,
    ) -> PayrollRun:
        try:
            run = lock_run_row(self._session, run_id)
            self._apply_transition(run, action, actor_id, actor_role, reason, values)
            self._session.commit()
            return run.to_dto()
        except Exception:
            self._session.rollback()
            raise


def _execution_payload(result: ExecutionResult) -> dict[str, Any]:
    return {
        "run_id": result.run_id,
        "payslips_paid": result.payslips_paid,
        "bonuses_paid": result.bonuses_paid,
        "benefits_paid": result.benefits_paid,
        "refunds_paid": result.refunds_paid,
        "already_paid": result.already_paid,
        "skipped": result.skipped,
        "failed": result.failed,
    }

"""
Payslip writer and per-run lock (``payroll_modules.execution.writer``).

Responsibility
--------------
Persists calculated payslips for a run and keeps the run's totals in step
with them.  Recalculation deletes every payslip of the run and reinserts
the new set, so writers of the same run are serialized twice over:

* ``RunLockRegistry`` -- a process-wide lock per run id, acquired with a
  timeout.
* ``SELECT ... FOR UPDATE`` on the run row (``lock_run_row``), which
  serializes writers in different processes on PostgreSQL.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from payroll_kernel.db.types import ZERO
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.exceptions import PayrollRunNotFoundError, RunLockedError
from payroll_kernel.logging_config import get_logger
from payroll_modules.execution.models import PaymentStatus, PayslipDraft
from payroll_modules.execution.orm import PayrollRunModel, PayslipModel

logger = get_logger("modules.payroll.execution.writer")


class RunLockRegistry:
    """Process-wide mutual exclusion keyed by public run id."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        # One entry per run id for the life of the process; runs are monthly
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, run_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(run_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[run_id] = lock
            return lock

    @contextmanager
    def hold(self, run_id: str, timeout: float) -> Iterator[None]:
        """
        Hold the run's lock for the duration of the block.

        Raises:
            RunLockedError: If the lock is not acquired within ``timeout``.
        """
        lock = self._lock_for(run_id)
        if not lock.acquire(timeout=timeout):
            logger.warning(
                "run_lock_timeout",
                extra={"run_id": run_id, "timeout_seconds": timeout},
            )
            raise RunLockedError(run_id, "another calculation is in progress")
        try:
            yield
        finally:
            lock.release()

    def is_held(self, run_id: str) -> bool:
        return self._lock_for(run_id).locked()


# Shared by every service instance in the process
RUN_LOCKS = RunLockRegistry()


def lock_run_row(session: Session, run_id: str) -> PayrollRunModel:
    """
    Load a run by public id with a row lock.

    Raises:
        PayrollRunNotFoundError: If no run has this id.
    """
    run = session.execute(
        select(PayrollRunModel)
        .where(PayrollRunModel.run_id == run_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if run is None:
        raise PayrollRunNotFoundError(run_id)
    return run


class PayslipWriter:
    """
    Writes payslips and run totals.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def delete_run_payslips(self, run: PayrollRunModel) -> int:
        result = self._session.execute(
            delete(PayslipModel)
            .where(PayslipModel.run_pk == run.id)
            .execution_options(synchronize_session="fetch")
        )
        logger.info(
            "run_payslips_deleted",
            extra={"run_id": run.run_id, "deleted_count": result.rowcount},
        )
        return result.rowcount

    def add_payslip(self, run: PayrollRunModel, draft: PayslipDraft, actor_id) -> PayslipModel:
        totals = draft.totals
        payslip = PayslipModel(
            run_pk=run.id,
            employee_id=draft.employee_id,
            base_salary=draft.base_salary,
            contributions=[c.to_dict() for c in draft.contributions],
            penalties_deducted=totals.penalties_deducted,
            total_gross_salary=totals.gross,
            total_deductions=totals.total_deductions,
            net_pay=totals.net_pay,
            payment_status=PaymentStatus.PENDING.value,
            days_in_period=draft.days_in_period,
            calculated_at=self._clock.now(),
            created_by_id=actor_id,
        )
        self._session.add(payslip)
        self._session.flush()
        return payslip

    def run_net_total(self, run: PayrollRunModel) -> Decimal:
        amounts = self._session.execute(
            select(PayslipModel.net_pay).where(PayslipModel.run_pk == run.id)
        ).scalars().all()
        return sum(amounts, ZERO)

    def update_run_totals(
        self,
        run: PayrollRunModel,
        employee_count: int | None = None,
        exception_count: int | None = None,
    ) -> None:
        """Overwrite run totals; net pay is always re-summed from payslips."""
        run.total_net_pay = self.run_net_total(run)
        if employee_count is not None:
            run.employee_count = employee_count
        if exception_count is not None:
            run.exception_count = exception_count
        self._session.flush()

        logger.info(
            "run_totals_updated",
            extra={
                "run_id": run.run_id,
                "employee_count": run.employee_count,
                "exception_count": run.exception_count,
                "total_net_pay": str(run.total_net_pay),
            },
        )

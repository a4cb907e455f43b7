"""
Anomaly detection and resolution overlay (``payroll_modules.execution.anomalies``).

Responsibility
--------------
Flags payslips that need human review before payment and keeps a durable
resolution record per payslip.  Reasons are recomputed on demand against
current data; a resolution is an overlay and never alters the payslip.

Reasons, in order:
    1. ``Negative Net Pay``
    2. ``Missing Bank Account``
    3. ``Salary Spike: X.X% increase`` -- net pay rose by more than the
       configured threshold against the employee's latest payslip from a
       different run.
"""

from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.exceptions import AnomalyNotResolvedError, PayslipNotFoundError
from payroll_kernel.logging_config import get_logger
from payroll_kernel.services.auditor_service import AuditorService
from payroll_modules.execution.config import PayrollExecutionConfig
from payroll_modules.execution.models import Anomaly
from payroll_modules.execution.orm import (
    AnomalyResolutionModel,
    PayrollRunModel,
    PayslipModel,
)
from payroll_modules.sources.orm import EmployeeModel

logger = get_logger("modules.payroll.execution.anomalies")

NEGATIVE_NET_PAY = "Negative Net Pay"
MISSING_BANK_ACCOUNT = "Missing Bank Account"


class AnomalyDetector:
    """
    Detects payslip anomalies and records their resolution.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(
        self,
        session: Session,
        config: PayrollExecutionConfig,
        auditor: AuditorService,
        clock: Clock | None = None,
    ):
        self._session = session
        self._config = config
        self._auditor = auditor
        self._clock = clock or SystemClock()

    def detect_reasons(
        self,
        payslip: PayslipModel,
        employee: EmployeeModel | None,
    ) -> list[str]:
        """Anomaly reasons for a persisted payslip, in reporting order."""
        reasons = []
        if payslip.net_pay < 0:
            reasons.append(NEGATIVE_NET_PAY)
        if employee is None or not employee.bank_account_number:
            reasons.append(MISSING_BANK_ACCOUNT)

        previous = self._previous_net_pay(payslip)
        if previous is not None and previous > 0:
            change = (payslip.net_pay - previous) / previous
            if change > self._config.spike_threshold:
                percent = (change * 100).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
                reasons.append(f"Salary Spike: {percent}% increase")
        return reasons

    def _previous_net_pay(self, payslip: PayslipModel) -> Decimal | None:
        row = self._session.execute(
            select(PayslipModel.net_pay)
            .join(PayrollRunModel, PayslipModel.run_pk == PayrollRunModel.id)
            .where(
                PayslipModel.employee_id == payslip.employee_id,
                PayslipModel.run_pk != payslip.run_pk,
                PayslipModel.calculated_at <= payslip.calculated_at,
            )
            .order_by(PayslipModel.calculated_at.desc(), PayrollRunModel.period.desc())
            .limit(1)
        ).scalar_one_or_none()
        return row

    def list_anomalies(self, run: PayrollRunModel) -> list[Anomaly]:
        """Flagged payslips of a run joined with their resolution records."""
        rows = self._session.execute(
            select(PayslipModel, EmployeeModel)
            .join(EmployeeModel, PayslipModel.employee_id == EmployeeModel.id)
            .where(PayslipModel.run_pk == run.id)
            .order_by(EmployeeModel.employee_number)
        ).all()

        anomalies = []
        for payslip, employee in rows:
            reasons = self.detect_reasons(payslip, employee)
            if not reasons:
                continue
            resolution = self._resolution(payslip.id)
            anomalies.append(Anomaly(
                payslip_id=payslip.id,
                employee_id=employee.id,
                employee_name=employee.full_name,
                net_pay=payslip.net_pay,
                reasons=tuple(reasons),
                resolved=resolution is not None,
                resolved_at=resolution.resolved_at if resolution else None,
                resolution_notes=resolution.notes if resolution else None,
            ))

        logger.info(
            "anomalies_listed",
            extra={"run_id": run.run_id, "anomaly_count": len(anomalies)},
        )
        return anomalies

    def _resolution(self, payslip_id: UUID) -> AnomalyResolutionModel | None:
        return self._session.execute(
            select(AnomalyResolutionModel)
            .where(AnomalyResolutionModel.payslip_id == payslip_id)
        ).scalar_one_or_none()

    def resolve(
        self,
        payslip_id: UUID,
        notes: str | None,
        actor_id: UUID,
    ) -> AnomalyResolutionModel:
        """
        Mark a payslip's anomaly resolved.  Re-resolving overwrites.

        Raises:
            PayslipNotFoundError: If the payslip does not exist.
        """
        if self._session.get(PayslipModel, payslip_id) is None:
            raise PayslipNotFoundError(str(payslip_id))

        notes = notes or self._config.default_resolution_note
        resolution = self._resolution(payslip_id)
        if resolution is None:
            resolution = AnomalyResolutionModel(
                payslip_id=payslip_id,
                resolved_at=self._clock.now(),
                notes=notes,
                resolved_by_id=actor_id,
                created_by_id=actor_id,
            )
            self._session.add(resolution)
        else:
            resolution.resolved_at = self._clock.now()
            resolution.notes = notes
            resolution.resolved_by_id = actor_id
            resolution.updated_by_id = actor_id
        self._session.flush()

        self._auditor.record_anomaly_resolution(payslip_id, actor_id, resolved=True, notes=notes)
        logger.info("anomaly_resolved", extra={"payslip_id": str(payslip_id)})
        return resolution

    def unresolve(self, payslip_id: UUID, actor_id: UUID) -> None:
        """
        Remove a payslip's resolution record.

        Raises:
            AnomalyNotResolvedError: If the anomaly was not resolved.
        """
        resolution = self._resolution(payslip_id)
        if resolution is None:
            raise AnomalyNotResolvedError(str(payslip_id))

        self._session.delete(resolution)
        self._session.flush()

        self._auditor.record_anomaly_resolution(payslip_id, actor_id, resolved=False)
        logger.info("anomaly_unresolved", extra={"payslip_id": str(payslip_id)})

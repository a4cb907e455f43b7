"""
Tests for payroll execution, the payment sweep and unfreeze.

Validates:
- execute locks the run and marks payslips, bonuses, benefits and refunds PAID
- each item is paid at most once across execute / unfreeze / re-execute
- items whose decision changed after calculation are skipped
- reconcile_payments is idempotent and LOCKED-only
- unfreeze requires a manager and a reason and leaves PAID markers in place
- a run that has paid out is never re-initiated or recalculated
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import update

from payroll_kernel.exceptions import (
    InvalidRunTransitionError,
    MissingRequiredFieldError,
    RunAlreadyExecutedError,
    UnauthorizedTransitionError,
)
from payroll_kernel.models.audit_event import AuditAction
from payroll_modules.execution.models import (
    PaymentStatus,
    PayrollRole,
    PayrollRunStatus,
    PendingItemKind,
)
from payroll_modules.execution.orm import PayrollRunModel
from payroll_modules.sources.models import BenefitStatus, RefundStatus
from payroll_modules.sources.orm import (
    EmployeeSigningBonusModel,
    EmployeeTerminationBenefitModel,
    RefundModel,
)
from tests.modules.conftest import (
    TEST_ENTITY,
    TEST_MANAGER_ID,
    TEST_PERIOD,
    TEST_SPECIALIST_ID,
)


@pytest.fixture
def payable_items(payroll_data):
    """One employee with an approved bonus, an approved benefit and a pending refund."""
    employee = payroll_data.employee(payroll_data.pay_grade(Decimal("3000")))
    return {
        "employee": employee,
        "bonus": payroll_data.signing_bonus(employee, Decimal("1000")),
        "benefit": payroll_data.termination_benefit(employee, Decimal("2000")),
        "refund": payroll_data.refund(employee, Decimal("150")),
    }


def _status(session, model, row_id) -> str:
    return session.get(model, row_id, populate_existing=True).status


class TestExecute:

    def test_locks_run_and_pays_everything(
        self, service, session, deterministic_clock, payable_items, drive_run,
    ):
        run = drive_run(PayrollRunStatus.APPROVED)

        result = service.execute(run.run_id, TEST_SPECIALIST_ID)

        locked = service.get_run(run.run_id)
        assert locked.status == PayrollRunStatus.LOCKED
        assert locked.payment_status == PaymentStatus.PAID
        assert locked.executed_at is not None

        assert result.payslips_paid == 1
        assert (result.bonuses_paid, result.benefits_paid, result.refunds_paid) == (1, 1, 1)
        assert result.items_paid == 3
        assert result.already_paid == 0
        assert result.failed == 0

        assert all(p.payment_status == PaymentStatus.PAID for p in service.list_payslips(run.run_id))

        bonus = session.get(EmployeeSigningBonusModel, payable_items["bonus"].id, populate_existing=True)
        assert bonus.status == "paid"
        assert bonus.payment_date == deterministic_clock.today()
        assert _status(session, EmployeeTerminationBenefitModel, payable_items["benefit"].id) == "paid"
        refund = session.get(RefundModel, payable_items["refund"].id, populate_existing=True)
        assert refund.status == "paid"
        assert refund.paid_in_run_pk == run.id

    def test_execution_is_audited(self, service, auditor, payable_items, drive_run):
        run = drive_run(PayrollRunStatus.APPROVED)

        service.execute(run.run_id, TEST_SPECIALIST_ID)

        trace = auditor.get_trace("PayrollRun", run.id)
        assert trace.last_action == AuditAction.PAYROLL_EXECUTED
        assert trace.entries[-1].payload["bonuses_paid"] == 1

    def test_only_approved_runs_execute(self, service, drive_run):
        run = drive_run(PayrollRunStatus.PENDING_FINANCE_APPROVAL)

        with pytest.raises(InvalidRunTransitionError):
            service.execute(run.run_id, TEST_SPECIALIST_ID)

    def test_second_execute_refused(self, service, drive_run):
        run = drive_run(PayrollRunStatus.LOCKED)

        with pytest.raises(InvalidRunTransitionError):
            service.execute(run.run_id, TEST_SPECIALIST_ID)

    def test_manager_cannot_execute(self, service, drive_run):
        run = drive_run(PayrollRunStatus.APPROVED)

        with pytest.raises(UnauthorizedTransitionError):
            service.execute(run.run_id, TEST_MANAGER_ID, actor_role=PayrollRole.PAYROLL_MANAGER)

        assert service.get_run(run.run_id).status == PayrollRunStatus.APPROVED

    def test_decision_changed_after_calculation_is_skipped(
        self, service, session, payable_items, drive_run,
    ):
        run = drive_run(PayrollRunStatus.APPROVED)
        service.decide_pending_item(
            PendingItemKind.SIGNING_BONUS, payable_items["bonus"].id, "rejected", TEST_SPECIALIST_ID,
        )

        result = service.execute(run.run_id, TEST_SPECIALIST_ID)

        assert result.bonuses_paid == 0
        assert result.skipped == 1
        assert _status(session, EmployeeSigningBonusModel, payable_items["bonus"].id) == "rejected"

    def test_refund_already_paid_elsewhere(self, service, session, payable_items, drive_run):
        run = drive_run(PayrollRunStatus.APPROVED)
        refund = session.get(RefundModel, payable_items["refund"].id)
        refund.status = "paid"
        session.commit()

        result = service.execute(run.run_id, TEST_SPECIALIST_ID)

        assert result.refunds_paid == 0
        assert result.already_paid == 1

    def test_benefit_already_paid_elsewhere(self, service, session, payable_items, drive_run):
        run = drive_run(PayrollRunStatus.APPROVED)
        benefit = session.get(EmployeeTerminationBenefitModel, payable_items["benefit"].id)
        benefit.status = BenefitStatus.PAID.value
        session.commit()

        result = service.execute(run.run_id, TEST_SPECIALIST_ID)

        assert result.benefits_paid == 0
        assert result.already_paid == 1
        assert (result.bonuses_paid, result.refunds_paid) == (1, 1)
        refund = session.get(RefundModel, payable_items["refund"].id, populate_existing=True)
        assert refund.status == RefundStatus.PAID.value


class TestUnfreeze:

    def test_unfreeze_returns_to_approved(self, service, drive_run):
        run = drive_run(PayrollRunStatus.LOCKED)

        unfrozen = service.unfreeze(run.run_id, TEST_MANAGER_ID, "Bank rejected file")

        assert unfrozen.status == PayrollRunStatus.APPROVED
        assert unfrozen.unlock_reason == "Bank rejected file"
        assert unfrozen.unlocked_by_id == TEST_MANAGER_ID

    def test_unfreeze_requires_reason(self, service, drive_run):
        run = drive_run(PayrollRunStatus.LOCKED)

        with pytest.raises(MissingRequiredFieldError):
            service.unfreeze(run.run_id, TEST_MANAGER_ID, "")

        assert service.get_run(run.run_id).status == PayrollRunStatus.LOCKED

    def test_specialist_cannot_unfreeze(self, service, drive_run):
        run = drive_run(PayrollRunStatus.LOCKED)

        with pytest.raises(UnauthorizedTransitionError):
            service.unfreeze(
                run.run_id, TEST_SPECIALIST_ID, "Oops",
                actor_role=PayrollRole.PAYROLL_SPECIALIST,
            )

    def test_paid_markers_survive_unfreeze(self, service, session, payable_items, drive_run):
        run = drive_run(PayrollRunStatus.LOCKED)

        service.unfreeze(run.run_id, TEST_MANAGER_ID, "Correct bank details")

        assert service.get_run(run.run_id).payment_status == PaymentStatus.PAID
        assert all(p.payment_status == PaymentStatus.PAID for p in service.list_payslips(run.run_id))
        assert _status(session, EmployeeSigningBonusModel, payable_items["bonus"].id) == "paid"

    def test_reexecution_pays_nothing_twice(self, service, payable_items, drive_run):
        run = drive_run(PayrollRunStatus.LOCKED)
        service.unfreeze(run.run_id, TEST_MANAGER_ID, "Correct bank details")

        result = service.execute(run.run_id, TEST_SPECIALIST_ID)

        assert result.payslips_paid == 0
        assert result.items_paid == 0
        assert result.already_paid == 3
        assert service.get_run(run.run_id).status == PayrollRunStatus.LOCKED

    def test_unfrozen_run_cannot_be_recalculated(self, service, drive_run):
        run = drive_run(PayrollRunStatus.LOCKED)
        service.unfreeze(run.run_id, TEST_MANAGER_ID, "Correct bank details")

        with pytest.raises(InvalidRunTransitionError):
            service.calculate(run.run_id, TEST_SPECIALIST_ID)

    def test_unfrozen_run_cannot_be_reinitiated(self, service, payable_items, drive_run):
        run = drive_run(PayrollRunStatus.LOCKED)
        service.unfreeze(run.run_id, TEST_MANAGER_ID, "Correct bank details")

        with pytest.raises(RunAlreadyExecutedError) as exc_info:
            service.initiate(TEST_PERIOD, TEST_ENTITY, TEST_SPECIALIST_ID, TEST_MANAGER_ID)

        assert exc_info.value.action == "initiate"
        unchanged = service.get_run(run.run_id)
        assert unchanged.status == PayrollRunStatus.APPROVED
        assert unchanged.payment_status == PaymentStatus.PAID
        assert all(p.payment_status == PaymentStatus.PAID for p in service.list_payslips(run.run_id))

    def test_disbursed_run_is_never_recalculated(self, service, session, payable_items, drive_run):
        run = drive_run(PayrollRunStatus.LOCKED)
        session.execute(
            update(PayrollRunModel)
            .where(PayrollRunModel.run_id == run.run_id)
            .values(status=PayrollRunStatus.DRAFT.value)
        )
        session.commit()

        with pytest.raises(RunAlreadyExecutedError):
            service.calculate(run.run_id, TEST_SPECIALIST_ID)

        assert [p.payment_status for p in service.list_payslips(run.run_id)] == [PaymentStatus.PAID]


class TestReconcilePayments:

    def test_idempotent_on_locked_run(self, service, auditor, payable_items, drive_run):
        run = drive_run(PayrollRunStatus.LOCKED)

        result = service.reconcile_payments(run.run_id, TEST_SPECIALIST_ID)

        assert result.items_paid == 0
        assert result.payslips_paid == 0
        assert result.already_paid == 3
        assert auditor.get_trace("PayrollRun", run.id).last_action == AuditAction.PAYMENTS_RECONCILED

    def test_picks_up_items_reset_after_execution(self, service, session, payable_items, drive_run):
        run = drive_run(PayrollRunStatus.LOCKED)
        refund = session.get(RefundModel, payable_items["refund"].id)
        refund.status = "pending"
        session.commit()

        result = service.reconcile_payments(run.run_id, TEST_SPECIALIST_ID)

        assert result.refunds_paid == 1
        assert _status(session, RefundModel, payable_items["refund"].id) == "paid"

    def test_requires_locked_run(self, service, drive_run):
        run = drive_run(PayrollRunStatus.APPROVED)

        with pytest.raises(InvalidRunTransitionError):
            service.reconcile_payments(run.run_id, TEST_SPECIALIST_ID)

"""
Shared fixtures for payroll module tests.

Actor ids are deterministic so tests can import and use them directly.
``drive_run`` pushes a freshly initiated and calculated run through the
approval chain up to the requested status.
"""

from uuid import UUID

import pytest

from payroll_modules.execution.models import PayrollRunStatus

TEST_SPECIALIST_ID = UUID("00000000-0000-4000-b000-000000000001")
TEST_MANAGER_ID = UUID("00000000-0000-4000-b000-000000000002")
TEST_FINANCE_ID = UUID("00000000-0000-4000-b000-000000000003")

TEST_PERIOD = "2026-02"
TEST_ENTITY = "Engineering"


@pytest.fixture
def initiated_run(service):
    """A DRAFT run for February 2026, Engineering."""
    return service.initiate(TEST_PERIOD, TEST_ENTITY, TEST_SPECIALIST_ID, TEST_MANAGER_ID)


@pytest.fixture
def drive_run(service):
    """
    Initiate, calculate and advance a run to ``target``.

    Usage::

        run = drive_run(PayrollRunStatus.APPROVED)
    """

    def _drive(target: PayrollRunStatus, period: str = TEST_PERIOD, entity: str = TEST_ENTITY):
        run = service.initiate(period, entity, TEST_SPECIALIST_ID, TEST_MANAGER_ID)
        service.calculate(run.run_id, TEST_SPECIALIST_ID)
        steps = {
            PayrollRunStatus.UNDER_REVIEW: [
                lambda: service.submit_for_review(run.run_id, TEST_SPECIALIST_ID),
            ],
            PayrollRunStatus.PENDING_FINANCE_APPROVAL: [
                lambda: service.submit_for_review(run.run_id, TEST_SPECIALIST_ID),
                lambda: service.approve_by_manager(run.run_id, TEST_MANAGER_ID),
            ],
            PayrollRunStatus.APPROVED: [
                lambda: service.submit_for_review(run.run_id, TEST_SPECIALIST_ID),
                lambda: service.approve_by_manager(run.run_id, TEST_MANAGER_ID),
                lambda: service.approve_by_finance(run.run_id, TEST_FINANCE_ID),
            ],
            PayrollRunStatus.LOCKED: [
                lambda: service.submit_for_review(run.run_id, TEST_SPECIALIST_ID),
                lambda: service.approve_by_manager(run.run_id, TEST_MANAGER_ID),
                lambda: service.approve_by_finance(run.run_id, TEST_FINANCE_ID),
                lambda: service.execute(run.run_id, TEST_SPECIALIST_ID),
            ],
            PayrollRunStatus.REJECTED: [
                lambda: service.submit_for_review(run.run_id, TEST_SPECIALIST_ID),
                lambda: service.reject_by_manager(run.run_id, TEST_MANAGER_ID, "Numbers look off"),
            ],
        }
        for step in steps.get(target, []):
            step()
        return service.get_run(run.run_id)

    return _drive

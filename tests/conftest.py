"""
Pytest fixtures for the payroll engine test suite.

Provides:
- An in-memory SQLite engine per test with every kernel and module table
- A session bound to it (savepoints enabled)
- A deterministic clock and the execution service wired to it
- ``payroll_data``: factories for collaborator rows (employees, pay grades,
  approved taxes, brackets, allowances, bonuses, benefits, refunds,
  penalties, leave)
- ``captured_logs``: structured log capture as parsed JSON dicts
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from payroll_kernel.db.base import SYSTEM_ACTOR_ID, Base
from payroll_kernel.db.engine import enable_sqlite_savepoints
from payroll_kernel.domain.clock import DeterministicClock
from payroll_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from payroll_kernel.services.auditor_service import AuditorService
from payroll_modules._orm_registry import import_all_orm_models
from payroll_modules.execution.config import PayrollExecutionConfig
from payroll_modules.execution.service import PayrollExecutionService
from payroll_modules.execution.writer import RunLockRegistry
from payroll_modules.sources.orm import (
    AllowanceModel,
    DepartmentModel,
    EmployeeModel,
    EmployeeSigningBonusModel,
    EmployeeTerminationBenefitModel,
    InsuranceBracketModel,
    LeaveRequestModel,
    LeaveTypeModel,
    PayGradeModel,
    PenaltyModel,
    RefundModel,
    SigningBonusPolicyModel,
    TaxRuleModel,
    TerminationBenefitPolicyModel,
)


CLOCK_START = datetime(2026, 2, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture payroll_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.calculate(...)
            logs = captured_logs()
            assert any(r["message"] == "payroll_calculation_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("payroll_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database with every table created."""
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(eng)
    import_all_orm_models()
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine) -> Generator[Session, None, None]:
    sess = Session(bind=engine, expire_on_commit=False)
    yield sess
    sess.close()


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(CLOCK_START)


@pytest.fixture
def payroll_config() -> PayrollExecutionConfig:
    return PayrollExecutionConfig.with_defaults()


@pytest.fixture
def run_locks() -> RunLockRegistry:
    return RunLockRegistry()


@pytest.fixture
def service(session, deterministic_clock, payroll_config, run_locks) -> PayrollExecutionService:
    return PayrollExecutionService(
        session,
        clock=deterministic_clock,
        config=payroll_config,
        run_locks=run_locks,
    )


@pytest.fixture
def auditor(session, deterministic_clock) -> AuditorService:
    return AuditorService(session, deterministic_clock)


# =============================================================================
# Collaborator data factories
# =============================================================================


class PayrollDataFactory:
    """Seeds collaborator rows; every helper commits."""

    def __init__(self, session: Session):
        self.session = session
        self._employee_seq = 0

    def _save(self, row):
        self.session.add(row)
        self.session.commit()
        return row

    def department(self, name: str = "Engineering") -> DepartmentModel:
        return self._save(DepartmentModel(name=name, created_by_id=SYSTEM_ACTOR_ID))

    def pay_grade(
        self,
        base_salary: Decimal | None = Decimal("3000"),
        gross_salary: Decimal | None = None,
        name: str = "Grade A",
    ) -> PayGradeModel:
        return self._save(PayGradeModel(
            name=name,
            base_salary=base_salary,
            gross_salary=gross_salary,
            created_by_id=SYSTEM_ACTOR_ID,
        ))

    def employee(
        self,
        pay_grade: PayGradeModel | None = None,
        department: DepartmentModel | None = None,
        first_name: str = "Mona",
        last_name: str = "Adel",
        hire_date: date | None = date(2020, 1, 1),
        contract_end_date: date | None = None,
        bank_account_number: str | None = "EG380019000500000000263180002",
        bank_name: str | None = "National Bank of Egypt",
        status: str = "active",
        employee_number: str | None = None,
    ) -> EmployeeModel:
        self._employee_seq += 1
        return self._save(EmployeeModel(
            employee_number=employee_number or f"EMP-{self._employee_seq:04d}",
            first_name=first_name,
            last_name=last_name,
            status=status,
            department_id=department.id if department else None,
            pay_grade_id=pay_grade.id if pay_grade else None,
            hire_date=hire_date,
            contract_end_date=contract_end_date,
            bank_name=bank_name,
            bank_account_number=bank_account_number,
            created_by_id=SYSTEM_ACTOR_ID,
        ))

    def tax(self, rate: Decimal | None, name: str = "Income Tax", status: str = "approved") -> TaxRuleModel:
        return self._save(TaxRuleModel(
            name=name, rate=rate, status=status, created_by_id=SYSTEM_ACTOR_ID,
        ))

    def bracket(
        self,
        min_salary: Decimal,
        max_salary: Decimal,
        employee_rate: Decimal | None,
        employer_rate: Decimal | None = Decimal("0"),
        name: str = "Social Insurance",
        status: str = "approved",
    ) -> InsuranceBracketModel:
        return self._save(InsuranceBracketModel(
            name=name,
            min_salary=min_salary,
            max_salary=max_salary,
            employee_rate=employee_rate,
            employer_rate=employer_rate,
            status=status,
            created_by_id=SYSTEM_ACTOR_ID,
        ))

    def allowance(
        self,
        amount: Decimal | None,
        name: str = "Transport",
        status: str = "approved",
    ) -> AllowanceModel:
        return self._save(AllowanceModel(
            name=name, amount=amount, status=status, created_by_id=SYSTEM_ACTOR_ID,
        ))

    def signing_bonus(
        self,
        employee: EmployeeModel,
        amount: Decimal | None = Decimal("1000"),
        status: str = "approved",
        position_name: str = "Senior Engineer",
        with_policy: bool = True,
    ) -> EmployeeSigningBonusModel:
        policy_id = None
        if with_policy:
            policy = self._save(SigningBonusPolicyModel(
                position_name=position_name,
                amount=amount or Decimal("0"),
                created_by_id=SYSTEM_ACTOR_ID,
            ))
            policy_id = policy.id
        else:
            policy_id = uuid4()
        return self._save(EmployeeSigningBonusModel(
            employee_id=employee.id,
            policy_id=policy_id,
            given_amount=amount,
            status=status,
            created_by_id=SYSTEM_ACTOR_ID,
        ))

    def termination_benefit(
        self,
        employee: EmployeeModel,
        amount: Decimal | None = Decimal("2000"),
        status: str = "approved",
        name: str = "End of Service",
        terms: str | None = "One month per year of service",
    ) -> EmployeeTerminationBenefitModel:
        policy = self._save(TerminationBenefitPolicyModel(
            name=name,
            terms=terms,
            amount=amount or Decimal("0"),
            created_by_id=SYSTEM_ACTOR_ID,
        ))
        return self._save(EmployeeTerminationBenefitModel(
            employee_id=employee.id,
            policy_id=policy.id,
            given_amount=amount,
            status=status,
            created_by_id=SYSTEM_ACTOR_ID,
        ))

    def refund(
        self,
        employee: EmployeeModel,
        amount: Decimal | None = Decimal("150"),
        description: str = "Travel expenses",
        status: str = "pending",
    ) -> RefundModel:
        return self._save(RefundModel(
            employee_id=employee.id,
            description=description,
            amount=amount,
            status=status,
            created_by_id=SYSTEM_ACTOR_ID,
        ))

    def penalty(
        self,
        employee: EmployeeModel,
        amount: Decimal | None,
        recorded_on: date = date(2026, 2, 10),
        reason: str = "Late arrival",
    ) -> PenaltyModel:
        return self._save(PenaltyModel(
            employee_id=employee.id,
            reason=reason,
            amount=amount,
            recorded_on=recorded_on,
            created_by_id=SYSTEM_ACTOR_ID,
        ))

    def unpaid_leave(
        self,
        employee: EmployeeModel,
        start_date: date,
        end_date: date,
        status: str = "approved",
        paid: bool = False,
        name: str = "Unpaid Leave",
    ) -> LeaveRequestModel:
        leave_type = self._save(LeaveTypeModel(
            name=name, paid=paid, created_by_id=SYSTEM_ACTOR_ID,
        ))
        return self._save(LeaveRequestModel(
            employee_id=employee.id,
            leave_type_id=leave_type.id,
            start_date=start_date,
            end_date=end_date,
            status=status,
            created_by_id=SYSTEM_ACTOR_ID,
        ))


@pytest.fixture
def payroll_data(session) -> PayrollDataFactory:
    return PayrollDataFactory(session)

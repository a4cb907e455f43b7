"""
Config snapshot loader (``payroll_modules.execution.snapshot``).

Reads APPROVED tax rules, insurance brackets and allowances once per
calculation batch, so every employee in a run is priced against the same
configuration.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_kernel.db.types import ZERO, to_decimal
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.logging_config import get_logger
from payroll_modules.execution.models import (
    Allowance,
    ConfigSnapshot,
    InsuranceBracket,
    TaxRule,
)
from payroll_modules.sources.models import ConfigStatus
from payroll_modules.sources.orm import AllowanceModel, InsuranceBracketModel, TaxRuleModel

logger = get_logger("modules.payroll.execution.snapshot")


def numeric_or_zero(value: object, source: str, source_id: UUID | None, field: str) -> Decimal:
    """Coerce a stored amount to Decimal; a missing value counts as zero."""
    amount = to_decimal(value)
    if amount is None:
        logger.warning(
            "missing_numeric_defaulted",
            extra={
                "source": source,
                "source_id": str(source_id) if source_id else None,
                "field": field,
            },
        )
        return ZERO
    return amount


class ConfigSnapshotLoader:
    """Loads the approved payroll configuration visible at calculation time."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def load(self) -> ConfigSnapshot:
        approved = ConfigStatus.APPROVED.value

        tax_rows = self._session.execute(
            select(TaxRuleModel)
            .where(TaxRuleModel.status == approved)
            .order_by(TaxRuleModel.name, TaxRuleModel.id)
        ).scalars().all()

        bracket_rows = self._session.execute(
            select(InsuranceBracketModel)
            .where(InsuranceBracketModel.status == approved)
            .order_by(InsuranceBracketModel.min_salary, InsuranceBracketModel.id)
        ).scalars().all()

        allowance_rows = self._session.execute(
            select(AllowanceModel)
            .where(AllowanceModel.status == approved)
            .order_by(AllowanceModel.name, AllowanceModel.id)
        ).scalars().all()

        snapshot = ConfigSnapshot(
            taxes=tuple(
                TaxRule(
                    id=row.id,
                    name=row.name,
                    rate=numeric_or_zero(row.rate, "tax_rule", row.id, "rate"),
                )
                for row in tax_rows
            ),
            insurance_brackets=tuple(
                InsuranceBracket(
                    id=row.id,
                    name=row.name,
                    min_salary=to_decimal(row.min_salary),
                    max_salary=to_decimal(row.max_salary),
                    employee_rate=numeric_or_zero(
                        row.employee_rate, "insurance_bracket", row.id, "employee_rate",
                    ),
                    employer_rate=numeric_or_zero(
                        row.employer_rate, "insurance_bracket", row.id, "employer_rate",
                    ),
                )
                for row in bracket_rows
            ),
            allowances=tuple(
                Allowance(
                    id=row.id,
                    name=row.name,
                    amount=numeric_or_zero(row.amount, "allowance", row.id, "amount"),
                )
                for row in allowance_rows
            ),
            loaded_at=self._clock.now(),
        )

        logger.info(
            "config_snapshot_loaded",
            extra={
                "tax_rule_count": len(snapshot.taxes),
                "insurance_bracket_count": len(snapshot.insurance_brackets),
                "allowance_count": len(snapshot.allowances),
            },
        )
        return snapshot

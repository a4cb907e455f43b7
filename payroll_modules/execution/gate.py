"""
Pre-run gate, Phase 0 (``payroll_modules.execution.gate``).

Responsibility
--------------
Signing bonuses and termination benefits must be decided before a run is
initiated, so amounts shown to approvers cannot change mid-run.  This
service lists what is pending, records decisions and amount edits, and
answers whether Phase 0 is complete.

Audit relevance
---------------
Every decision and amount edit appends a hash-chained audit event; amount
edits carry an ``{old_amount, new_amount}`` diff.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from payroll_kernel.db.types import round_money, to_decimal
from payroll_kernel.exceptions import (
    InvalidDecisionError,
    MissingRequiredFieldError,
    PayrollValidationError,
    PendingItemNotEditableError,
    PendingItemNotFoundError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.audit_event import AuditAction
from payroll_kernel.services.auditor_service import AuditorService
from payroll_modules.execution.models import PendingItem, PendingItemKind, PendingItems
from payroll_modules.sources.models import BenefitStatus, BonusStatus
from payroll_modules.sources.orm import (
    EmployeeSigningBonusModel,
    EmployeeTerminationBenefitModel,
    SigningBonusPolicyModel,
    TerminationBenefitPolicyModel,
)

logger = get_logger("modules.payroll.execution.gate")

DECISIONS = frozenset({BonusStatus.APPROVED.value, BonusStatus.REJECTED.value})

_STATUSES = {
    PendingItemKind.SIGNING_BONUS: BonusStatus,
    PendingItemKind.TERMINATION_BENEFIT: BenefitStatus,
}

_ENTITY_TYPES = {
    PendingItemKind.SIGNING_BONUS: "SigningBonus",
    PendingItemKind.TERMINATION_BENEFIT: "TerminationBenefit",
}

_MODELS = {
    PendingItemKind.SIGNING_BONUS: EmployeeSigningBonusModel,
    PendingItemKind.TERMINATION_BENEFIT: EmployeeTerminationBenefitModel,
}

_NOUNS = {
    PendingItemKind.SIGNING_BONUS: "bonuses",
    PendingItemKind.TERMINATION_BENEFIT: "benefits",
}


class PreRunGateService:
    """
    Phase 0 review of signing bonuses and termination benefits.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session, auditor: AuditorService):
        self._session = session
        self._auditor = auditor

    # Queries

    def pending_counts(self) -> tuple[int, int]:
        """Return (pending bonuses, pending benefits)."""
        bonuses = self._session.execute(
            select(func.count()).select_from(EmployeeSigningBonusModel)
            .where(EmployeeSigningBonusModel.status == BonusStatus.PENDING.value)
        ).scalar_one()
        benefits = self._session.execute(
            select(func.count()).select_from(EmployeeTerminationBenefitModel)
            .where(EmployeeTerminationBenefitModel.status == BenefitStatus.PENDING.value)
        ).scalar_one()
        return bonuses, benefits

    def is_phase0_complete(self) -> bool:
        bonuses, benefits = self.pending_counts()
        return bonuses == 0 and benefits == 0

    def list_pending_items(self) -> PendingItems:
        bonus_rows = self._session.execute(
            select(EmployeeSigningBonusModel, SigningBonusPolicyModel.position_name)
            .outerjoin(
                SigningBonusPolicyModel,
                EmployeeSigningBonusModel.policy_id == SigningBonusPolicyModel.id,
            )
            .where(EmployeeSigningBonusModel.status == BonusStatus.PENDING.value)
            .order_by(EmployeeSigningBonusModel.created_at, EmployeeSigningBonusModel.id)
        ).all()

        benefit_rows = self._session.execute(
            select(EmployeeTerminationBenefitModel, TerminationBenefitPolicyModel.name)
            .outerjoin(
                TerminationBenefitPolicyModel,
                EmployeeTerminationBenefitModel.policy_id == TerminationBenefitPolicyModel.id,
            )
            .where(EmployeeTerminationBenefitModel.status == BenefitStatus.PENDING.value)
            .order_by(EmployeeTerminationBenefitModel.created_at, EmployeeTerminationBenefitModel.id)
        ).all()

        return PendingItems(
            bonuses=tuple(
                _to_item(PendingItemKind.SIGNING_BONUS, row, label)
                for row, label in bonus_rows
            ),
            benefits=tuple(
                _to_item(PendingItemKind.TERMINATION_BENEFIT, row, label)
                for row, label in benefit_rows
            ),
        )

    # Commands

    def decide(
        self,
        kind: PendingItemKind,
        item_id: UUID,
        decision: str | BonusStatus | BenefitStatus,
        actor_id: UUID,
    ) -> PendingItem:
        """
        Approve or reject a bonus or benefit.

        Raises:
            InvalidDecisionError: If decision is not approved/rejected.
            PendingItemNotFoundError: If the record does not exist.
            PendingItemNotEditableError: If the record was already paid.
        """
        value = getattr(decision, "value", decision)
        value = value.lower() if isinstance(value, str) else value
        if value not in DECISIONS:
            raise InvalidDecisionError(str(value))

        row = self._load(kind, item_id)
        if row.status == _STATUSES[kind].PAID.value:
            raise PendingItemNotEditableError(
                kind.value, str(item_id), row.status,
                f"Cannot change the decision on paid {_NOUNS[kind]}",
            )

        old_status = row.status
        row.status = value
        row.updated_by_id = actor_id
        self._session.flush()

        self._auditor.record_pending_item_decided(
            _ENTITY_TYPES[kind], row.id, actor_id, old_status, value,
        )
        logger.info(
            "pending_item_decided",
            extra={
                "item_kind": kind.value,
                "item_id": str(item_id),
                "old_status": old_status,
                "new_status": value,
            },
        )
        return _to_item(kind, row, None)

    def edit_amount(
        self,
        kind: PendingItemKind,
        item_id: UUID,
        amount: Decimal,
        actor_id: UUID,
    ) -> PendingItem:
        """
        Change the given amount of a PENDING bonus or benefit.

        Raises:
            PendingItemNotFoundError: If the record does not exist.
            PendingItemNotEditableError: If the record is not PENDING.
            PayrollValidationError: If the amount is negative.
        """
        row = self._load(kind, item_id)
        if row.status != _STATUSES[kind].PENDING.value:
            raise PendingItemNotEditableError(
                kind.value, str(item_id), row.status,
                f"Can only edit {_NOUNS[kind]} with PENDING status",
            )

        if amount is None:
            raise MissingRequiredFieldError("amount")
        new_amount = round_money(to_decimal(amount))
        if new_amount < 0:
            raise PayrollValidationError(f"Amount cannot be negative: {amount}")

        old_amount = to_decimal(row.given_amount)
        row.given_amount = new_amount
        row.updated_by_id = actor_id
        self._session.flush()

        self._auditor.record_amount_edit(
            entity_type=_ENTITY_TYPES[kind],
            entity_id=row.id,
            action=(
                AuditAction.BONUS_EDITED if kind == PendingItemKind.SIGNING_BONUS
                else AuditAction.BENEFIT_EDITED
            ),
            actor_id=actor_id,
            old_amount=old_amount,
            new_amount=new_amount,
        )
        logger.info(
            "pending_item_amount_edited",
            extra={
                "item_kind": kind.value,
                "item_id": str(item_id),
                "old_amount": str(old_amount) if old_amount is not None else None,
                "new_amount": str(new_amount),
            },
        )
        return _to_item(kind, row, None)

    def _load(self, kind: PendingItemKind, item_id: UUID):
        row = self._session.get(_MODELS[kind], item_id)
        if row is None:
            raise PendingItemNotFoundError(kind.value, str(item_id))
        return row


def _to_item(kind: PendingItemKind, row, label: str | None) -> PendingItem:
    return PendingItem(
        kind=kind,
        id=row.id,
        employee_id=row.employee_id,
        label=label,
        given_amount=to_decimal(row.given_amount),
        status=row.status,
    )

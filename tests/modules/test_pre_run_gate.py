"""
Tests for the Phase 0 pre-run gate.

Validates:
- Pending signing bonuses and termination benefits are listed with labels
- Decisions are validated, audited and refused on paid items
- Amount edits only apply to PENDING items and are audited as diffs
"""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_kernel.exceptions import (
    InvalidDecisionError,
    MissingRequiredFieldError,
    PayrollValidationError,
    PendingItemNotEditableError,
    PendingItemNotFoundError,
)
from payroll_kernel.models.audit_event import AuditAction
from payroll_modules.execution.models import PendingItemKind
from payroll_modules.sources.models import BonusStatus
from tests.modules.conftest import TEST_SPECIALIST_ID

BONUS = PendingItemKind.SIGNING_BONUS
BENEFIT = PendingItemKind.TERMINATION_BENEFIT


@pytest.fixture
def employee(payroll_data):
    return payroll_data.employee(payroll_data.pay_grade())


class TestListPendingItems:

    def test_empty(self, service):
        items = service.list_pending_items()
        assert items.is_empty
        assert service.is_phase0_complete()

    def test_labels_come_from_policies(self, service, payroll_data, employee):
        bonus = payroll_data.signing_bonus(employee, Decimal("1200"), status="pending")
        benefit = payroll_data.termination_benefit(employee, status="pending", name="Gratuity")
        payroll_data.signing_bonus(employee, status="approved")

        items = service.list_pending_items()

        (pending_bonus,) = items.bonuses
        assert pending_bonus.id == bonus.id
        assert pending_bonus.label == "Senior Engineer"
        assert pending_bonus.given_amount == Decimal("1200")
        (pending_benefit,) = items.benefits
        assert pending_benefit.id == benefit.id
        assert pending_benefit.label == "Gratuity"
        assert not service.is_phase0_complete()

    def test_orphan_bonus_has_no_label(self, service, payroll_data, employee):
        payroll_data.signing_bonus(employee, status="pending", with_policy=False)

        (item,) = service.list_pending_items().bonuses
        assert item.label is None


class TestDecide:

    @pytest.mark.parametrize("decision", ["approved", "REJECTED", BonusStatus.APPROVED])
    def test_accepts_decision(self, service, payroll_data, employee, decision):
        bonus = payroll_data.signing_bonus(employee, status="pending")

        item = service.decide_pending_item(BONUS, bonus.id, decision, TEST_SPECIALIST_ID)

        assert item.status in ("approved", "rejected")
        assert service.is_phase0_complete()

    def test_decision_is_audited(self, service, auditor, payroll_data, employee):
        benefit = payroll_data.termination_benefit(employee, status="pending")

        service.decide_pending_item(BENEFIT, benefit.id, "rejected", TEST_SPECIALIST_ID)

        trace = auditor.get_trace("TerminationBenefit", benefit.id)
        assert trace.last_action == AuditAction.PENDING_ITEM_DECIDED
        assert trace.entries[-1].payload == {"old_status": "pending", "new_status": "rejected"}

    @pytest.mark.parametrize("decision", ["paid", "pending", "maybe", ""])
    def test_invalid_decision(self, service, payroll_data, employee, decision):
        bonus = payroll_data.signing_bonus(employee, status="pending")

        with pytest.raises(InvalidDecisionError):
            service.decide_pending_item(BONUS, bonus.id, decision, TEST_SPECIALIST_ID)

    def test_paid_item_is_final(self, service, payroll_data, employee):
        bonus = payroll_data.signing_bonus(employee, status="paid")

        with pytest.raises(PendingItemNotEditableError):
            service.decide_pending_item(BONUS, bonus.id, "rejected", TEST_SPECIALIST_ID)

    def test_unknown_item(self, service):
        with pytest.raises(PendingItemNotFoundError):
            service.decide_pending_item(BENEFIT, uuid4(), "approved", TEST_SPECIALIST_ID)


class TestEditAmount:

    def test_edit_pending_bonus(self, service, auditor, payroll_data, employee):
        bonus = payroll_data.signing_bonus(employee, Decimal("1000"), status="pending")

        item = service.edit_pending_item_amount(BONUS, bonus.id, Decimal("1500"), TEST_SPECIALIST_ID)

        assert item.given_amount == Decimal("1500")
        trace = auditor.get_trace("SigningBonus", bonus.id)
        assert trace.last_action == AuditAction.BONUS_EDITED
        assert trace.entries[-1].payload == {"old_amount": "1000", "new_amount": "1500"}

    def test_edit_pending_benefit(self, service, auditor, payroll_data, employee):
        benefit = payroll_data.termination_benefit(employee, Decimal("2000"), status="pending")

        service.edit_pending_item_amount(BENEFIT, benefit.id, Decimal("2500.50"), TEST_SPECIALIST_ID)

        trace = auditor.get_trace("TerminationBenefit", benefit.id)
        assert trace.last_action == AuditAction.BENEFIT_EDITED
        assert trace.entries[-1].payload["new_amount"] == "2500.5"

    @pytest.mark.parametrize("status", ["approved", "rejected", "paid"])
    def test_only_pending_is_editable(self, service, payroll_data, employee, status):
        bonus = payroll_data.signing_bonus(employee, status=status)

        with pytest.raises(PendingItemNotEditableError):
            service.edit_pending_item_amount(BONUS, bonus.id, Decimal("1"), TEST_SPECIALIST_ID)

    def test_negative_amount(self, service, payroll_data, employee):
        bonus = payroll_data.signing_bonus(employee, status="pending")

        with pytest.raises(PayrollValidationError):
            service.edit_pending_item_amount(BONUS, bonus.id, Decimal("-1"), TEST_SPECIALIST_ID)

    def test_amount_required(self, service, payroll_data, employee):
        bonus = payroll_data.signing_bonus(employee, status="pending")

        with pytest.raises(MissingRequiredFieldError):
            service.edit_pending_item_amount(BONUS, bonus.id, None, TEST_SPECIALIST_ID)

"""Payroll Execution Workflows.

State machine for payroll run approval and execution.  Transitions carry
the roles allowed to fire them; the owning service checks roles, guards
and the compare-and-set update.
"""

from payroll_kernel.domain.workflow import Guard, Transition, Workflow
from payroll_kernel.logging_config import get_logger
from payroll_modules.execution.models import PayrollRole, PayrollRunStatus

logger = get_logger("modules.payroll.execution.workflows")

DRAFT = PayrollRunStatus.DRAFT.value
UNDER_REVIEW = PayrollRunStatus.UNDER_REVIEW.value
PENDING_FINANCE_APPROVAL = PayrollRunStatus.PENDING_FINANCE_APPROVAL.value
APPROVED = PayrollRunStatus.APPROVED.value
LOCKED = PayrollRunStatus.LOCKED.value
REJECTED = PayrollRunStatus.REJECTED.value

SPECIALIST = (PayrollRole.PAYROLL_SPECIALIST.value,)
MANAGER = (PayrollRole.PAYROLL_MANAGER.value,)
FINANCE = (PayrollRole.FINANCE_STAFF.value,)

# Payslips may be recalculated or edited only in these states
EDITABLE_STATES = (PayrollRunStatus.DRAFT, PayrollRunStatus.REJECTED)


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

PHASE0_COMPLETE = Guard(
    name="phase0_complete",
    description="No signing bonus or termination benefit is pending review",
)

PERIOD_AVAILABLE = Guard(
    name="period_available",
    description="No other run covers the target (period, entity)",
)

logger.info(
    "payroll_run_guards_defined",
    extra={
        "guards": [
            PHASE0_COMPLETE.name,
            PERIOD_AVAILABLE.name,
        ],
    },
)


# -----------------------------------------------------------------------------
# Payroll Run Workflow
# -----------------------------------------------------------------------------

PAYROLL_RUN_WORKFLOW = Workflow(
    name="payroll_run",
    description="Payroll run review, approval and execution lifecycle",
    initial_state=DRAFT,
    states=(
        DRAFT,
        UNDER_REVIEW,
        PENDING_FINANCE_APPROVAL,
        APPROVED,
        LOCKED,
        REJECTED,
    ),
    transitions=(
        # Re-initiating an existing (period, entity) resets it to draft
        Transition(DRAFT, DRAFT, action="initiate", guard=PHASE0_COMPLETE, allowed_roles=SPECIALIST),
        Transition(UNDER_REVIEW, DRAFT, action="initiate", guard=PHASE0_COMPLETE, allowed_roles=SPECIALIST),
        Transition(
            PENDING_FINANCE_APPROVAL, DRAFT,
            action="initiate", guard=PHASE0_COMPLETE, allowed_roles=SPECIALIST,
        ),
        Transition(APPROVED, DRAFT, action="initiate", guard=PHASE0_COMPLETE, allowed_roles=SPECIALIST),
        Transition(REJECTED, DRAFT, action="initiate", guard=PHASE0_COMPLETE, allowed_roles=SPECIALIST),

        Transition(DRAFT, DRAFT, action="calculate", allowed_roles=SPECIALIST),
        Transition(REJECTED, REJECTED, action="calculate", allowed_roles=SPECIALIST),

        Transition(DRAFT, UNDER_REVIEW, action="submit_for_review", allowed_roles=SPECIALIST),
        Transition(DRAFT, REJECTED, action="reject_period", allowed_roles=SPECIALIST, requires_reason=True),
        Transition(DRAFT, DRAFT, action="edit_period", guard=PERIOD_AVAILABLE, allowed_roles=SPECIALIST),
        Transition(REJECTED, DRAFT, action="edit_period", guard=PERIOD_AVAILABLE, allowed_roles=SPECIALIST),

        Transition(UNDER_REVIEW, PENDING_FINANCE_APPROVAL, action="approve_by_manager", allowed_roles=MANAGER),
        Transition(UNDER_REVIEW, REJECTED, action="reject_by_manager", allowed_roles=MANAGER, requires_reason=True),

        Transition(PENDING_FINANCE_APPROVAL, APPROVED, action="approve_by_finance", allowed_roles=FINANCE),
        Transition(
            PENDING_FINANCE_APPROVAL, REJECTED,
            action="reject_by_finance", allowed_roles=FINANCE, requires_reason=True,
        ),

        Transition(APPROVED, LOCKED, action="execute", allowed_roles=SPECIALIST),
        # PAID markers written by execute are left in place
        Transition(LOCKED, APPROVED, action="unfreeze", allowed_roles=MANAGER, requires_reason=True),
    ),
)

logger.info(
    "payroll_run_workflow_registered",
    extra={
        "workflow_name": PAYROLL_RUN_WORKFLOW.name,
        "state_count": len(PAYROLL_RUN_WORKFLOW.states),
        "transition_count": len(PAYROLL_RUN_WORKFLOW.transitions),
        "initial_state": PAYROLL_RUN_WORKFLOW.initial_state,
    },
)

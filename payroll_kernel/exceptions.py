"""
Typed Exception Hierarchy for the Payroll Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Payroll operations move real money. Callers (controllers, batch scripts,
operators) must react to failures precisely, so every error is:
  1. A TYPED exception class (catch by type, not message)
  2. Carrying a CODE attribute (machine-readable, API-safe)
  3. Carrying structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        service.approve_by_finance(run_id, finance_id)
    except Exception as e:
        if "status" in str(e):  # FRAGILE - message might change
            ...

Example - RIGHT way:
    try:
        service.approve_by_finance(run_id, finance_id)
    except InvalidRunTransitionError as e:
        api_response(code=e.code, status=e.current_status, action=e.action)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PayrollKernelError (base)
    |
    +-- PayrollValidationError
    |   +-- MissingRequiredFieldError
    |   +-- InvalidPeriodError
    |   +-- Phase0IncompleteError
    |   +-- InvalidRunTransitionError
    |   +-- PayslipNotEditableError
    |   +-- PendingItemNotEditableError
    |   +-- InvalidDecisionError
    |   +-- AnomalyNotResolvedError
    |   +-- DuplicateRunError
    |   +-- RunLockedError
    |
    +-- PayrollNotFoundError
    |   +-- PayrollRunNotFoundError
    |   +-- PayslipNotFoundError
    |   +-- PendingItemNotFoundError
    |
    +-- AuthorizationError
    |   +-- UnauthorizedTransitionError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- AuditError
        +-- AuditChainBrokenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                        | When Raised
--------------|-----------------------------|-----------------------------------
Validation    | MISSING_REQUIRED_FIELD      | Initiation field absent
              | INVALID_PERIOD              | Period string cannot be parsed
              | PHASE0_INCOMPLETE           | Pending bonus/benefit decisions
              | INVALID_RUN_TRANSITION      | Action not valid from run status
              | PAYSLIP_NOT_EDITABLE        | Run not DRAFT/REJECTED
              | PENDING_ITEM_NOT_EDITABLE   | Bonus/benefit not PENDING
              | INVALID_DECISION            | Decision not APPROVED/REJECTED
              | ANOMALY_NOT_RESOLVED        | Unresolve without a resolution
              | DUPLICATE_RUN               | (period, entity) already taken
              | RUN_LOCKED                  | Run busy or already paid
--------------|-----------------------------|-----------------------------------
Not found     | PAYROLL_RUN_NOT_FOUND       | Unknown run id
              | PAYSLIP_NOT_FOUND           | Unknown payslip id
              | PENDING_ITEM_NOT_FOUND      | Unknown bonus/benefit id
--------------|-----------------------------|-----------------------------------
Authorization | UNAUTHORIZED_TRANSITION     | Role may not perform action
--------------|-----------------------------|-----------------------------------
Concurrency   | OPTIMISTIC_LOCK_CONFLICT    | Run advanced concurrently
--------------|-----------------------------|-----------------------------------
Audit         | AUDIT_CHAIN_BROKEN          | Hash chain validation failed

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Validation and not-found errors are surfaced directly; never retried.
2. ConcurrencyError may be retried after re-reading the run.
3. AuditChainBrokenError is critical: halt processing and investigate.
"""


class PayrollKernelError(Exception):
    """
    Base exception for all payroll errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PAYROLL_KERNEL_ERROR"


# Validation errors


class PayrollValidationError(PayrollKernelError):
    """Base exception for caller-correctable validation failures."""

    code: str = "PAYROLL_VALIDATION_ERROR"


class MissingRequiredFieldError(PayrollValidationError):
    """A required input field was not supplied."""

    code: str = "MISSING_REQUIRED_FIELD"

    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f"{field_name} is required")


class InvalidPeriodError(PayrollValidationError):
    """Payroll period could not be parsed into a date."""

    code: str = "INVALID_PERIOD"

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid payroll period: {value!r}")


class Phase0IncompleteError(PayrollValidationError):
    """Signing bonuses or termination benefits are still pending review."""

    code: str = "PHASE0_INCOMPLETE"

    def __init__(self, pending_bonuses: int, pending_benefits: int):
        self.pending_bonuses = pending_bonuses
        self.pending_benefits = pending_benefits
        super().__init__(
            "Phase 0 has pending items. Resolve before initiating payroll."
        )


class InvalidRunTransitionError(PayrollValidationError):
    """Action is not permitted from the run's current status."""

    code: str = "INVALID_RUN_TRANSITION"

    def __init__(self, run_id: str, current_status: str, action: str):
        self.run_id = run_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} payroll run {run_id}: status is {current_status}"
        )


class RunAlreadyExecutedError(InvalidRunTransitionError):
    """Run has disbursed payments; its payslips are final."""

    code: str = "RUN_ALREADY_EXECUTED"

    def __init__(self, run_id: str, current_status: str, action: str):
        self.run_id = run_id
        self.current_status = current_status
        self.action = action
        PayrollValidationError.__init__(
            self, f"Cannot {action} payroll run {run_id}: payments were already disbursed"
        )


class PayslipNotEditableError(PayrollValidationError):
    """Payslip belongs to a run that is not DRAFT or REJECTED."""

    code: str = "PAYSLIP_NOT_EDITABLE"

    def __init__(self, payslip_id: str, run_status: str):
        self.payslip_id = payslip_id
        self.run_status = run_status
        super().__init__(
            f"Cannot update payslip {payslip_id} in current run status {run_status}"
        )


class PendingItemNotEditableError(PayrollValidationError):
    """Bonus or benefit is not in a state that permits this change."""

    code: str = "PENDING_ITEM_NOT_EDITABLE"

    def __init__(self, item_kind: str, item_id: str, status: str, message: str):
        self.item_kind = item_kind
        self.item_id = item_id
        self.status = status
        super().__init__(message)


class InvalidDecisionError(PayrollValidationError):
    """Phase 0 decision must be APPROVED or REJECTED."""

    code: str = "INVALID_DECISION"

    def __init__(self, decision: str):
        self.decision = decision
        super().__init__(f"Decision must be approved or rejected, got {decision!r}")


class AnomalyNotResolvedError(PayrollValidationError):
    """Unresolve was requested for an anomaly with no resolution."""

    code: str = "ANOMALY_NOT_RESOLVED"

    def __init__(self, payslip_id: str):
        self.payslip_id = payslip_id
        super().__init__("Anomaly was not resolved")


class DuplicateRunError(PayrollValidationError):
    """Another run already covers the requested (period, entity) pair."""

    code: str = "DUPLICATE_RUN"

    def __init__(self, period: str, entity: str, existing_run_id: str):
        self.period = period
        self.entity = entity
        self.existing_run_id = existing_run_id
        super().__init__(
            f"Payroll run {existing_run_id} already exists for {entity} {period}"
        )


class RunLockedError(PayrollValidationError):
    """Run is held by another calculation or has already been paid."""

    code: str = "RUN_LOCKED"

    def __init__(self, run_id: str, reason: str):
        self.run_id = run_id
        self.reason = reason
        super().__init__(f"Payroll run {run_id} is locked: {reason}")


# Not-found errors


class PayrollNotFoundError(PayrollKernelError):
    """Base exception for missing records."""

    code: str = "PAYROLL_NOT_FOUND"


class PayrollRunNotFoundError(PayrollNotFoundError):
    """Payroll run with given id was not found."""

    code: str = "PAYROLL_RUN_NOT_FOUND"

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Payroll run not found: {run_id}")


class PayslipNotFoundError(PayrollNotFoundError):
    """Payslip with given id was not found."""

    code: str = "PAYSLIP_NOT_FOUND"

    def __init__(self, payslip_id: str):
        self.payslip_id = payslip_id
        super().__init__(f"Payslip not found: {payslip_id}")


class PendingItemNotFoundError(PayrollNotFoundError):
    """Signing bonus or termination benefit record was not found."""

    code: str = "PENDING_ITEM_NOT_FOUND"

    def __init__(self, item_kind: str, item_id: str):
        self.item_kind = item_kind
        self.item_id = item_id
        super().__init__(f"{item_kind} record not found: {item_id}")


# Authorization errors


class AuthorizationError(PayrollKernelError):
    """Base exception for role-gating failures."""

    code: str = "AUTHORIZATION_ERROR"


class UnauthorizedTransitionError(AuthorizationError):
    """Actor role may not perform the requested run action."""

    code: str = "UNAUTHORIZED_TRANSITION"

    def __init__(self, action: str, actor_role: str, allowed_roles: tuple[str, ...]):
        self.action = action
        self.actor_role = actor_role
        self.allowed_roles = allowed_roles
        super().__init__(
            f"Role {actor_role} may not {action}; allowed: {', '.join(allowed_roles)}"
        )


# Concurrency errors


class ConcurrencyError(PayrollKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Audit errors


class AuditError(PayrollKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )

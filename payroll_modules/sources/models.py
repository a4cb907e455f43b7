"""
Collaborator Status Vocabularies (``payroll_modules.sources.models``).

Responsibility
--------------
Enumerations for the statuses carried by collaborator rows: configuration
approval, employee status, signing-bonus and termination-benefit review,
refunds and leave requests.  The payroll engine reads these rows; it only
writes the PAID transition (execution sweep) and Phase 0 decisions.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.
"""

from enum import Enum


class ConfigStatus(Enum):
    """Approval state of a tax rule, insurance bracket or allowance."""
    DRAFT = "draft"
    APPROVED = "approved"
    REJECTED = "rejected"


class EmployeeStatus(Enum):
    """Employment states.  Only ACTIVE employees are paid."""
    ACTIVE = "active"
    ON_LEAVE = "on_leave"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"


class BonusStatus(Enum):
    """Signing bonus review states."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"


class BenefitStatus(Enum):
    """Termination/resignation benefit review states."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"


class RefundStatus(Enum):
    """Refund states.  PENDING refunds are added to the next payslip."""
    PENDING = "pending"
    PAID = "paid"


class LeaveStatus(Enum):
    """Leave request states."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

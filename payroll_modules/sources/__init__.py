"""
Collaborator Data (``payroll_modules.sources``).

Tables owned by upstream HR systems and read by the payroll engine.
"""

from payroll_modules.sources.models import (
    BenefitStatus,
    BonusStatus,
    ConfigStatus,
    EmployeeStatus,
    LeaveStatus,
    RefundStatus,
)

__all__ = [
    "BenefitStatus",
    "BonusStatus",
    "ConfigStatus",
    "EmployeeStatus",
    "LeaveStatus",
    "RefundStatus",
]

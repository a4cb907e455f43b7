"""Services for the payroll kernel (write side)."""

from payroll_kernel.services.auditor_service import AuditorService, AuditTrace, AuditTraceEntry
from payroll_kernel.services.sequence_service import SequenceService

__all__ = [
    "AuditorService",
    "AuditTrace",
    "AuditTraceEntry",
    "SequenceService",
]

"""Kernel ORM models."""

from payroll_kernel.models.audit_event import AuditAction, AuditEvent
from payroll_kernel.services.sequence_service import SequenceCounter

__all__ = [
    "AuditAction",
    "AuditEvent",
    "SequenceCounter",
]

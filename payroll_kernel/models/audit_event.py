"""
Module: payroll_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; services never UPDATE or DELETE them.
    - Hash chain integrity: hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash).  Validated by AuditorService.
    - seq is monotonically increasing, allocated by SequenceService.

Audit relevance:
    AuditEvent IS the payroll audit log.  Every run state change, payslip
    edit, Phase 0 decision or amount edit, payment sweep and anomaly
    resolution produces an AuditEvent.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Types of auditable payroll actions.

    Contract: Every member represents one class of payroll event that
    MUST be recorded in the audit chain.
    """

    # Run lifecycle
    PAYROLL_RUN_INITIATED = "payroll_run_initiated"
    PAYROLL_RUN_CALCULATED = "payroll_run_calculated"
    PAYROLL_RUN_TRANSITIONED = "payroll_run_transitioned"
    PAYROLL_RUN_PERIOD_EDITED = "payroll_run_period_edited"
    PAYROLL_EXECUTED = "payroll_executed"
    PAYMENTS_RECONCILED = "payments_reconciled"

    # Manual adjustments
    PAYSLIP_EDITED = "payslip_edited"
    BONUS_EDITED = "bonus_edited"
    BENEFIT_EDITED = "benefit_edited"
    PENDING_ITEM_DECIDED = "pending_item_decided"

    # Anomaly overlay
    ANOMALY_RESOLVED = "anomaly_resolved"
    ANOMALY_UNRESOLVED = "anomaly_unresolved"


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Guarantees:
        - seq is globally unique and monotonically increasing.
        - hash = H(entity_type | entity_id | action | payload_hash | prev_hash).
        - prev_hash is None only for the genesis event.

    Non-goals:
        - This model does NOT enforce hash correctness at INSERT time;
          that is the responsibility of AuditorService.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    # e.g. "PayrollRun", "Payslip", "SigningBonus"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # Null for the first event in the chain
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None

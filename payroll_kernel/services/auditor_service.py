"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Creates immutable, hash-chained audit events for every significant
    payroll state change and manual adjustment.  Provides chain validation
    for tamper detection and trace queries for forensic review.

Architecture position:
    Kernel > Services -- imperative shell, called by the payroll execution
    facade, the pre-run gate, the payslip editor and the anomaly overlay.

Invariants enforced:
    - Sequence monotonicity via SequenceService (never raw SQL max+1).
    - Audit chain integrity: every event carries a cryptographic link to
      its predecessor.
    - Append-only: audit events are never modified or deleted.

Failure modes:
    - AuditChainBrokenError: Recomputed hash does not match stored hash,
      or prev_hash does not match the predecessor's hash.

Audit relevance:
    This IS the audit service.  All audit events flow through
    ``_create_audit_event()`` which enforces hash chain linkage before
    persisting.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.exceptions import AuditChainBrokenError
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.audit_event import AuditAction, AuditEvent
from payroll_kernel.services.sequence_service import SequenceService
from payroll_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """
    Complete audit trace for an entity.

    Contains all audit events in chronological order.
    """

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def first_action(self) -> AuditAction | None:
        return self.entries[0].action if self.entries else None

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(e.action for e in self.entries)


class AuditorService:
    """
    Service for creating and validating tamper-evident audit events.

    Guarantees:
        - Every audit event's ``hash`` is a deterministic function of
          ``(entity_type, entity_id, action, payload_hash, prev_hash)``.
        - Payloads are stored in canonical JSON form, so Decimal amounts
          are persisted as normalized strings.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        """Get the hash of the most recent audit event."""
        last_event = self._session.execute(
            select(AuditEvent)
            .order_by(AuditEvent.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

        return last_event.hash if last_event else None

    def _create_audit_event(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """
        Create a new audit event with hash chain linkage.

        Postconditions:
            - A new ``AuditEvent`` row is flushed with a monotonically
              increasing ``seq`` and a valid hash chain link.
        """
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)

        prev_hash = self._get_last_hash()

        payload_data = to_json_safe(payload or {})
        computed_payload_hash = hash_payload(payload_data)

        event_hash = hash_audit_event(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=payload_data,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )

        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )

        return audit_event

    # Domain-specific recording methods

    def record_run_transition(
        self,
        run_pk: UUID,
        run_id: str,
        action: str,
        from_status: str | None,
        to_status: str,
        actor_id: UUID,
        reason: str | None = None,
    ) -> AuditEvent:
        """Record a payroll run moving between lifecycle states."""
        payload: dict[str, Any] = {
            "run_id": run_id,
            "transition": action,
            "from_status": from_status,
            "to_status": to_status,
        }
        if reason:
            payload["reason"] = reason
        return self._create_audit_event(
            entity_type="PayrollRun",
            entity_id=run_pk,
            action=AuditAction.PAYROLL_RUN_TRANSITIONED,
            actor_id=actor_id,
            payload=payload,
        )

    def record_run_event(
        self,
        run_pk: UUID,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any],
    ) -> AuditEvent:
        """Record initiation, calculation, execution or reconciliation."""
        return self._create_audit_event(
            entity_type="PayrollRun",
            entity_id=run_pk,
            action=action,
            actor_id=actor_id,
            payload=payload,
        )

    def record_amount_edit(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        old_amount: Decimal | None,
        new_amount: Decimal,
    ) -> AuditEvent:
        """
        Record a manual amount adjustment.

        Preconditions:
            - ``action`` is BONUS_EDITED or BENEFIT_EDITED.
        """
        return self._create_audit_event(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            payload={"old_amount": old_amount, "new_amount": new_amount},
        )

    def record_pending_item_decided(
        self,
        entity_type: str,
        entity_id: UUID,
        actor_id: UUID,
        old_status: str,
        new_status: str,
    ) -> AuditEvent:
        """Record a Phase 0 approve/reject decision."""
        return self._create_audit_event(
            entity_type=entity_type,
            entity_id=entity_id,
            action=AuditAction.PENDING_ITEM_DECIDED,
            actor_id=actor_id,
            payload={"old_status": old_status, "new_status": new_status},
        )

    def record_payslip_edited(
        self,
        payslip_id: UUID,
        run_id: str,
        actor_id: UUID,
        changed_fields: list[str],
        old_net_pay: Decimal,
        new_net_pay: Decimal,
    ) -> AuditEvent:
        """Record a manual payslip override and recompute."""
        return self._create_audit_event(
            entity_type="Payslip",
            entity_id=payslip_id,
            action=AuditAction.PAYSLIP_EDITED,
            actor_id=actor_id,
            payload={
                "run_id": run_id,
                "changed_fields": changed_fields,
                "old_net_pay": old_net_pay,
                "new_net_pay": new_net_pay,
            },
        )

    def record_anomaly_resolution(
        self,
        payslip_id: UUID,
        actor_id: UUID,
        resolved: bool,
        notes: str | None = None,
    ) -> AuditEvent:
        """Record an anomaly being resolved or reopened."""
        return self._create_audit_event(
            entity_type="Payslip",
            entity_id=payslip_id,
            action=(
                AuditAction.ANOMALY_RESOLVED if resolved
                else AuditAction.ANOMALY_UNRESOLVED
            ),
            actor_id=actor_id,
            payload={"notes": notes} if resolved else {},
        )

    # Chain validation

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Raises:
            AuditChainBrokenError: If chain validation fails at any point.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        if not events:
            return True

        if events[0].prev_hash is not None:
            logger.critical(
                "audit_chain_broken",
                extra={"audit_event_id": str(events[0].id), "seq": events[0].seq},
            )
            raise AuditChainBrokenError(
                str(events[0].id),
                "None",
                events[0].prev_hash,
            )

        for i, event in enumerate(events):
            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                action=event.action,
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )

            if event.hash != expected_hash or hash_payload(event.payload or {}) != event.payload_hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={"audit_event_id": str(event.id), "seq": event.seq},
                )
                raise AuditChainBrokenError(
                    str(event.id),
                    expected_hash,
                    event.hash,
                )

            if i > 0:
                expected_prev = events[i - 1].hash
                if event.prev_hash != expected_prev:
                    logger.critical(
                        "audit_chain_broken",
                        extra={"audit_event_id": str(event.id), "seq": event.seq},
                    )
                    raise AuditChainBrokenError(
                        str(event.id),
                        expected_prev,
                        event.prev_hash or "None",
                    )

        logger.info(
            "audit_chain_valid",
            extra={"event_count": len(events)},
        )
        return True

    # Trace and query methods

    def get_trace(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> AuditTrace:
        """Get the complete audit trace for an entity, oldest first."""
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        entries = tuple(
            AuditTraceEntry(
                seq=event.seq,
                action=AuditAction(event.action),
                occurred_at=event.occurred_at,
                actor_id=event.actor_id,
                payload=event.payload or {},
                hash=event.hash,
            )
            for event in events
        )

        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=entries,
        )

    def get_recent_events(
        self,
        limit: int = 100,
        actions: tuple[AuditAction, ...] | None = None,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events, most recent first.

        Args:
            limit: Maximum number of events to return.
            actions: Restrict to these action types.
        """
        stmt = select(AuditEvent)
        if actions:
            stmt = stmt.where(AuditEvent.action.in_([a.value for a in actions]))
        result = self._session.execute(
            stmt.order_by(AuditEvent.seq.desc()).limit(limit)
        )
        return list(result.scalars().all())

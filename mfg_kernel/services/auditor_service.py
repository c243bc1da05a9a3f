"""
AuditorService -- hash-chained audit trail.

Responsibility:
    Writes append-only AuditEvent rows for the actions the surrounding ERP
    must be able to account for: manual stock adjustments and status
    transfers, planning runs (executed, failed, deleted) and automatic
    purchase request generation.  Validates the chain on demand.

Architecture position:
    Kernel > Services.  Called by the inventory workflows and the MRP
    module.  Flushes only.

Invariants enforced:
    - seq comes from SequenceService.  Allocating it locks the audit
      counter row, so reading the previous hash afterwards is race free.
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash).
    - Payloads are stored in canonical JSON form (Decimal -> str), so the
      stored payload re-hashes to payload_hash.

Failure modes:
    - AuditChainBrokenError from validate_chain() on any hash or link
      mismatch.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from mfg_kernel.domain.clock import Clock, SystemClock
from mfg_kernel.exceptions import AuditChainBrokenError
from mfg_kernel.logging_config import get_logger
from mfg_kernel.models.audit_event import AuditAction, AuditEvent
from mfg_kernel.services.sequence_service import SequenceService
from mfg_kernel.utils.hashing import canonicalize_json, hash_audit_event, hash_payload

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    seq: int
    action: str
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit events of one entity, oldest first."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[str, ...]:
        return tuple(e.action for e in self.entries)


class AuditorService:
    """Creates and validates audit events.  Never commits."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        last_event = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq.desc()).limit(1)
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
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()

        payload_data = json.loads(canonicalize_json(payload or {}))
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
                "audit_seq": seq,
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
            },
        )
        return audit_event

    # Ledger

    def record_adjustment(
        self,
        balance_id: UUID,
        actor_id: UUID,
        *,
        item_id: UUID,
        warehouse_id: UUID,
        bucket: str,
        delta: Any,
        reason: str,
        reference_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="InventoryBalance",
            entity_id=balance_id,
            action=AuditAction.INVENTORY_ADJUSTED,
            actor_id=actor_id,
            payload={
                "item_id": item_id,
                "warehouse_id": warehouse_id,
                "bucket": bucket,
                "delta": delta,
                "reason": reason,
                "reference_id": reference_id,
            },
        )

    def record_status_transfer(
        self,
        balance_id: UUID,
        actor_id: UUID,
        *,
        item_id: UUID,
        warehouse_id: UUID,
        from_bucket: str,
        to_bucket: str,
        quantity: Any,
        reason: str,
        reference_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="InventoryBalance",
            entity_id=balance_id,
            action=AuditAction.INVENTORY_TRANSFERRED,
            actor_id=actor_id,
            payload={
                "item_id": item_id,
                "warehouse_id": warehouse_id,
                "from_bucket": from_bucket,
                "to_bucket": to_bucket,
                "quantity": quantity,
                "reason": reason,
                "reference_id": reference_id,
            },
        )

    # Planning runs

    def record_mrp_executed(
        self,
        run_id: UUID,
        actor_id: UUID,
        run_number: str,
        planning_horizon_days: int,
        total_requirements: int,
        total_shortages: int,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="MRPRun",
            entity_id=run_id,
            action=AuditAction.MRP_EXECUTED,
            actor_id=actor_id,
            payload={
                "run_number": run_number,
                "planning_horizon_days": planning_horizon_days,
                "total_requirements": total_requirements,
                "total_shortages": total_shortages,
            },
        )

    def record_mrp_failed(
        self, run_id: UUID, actor_id: UUID, run_number: str, error: str,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="MRPRun",
            entity_id=run_id,
            action=AuditAction.MRP_FAILED,
            actor_id=actor_id,
            payload={"run_number": run_number, "error": error},
        )

    def record_mrp_run_deleted(
        self, run_id: UUID, actor_id: UUID, run_number: str, requirement_count: int,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="MRPRun",
            entity_id=run_id,
            action=AuditAction.MRP_RUN_DELETED,
            actor_id=actor_id,
            payload={"run_number": run_number, "requirement_count": requirement_count},
        )

    # Procurement

    def record_pr_auto_generated(
        self,
        pr_id: UUID,
        actor_id: UUID,
        *,
        pr_number: str,
        run_id: UUID,
        item_id: UUID,
        total_quantity: Any,
        requirement_ids: list[UUID],
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="PurchaseRequest",
            entity_id=pr_id,
            action=AuditAction.PR_AUTO_GENERATED,
            actor_id=actor_id,
            payload={
                "pr_number": pr_number,
                "mrp_run_id": run_id,
                "item_id": item_id,
                "total_quantity": total_quantity,
                "requirement_ids": sorted(str(r) for r in requirement_ids),
            },
        )

    def record_prs_generated(
        self,
        run_id: UUID,
        actor_id: UUID,
        pr_count: int,
        skipped_count: int,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="MRPRun",
            entity_id=run_id,
            action=AuditAction.PRS_GENERATED_FROM_MRP,
            actor_id=actor_id,
            payload={"pr_count": pr_count, "skipped_count": skipped_count},
        )

    # Validation and queries

    def validate_chain(self) -> bool:
        """
        Recompute every hash and link in seq order.

        Raises:
            AuditChainBrokenError: at the first mismatch.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        previous: AuditEvent | None = None
        for event in events:
            expected_prev = previous.hash if previous is not None else None
            if event.prev_hash != expected_prev:
                logger.critical(
                    "audit_chain_broken",
                    extra={"audit_event_id": str(event.id), "check": "link"},
                )
                raise AuditChainBrokenError(
                    str(event.id), str(expected_prev), str(event.prev_hash),
                )

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
                    extra={"audit_event_id": str(event.id), "check": "hash"},
                )
                raise AuditChainBrokenError(str(event.id), expected_hash, event.hash)
            previous = event

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(
                AuditTraceEntry(
                    seq=e.seq,
                    action=e.action,
                    occurred_at=e.occurred_at,
                    actor_id=e.actor_id,
                    payload=e.payload or {},
                    hash=e.hash,
                )
                for e in events
            ),
        )

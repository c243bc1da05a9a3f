"""
Module: mfg_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Audit rows are append-only (db/immutability.py).
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash),
      written and validated by AuditorService.
    - seq is strictly increasing, allocated by SequenceService.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from mfg_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Auditable actions of the ledger and the planning engine."""

    # Ledger
    INVENTORY_ADJUSTED = "inventory_adjusted"
    INVENTORY_TRANSFERRED = "inventory_transferred"

    # Planning runs
    MRP_EXECUTED = "mrp_executed"
    MRP_FAILED = "mrp_failed"
    MRP_RUN_DELETED = "mrp_run_deleted"

    # Procurement generation
    PR_AUTO_GENERATED = "pr_auto_generated"
    PRS_GENERATED_FROM_MRP = "prs_generated_from_mrp"


class AuditEvent(Base):
    """Audit record linked to its predecessor by hash."""

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_seq", "seq"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    # InventoryBalance, MRPRun, PurchaseRequest, ...
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # Null only for the genesis event
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action} on {self.entity_type}:{self.entity_id}>"

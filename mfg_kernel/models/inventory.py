"""
Module: mfg_kernel.models.inventory
Responsibility: ORM persistence for the inventory ledger: the per-(item,
    warehouse) balance with its four status buckets, and the append-only
    transaction log every balance change is recorded in.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - (item_id, warehouse_id) is unique on inventory_balances.
    - Every bucket is non-negative (CHECK constraints, plus LedgerService
      rejecting the operation before it reaches the database).
    - inventory_transactions rows are never updated or deleted
      (db/immutability.py).
    - Reconciliation law: for every (item, warehouse, bucket) the signed sum
      of transaction effects equals the stored bucket.  See
      InventoryTransaction.bucket_deltas() for the attribution rule.

Failure modes:
    - IntegrityError on a duplicate (item, warehouse) insert race; resolved
      by LedgerService with a savepoint retry.
    - ImmutabilityViolationError on UPDATE/DELETE of a transaction row.

Audit relevance:
    The transaction log is the audit contract of the ledger.  Financial
    reconciliation and cycle counts rebuild balances from it.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from mfg_kernel.db.base import Base, TrackedBase, UUIDString
from mfg_kernel.domain.values import BalanceSnapshot, Bucket, BucketDelta


class InventoryBalance(TrackedBase):
    """
    Current stock of one item in one warehouse, split into status buckets.

    This row is a denormalized view of the transaction log.  It is created
    on first touch and only ever changed by LedgerService, inside the same
    unit of work as the transaction row describing the change.
    """

    __tablename__ = "inventory_balances"

    __table_args__ = (
        UniqueConstraint("item_id", "warehouse_id", name="uq_balance_item_warehouse"),
        CheckConstraint("quantity_available >= 0", name="ck_balance_available_nonneg"),
        CheckConstraint("quantity_reserved >= 0", name="ck_balance_reserved_nonneg"),
        CheckConstraint(
            "quantity_under_inspection >= 0", name="ck_balance_inspection_nonneg"
        ),
        CheckConstraint("quantity_rejected >= 0", name="ck_balance_rejected_nonneg"),
        Index("idx_balance_warehouse", "warehouse_id"),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id", ondelete="RESTRICT"), nullable=False,
    )

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False,
    )

    # Fulfillable stock; the only bucket the planner nets against
    quantity_available: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0"),
    )

    # Held for specific orders
    quantity_reserved: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0"),
    )

    # Awaiting quality inspection
    quantity_under_inspection: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0"),
    )

    # Failed inspection / damaged
    quantity_rejected: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0"),
    )

    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    def get_bucket(self, bucket: Bucket) -> Decimal:
        return getattr(self, bucket.column)

    def set_bucket(self, bucket: Bucket, value: Decimal) -> None:
        setattr(self, bucket.column, value)

    def to_snapshot(self) -> BalanceSnapshot:
        return BalanceSnapshot(
            item_id=self.item_id,
            warehouse_id=self.warehouse_id,
            quantity_available=self.quantity_available,
            quantity_reserved=self.quantity_reserved,
            quantity_under_inspection=self.quantity_under_inspection,
            quantity_rejected=self.quantity_rejected,
            exists=True,
        )

    @property
    def total_quantity(self) -> Decimal:
        return (
            self.quantity_available
            + self.quantity_reserved
            + self.quantity_under_inspection
            + self.quantity_rejected
        )

    def __repr__(self) -> str:
        return (
            f"<InventoryBalance item={self.item_id} wh={self.warehouse_id} "
            f"avail={self.quantity_available}>"
        )


class InventoryTransaction(Base):
    """
    One immutable ledger movement.

    Bucket attribution:
        - status_from and status_to set: -quantity on status_from,
          +quantity on status_to (quantity is positive).
        - only status_to set: +quantity (signed) on status_to.
        - only status_from set: +quantity (signed, negative for a decrease)
          on status_from.
    """

    __tablename__ = "inventory_transactions"

    __table_args__ = (
        Index("idx_inv_txn_item_wh", "item_id", "warehouse_id"),
        Index("idx_inv_txn_reference", "reference_type", "reference_id"),
        Index("idx_inv_txn_date", "transaction_date"),
        Index("idx_inv_txn_type", "transaction_type"),
        CheckConstraint(
            "status_from IS NOT NULL OR status_to IS NOT NULL",
            name="ck_inv_txn_has_bucket",
        ),
    )

    transaction_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    # receipt, issue, adjustment, transfer, reservation, unreservation
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id", ondelete="RESTRICT"), nullable=False,
    )

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False,
    )

    # Signed delta; always positive for transfers
    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    status_from: Mapped[str | None] = mapped_column(String(20), nullable=True)

    status_to: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Upstream document (goods_receipt, goods_issue, ...)
    reference_type: Mapped[str] = mapped_column(String(30), nullable=False)

    reference_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    def bucket_deltas(self) -> list[BucketDelta]:
        """Signed effect of this row on each bucket it touches."""
        if self.status_from and self.status_to:
            return [
                BucketDelta(Bucket(self.status_from), -self.quantity),
                BucketDelta(Bucket(self.status_to), self.quantity),
            ]
        bucket = self.status_to or self.status_from
        return [BucketDelta(Bucket(bucket), self.quantity)]

    def __repr__(self) -> str:
        return (
            f"<InventoryTransaction {self.transaction_type} {self.quantity} "
            f"{self.status_from}->{self.status_to}>"
        )

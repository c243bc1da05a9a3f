"""
Module: mfg_kernel.selectors.ledger_selector
Responsibility: Read-only inventory queries: balances by item or warehouse,
    per-bucket totals, transaction history, the point-in-time availability
    snapshot used by the planner, and replay/reconciliation of balances
    against the transaction log.
Architecture position: Kernel > Selectors.  Never adds, flushes or commits.

Invariants enforced:
    - Reconciliation law: replay_balance() rebuilds every bucket from the
      log alone; reconcile() compares that against the stored row.
    - available_snapshot() reads quantity_available only; reserved,
      under-inspection and rejected stock is never fulfillable supply.

Audit relevance:
    reconcile()/assert_reconciled() are what cycle counts and financial
    reconciliation run to prove the stored balances are a faithful view
    of the append-only log.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import func, select

from mfg_kernel.domain.values import (
    ZERO,
    BalanceSnapshot,
    Bucket,
    ReconciliationReport,
    StockTotals,
    TransactionType,
)
from mfg_kernel.exceptions import ReconciliationMismatchError, ValidationError
from mfg_kernel.logging_config import get_logger
from mfg_kernel.models.inventory import InventoryBalance, InventoryTransaction
from mfg_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.ledger")


@dataclass(frozen=True)
class TransactionRecord:
    id: UUID
    transaction_date: datetime
    transaction_type: str
    item_id: UUID
    warehouse_id: UUID
    quantity: Decimal
    status_from: str | None
    status_to: str | None
    reference_type: str
    reference_id: UUID
    notes: str | None
    actor_id: UUID


@dataclass(frozen=True)
class BalancePage:
    items: tuple[BalanceSnapshot, ...]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size


def _to_record(txn: InventoryTransaction) -> TransactionRecord:
    return TransactionRecord(
        id=txn.id,
        transaction_date=txn.transaction_date,
        transaction_type=txn.transaction_type,
        item_id=txn.item_id,
        warehouse_id=txn.warehouse_id,
        quantity=txn.quantity,
        status_from=txn.status_from,
        status_to=txn.status_to,
        reference_type=txn.reference_type,
        reference_id=txn.reference_id,
        notes=txn.notes,
        actor_id=txn.actor_id,
    )


class LedgerSelector(BaseSelector[InventoryBalance]):
    """Read side of the inventory ledger."""

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def get_available_quantity(
        self, item_id: UUID, warehouse_id: UUID | None = None,
    ) -> Decimal:
        """Available stock of an item in one warehouse, or across all of them."""
        stmt = select(func.coalesce(func.sum(InventoryBalance.quantity_available), 0)).where(
            InventoryBalance.item_id == item_id,
        )
        if warehouse_id is not None:
            stmt = stmt.where(InventoryBalance.warehouse_id == warehouse_id)
        return Decimal(str(self.session.execute(stmt).scalar_one()))

    def get_total_quantity(self, item_id: UUID) -> StockTotals:
        """Per-bucket totals of an item across warehouses."""
        rows = self.list_balances_by_item(item_id)
        return StockTotals(
            item_id=item_id,
            available=sum((r.quantity_available for r in rows), ZERO),
            reserved=sum((r.quantity_reserved for r in rows), ZERO),
            under_inspection=sum((r.quantity_under_inspection for r in rows), ZERO),
            rejected=sum((r.quantity_rejected for r in rows), ZERO),
            warehouse_count=len(rows),
        )

    def list_balances_by_item(self, item_id: UUID) -> list[BalanceSnapshot]:
        balances = self.session.execute(
            select(InventoryBalance)
            .where(InventoryBalance.item_id == item_id)
            .order_by(InventoryBalance.warehouse_id)
        ).scalars().all()
        return [b.to_snapshot() for b in balances]

    def list_balances_by_warehouse(self, warehouse_id: UUID) -> list[BalanceSnapshot]:
        balances = self.session.execute(
            select(InventoryBalance)
            .where(InventoryBalance.warehouse_id == warehouse_id)
            .order_by(InventoryBalance.item_id)
        ).scalars().all()
        return [b.to_snapshot() for b in balances]

    def list_balances(
        self,
        *,
        item_id: UUID | None = None,
        warehouse_id: UUID | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> BalancePage:
        if page < 1 or page_size < 1:
            raise ValidationError("page and page_size must be >= 1", field="page")

        stmt = select(InventoryBalance)
        count_stmt = select(func.count()).select_from(InventoryBalance)
        if item_id is not None:
            stmt = stmt.where(InventoryBalance.item_id == item_id)
            count_stmt = count_stmt.where(InventoryBalance.item_id == item_id)
        if warehouse_id is not None:
            stmt = stmt.where(InventoryBalance.warehouse_id == warehouse_id)
            count_stmt = count_stmt.where(InventoryBalance.warehouse_id == warehouse_id)

        total = self.session.execute(count_stmt).scalar_one()
        balances = self.session.execute(
            stmt.order_by(InventoryBalance.item_id, InventoryBalance.warehouse_id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).scalars().all()
        return BalancePage(
            items=tuple(b.to_snapshot() for b in balances),
            total=total,
            page=page,
            page_size=page_size,
        )

    def available_snapshot(self, item_ids: Iterable[UUID]) -> dict[UUID, Decimal]:
        """
        quantity_available per item, summed across warehouses, in one read.

        Items without any balance row map to zero.  The read takes no locks.
        """
        ids = sorted(set(item_ids), key=str)
        snapshot: dict[UUID, Decimal] = {item_id: ZERO for item_id in ids}
        if not ids:
            return snapshot
        rows = self.session.execute(
            select(InventoryBalance.item_id, InventoryBalance.quantity_available)
            .where(InventoryBalance.item_id.in_(ids))
        ).all()
        for item_id, available in rows:
            snapshot[item_id] += available
        return snapshot

    def find_negative_buckets(self) -> list[tuple[UUID, UUID, str, Decimal]]:
        """
        Scan for stored buckets below zero.

        Any hit is an integrity violation and is logged at CRITICAL.
        """
        hits: list[tuple[UUID, UUID, str, Decimal]] = []
        for bucket in Bucket:
            column = getattr(InventoryBalance, bucket.column)
            rows = self.session.execute(
                select(InventoryBalance.item_id, InventoryBalance.warehouse_id, column)
                .where(column < 0)
            ).all()
            for item_id, warehouse_id, value in rows:
                logger.critical(
                    "negative_bucket_detected",
                    extra={
                        "item_id": str(item_id),
                        "warehouse_id": str(warehouse_id),
                        "bucket": bucket.value,
                        "value": str(value),
                    },
                )
                hits.append((item_id, warehouse_id, bucket.value, value))
        return hits

    # ------------------------------------------------------------------
    # Transaction log
    # ------------------------------------------------------------------

    def list_transactions(
        self,
        *,
        item_id: UUID | None = None,
        warehouse_id: UUID | None = None,
        transaction_type: TransactionType | str | None = None,
        reference_type: str | None = None,
        reference_id: UUID | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
        limit: int | None = None,
    ) -> list[TransactionRecord]:
        """Transaction history, oldest first, filtered by any combination."""
        stmt = select(InventoryTransaction)
        if item_id is not None:
            stmt = stmt.where(InventoryTransaction.item_id == item_id)
        if warehouse_id is not None:
            stmt = stmt.where(InventoryTransaction.warehouse_id == warehouse_id)
        if transaction_type is not None:
            stmt = stmt.where(
                InventoryTransaction.transaction_type
                == TransactionType(transaction_type).value
            )
        if reference_type is not None:
            stmt = stmt.where(InventoryTransaction.reference_type == reference_type)
        if reference_id is not None:
            stmt = stmt.where(InventoryTransaction.reference_id == reference_id)
        if from_date is not None:
            stmt = stmt.where(InventoryTransaction.transaction_date >= from_date)
        if to_date is not None:
            stmt = stmt.where(InventoryTransaction.transaction_date <= to_date)
        stmt = stmt.order_by(
            InventoryTransaction.created_at, InventoryTransaction.transaction_date,
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return [_to_record(t) for t in self.session.execute(stmt).scalars().all()]

    # ------------------------------------------------------------------
    # Replay and reconciliation
    # ------------------------------------------------------------------

    def replay_balance(self, item_id: UUID, warehouse_id: UUID) -> dict[str, Decimal]:
        """Rebuild the four buckets of a pair from the log alone."""
        totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for b in Bucket:
            totals[b.value] = ZERO
        txns = self.session.execute(
            select(InventoryTransaction).where(
                InventoryTransaction.item_id == item_id,
                InventoryTransaction.warehouse_id == warehouse_id,
            )
        ).scalars().all()
        for txn in txns:
            for effect in txn.bucket_deltas():
                totals[effect.bucket.value] += effect.delta
        return dict(totals)

    def reconcile(self, item_id: UUID, warehouse_id: UUID) -> ReconciliationReport:
        stored_row = self.session.execute(
            select(InventoryBalance).where(
                InventoryBalance.item_id == item_id,
                InventoryBalance.warehouse_id == warehouse_id,
            )
        ).scalar_one_or_none()
        stored = {
            b.value: (stored_row.get_bucket(b) if stored_row is not None else ZERO)
            for b in Bucket
        }
        replayed = self.replay_balance(item_id, warehouse_id)
        txn_count = self.session.execute(
            select(func.count()).select_from(InventoryTransaction).where(
                InventoryTransaction.item_id == item_id,
                InventoryTransaction.warehouse_id == warehouse_id,
            )
        ).scalar_one()
        mismatches = {
            bucket: (stored[bucket], replayed[bucket])
            for bucket in stored
            if stored[bucket] != replayed[bucket]
        }
        return ReconciliationReport(
            item_id=item_id,
            warehouse_id=warehouse_id,
            stored=stored,
            replayed=replayed,
            transaction_count=txn_count,
            mismatches=mismatches,
        )

    def assert_reconciled(self, item_id: UUID, warehouse_id: UUID) -> ReconciliationReport:
        """
        Raises:
            ReconciliationMismatchError: for the first mismatching bucket.
        """
        report = self.reconcile(item_id, warehouse_id)
        for bucket, (stored, replayed) in sorted(report.mismatches.items()):
            logger.critical(
                "ledger_reconciliation_mismatch",
                extra={
                    "item_id": str(item_id),
                    "warehouse_id": str(warehouse_id),
                    "bucket": bucket,
                    "stored": str(stored),
                    "replayed": str(replayed),
                },
            )
            raise ReconciliationMismatchError(
                str(item_id), str(warehouse_id), bucket, stored, replayed,
            )
        return report

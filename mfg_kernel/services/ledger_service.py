"""
LedgerService -- the balance mutator.

Responsibility:
    The only code path that changes an InventoryBalance.  Every mutation
    locks the (item, warehouse) balance row, checks the bucket stays
    non-negative, applies the change and appends exactly one
    InventoryTransaction, all inside the caller's unit of work.

Architecture position:
    Kernel > Services.  Called by the inventory workflows
    (mfg_modules.inventory) and by opening-balance loaders.  Flushes only;
    the caller commits or rolls back.

Invariants enforced:
    - Balance change and log append happen in the same flush.  A rejected
      operation writes neither.
    - Every bucket stays >= 0.  An operation that would go below zero
      raises InsufficientStockError before anything is changed.
    - A stored bucket found negative is an integrity violation: it is
      logged at CRITICAL and raised as NegativeBucketError, never clamped.
    - Mutations on the same (item, warehouse) serialize on the balance row
      (SELECT ... FOR UPDATE on PostgreSQL; SQLite serializes writers).

Failure modes:
    - ValidationError: zero/non-finite/over-precise quantity, transfer to
      the same bucket, unknown item or warehouse on first touch.
    - InsufficientStockError: bucket would go negative.
    - NegativeBucketError: stored state already violates the invariant.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mfg_kernel.db.types import ZERO, round_quantity, to_quantity
from mfg_kernel.domain.clock import Clock, SystemClock
from mfg_kernel.domain.values import (
    BalanceSnapshot,
    Bucket,
    DocumentRef,
    ReferenceType,
    TransactionType,
)
from mfg_kernel.exceptions import (
    InsufficientStockError,
    ItemNotFoundError,
    NegativeBucketError,
    ValidationError,
    WarehouseNotFoundError,
)
from mfg_kernel.logging_config import get_logger
from mfg_kernel.models.inventory import InventoryBalance, InventoryTransaction
from mfg_kernel.models.master_data import Item, Warehouse
from mfg_kernel.services.base import BaseService

logger = get_logger("services.ledger")


@dataclass(frozen=True)
class LedgerPosting:
    """Result of one balance mutation: the log row and the new balance."""

    transaction_id: UUID
    transaction_type: TransactionType
    quantity: Decimal
    status_from: Bucket | None
    status_to: Bucket | None
    balance: BalanceSnapshot


@dataclass(frozen=True)
class BalanceSeed:
    """Target bucket values for create_or_update_balance()."""

    quantity_available: Decimal = ZERO
    quantity_reserved: Decimal = ZERO
    quantity_under_inspection: Decimal = ZERO
    quantity_rejected: Decimal = ZERO

    def bucket(self, bucket: Bucket) -> Decimal:
        return getattr(self, bucket.column)


class LedgerService(BaseService[InventoryBalance]):
    """
    Applies bucket changes to balances and records them in the log.

    Usage:
        with session_scope() as session:
            ledger = LedgerService(session, clock)
            ledger.adjust_quantity(
                item_id, warehouse_id, Bucket.AVAILABLE, Decimal("-30"),
                transaction_type=TransactionType.ISSUE,
                reference=DocumentRef("goods_issue", issue_id),
                actor_id=actor_id,
            )
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_balance(self, item_id: UUID, warehouse_id: UUID) -> BalanceSnapshot:
        """
        Current 4-bucket snapshot, or all zeros if the pair was never touched.

        Unlocked read.  Raises NegativeBucketError if the stored row
        violates the non-negative invariant.
        """
        balance = self.session.execute(
            select(InventoryBalance).where(
                InventoryBalance.item_id == item_id,
                InventoryBalance.warehouse_id == warehouse_id,
            )
        ).scalar_one_or_none()
        if balance is None:
            return BalanceSnapshot.zero(item_id, warehouse_id)
        self._assert_not_negative(balance)
        return balance.to_snapshot()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def adjust_quantity(
        self,
        item_id: UUID,
        warehouse_id: UUID,
        bucket: Bucket,
        delta: Decimal,
        *,
        transaction_type: TransactionType,
        reference: DocumentRef,
        actor_id: UUID,
        notes: str | None = None,
        transaction_date: datetime | None = None,
    ) -> LedgerPosting:
        """
        Change one bucket by a signed delta and append one log row.

        Raises:
            ValidationError: zero delta, bad precision, a transfer type, or a
                receipt/issue whose sign contradicts its type.
            InsufficientStockError: the bucket would go below zero.
            NegativeBucketError: the stored bucket is already negative.
        """
        bucket = Bucket(bucket)
        transaction_type = TransactionType(transaction_type)
        delta = self._validate_quantity(delta, "delta")
        if delta == ZERO:
            raise ValidationError("Quantity delta must not be zero", field="delta")
        if transaction_type is TransactionType.TRANSFER:
            raise ValidationError(
                "Transfers move two buckets; use transfer_status()",
                field="transaction_type",
            )
        if transaction_type is TransactionType.RECEIPT and delta < ZERO:
            raise ValidationError("A receipt must increase stock", field="delta")
        if transaction_type is TransactionType.ISSUE and delta > ZERO:
            raise ValidationError("An issue must decrease stock", field="delta")

        if delta < ZERO:
            balance = self._lock_existing(item_id, warehouse_id)
        else:
            balance = self._lock_or_create(item_id, warehouse_id, actor_id)

        current = balance.get_bucket(bucket) if balance is not None else ZERO
        new_value = current + delta
        if new_value < ZERO:
            self._reject_insufficient(item_id, warehouse_id, bucket, current, -delta)

        balance.set_bucket(bucket, new_value)
        self._touch(balance, actor_id)

        txn = self._append_transaction(
            item_id=item_id,
            warehouse_id=warehouse_id,
            transaction_type=transaction_type,
            quantity=delta,
            status_from=bucket if delta < ZERO else None,
            status_to=bucket if delta > ZERO else None,
            reference=reference,
            actor_id=actor_id,
            notes=notes,
            transaction_date=transaction_date,
        )
        self.session.flush()

        logger.info(
            "balance_adjusted",
            extra={
                "item_id": str(item_id),
                "warehouse_id": str(warehouse_id),
                "bucket": bucket.value,
                "delta": str(delta),
                "new_value": str(new_value),
                "transaction_type": transaction_type.value,
                "reference_type": reference.reference_type,
                "reference_id": str(reference.reference_id),
            },
        )
        return LedgerPosting(
            transaction_id=txn.id,
            transaction_type=transaction_type,
            quantity=delta,
            status_from=bucket if delta < ZERO else None,
            status_to=bucket if delta > ZERO else None,
            balance=balance.to_snapshot(),
        )

    def transfer_status(
        self,
        item_id: UUID,
        warehouse_id: UUID,
        from_bucket: Bucket,
        to_bucket: Bucket,
        quantity: Decimal,
        *,
        reference: DocumentRef,
        actor_id: UUID,
        notes: str | None = None,
        transaction_type: TransactionType = TransactionType.TRANSFER,
        transaction_date: datetime | None = None,
    ) -> LedgerPosting:
        """
        Move ``quantity`` from one bucket to another as a single log row.

        Fails closed: when ``from_bucket`` holds less than ``quantity``
        nothing is written, not even a balance row for an untouched pair.

        Raises:
            ValidationError: same bucket, or non-positive quantity.
            InsufficientStockError: from_bucket holds less than quantity.
        """
        from_bucket = Bucket(from_bucket)
        to_bucket = Bucket(to_bucket)
        transaction_type = TransactionType(transaction_type)
        if from_bucket is to_bucket:
            raise ValidationError(
                f"Cannot transfer {from_bucket.value} to itself", field="to_bucket",
            )
        if transaction_type not in (
            TransactionType.TRANSFER,
            TransactionType.RESERVATION,
            TransactionType.UNRESERVATION,
        ):
            raise ValidationError(
                f"{transaction_type.value} is not a two-bucket movement",
                field="transaction_type",
            )
        quantity = self._validate_quantity(quantity, "quantity")
        if quantity <= ZERO:
            raise ValidationError("Transfer quantity must be positive", field="quantity")

        balance = self._lock_existing(item_id, warehouse_id)
        current = balance.get_bucket(from_bucket) if balance is not None else ZERO
        if current < quantity:
            self._reject_insufficient(item_id, warehouse_id, from_bucket, current, quantity)

        balance.set_bucket(from_bucket, current - quantity)
        balance.set_bucket(to_bucket, balance.get_bucket(to_bucket) + quantity)
        self._touch(balance, actor_id)

        txn = self._append_transaction(
            item_id=item_id,
            warehouse_id=warehouse_id,
            transaction_type=transaction_type,
            quantity=quantity,
            status_from=from_bucket,
            status_to=to_bucket,
            reference=reference,
            actor_id=actor_id,
            notes=notes,
            transaction_date=transaction_date,
        )
        self.session.flush()

        logger.info(
            "status_transferred",
            extra={
                "item_id": str(item_id),
                "warehouse_id": str(warehouse_id),
                "from_bucket": from_bucket.value,
                "to_bucket": to_bucket.value,
                "quantity": str(quantity),
                "transaction_type": transaction_type.value,
                "reference_type": reference.reference_type,
                "reference_id": str(reference.reference_id),
            },
        )
        return LedgerPosting(
            transaction_id=txn.id,
            transaction_type=transaction_type,
            quantity=quantity,
            status_from=from_bucket,
            status_to=to_bucket,
            balance=balance.to_snapshot(),
        )

    def reserve(
        self,
        item_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        *,
        reference: DocumentRef,
        actor_id: UUID,
        notes: str | None = None,
    ) -> LedgerPosting:
        """available -> reserved, logged as a reservation."""
        return self.transfer_status(
            item_id, warehouse_id, Bucket.AVAILABLE, Bucket.RESERVED, quantity,
            reference=reference, actor_id=actor_id, notes=notes,
            transaction_type=TransactionType.RESERVATION,
        )

    def unreserve(
        self,
        item_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        *,
        reference: DocumentRef,
        actor_id: UUID,
        notes: str | None = None,
    ) -> LedgerPosting:
        """reserved -> available, logged as an unreservation."""
        return self.transfer_status(
            item_id, warehouse_id, Bucket.RESERVED, Bucket.AVAILABLE, quantity,
            reference=reference, actor_id=actor_id, notes=notes,
            transaction_type=TransactionType.UNRESERVATION,
        )

    def create_or_update_balance(
        self,
        item_id: UUID,
        warehouse_id: UUID,
        seed: BalanceSeed | None = None,
        *,
        actor_id: UUID,
        reference: DocumentRef | None = None,
    ) -> BalanceSnapshot:
        """
        Idempotent upsert of the balance row for a pair.

        Creates a zero row on first contact.  With a seed, each bucket is
        brought to the seed value by an adjustment posted against an
        opening_balance reference, so the log still replays to the stored
        row.  Repeating the call with the same seed writes nothing.  The
        whole seed is validated before any bucket is touched.
        """
        targets: dict[Bucket, Decimal] = {}
        if seed is not None:
            for bucket in Bucket:
                target = self._validate_quantity(seed.bucket(bucket), bucket.column)
                if target < ZERO:
                    raise ValidationError(
                        f"Seed for {bucket.value} must not be negative", field=bucket.column,
                    )
                targets[bucket] = target

        balance = self._lock_or_create(item_id, warehouse_id, actor_id)
        if seed is None:
            return balance.to_snapshot()

        reference = reference or DocumentRef(ReferenceType.OPENING_BALANCE, uuid4())
        for bucket, target in targets.items():
            delta = target - balance.get_bucket(bucket)
            if delta != ZERO:
                self.adjust_quantity(
                    item_id, warehouse_id, bucket, delta,
                    transaction_type=TransactionType.ADJUSTMENT,
                    reference=reference,
                    actor_id=actor_id,
                    notes="Balance seed",
                )
        logger.info(
            "balance_seeded",
            extra={"item_id": str(item_id), "warehouse_id": str(warehouse_id)},
        )
        return self.get_balance(item_id, warehouse_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _validate_quantity(self, value: Decimal, field: str) -> Decimal:
        try:
            quantity = to_quantity(value)
        except ValueError as exc:
            raise ValidationError(str(exc), field=field) from exc
        if round_quantity(quantity) != quantity:
            raise ValidationError(
                f"{field} has more than 9 decimal places: {quantity}", field=field,
            )
        return quantity

    def _lock_existing(self, item_id: UUID, warehouse_id: UUID) -> InventoryBalance | None:
        balance = self.session.execute(
            select(InventoryBalance)
            .where(
                InventoryBalance.item_id == item_id,
                InventoryBalance.warehouse_id == warehouse_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if balance is not None:
            self._assert_not_negative(balance)
        return balance

    def _lock_or_create(
        self, item_id: UUID, warehouse_id: UUID, actor_id: UUID,
    ) -> InventoryBalance:
        balance = self._lock_existing(item_id, warehouse_id)
        if balance is not None:
            return balance

        if self.session.get(Item, item_id) is None:
            raise ItemNotFoundError(str(item_id))
        if self.session.get(Warehouse, warehouse_id) is None:
            raise WarehouseNotFoundError(str(warehouse_id))

        # A concurrent first touch may insert the same pair; the savepoint
        # keeps the caller's work intact while we fall back to locking it.
        savepoint = self.session.begin_nested()
        try:
            balance = InventoryBalance(
                item_id=item_id,
                warehouse_id=warehouse_id,
                quantity_available=ZERO,
                quantity_reserved=ZERO,
                quantity_under_inspection=ZERO,
                quantity_rejected=ZERO,
                last_updated=self._clock.now(),
                created_by_id=actor_id,
            )
            self.session.add(balance)
            self.session.flush()
            savepoint.commit()
            logger.debug(
                "balance_created",
                extra={"item_id": str(item_id), "warehouse_id": str(warehouse_id)},
            )
            return balance
        except IntegrityError:
            logger.debug(
                "balance_create_race_retry",
                extra={"item_id": str(item_id), "warehouse_id": str(warehouse_id)},
            )
            savepoint.rollback()
            balance = self._lock_existing(item_id, warehouse_id)
            if balance is None:
                raise
            return balance

    def _assert_not_negative(self, balance: InventoryBalance) -> None:
        for bucket in Bucket:
            value = balance.get_bucket(bucket)
            if value < ZERO:
                logger.critical(
                    "negative_bucket_detected",
                    extra={
                        "item_id": str(balance.item_id),
                        "warehouse_id": str(balance.warehouse_id),
                        "bucket": bucket.value,
                        "value": str(value),
                    },
                )
                raise NegativeBucketError(
                    str(balance.item_id), str(balance.warehouse_id), bucket.value, value,
                )

    def _reject_insufficient(
        self,
        item_id: UUID,
        warehouse_id: UUID,
        bucket: Bucket,
        current: Decimal,
        requested: Decimal,
    ) -> None:
        logger.warning(
            "insufficient_stock",
            extra={
                "item_id": str(item_id),
                "warehouse_id": str(warehouse_id),
                "bucket": bucket.value,
                "current": str(current),
                "requested": str(requested),
            },
        )
        raise InsufficientStockError(
            str(item_id), str(warehouse_id), bucket.value, current, requested,
        )

    def _touch(self, balance: InventoryBalance, actor_id: UUID) -> None:
        balance.last_updated = self._clock.now()
        balance.updated_by_id = actor_id

    def _append_transaction(
        self,
        *,
        item_id: UUID,
        warehouse_id: UUID,
        transaction_type: TransactionType,
        quantity: Decimal,
        status_from: Bucket | None,
        status_to: Bucket | None,
        reference: DocumentRef,
        actor_id: UUID,
        notes: str | None,
        transaction_date: datetime | None,
    ) -> InventoryTransaction:
        now = self._clock.now()
        txn = InventoryTransaction(
            id=uuid4(),
            transaction_date=transaction_date or now,
            transaction_type=transaction_type.value,
            item_id=item_id,
            warehouse_id=warehouse_id,
            quantity=quantity,
            status_from=status_from.value if status_from else None,
            status_to=status_to.value if status_to else None,
            reference_type=reference.reference_type,
            reference_id=reference.reference_id,
            notes=notes,
            actor_id=actor_id,
            created_at=now,
        )
        self.session.add(txn)
        return txn

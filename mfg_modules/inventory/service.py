"""
Inventory Module Service (``mfg_modules.inventory.service``).

Responsibility
--------------
The upstream workflows that move stock: goods receipt, goods issue, manual
adjustment, status transfer and production output, plus cancellation of
receipts, issues and production output.  Each workflow names its document
(reference type + id) and delegates the balance change to
``LedgerService``; none of them touches a balance row directly.

Architecture
------------
Layer: **Modules** -- thin orchestration over the kernel ledger.

Invariants
----------
- Each public method owns its transaction boundary when ``auto_commit`` is
  set: commit on success, rollback and re-raise on failure.  Multi-posting
  workflows (receipt with rejects, cancellations) are therefore all or
  nothing.
- Cancelled documents are never edited.  A cancellation posts the inverse
  of every original posting under a ``<type>_cancellation`` reference with
  the same document id, and a second cancellation is refused.

Failure Modes
-------------
- ``ValidationError``: non-positive quantities, missing reason, zero delta.
- ``InsufficientStockError``: from the ledger; nothing is written.
- ``DocumentNotFoundError`` / ``DocumentAlreadyCancelledError``: cancellation
  of an unknown or already cancelled document.
- ``ProductionOrderNotFoundError``: output against an unknown order.

Audit Relevance
---------------
Manual adjustments and status transfers have no upstream document of
their own, so they are also recorded as hash-chained audit events.

Usage::

    service = InventoryService(session, clock)
    service.receive_goods(
        receipt_id, item_id, warehouse_id,
        accepted_quantity=Decimal("100"), actor_id=actor_id,
    )
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from mfg_kernel.db.types import ZERO, to_quantity
from mfg_kernel.domain.clock import Clock, SystemClock
from mfg_kernel.domain.values import (
    Bucket,
    DocumentRef,
    ReferenceType,
    TransactionType,
)
from mfg_kernel.exceptions import (
    DocumentAlreadyCancelledError,
    DocumentNotFoundError,
    ProductionOrderNotFoundError,
    ValidationError,
)
from mfg_kernel.logging_config import LogContext, get_logger
from mfg_kernel.models.inventory import InventoryBalance
from mfg_kernel.selectors.ledger_selector import LedgerSelector
from mfg_kernel.services.auditor_service import AuditorService
from mfg_kernel.services.ledger_service import LedgerPosting, LedgerService
from mfg_modules.inventory.models import CancellationResult, MovementResult
from mfg_modules.production.orm import ProductionOrderModel

logger = get_logger("modules.inventory.service")

_CANCELLATION_TYPES = {
    ReferenceType.GOODS_RECEIPT: ReferenceType.GOODS_RECEIPT_CANCELLATION,
    ReferenceType.GOODS_ISSUE: ReferenceType.GOODS_ISSUE_CANCELLATION,
    ReferenceType.PRODUCTION_OUTPUT: ReferenceType.PRODUCTION_OUTPUT_CANCELLATION,
}


def _quantity(value, field: str) -> Decimal:
    try:
        return to_quantity(value)
    except ValueError as exc:
        raise ValidationError(str(exc), field=field) from exc


def _positive(value, field: str) -> Decimal:
    quantity = _quantity(value, field)
    if quantity <= ZERO:
        raise ValidationError(f"{field} must be positive, got {quantity}", field=field)
    return quantity


def _require_reason(reason: str | None) -> str:
    if reason is None or not reason.strip():
        raise ValidationError("A reason is required", field="reason")
    return reason.strip()


class InventoryService:
    """
    Stock movement workflows over the kernel ledger.

    Transaction boundary: with ``auto_commit=True`` (the default) every
    public method commits on success and rolls back on failure.  Pass
    ``auto_commit=False`` to compose several calls in one unit of work.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit
        self._ledger = LedgerService(session, self._clock)
        self._selector = LedgerSelector(session)
        self._auditor = AuditorService(session, self._clock)

    # =========================================================================
    # Transaction boundary
    # =========================================================================

    def _commit(self) -> None:
        if self._auto_commit:
            self._session.commit()

    def _rollback(self) -> None:
        if self._auto_commit:
            self._session.rollback()

    # =========================================================================
    # Receipts and issues
    # =========================================================================

    def receive_goods(
        self,
        receipt_id: UUID,
        item_id: UUID,
        warehouse_id: UUID,
        accepted_quantity: Decimal = ZERO,
        rejected_quantity: Decimal = ZERO,
        *,
        actor_id: UUID,
        notes: str | None = None,
    ) -> MovementResult:
        """
        Book a goods receipt: accepted stock into available, rejected stock
        into rejected.  Both postings carry the receipt reference.

        Raises:
            ValidationError: a negative quantity, or nothing received.
        """
        accepted = _quantity(accepted_quantity, "accepted_quantity")
        rejected = _quantity(rejected_quantity, "rejected_quantity")
        if accepted < ZERO or rejected < ZERO:
            raise ValidationError("Receipt quantities must not be negative", field="quantity")
        if accepted == ZERO and rejected == ZERO:
            raise ValidationError("Receipt must accept or reject a quantity", field="quantity")

        reference = DocumentRef(ReferenceType.GOODS_RECEIPT, receipt_id)
        try:
            with LogContext.bind(
                actor_id=actor_id,
                reference_type=reference.reference_type,
                reference_id=reference.reference_id,
            ):
                postings: list[LedgerPosting] = []
                for bucket, quantity in (
                    (Bucket.AVAILABLE, accepted),
                    (Bucket.REJECTED, rejected),
                ):
                    if quantity == ZERO:
                        continue
                    postings.append(self._ledger.adjust_quantity(
                        item_id, warehouse_id, bucket, quantity,
                        transaction_type=TransactionType.RECEIPT,
                        reference=reference,
                        actor_id=actor_id,
                        notes=notes,
                    ))
            logger.info("goods_received", extra={
                "receipt_id": str(receipt_id),
                "item_id": str(item_id),
                "warehouse_id": str(warehouse_id),
                "accepted": str(accepted),
                "rejected": str(rejected),
            })
            self._commit()
            return MovementResult(reference=reference, postings=tuple(postings))
        except Exception:
            self._rollback()
            raise

    def issue_goods(
        self,
        issue_id: UUID,
        item_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        *,
        actor_id: UUID,
        notes: str | None = None,
    ) -> MovementResult:
        """
        Issue stock out of the available bucket.

        Raises:
            InsufficientStockError: available holds less than ``quantity``.
        """
        quantity = _positive(quantity, "quantity")
        reference = DocumentRef(ReferenceType.GOODS_ISSUE, issue_id)
        try:
            posting = self._ledger.adjust_quantity(
                item_id, warehouse_id, Bucket.AVAILABLE, -quantity,
                transaction_type=TransactionType.ISSUE,
                reference=reference,
                actor_id=actor_id,
                notes=notes,
            )
            logger.info("goods_issued", extra={
                "issue_id": str(issue_id),
                "item_id": str(item_id),
                "warehouse_id": str(warehouse_id),
                "quantity": str(quantity),
            })
            self._commit()
            return MovementResult(reference=reference, postings=(posting,))
        except Exception:
            self._rollback()
            raise

    # =========================================================================
    # Adjustments and status transfers
    # =========================================================================

    def adjust_inventory(
        self,
        item_id: UUID,
        warehouse_id: UUID,
        delta: Decimal,
        reason: str,
        *,
        actor_id: UUID,
        bucket: Bucket = Bucket.AVAILABLE,
        adjustment_id: UUID | None = None,
    ) -> MovementResult:
        """
        Post a signed manual correction to one bucket.

        Raises:
            ValidationError: zero delta or missing reason.
            InsufficientStockError: a decrease below zero.
        """
        reason = _require_reason(reason)
        bucket = Bucket(bucket)
        reference = DocumentRef(ReferenceType.MANUAL_ADJUSTMENT, adjustment_id or uuid4())
        try:
            posting = self._ledger.adjust_quantity(
                item_id, warehouse_id, bucket, delta,
                transaction_type=TransactionType.ADJUSTMENT,
                reference=reference,
                actor_id=actor_id,
                notes=reason,
            )
            self._auditor.record_adjustment(
                self._balance_id(item_id, warehouse_id),
                actor_id,
                item_id=item_id,
                warehouse_id=warehouse_id,
                bucket=bucket.value,
                delta=posting.quantity,
                reason=reason,
                reference_id=reference.reference_id,
            )
            self._commit()
            return MovementResult(reference=reference, postings=(posting,))
        except Exception:
            self._rollback()
            raise

    def transfer_status(
        self,
        item_id: UUID,
        warehouse_id: UUID,
        from_bucket: Bucket,
        to_bucket: Bucket,
        quantity: Decimal,
        reason: str,
        *,
        actor_id: UUID,
        transfer_id: UUID | None = None,
    ) -> MovementResult:
        """
        Move stock between buckets, e.g. under_inspection -> available after
        a passed inspection.  Fails closed on insufficient stock.
        """
        reason = _require_reason(reason)
        quantity = _positive(quantity, "quantity")
        reference = DocumentRef(ReferenceType.STATUS_TRANSFER, transfer_id or uuid4())
        try:
            posting = self._ledger.transfer_status(
                item_id, warehouse_id, from_bucket, to_bucket, quantity,
                reference=reference,
                actor_id=actor_id,
                notes=reason,
            )
            self._auditor.record_status_transfer(
                self._balance_id(item_id, warehouse_id),
                actor_id,
                item_id=item_id,
                warehouse_id=warehouse_id,
                from_bucket=posting.status_from.value,
                to_bucket=posting.status_to.value,
                quantity=quantity,
                reason=reason,
                reference_id=reference.reference_id,
            )
            self._commit()
            return MovementResult(reference=reference, postings=(posting,))
        except Exception:
            self._rollback()
            raise

    # =========================================================================
    # Production output
    # =========================================================================

    def record_production_output(
        self,
        production_order_id: UUID,
        warehouse_id: UUID,
        quantity_good: Decimal,
        *,
        actor_id: UUID,
        output_id: UUID | None = None,
        notes: str | None = None,
    ) -> MovementResult:
        """
        Receive good output of a production order into under_inspection and
        advance the order's quantity_produced.

        Raises:
            ProductionOrderNotFoundError: unknown order.
            ValidationError: output would exceed quantity_ordered.
        """
        quantity = _positive(quantity_good, "quantity_good")
        reference = DocumentRef(ReferenceType.PRODUCTION_OUTPUT, output_id or uuid4())
        try:
            order = self._lock_order(production_order_id)
            produced = order.quantity_produced + quantity
            if produced > order.quantity_ordered:
                raise ValidationError(
                    f"Total output ({produced}) exceeds ordered quantity "
                    f"({order.quantity_ordered}) for {order.po_number}",
                    field="quantity_good",
                )
            posting = self._ledger.adjust_quantity(
                order.item_id, warehouse_id, Bucket.UNDER_INSPECTION, quantity,
                transaction_type=TransactionType.RECEIPT,
                reference=reference,
                actor_id=actor_id,
                notes=notes or f"Production output {order.po_number}",
            )
            order.quantity_produced = produced
            order.updated_by_id = actor_id
            self._session.flush()
            logger.info("production_output_recorded", extra={
                "production_order_id": str(production_order_id),
                "po_number": order.po_number,
                "quantity_good": str(quantity),
                "quantity_produced": str(produced),
            })
            self._commit()
            return MovementResult(reference=reference, postings=(posting,))
        except Exception:
            self._rollback()
            raise

    # =========================================================================
    # Cancellations
    # =========================================================================

    def cancel_receipt(
        self, receipt_id: UUID, *, actor_id: UUID, reason: str,
    ) -> CancellationResult:
        return self._cancel(ReferenceType.GOODS_RECEIPT, receipt_id, actor_id, reason)

    def cancel_issue(
        self, issue_id: UUID, *, actor_id: UUID, reason: str,
    ) -> CancellationResult:
        return self._cancel(ReferenceType.GOODS_ISSUE, issue_id, actor_id, reason)

    def cancel_production_output(
        self,
        output_id: UUID,
        production_order_id: UUID,
        *,
        actor_id: UUID,
        reason: str,
    ) -> CancellationResult:
        """Reverse an output posting and give the quantity back to the order."""
        try:
            order = self._lock_order(production_order_id)
            result = self._cancel(
                ReferenceType.PRODUCTION_OUTPUT, output_id, actor_id, reason, commit=False,
            )
            order.quantity_produced = order.quantity_produced - result.reversed_quantity
            if order.quantity_produced < ZERO:
                raise ValidationError(
                    f"Cancellation would leave {order.po_number} with negative output",
                    field="production_order_id",
                )
            order.updated_by_id = actor_id
            self._session.flush()
            self._commit()
            return result
        except Exception:
            self._rollback()
            raise

    def _cancel(
        self,
        reference_type: ReferenceType,
        document_id: UUID,
        actor_id: UUID,
        reason: str,
        commit: bool = True,
    ) -> CancellationResult:
        reason = _require_reason(reason)
        original = DocumentRef(reference_type, document_id)
        cancellation = DocumentRef(_CANCELLATION_TYPES[reference_type], document_id)
        try:
            if self._selector.list_transactions(
                reference_type=cancellation.reference_type, reference_id=document_id,
            ):
                raise DocumentAlreadyCancelledError(original.reference_type, str(document_id))

            originals = self._selector.list_transactions(
                reference_type=original.reference_type, reference_id=document_id,
            )
            if not originals:
                raise DocumentNotFoundError(original.reference_type, str(document_id))

            postings: list[LedgerPosting] = []
            reversed_quantity = ZERO
            for record in originals:
                for bucket, delta in self._effects(record):
                    postings.append(self._ledger.adjust_quantity(
                        record.item_id, record.warehouse_id, bucket, -delta,
                        transaction_type=TransactionType.ADJUSTMENT,
                        reference=cancellation,
                        actor_id=actor_id,
                        notes=reason,
                    ))
                    reversed_quantity += abs(delta)

            logger.info("document_cancelled", extra={
                "reference_type": original.reference_type,
                "reference_id": str(document_id),
                "postings": len(postings),
                "reversed_quantity": str(reversed_quantity),
            })
            if commit:
                self._commit()
            return CancellationResult(
                original=original,
                cancellation=cancellation,
                postings=tuple(postings),
                reversed_quantity=reversed_quantity,
            )
        except Exception:
            if commit:
                self._rollback()
            raise

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _effects(record) -> list[tuple[Bucket, Decimal]]:
        if record.status_from and record.status_to:
            return [
                (Bucket(record.status_from), -record.quantity),
                (Bucket(record.status_to), record.quantity),
            ]
        if record.status_to:
            return [(Bucket(record.status_to), record.quantity)]
        return [(Bucket(record.status_from), record.quantity)]

    def _balance_id(self, item_id: UUID, warehouse_id: UUID) -> UUID:
        return self._session.execute(
            select(InventoryBalance.id).where(
                InventoryBalance.item_id == item_id,
                InventoryBalance.warehouse_id == warehouse_id,
            )
        ).scalar_one()

    def _lock_order(self, production_order_id: UUID) -> ProductionOrderModel:
        order = self._session.execute(
            select(ProductionOrderModel)
            .where(ProductionOrderModel.id == production_order_id)
            .with_for_update()
        ).scalar_one_or_none()
        if order is None:
            raise ProductionOrderNotFoundError(str(production_order_id))
        return order

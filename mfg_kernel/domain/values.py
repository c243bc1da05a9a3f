"""
Values -- immutable inventory value objects.

Responsibility:
    The vocabulary shared by the ledger, its selectors and every workflow
    that mutates stock: the four status buckets, the transaction types,
    the balance snapshot and the document reference carried by every
    ledger posting.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Imported by models, services,
    selectors and modules.

Invariants enforced:
    - BalanceSnapshot never holds a negative bucket; constructing one
      raises ValueError.  Callers reading stored rows convert that into
      NegativeBucketError (an integrity failure, not a user error).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from uuid import UUID

ZERO = Decimal("0")


class Bucket(str, Enum):
    """The four inventory status partitions of a balance."""

    AVAILABLE = "available"
    RESERVED = "reserved"
    UNDER_INSPECTION = "under_inspection"
    REJECTED = "rejected"

    @property
    def column(self) -> str:
        """Name of the InventoryBalance attribute holding this bucket."""
        return f"quantity_{self.value}"


class TransactionType(str, Enum):
    RECEIPT = "receipt"
    ISSUE = "issue"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"
    RESERVATION = "reservation"
    UNRESERVATION = "unreservation"


class ReferenceType(str, Enum):
    """Document types that post to the ledger."""

    GOODS_RECEIPT = "goods_receipt"
    GOODS_ISSUE = "goods_issue"
    MANUAL_ADJUSTMENT = "manual_adjustment"
    STATUS_TRANSFER = "status_transfer"
    PRODUCTION_OUTPUT = "production_output"
    OPENING_BALANCE = "opening_balance"
    GOODS_RECEIPT_CANCELLATION = "goods_receipt_cancellation"
    GOODS_ISSUE_CANCELLATION = "goods_issue_cancellation"
    PRODUCTION_OUTPUT_CANCELLATION = "production_output_cancellation"


@dataclass(frozen=True, slots=True)
class DocumentRef:
    """
    Reference to the upstream document behind a ledger posting.

    Every transaction-log row carries one, so any balance movement can be
    traced to the receipt, issue, adjustment, transfer or production
    output that caused it.
    """

    reference_type: str
    reference_id: UUID

    def __post_init__(self) -> None:
        if isinstance(self.reference_type, Enum):
            object.__setattr__(self, "reference_type", self.reference_type.value)
        if not self.reference_type:
            raise ValueError("reference_type is required")


@dataclass(frozen=True, slots=True)
class BalanceSnapshot:
    """Point-in-time view of one (item, warehouse) balance."""

    item_id: UUID
    warehouse_id: UUID
    quantity_available: Decimal = ZERO
    quantity_reserved: Decimal = ZERO
    quantity_under_inspection: Decimal = ZERO
    quantity_rejected: Decimal = ZERO
    exists: bool = False

    def __post_init__(self) -> None:
        for bucket in Bucket:
            if getattr(self, bucket.column) < ZERO:
                raise ValueError(
                    f"{bucket.value} bucket is negative: {getattr(self, bucket.column)}"
                )

    @classmethod
    def zero(cls, item_id: UUID, warehouse_id: UUID) -> BalanceSnapshot:
        return cls(item_id=item_id, warehouse_id=warehouse_id)

    def bucket(self, bucket: Bucket) -> Decimal:
        return getattr(self, bucket.column)

    @property
    def total(self) -> Decimal:
        return sum((self.bucket(b) for b in Bucket), ZERO)

    def as_dict(self) -> dict[str, Decimal]:
        return {b.value: self.bucket(b) for b in Bucket}


@dataclass(frozen=True, slots=True)
class StockTotals:
    """Per-bucket totals of an item, summed over warehouses."""

    item_id: UUID
    available: Decimal = ZERO
    reserved: Decimal = ZERO
    under_inspection: Decimal = ZERO
    rejected: Decimal = ZERO
    warehouse_count: int = 0

    @property
    def total(self) -> Decimal:
        return self.available + self.reserved + self.under_inspection + self.rejected


@dataclass(frozen=True, slots=True)
class BucketDelta:
    """Signed effect of one transaction on one bucket."""

    bucket: Bucket
    delta: Decimal


@dataclass(frozen=True)
class ReconciliationReport:
    """
    Result of replaying the transaction log for one (item, warehouse).

    ``mismatches`` maps bucket -> (stored, replayed) for every bucket
    whose stored value differs from the replayed sum.
    """

    item_id: UUID
    warehouse_id: UUID
    stored: dict[str, Decimal]
    replayed: dict[str, Decimal]
    transaction_count: int
    mismatches: dict[str, tuple[Decimal, Decimal]] = field(default_factory=dict)

    @property
    def is_reconciled(self) -> bool:
        return not self.mismatches

"""
Purchasing Domain Models (``mfg_modules.purchasing.models``).

Frozen DTOs for purchase requests.  The procurement generator creates them
in DRAFT / PENDING state; approval and conversion to purchase orders belong
to the surrounding ERP.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class PurchaseRequestStatus(Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    CONVERTED = "converted"
    CANCELLED = "cancelled"


class ApprovalStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class PurchaseRequestLine:
    id: UUID
    line_number: int
    item_id: UUID
    quantity: Decimal
    required_date: date
    notes: str | None = None


@dataclass(frozen=True)
class PurchaseRequest:
    id: UUID
    pr_number: str
    request_date: date
    required_date: date
    justification: str
    status: PurchaseRequestStatus
    approval_status: ApprovalStatus
    lines: tuple[PurchaseRequestLine, ...]
    mrp_run_id: UUID | None = None

    @property
    def total_quantity(self) -> Decimal:
        return sum((line.quantity for line in self.lines), Decimal("0"))

"""
Production Domain Models (``mfg_modules.production.models``).

Frozen DTOs for production orders and bills of materials, the demand side
the requirement calculator reads.  No I/O.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID


class ProductionOrderStatus(Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OrderPriority(Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


@dataclass(frozen=True)
class ProductionOrder:
    id: UUID
    po_number: str
    item_id: UUID
    quantity_ordered: Decimal
    required_date: date
    status: ProductionOrderStatus = ProductionOrderStatus.DRAFT
    quantity_produced: Decimal = Decimal("0")
    priority: OrderPriority = OrderPriority.NORMAL


@dataclass(frozen=True)
class BOMLine:
    """
    One direct component of a BOM.

    ``scrap_percentage`` is a percentage: 5 means 5% extra is consumed.
    """

    id: UUID
    component_item_id: UUID
    quantity_per_unit: Decimal
    line_number: int
    scrap_percentage: Decimal = Decimal("0")

    def __post_init__(self):
        if self.quantity_per_unit <= 0:
            raise ValueError(f"quantity_per_unit must be positive: {self.quantity_per_unit}")
        if self.scrap_percentage < 0:
            raise ValueError(f"scrap_percentage must not be negative: {self.scrap_percentage}")


@dataclass(frozen=True)
class BOM:
    """Active bill of materials for a parent item (single level)."""

    id: UUID
    item_id: UUID
    version: int
    effective_date: date
    lines: tuple[BOMLine, ...]

"""
Module: mfg_modules.production.orm
Responsibility: ORM persistence for production orders and bills of
    materials.  These rows are owned by the production workflows of the
    surrounding ERP; the planner only reads them.

Invariants enforced:
    - (item_id, version) is unique per BOM header.
    - BOM lines are ordered by line_number within their header.
    - Quantities are Numeric(38, 9); scrap is stored as a percentage.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mfg_kernel.db.base import TrackedBase, UUIDString


class ProductionOrderModel(TrackedBase):
    """A work order to produce ``quantity_ordered`` of a parent item."""

    __tablename__ = "production_orders"

    __table_args__ = (
        Index("idx_prod_order_status_date", "status", "required_date"),
        Index("idx_prod_order_item", "item_id"),
    )

    po_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False,
    )

    quantity_ordered: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    quantity_produced: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0"),
    )

    required_date: Mapped[date] = mapped_column(Date, nullable=False)

    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="normal")

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")

    def to_dto(self):
        from mfg_modules.production.models import (
            OrderPriority,
            ProductionOrder,
            ProductionOrderStatus,
        )
        return ProductionOrder(
            id=self.id,
            po_number=self.po_number,
            item_id=self.item_id,
            quantity_ordered=self.quantity_ordered,
            required_date=self.required_date,
            status=ProductionOrderStatus(self.status),
            quantity_produced=self.quantity_produced,
            priority=OrderPriority(self.priority),
        )

    def __repr__(self) -> str:
        return f"<ProductionOrderModel {self.po_number} status={self.status}>"


class BOMHeaderModel(TrackedBase):
    """
    Versioned bill of materials of a parent item.

    The active BOM of an item is its highest version with is_active set.
    """

    __tablename__ = "bom_headers"

    __table_args__ = (
        UniqueConstraint("item_id", "version", name="uq_bom_item_version"),
        Index("idx_bom_item_active", "item_id", "is_active"),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    effective_date: Mapped[date] = mapped_column(Date, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    lines: Mapped[list["BOMLineModel"]] = relationship(
        back_populates="header",
        order_by="BOMLineModel.line_number",
        cascade="all, delete-orphan",
    )

    def to_dto(self):
        from mfg_modules.production.models import BOM
        return BOM(
            id=self.id,
            item_id=self.item_id,
            version=self.version,
            effective_date=self.effective_date,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<BOMHeaderModel item={self.item_id} v{self.version}>"


class BOMLineModel(TrackedBase):
    """One direct component of a BOM."""

    __tablename__ = "bom_lines"

    __table_args__ = (
        UniqueConstraint("bom_header_id", "line_number", name="uq_bom_line_number"),
    )

    bom_header_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("bom_headers.id", ondelete="CASCADE"), nullable=False,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    component_item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False,
    )

    quantity_per_unit: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    # Percent, e.g. 5 = 5% extra consumption
    scrap_percentage: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0"),
    )

    header: Mapped[BOMHeaderModel] = relationship(back_populates="lines")

    def to_dto(self):
        from mfg_modules.production.models import BOMLine
        return BOMLine(
            id=self.id,
            component_item_id=self.component_item_id,
            quantity_per_unit=self.quantity_per_unit,
            line_number=self.line_number,
            scrap_percentage=self.scrap_percentage,
        )

    def __repr__(self) -> str:
        return f"<BOMLineModel #{self.line_number} component={self.component_item_id}>"

"""
Module: mfg_kernel.models.master_data
Responsibility: ORM persistence for the master data the ledger and the
    planner refer to: units of measure, items and warehouses.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - item_code, uom code and warehouse code are unique.
    - UnitOfMeasure.decimal_places bounds the precision of every computed
      quantity of items measured in it (component demand is rounded to it).

Non-goals:
    - Master-data maintenance (create/edit screens, approvals) belongs to
      the surrounding ERP.  Rows here are written by that layer or by
      fixtures.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mfg_kernel.db.base import TrackedBase, UUIDString


class UnitOfMeasure(TrackedBase):
    """Unit of measure with the decimal precision its quantities carry."""

    __tablename__ = "units_of_measure"

    # Short code, e.g. "PCS", "KG"
    code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Decimal places quantities in this unit are rounded to (0 for pieces)
    decimal_places: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<UnitOfMeasure {self.code} dp={self.decimal_places}>"


class Item(TrackedBase):
    """
    Stocked item: raw material, component, sub-assembly or finished good.

    ``is_active`` hides an item from new documents but keeps it valid for
    history.  Physical deletion only happens through master-data cleanup;
    the planner tolerates requirements pointing at items that no longer
    exist.
    """

    __tablename__ = "items"

    __table_args__ = (
        Index("idx_item_type", "item_type"),
        Index("idx_item_active", "is_active"),
    )

    item_code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    item_name: Mapped[str] = mapped_column(String(200), nullable=False)

    # raw_material, component, sub_assembly, finished_good, consumable
    item_type: Mapped[str] = mapped_column(String(30), nullable=False)

    uom_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("units_of_measure.id"),
        nullable=False,
    )

    reorder_level: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0"),
    )

    unit_cost: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0"),
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    uom: Mapped[UnitOfMeasure] = relationship(lazy="joined")

    @property
    def decimal_places(self) -> int:
        return self.uom.decimal_places

    def __repr__(self) -> str:
        return f"<Item {self.item_code}>"


class Warehouse(TrackedBase):
    """Stocking location.  Balances are kept per (item, warehouse)."""

    __tablename__ = "warehouses"

    code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Warehouse {self.code}>"

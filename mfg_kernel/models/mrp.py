"""
Module: mfg_kernel.models.mrp
Responsibility: ORM persistence for planning runs and the per-(order, item)
    requirement rows each run produces.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - A run is created RUNNING and terminates exactly once, to COMPLETED or
      FAILED.  Terminal runs are frozen (db/immutability.py).
    - (mrp_run_id, production_order_id, item_id) is unique: one requirement
      row per order/component pair per run.
    - shortage_quantity = max(0, required_quantity - available_quantity).
    - The only legal requirement status change is SHORTAGE -> PR_CREATED,
      and it must set pr_id in the same write.
    - Requirements reference orders and items by id only, without foreign
      keys, so that a run stays inspectable after master data is deleted.

Audit relevance:
    A run whose requirements fed procurement is a permanent artifact: it
    cannot be deleted once any requirement carries a pr_id.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mfg_kernel.db.base import TrackedBase, UUIDString


class MRPRunStatus(str, Enum):
    """Run lifecycle: RUNNING -> COMPLETED | FAILED.  No other transition."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not MRPRunStatus.RUNNING


class RequirementStatus(str, Enum):
    SUFFICIENT = "sufficient"
    SHORTAGE = "shortage"
    PR_CREATED = "pr_created"


class MRPRun(TrackedBase):
    """One auditable invocation of the requirement calculator."""

    __tablename__ = "mrp_runs"

    __table_args__ = (
        Index("idx_mrp_run_status", "status"),
        Index("idx_mrp_run_date", "run_date"),
    )

    # MRP-YYYYMMDD-HHMM, suffixed -NN when several runs start in one minute
    run_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    run_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    planning_horizon_days: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MRPRunStatus.RUNNING.value,
    )

    total_requirements: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    total_shortages: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    requirements: Mapped[list["MRPRequirement"]] = relationship(
        back_populates="run",
        order_by="MRPRequirement.required_date, MRPRequirement.id",
    )

    @property
    def status_enum(self) -> MRPRunStatus:
        return MRPRunStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.status_enum.is_terminal

    def __repr__(self) -> str:
        return f"<MRPRun {self.run_number} status={self.status}>"


class MRPRequirement(TrackedBase):
    """Demand-vs-supply classification for one (order, component item)."""

    __tablename__ = "mrp_requirements"

    __table_args__ = (
        UniqueConstraint(
            "mrp_run_id", "production_order_id", "item_id",
            name="uq_mrp_requirement_run_order_item",
        ),
        Index("idx_mrp_req_run_status", "mrp_run_id", "status"),
        Index("idx_mrp_req_item", "item_id"),
        Index("idx_mrp_req_pr", "pr_id"),
    )

    mrp_run_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("mrp_runs.id", ondelete="CASCADE"), nullable=False,
    )

    production_order_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    item_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    required_quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    # Snapshot of quantity_available across warehouses at netting time
    available_quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    shortage_quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    required_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False)

    # Set exactly once, together with status PR_CREATED
    pr_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    run: Mapped[MRPRun] = relationship(back_populates="requirements")

    @property
    def status_enum(self) -> RequirementStatus:
        return RequirementStatus(self.status)

    def __repr__(self) -> str:
        return (
            f"<MRPRequirement order={self.production_order_id} item={self.item_id} "
            f"shortage={self.shortage_quantity} status={self.status}>"
        )

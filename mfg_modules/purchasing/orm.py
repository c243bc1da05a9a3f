"""
Module: mfg_modules.purchasing.orm
Responsibility: ORM persistence for purchase requests and their lines.

Invariants enforced:
    - pr_number is unique.
    - A request generated by the planner records the run it came from
      (mrp_run_id), which is what makes that run undeletable.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mfg_kernel.db.base import TrackedBase, UUIDString


class PurchaseRequestModel(TrackedBase):
    __tablename__ = "purchase_requests"

    __table_args__ = (
        Index("idx_pr_status", "status"),
        Index("idx_pr_mrp_run", "mrp_run_id"),
    )

    pr_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    request_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Most urgent date among the demand the request covers
    required_date: Mapped[date] = mapped_column(Date, nullable=False)

    justification: Mapped[str] = mapped_column(String(4000), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")

    approval_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending",
    )

    mrp_run_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("mrp_runs.id", ondelete="RESTRICT"), nullable=True,
    )

    lines: Mapped[list["PurchaseRequestLineModel"]] = relationship(
        back_populates="request",
        order_by="PurchaseRequestLineModel.line_number",
        cascade="all, delete-orphan",
    )

    def to_dto(self):
        from mfg_modules.purchasing.models import (
            ApprovalStatus,
            PurchaseRequest,
            PurchaseRequestStatus,
        )
        return PurchaseRequest(
            id=self.id,
            pr_number=self.pr_number,
            request_date=self.request_date,
            required_date=self.required_date,
            justification=self.justification,
            status=PurchaseRequestStatus(self.status),
            approval_status=ApprovalStatus(self.approval_status),
            lines=tuple(line.to_dto() for line in self.lines),
            mrp_run_id=self.mrp_run_id,
        )

    def __repr__(self) -> str:
        return f"<PurchaseRequestModel {self.pr_number} status={self.status}>"


class PurchaseRequestLineModel(TrackedBase):
    __tablename__ = "purchase_request_lines"

    __table_args__ = (
        UniqueConstraint("purchase_request_id", "line_number", name="uq_pr_line_number"),
        Index("idx_pr_line_item", "item_id"),
    )

    purchase_request_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("purchase_requests.id", ondelete="CASCADE"), nullable=False,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    required_date: Mapped[date] = mapped_column(Date, nullable=False)

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    request: Mapped[PurchaseRequestModel] = relationship(back_populates="lines")

    def to_dto(self):
        from mfg_modules.purchasing.models import PurchaseRequestLine
        return PurchaseRequestLine(
            id=self.id,
            line_number=self.line_number,
            item_id=self.item_id,
            quantity=self.quantity,
            required_date=self.required_date,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return f"<PurchaseRequestLineModel #{self.line_number} qty={self.quantity}>"

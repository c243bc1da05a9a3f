"""
MRP Domain Models (``mfg_modules.mrp.models``).

Frozen result objects returned by the planner.  They replace loosely
keyed dictionaries at every public boundary of the module: run records,
requirement rows, per-item generation results and the skipped groups a
generation pass reports alongside its successes.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from mfg_kernel.models.mrp import MRPRunStatus, RequirementStatus


@dataclass(frozen=True)
class RequirementRecord:
    id: UUID
    mrp_run_id: UUID
    production_order_id: UUID
    item_id: UUID
    required_quantity: Decimal
    available_quantity: Decimal
    shortage_quantity: Decimal
    required_date: date
    status: RequirementStatus
    pr_id: UUID | None = None

    @property
    def is_shortage(self) -> bool:
        return self.shortage_quantity > 0


@dataclass(frozen=True)
class MRPRunRecord:
    id: UUID
    run_number: str
    run_date: datetime
    planning_horizon_days: int
    status: MRPRunStatus
    total_requirements: int
    total_shortages: int
    notes: str | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class RunPage:
    """One page of ``MRPService.list_runs()``."""

    runs: tuple[MRPRunRecord, ...]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size


@dataclass(frozen=True)
class CalculationResult:
    """
    Outcome of one netting pass.

    ``fingerprint`` hashes the requirement rows without run or row ids, so
    two passes over the same snapshot produce the same value.
    """

    order_count: int
    total_requirements: int
    total_shortages: int
    fingerprint: str
    orders_without_bom: tuple[str, ...] = ()


@dataclass(frozen=True)
class PRGenerationResult:
    """One purchase request created from a group of shortage rows."""

    pr_id: UUID
    pr_number: str
    item_id: UUID
    item_code: str
    total_quantity: Decimal
    required_by_date: date
    requirement_ids: tuple[UUID, ...]
    item_count: int = 1


@dataclass(frozen=True)
class SkippedGroup:
    item_id: UUID
    reason: str
    requirement_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class GenerationReport:
    run_id: UUID
    generated: tuple[PRGenerationResult, ...] = ()
    skipped: tuple[SkippedGroup, ...] = ()
    already_consumed: int = 0

    @property
    def pr_count(self) -> int:
        return len(self.generated)

    @property
    def total_quantity(self) -> Decimal:
        return sum((r.total_quantity for r in self.generated), Decimal("0"))

    def for_item(self, item_id: UUID) -> PRGenerationResult | None:
        for result in self.generated:
            if result.item_id == item_id:
                return result
        return None

"""
RequirementCalculator -- single-level netting of open production orders.

Responsibility:
    For one run: select the open production orders due on or before the
    end of the planning horizon (overdue orders included), explode each
    against the active BOM of its item, net the component demand against
    available stock and persist one MRPRequirement row per
    (order, component item).

Architecture position:
    Modules > MRP.  Read-only against the ledger.  Writes only requirement
    rows of the run it is given, and only flushes.

Invariants enforced:
    - One availability snapshot per pass.  Every order sees the same
      available quantity for a component; demand is not decremented
      between orders.
    - Demand rows are not aggregated across orders.  Two lines of the same
      component in one BOM are summed into that order's single row.
    - Deterministic ordering: orders by (required_date, po_number), BOM
      lines by line_number.  The fingerprint of a pass depends only on
      the orders, BOMs and stock it read.

Failure modes:
    - An order whose item has no active BOM contributes no demand; this is
      logged as a warning, not an error.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from mfg_config.schema import MRPConfig
from mfg_kernel.db.types import ZERO, round_quantity
from mfg_kernel.domain.clock import Clock, SystemClock
from mfg_kernel.logging_config import get_logger
from mfg_kernel.models.master_data import Item
from mfg_kernel.models.mrp import MRPRequirement, MRPRun, RequirementStatus
from mfg_kernel.selectors.ledger_selector import LedgerSelector
from mfg_kernel.utils.hashing import fingerprint_requirements
from mfg_modules.mrp.models import CalculationResult
from mfg_modules.production.models import BOM, ProductionOrder
from mfg_modules.production.orm import BOMHeaderModel, ProductionOrderModel

logger = get_logger("modules.mrp.calculator")

_HUNDRED = Decimal("100")


def component_demand(
    quantity_ordered: Decimal,
    quantity_per_unit: Decimal,
    scrap_percentage: Decimal,
    decimal_places: int,
) -> Decimal:
    """quantity_ordered x quantity_per_unit x (1 + scrap/100), at UOM precision."""
    gross = quantity_ordered * quantity_per_unit * (1 + scrap_percentage / _HUNDRED)
    return round_quantity(gross, decimal_places)


class RequirementCalculator:
    """
    Produces the requirement rows of one planning run.

    Usage:
        calculator = RequirementCalculator(session, clock, config.mrp)
        result = calculator.calculate(run, horizon_days=30, actor_id=actor_id)
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: MRPConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or MRPConfig()
        self._selector = LedgerSelector(session)

    def open_orders(self, horizon_days: int) -> list[ProductionOrder]:
        """Open orders due on or before today + horizon_days, overdue included, in netting order."""
        today = self._clock.today()
        horizon_end = today + timedelta(days=horizon_days)
        models = self._session.execute(
            select(ProductionOrderModel)
            .where(
                ProductionOrderModel.status.in_(self._config.open_order_statuses),
                ProductionOrderModel.required_date <= horizon_end,
            )
            .order_by(ProductionOrderModel.required_date, ProductionOrderModel.po_number)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def active_bom(self, item_id: UUID) -> BOM | None:
        """Highest active version of the item's BOM."""
        header = self._session.execute(
            select(BOMHeaderModel)
            .where(BOMHeaderModel.item_id == item_id, BOMHeaderModel.is_active.is_(True))
            .options(selectinload(BOMHeaderModel.lines))
            .order_by(BOMHeaderModel.version.desc())
            .limit(1)
        ).scalar_one_or_none()
        return header.to_dto() if header is not None else None

    def calculate(
        self, run: MRPRun, horizon_days: int, actor_id: UUID,
    ) -> CalculationResult:
        orders = self.open_orders(horizon_days)
        logger.info("mrp_orders_selected", extra={
            "mrp_run_id": str(run.id),
            "order_count": len(orders),
            "horizon_days": horizon_days,
        })

        boms: dict[UUID, BOM | None] = {}
        precision: dict[UUID, int] = {}
        orders_without_bom: list[str] = []
        # (order, component item id, demand) in netting order
        demand: list[tuple[ProductionOrder, UUID, Decimal]] = []

        for order in orders:
            if order.item_id not in boms:
                boms[order.item_id] = self.active_bom(order.item_id)
            bom = boms[order.item_id]
            if bom is None or not bom.lines:
                logger.warning("mrp_bom_missing", extra={
                    "mrp_run_id": str(run.id),
                    "production_order_id": str(order.id),
                    "po_number": order.po_number,
                    "item_id": str(order.item_id),
                })
                orders_without_bom.append(order.po_number)
                continue

            per_component: dict[UUID, Decimal] = {}
            for line in bom.lines:
                component_id = line.component_item_id
                if component_id not in precision:
                    precision[component_id] = self._session.get(Item, component_id).decimal_places
                qty = component_demand(
                    order.quantity_ordered,
                    line.quantity_per_unit,
                    line.scrap_percentage,
                    precision[component_id],
                )
                per_component[component_id] = per_component.get(component_id, ZERO) + qty
            for component_id, qty in per_component.items():
                demand.append((order, component_id, qty))

        snapshot = self._selector.available_snapshot(item_id for _, item_id, _ in demand)

        rows: list[MRPRequirement] = []
        for order, item_id, required in demand:
            available = snapshot[item_id]
            shortage = max(ZERO, required - available)
            row = MRPRequirement(
                mrp_run_id=run.id,
                production_order_id=order.id,
                item_id=item_id,
                required_quantity=required,
                available_quantity=available,
                shortage_quantity=shortage,
                required_date=order.required_date,
                status=(
                    RequirementStatus.SHORTAGE.value
                    if shortage > ZERO
                    else RequirementStatus.SUFFICIENT.value
                ),
                created_by_id=actor_id,
            )
            self._session.add(row)
            rows.append(row)
        self._session.flush()

        total_shortages = sum(1 for r in rows if r.status == RequirementStatus.SHORTAGE.value)
        fingerprint = fingerprint_requirements([
            {
                "production_order_id": r.production_order_id,
                "item_id": r.item_id,
                "required_quantity": r.required_quantity,
                "available_quantity": r.available_quantity,
                "shortage_quantity": r.shortage_quantity,
                "required_date": r.required_date,
                "status": r.status,
            }
            for r in rows
        ])
        logger.info("mrp_netting_completed", extra={
            "mrp_run_id": str(run.id),
            "total_requirements": len(rows),
            "total_shortages": total_shortages,
            "fingerprint": fingerprint,
        })
        return CalculationResult(
            order_count=len(orders),
            total_requirements=len(rows),
            total_shortages=total_shortages,
            fingerprint=fingerprint,
            orders_without_bom=tuple(orders_without_bom),
        )

"""
ProcurementGenerator -- shortages of a run into purchase requests.

Responsibility:
    Groups the unconsumed shortage rows of a completed run by item and
    writes one draft purchase request per item, with a single line for the
    summed shortage.  The rows it used are flipped to PR_CREATED and carry
    the request id, so a second pass over the same run finds nothing left.

Architecture position:
    Modules > MRP.  Flushes only; MRPService owns the transaction.

Invariants enforced:
    - Each requirement row is consumed at most once.  The flip is a
      check-and-set (``UPDATE ... WHERE status = 'shortage'``); if fewer
      rows change than were read, another writer got there first and the
      whole item group is rolled back to its savepoint.
    - Groups are independent.  A skipped or conflicting group never undoes
      the requests already written for other items.

Failure modes:
    - MRPRunNotFoundError / RunNotCompletedError: run is missing or not
      completed.
    - NoShortagesError: nothing left to consume.
    - A group whose item no longer exists, or whose rows were consumed
      concurrently, is reported in ``GenerationReport.skipped``.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from mfg_config.schema import MRPConfig
from mfg_kernel.db.types import ZERO
from mfg_kernel.domain.clock import Clock, SystemClock
from mfg_kernel.exceptions import (
    ManufacturingKernelError,
    MRPRunNotFoundError,
    NoShortagesError,
    OptimisticLockError,
    RunNotCompletedError,
)
from mfg_kernel.logging_config import get_logger
from mfg_kernel.models.master_data import Item
from mfg_kernel.models.mrp import MRPRequirement, MRPRun, MRPRunStatus, RequirementStatus
from mfg_kernel.services.auditor_service import AuditorService
from mfg_modules.mrp.models import GenerationReport, PRGenerationResult, SkippedGroup
from mfg_modules.mrp.numbering import allocate_number
from mfg_modules.purchasing.models import ApprovalStatus, PurchaseRequestStatus
from mfg_modules.purchasing.orm import PurchaseRequestLineModel, PurchaseRequestModel

logger = get_logger("modules.mrp.generator")


def _display(quantity: Decimal) -> str:
    return f"{quantity.normalize():f}"


class ProcurementGenerator:
    """Turns the shortage rows of one run into per-item purchase requests."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: MRPConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or MRPConfig()
        self._auditor = AuditorService(session, self._clock)

    def generate_prs_from_mrp(self, run_id: UUID, actor_id: UUID) -> GenerationReport:
        run = self._session.get(MRPRun, run_id)
        if run is None:
            raise MRPRunNotFoundError(str(run_id))
        if run.status != MRPRunStatus.COMPLETED.value:
            raise RunNotCompletedError(str(run_id), run.status)

        rows = self._session.execute(
            select(MRPRequirement)
            .where(
                MRPRequirement.mrp_run_id == run_id,
                MRPRequirement.status.in_((
                    RequirementStatus.SHORTAGE.value,
                    RequirementStatus.PR_CREATED.value,
                )),
            )
            .order_by(MRPRequirement.required_date, MRPRequirement.id)
        ).scalars().all()

        already_consumed = sum(1 for r in rows if r.status == RequirementStatus.PR_CREATED.value)
        groups: dict[UUID, list[MRPRequirement]] = defaultdict(list)
        for row in rows:
            if row.status == RequirementStatus.SHORTAGE.value:
                groups[row.item_id].append(row)

        if not groups:
            logger.warning("pr_generation_no_shortages", extra={
                "mrp_run_id": str(run_id),
                "already_consumed": already_consumed,
            })
            raise NoShortagesError(str(run_id))

        generated: list[PRGenerationResult] = []
        skipped: list[SkippedGroup] = []
        for item_id in sorted(groups, key=str):
            group = groups[item_id]
            outcome = self._generate_for_item(run, item_id, group, actor_id)
            if isinstance(outcome, SkippedGroup):
                skipped.append(outcome)
            else:
                generated.append(outcome)

        self._auditor.record_prs_generated(run_id, actor_id, len(generated), len(skipped))
        self._session.flush()
        logger.info("prs_generated_from_mrp", extra={
            "mrp_run_id": str(run_id),
            "run_number": run.run_number,
            "pr_count": len(generated),
            "skipped_count": len(skipped),
            "already_consumed": already_consumed,
        })
        return GenerationReport(
            run_id=run_id,
            generated=tuple(generated),
            skipped=tuple(skipped),
            already_consumed=already_consumed,
        )

    def _generate_for_item(
        self,
        run: MRPRun,
        item_id: UUID,
        group: list[MRPRequirement],
        actor_id: UUID,
    ) -> PRGenerationResult | SkippedGroup:
        requirement_ids = tuple(r.id for r in group)
        total = sum((r.shortage_quantity for r in group), ZERO)
        required_by = min(r.required_date for r in group)

        item = self._session.get(Item, item_id)
        if item is None:
            logger.warning("pr_generation_item_skipped", extra={
                "mrp_run_id": str(run.id),
                "item_id": str(item_id),
                "reason": "item_not_found",
            })
            return SkippedGroup(item_id, "item_not_found", requirement_ids)

        savepoint = self._session.begin_nested()
        try:
            now = self._clock.now()
            pr_number = allocate_number(self._session, self._config.pr_number_prefix, now)
            pr = PurchaseRequestModel(
                id=uuid4(),
                pr_number=pr_number,
                request_date=self._clock.today(),
                required_date=required_by,
                justification=f"Auto-generated from MRP Run {run.run_number} for {item.item_name}",
                status=PurchaseRequestStatus.DRAFT.value,
                approval_status=ApprovalStatus.PENDING.value,
                mrp_run_id=run.id,
                created_by_id=actor_id,
            )
            pr.lines.append(PurchaseRequestLineModel(
                line_number=1,
                item_id=item_id,
                quantity=total,
                required_date=required_by,
                notes=f"MRP shortage: {_display(total)} {item.item_code}",
                created_by_id=actor_id,
            ))
            self._session.add(pr)
            self._session.flush()

            result = self._session.execute(
                update(MRPRequirement)
                .where(
                    MRPRequirement.id.in_(requirement_ids),
                    MRPRequirement.status == RequirementStatus.SHORTAGE.value,
                )
                .values(
                    status=RequirementStatus.PR_CREATED.value,
                    pr_id=pr.id,
                    updated_by_id=actor_id,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != len(requirement_ids):
                raise OptimisticLockError("MRPRequirement", ",".join(str(i) for i in requirement_ids))

            self._auditor.record_pr_auto_generated(
                pr.id,
                actor_id,
                pr_number=pr_number,
                run_id=run.id,
                item_id=item_id,
                total_quantity=total,
                requirement_ids=list(requirement_ids),
            )
            savepoint.commit()
        except ManufacturingKernelError as exc:
            savepoint.rollback()
            logger.warning("pr_generation_item_skipped", extra={
                "mrp_run_id": str(run.id),
                "item_id": str(item_id),
                "reason": exc.code,
            })
            return SkippedGroup(item_id, exc.code, requirement_ids)
        finally:
            for row in group:
                self._session.expire(row)

        logger.info("pr_generated", extra={
            "mrp_run_id": str(run.id),
            "pr_id": str(pr.id),
            "pr_number": pr_number,
            "item_id": str(item_id),
            "total_quantity": str(total),
            "requirement_count": len(requirement_ids),
        })
        return PRGenerationResult(
            pr_id=pr.id,
            pr_number=pr_number,
            item_id=item_id,
            item_code=item.item_code,
            total_quantity=total,
            required_by_date=required_by,
            requirement_ids=requirement_ids,
        )

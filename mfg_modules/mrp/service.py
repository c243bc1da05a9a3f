"""
MRP Module Service (``mfg_modules.mrp.service``).

Responsibility
--------------
Records planning runs and exposes them: ``execute_mrp`` wraps one
``RequirementCalculator`` pass as a named, audited run with totals and a
terminal status; ``generate_prs_from_mrp`` hands a completed run to the
``ProcurementGenerator``; the remaining methods read runs, their
requirement rows and the purchase requests generated from them.

Architecture
------------
Layer: **Modules** -- orchestration.  The calculator and generator only
flush; this service owns the transaction boundary when ``auto_commit`` is
set (the default).

Invariants
----------
- Run execution is single-writer.  ``execute_mrp`` first locks the
  ``mrp_run_execution`` sequence counter row, which is held until commit.
- A run is created RUNNING and ends exactly once, COMPLETED or FAILED.
  The calculator works inside a savepoint, so a failed pass leaves no
  requirement rows behind while the FAILED run itself is kept.
- A run any of whose requirements carries a pr_id cannot be deleted.

Failure Modes
-------------
- ``ValidationError``: horizon outside 1..max_horizon_days, bad paging.
- ``MRPRunNotFoundError``: unknown run id.
- ``RunReferencedError`` / ``StateConflictError``: delete refused.
- Any calculator error marks the run FAILED, is audited and re-raised.

Audit Relevance
---------------
``MRP_EXECUTED``, ``MRP_FAILED`` and ``MRP_RUN_DELETED`` audit events are
written in the same transaction as the run change they describe.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from mfg_config.schema import MRPConfig
from mfg_kernel.domain.clock import Clock, SystemClock
from mfg_kernel.exceptions import (
    MRPRunNotFoundError,
    RunAlreadyTerminatedError,
    RunReferencedError,
    StateConflictError,
    ValidationError,
)
from mfg_kernel.logging_config import LogContext, get_logger
from mfg_kernel.models.mrp import MRPRequirement, MRPRun, MRPRunStatus, RequirementStatus
from mfg_kernel.services.auditor_service import AuditorService
from mfg_kernel.services.sequence_service import SequenceService
from mfg_modules.mrp.calculator import RequirementCalculator
from mfg_modules.mrp.generator import ProcurementGenerator
from mfg_modules.mrp.models import (
    CalculationResult,
    GenerationReport,
    MRPRunRecord,
    RequirementRecord,
    RunPage,
)
from mfg_modules.mrp.numbering import allocate_number
from mfg_modules.purchasing.models import PurchaseRequest
from mfg_modules.purchasing.orm import PurchaseRequestModel

logger = get_logger("modules.mrp.service")

NO_ORDERS_NOTE = "No released production orders found in planning horizon"


def _run_record(run: MRPRun) -> MRPRunRecord:
    return MRPRunRecord(
        id=run.id,
        run_number=run.run_number,
        run_date=run.run_date,
        planning_horizon_days=run.planning_horizon_days,
        status=MRPRunStatus(run.status),
        total_requirements=run.total_requirements,
        total_shortages=run.total_shortages,
        notes=run.notes,
        completed_at=run.completed_at,
    )


def _requirement_record(row: MRPRequirement) -> RequirementRecord:
    return RequirementRecord(
        id=row.id,
        mrp_run_id=row.mrp_run_id,
        production_order_id=row.production_order_id,
        item_id=row.item_id,
        required_quantity=row.required_quantity,
        available_quantity=row.available_quantity,
        shortage_quantity=row.shortage_quantity,
        required_date=row.required_date,
        status=RequirementStatus(row.status),
        pr_id=row.pr_id,
    )


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


class MRPService:
    """
    Planning runs: execute, inspect, delete and convert to procurement.

    Usage:
        service = MRPService(session, clock, config.mrp)
        run = service.execute_mrp(horizon_days=30, actor_id=actor_id)
        report = service.generate_prs_from_mrp(run.id, actor_id=actor_id)
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: MRPConfig | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or MRPConfig()
        self._auto_commit = auto_commit
        self._calculator = RequirementCalculator(session, self._clock, self._config)
        self._generator = ProcurementGenerator(session, self._clock, self._config)
        self._auditor = AuditorService(session, self._clock)
        self._sequences = SequenceService(session)
        self.last_calculation: CalculationResult | None = None

    def _commit(self) -> None:
        if self._auto_commit:
            self._session.commit()

    def _rollback(self) -> None:
        if self._auto_commit:
            self._session.rollback()

    # =========================================================================
    # Execution
    # =========================================================================

    def execute_mrp(
        self, horizon_days: int | None = None, *, actor_id: UUID,
    ) -> MRPRunRecord:
        """
        Run one netting pass and record it.

        Returns:
            The terminal run record (always COMPLETED; failures raise).

        Raises:
            ValidationError: horizon outside 1..max_horizon_days.
            Exception: whatever the calculator raised, after the run has
                been marked FAILED.
        """
        horizon = self._config.default_horizon_days if horizon_days is None else horizon_days
        if not 1 <= horizon <= self._config.max_horizon_days:
            raise ValidationError(
                f"Planning horizon must be within 1..{self._config.max_horizon_days} days, "
                f"got {horizon}",
                field="horizon_days",
            )

        try:
            # Single writer: held until this transaction ends
            self._sequences.next_value(SequenceService.MRP_RUN_EXECUTION)

            now = self._clock.now()
            run = MRPRun(
                id=uuid4(),
                run_number=allocate_number(self._session, self._config.run_number_prefix, now),
                run_date=now,
                planning_horizon_days=horizon,
                status=MRPRunStatus.RUNNING.value,
                total_requirements=0,
                total_shortages=0,
                created_by_id=actor_id,
            )
            self._session.add(run)
            self._session.flush()
        except Exception:
            self._rollback()
            raise

        with LogContext.bind(run_id=run.id, actor_id=actor_id):
            logger.info("mrp_run_started", extra={
                "run_number": run.run_number,
                "horizon_days": horizon,
            })

            savepoint = self._session.begin_nested()
            try:
                result = self._calculator.calculate(run, horizon, actor_id)
                savepoint.commit()
            except Exception as exc:
                savepoint.rollback()
                self._fail(run, exc, actor_id)
                raise

            try:
                self._finish(run, MRPRunStatus.COMPLETED)
                run.total_requirements = result.total_requirements
                run.total_shortages = result.total_shortages
                if result.order_count == 0:
                    run.notes = NO_ORDERS_NOTE
                elif result.orders_without_bom:
                    run.notes = "No active BOM for: " + ", ".join(result.orders_without_bom)
                self._auditor.record_mrp_executed(
                    run.id,
                    actor_id,
                    run.run_number,
                    horizon,
                    result.total_requirements,
                    result.total_shortages,
                )
                self._session.flush()
                record = _run_record(run)
                self._commit()
            except Exception:
                self._rollback()
                raise

            self.last_calculation = result
            logger.info("mrp_run_completed", extra={
                "run_number": record.run_number,
                "total_requirements": record.total_requirements,
                "total_shortages": record.total_shortages,
                "fingerprint": result.fingerprint,
            })
            return record

    def _finish(self, run: MRPRun, status: MRPRunStatus) -> None:
        if run.is_terminal:
            raise RunAlreadyTerminatedError(str(run.id), run.status)
        run.status = status.value
        run.completed_at = self._clock.now()

    def _fail(self, run: MRPRun, exc: Exception, actor_id: UUID) -> None:
        logger.error("mrp_run_failed", exc_info=exc, extra={"run_number": run.run_number})
        try:
            self._finish(run, MRPRunStatus.FAILED)
            run.notes = f"{type(exc).__name__}: {exc}"[:4000]
            self._auditor.record_mrp_failed(run.id, actor_id, run.run_number, run.notes)
            self._session.flush()
            self._commit()
        except Exception:
            self._rollback()
            raise

    # =========================================================================
    # Runs
    # =========================================================================

    def _load_run(self, run_id: UUID) -> MRPRun:
        run = self._session.get(MRPRun, run_id)
        if run is None:
            raise MRPRunNotFoundError(str(run_id))
        return run

    def get_run(self, run_id: UUID) -> MRPRunRecord:
        return _run_record(self._load_run(run_id))

    def list_runs(
        self,
        *,
        status: MRPRunStatus | str | None = None,
        from_date: date | None = None,
        to_date: date | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> RunPage:
        """Runs newest first; date bounds are inclusive calendar days (UTC)."""
        if page < 1 or page_size < 1:
            raise ValidationError("page and page_size must be >= 1", field="page")

        conditions = []
        if status is not None:
            conditions.append(MRPRun.status == MRPRunStatus(status).value)
        if from_date is not None:
            conditions.append(MRPRun.run_date >= _day_start(from_date))
        if to_date is not None:
            conditions.append(MRPRun.run_date < _day_start(to_date + timedelta(days=1)))

        total = self._session.execute(
            select(func.count()).select_from(MRPRun).where(*conditions)
        ).scalar_one()
        runs = self._session.execute(
            select(MRPRun)
            .where(*conditions)
            .order_by(MRPRun.run_date.desc(), MRPRun.run_number.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).scalars().all()
        return RunPage(
            runs=tuple(_run_record(r) for r in runs),
            total=total,
            page=page,
            page_size=page_size,
        )

    def delete_mrp_run(self, run_id: UUID, *, actor_id: UUID) -> None:
        """
        Delete a run and its requirement rows.

        Raises:
            RunReferencedError: a requirement of the run carries a pr_id.
            StateConflictError: the run is still running.
        """
        try:
            run = self._load_run(run_id)
            if not run.is_terminal:
                raise StateConflictError(f"MRP run {run_id} is still running")

            referenced = self._session.execute(
                select(func.count())
                .select_from(MRPRequirement)
                .where(MRPRequirement.mrp_run_id == run_id, MRPRequirement.pr_id.is_not(None))
            ).scalar_one()
            if referenced:
                logger.warning("mrp_run_delete_refused", extra={
                    "run_id": str(run_id),
                    "run_number": run.run_number,
                    "referenced_count": referenced,
                })
                raise RunReferencedError(str(run_id), referenced)

            requirements = list(run.requirements)
            self._auditor.record_mrp_run_deleted(
                run.id, actor_id, run.run_number, len(requirements),
            )
            for row in requirements:
                self._session.delete(row)
            self._session.delete(run)
            self._session.flush()
            logger.info("mrp_run_deleted", extra={
                "run_id": str(run_id),
                "run_number": run.run_number,
                "requirement_count": len(requirements),
            })
            self._commit()
        except Exception:
            self._rollback()
            raise

    # =========================================================================
    # Requirements
    # =========================================================================

    def get_requirements(
        self, run_id: UUID, status: RequirementStatus | str | None = None,
    ) -> list[RequirementRecord]:
        self._load_run(run_id)
        stmt = select(MRPRequirement).where(MRPRequirement.mrp_run_id == run_id)
        if status is not None:
            stmt = stmt.where(MRPRequirement.status == RequirementStatus(status).value)
        rows = self._session.execute(
            stmt.order_by(
                MRPRequirement.required_date,
                MRPRequirement.production_order_id,
                MRPRequirement.item_id,
            )
        ).scalars().all()
        return [_requirement_record(r) for r in rows]

    def get_shortages(self, run_id: UUID) -> list[RequirementRecord]:
        """Rows with a positive shortage, consumed by procurement or not."""
        return [r for r in self.get_requirements(run_id) if r.is_shortage]

    # =========================================================================
    # Procurement
    # =========================================================================

    def generate_prs_from_mrp(self, run_id: UUID, *, actor_id: UUID) -> GenerationReport:
        with LogContext.bind(run_id=run_id, actor_id=actor_id):
            try:
                report = self._generator.generate_prs_from_mrp(run_id, actor_id)
                self._commit()
                return report
            except Exception:
                self._rollback()
                raise

    def get_prs_by_run(self, run_id: UUID) -> list[PurchaseRequest]:
        self._load_run(run_id)
        prs = self._session.execute(
            select(PurchaseRequestModel)
            .where(PurchaseRequestModel.mrp_run_id == run_id)
            .order_by(PurchaseRequestModel.pr_number)
        ).scalars().all()
        return [pr.to_dto() for pr in prs]

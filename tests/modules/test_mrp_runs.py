"""
MRP run lifecycle tests.

Verifies:
- Run numbers are MRP-YYYYMMDD-HHMM, suffixed within the same minute
- A pass with no open orders completes with an explanatory note
- A calculator failure leaves a FAILED run, audited, without requirements
- Failed runs cannot generate purchase requests
- Runs list newest first with status and date filters and paging
- Deleting a run is refused once procurement consumed any requirement
- The planning horizon is validated before anything is written
"""

from datetime import date, datetime, timezone
from uuid import uuid4

import pytest

from mfg_kernel.exceptions import (
    MRPRunNotFoundError,
    RunNotCompletedError,
    RunReferencedError,
    StateConflictError,
    ValidationError,
)
from mfg_kernel.models.audit_event import AuditAction
from mfg_kernel.models.mrp import MRPRun, MRPRunStatus
from mfg_modules.mrp import MRPService
from mfg_modules.mrp.service import NO_ORDERS_NOTE


@pytest.fixture
def mrp(session, deterministic_clock) -> MRPService:
    return MRPService(session, deterministic_clock)


@pytest.fixture
def planned(make_item, make_bom, make_production_order):
    """A bicycle order short of frames."""
    bike = make_item("FG-BIKE", "Bicycle", item_type="finished_good")
    frame = make_item("RM-FRAME", "Frame tube")
    make_bom(bike, [(frame, 1)])
    make_production_order(bike, 3)
    return frame


class TestExecution:

    def test_run_numbers(self, mrp, deterministic_clock, test_actor_id):
        first = mrp.execute_mrp(actor_id=test_actor_id)
        second = mrp.execute_mrp(actor_id=test_actor_id)
        deterministic_clock.advance(60)
        third = mrp.execute_mrp(actor_id=test_actor_id)

        assert first.run_number == "MRP-20240101-1200"
        assert second.run_number == "MRP-20240101-1200-02"
        assert third.run_number == "MRP-20240101-1201"

    def test_completed_run_record(self, mrp, deterministic_clock, planned, test_actor_id):
        run = mrp.execute_mrp(14, actor_id=test_actor_id)

        assert run.status is MRPRunStatus.COMPLETED
        assert run.planning_horizon_days == 14
        assert run.total_requirements == 1
        assert run.total_shortages == 1
        assert run.completed_at == deterministic_clock.now()
        assert run.notes is None
        assert mrp.get_run(run.id) == run

    def test_default_horizon(self, mrp, test_actor_id):
        run = mrp.execute_mrp(actor_id=test_actor_id)

        assert run.planning_horizon_days == 30

    def test_no_orders_note(self, mrp, test_actor_id):
        run = mrp.execute_mrp(30, actor_id=test_actor_id)

        assert run.status is MRPRunStatus.COMPLETED
        assert run.total_requirements == 0
        assert run.notes == NO_ORDERS_NOTE

    @pytest.mark.parametrize("horizon", [0, -5, 366])
    def test_horizon_validated(self, mrp, session, test_actor_id, horizon):
        with pytest.raises(ValidationError):
            mrp.execute_mrp(horizon, actor_id=test_actor_id)

        assert mrp.list_runs().total == 0

    def test_lifecycle_logged(self, mrp, test_actor_id, captured_logs):
        run = mrp.execute_mrp(actor_id=test_actor_id)

        messages = [r for r in captured_logs() if r["message"].startswith("mrp_run_")]
        assert [r["message"] for r in messages] == ["mrp_run_started", "mrp_run_completed"]
        assert all(r["run_id"] == str(run.id) for r in messages)


class TestFailure:

    @pytest.fixture
    def broken(self, mrp, monkeypatch):
        def _explode(run, horizon_days, actor_id):
            raise RuntimeError("bom table unreachable")
        monkeypatch.setattr(mrp._calculator, "calculate", _explode)
        return mrp

    def test_failed_run_kept(self, broken, auditor_service, test_actor_id):
        with pytest.raises(RuntimeError):
            broken.execute_mrp(actor_id=test_actor_id)

        (run,) = broken.list_runs(status=MRPRunStatus.FAILED).runs
        assert run.notes == "RuntimeError: bom table unreachable"
        assert run.completed_at is not None
        assert broken.get_requirements(run.id) == []
        trace = auditor_service.get_trace("MRPRun", run.id)
        assert trace.actions == (AuditAction.MRP_FAILED.value,)

    def test_failed_run_excluded_from_generation(self, broken, test_actor_id):
        with pytest.raises(RuntimeError):
            broken.execute_mrp(actor_id=test_actor_id)
        (run,) = broken.list_runs().runs

        with pytest.raises(RunNotCompletedError):
            broken.generate_prs_from_mrp(run.id, actor_id=test_actor_id)

    def test_failure_logged(self, broken, test_actor_id, captured_logs):
        with pytest.raises(RuntimeError):
            broken.execute_mrp(actor_id=test_actor_id)

        (record,) = [r for r in captured_logs() if r["message"] == "mrp_run_failed"]
        assert record["level"] == "ERROR"
        assert record["exc_type"] == "RuntimeError"


class TestListing:

    def test_newest_first_with_paging(self, mrp, deterministic_clock, test_actor_id):
        numbers = []
        for _ in range(3):
            numbers.append(mrp.execute_mrp(actor_id=test_actor_id).run_number)
            deterministic_clock.advance(120)

        first_page = mrp.list_runs(page=1, page_size=2)
        second_page = mrp.list_runs(page=2, page_size=2)

        assert first_page.total == 3
        assert first_page.total_pages == 2
        assert [r.run_number for r in first_page.runs + second_page.runs] == numbers[::-1]

    def test_date_filter_inclusive(self, mrp, deterministic_clock, test_actor_id):
        deterministic_clock.set_time(datetime(2024, 3, 1, 23, 59, tzinfo=timezone.utc))
        march = mrp.execute_mrp(actor_id=test_actor_id)
        deterministic_clock.set_time(datetime(2024, 3, 2, 0, 0, tzinfo=timezone.utc))
        mrp.execute_mrp(actor_id=test_actor_id)

        page = mrp.list_runs(from_date=date(2024, 3, 1), to_date=date(2024, 3, 1))

        assert [r.id for r in page.runs] == [march.id]

    def test_status_filter(self, mrp, test_actor_id):
        mrp.execute_mrp(actor_id=test_actor_id)

        assert mrp.list_runs(status="completed").total == 1
        assert mrp.list_runs(status=MRPRunStatus.FAILED).total == 0

    def test_bad_page(self, mrp):
        with pytest.raises(ValidationError):
            mrp.list_runs(page=0)

    def test_unknown_run(self, mrp):
        with pytest.raises(MRPRunNotFoundError):
            mrp.get_run(uuid4())


class TestDeletion:

    def test_delete_unconsumed_run(self, mrp, auditor_service, planned, test_actor_id):
        run = mrp.execute_mrp(actor_id=test_actor_id)

        mrp.delete_mrp_run(run.id, actor_id=test_actor_id)

        with pytest.raises(MRPRunNotFoundError):
            mrp.get_run(run.id)
        trace = auditor_service.get_trace("MRPRun", run.id)
        assert trace.actions[-1] == AuditAction.MRP_RUN_DELETED.value

    def test_delete_refused_after_generation(self, mrp, planned, test_actor_id, captured_logs):
        run = mrp.execute_mrp(actor_id=test_actor_id)
        mrp.generate_prs_from_mrp(run.id, actor_id=test_actor_id)

        with pytest.raises(RunReferencedError) as exc_info:
            mrp.delete_mrp_run(run.id, actor_id=test_actor_id)

        assert exc_info.value.referenced_count == 1
        assert mrp.get_run(run.id).status is MRPRunStatus.COMPLETED
        assert len(mrp.get_requirements(run.id)) == 1
        assert any(r["message"] == "mrp_run_delete_refused" for r in captured_logs())

    def test_delete_running_refused(self, mrp, session, deterministic_clock, test_actor_id):
        run = MRPRun(
            run_number="MRP-STUCK",
            run_date=deterministic_clock.now(),
            planning_horizon_days=30,
            status=MRPRunStatus.RUNNING.value,
            created_by_id=test_actor_id,
        )
        session.add(run)
        session.commit()

        with pytest.raises(StateConflictError):
            mrp.delete_mrp_run(run.id, actor_id=test_actor_id)

    def test_prs_by_unknown_run(self, mrp):
        with pytest.raises(MRPRunNotFoundError):
            mrp.get_prs_by_run(uuid4())

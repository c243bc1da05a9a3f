"""
Purchase request generation tests.

Verifies:
- Shortages are aggregated per item across orders into one PR line
- The PR line quantity is the total shortage, the required date the
  earliest one in the group
- Consumed requirement rows move to pr_created with the PR id
- A second invocation creates nothing and raises NoShortagesError
- An item deleted after the run is skipped without aborting the rest
- Generation is refused for missing and non-completed runs
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from mfg_kernel.exceptions import MRPRunNotFoundError, NoShortagesError
from mfg_kernel.models.audit_event import AuditAction
from mfg_kernel.models.mrp import RequirementStatus
from mfg_modules.mrp import MRPService
from mfg_modules.purchasing import ApprovalStatus, PurchaseRequestStatus


@pytest.fixture
def mrp(session, deterministic_clock) -> MRPService:
    return MRPService(session, deterministic_clock)


@pytest.fixture
def bike(make_item):
    return make_item("FG-BIKE", "Bicycle", item_type="finished_good")


@pytest.fixture
def frame(make_item):
    return make_item("RM-FRAME", "Frame tube")


@pytest.fixture
def wheel(make_item):
    return make_item("RM-WHEEL", "Wheel")


class TestAggregation:

    def test_two_orders_one_line(
        self, mrp, bike, frame, make_bom, make_production_order, test_actor_id,
    ):
        make_bom(bike, [(frame, 1)])
        make_production_order(bike, 5, required_in_days=9)
        make_production_order(bike, 10, required_in_days=3)
        run = mrp.execute_mrp(30, actor_id=test_actor_id)

        report = mrp.generate_prs_from_mrp(run.id, actor_id=test_actor_id)

        assert report.pr_count == 1
        result = report.for_item(frame.id)
        assert result.total_quantity == Decimal("15")
        assert len(result.requirement_ids) == 2

        (pr,) = mrp.get_prs_by_run(run.id)
        assert len(pr.lines) == 1
        assert pr.lines[0].quantity == Decimal("15")
        assert pr.lines[0].item_id == frame.id

    def test_shared_snapshot_scenario(
        self, mrp, today, bike, frame, warehouse, make_bom, make_production_order, stock,
        test_actor_id,
    ):
        make_bom(bike, [(frame, 1)])
        make_production_order(bike, 50, required_in_days=4, po_number="PO-A")
        make_production_order(bike, 40, required_in_days=6, po_number="PO-B")
        stock(frame, warehouse, 30)
        run = mrp.execute_mrp(30, actor_id=test_actor_id)

        shortages = sorted(r.shortage_quantity for r in mrp.get_shortages(run.id))
        assert shortages == [Decimal("10"), Decimal("20")]

        report = mrp.generate_prs_from_mrp(run.id, actor_id=test_actor_id)

        result = report.for_item(frame.id)
        assert result.total_quantity == Decimal("30")
        assert result.required_by_date == today + timedelta(days=4)

    def test_one_pr_per_item(
        self, mrp, bike, frame, wheel, make_bom, make_production_order, test_actor_id,
    ):
        make_bom(bike, [(frame, 1), (wheel, 2)])
        make_production_order(bike, 3)
        make_production_order(bike, 4)
        run = mrp.execute_mrp(30, actor_id=test_actor_id)

        report = mrp.generate_prs_from_mrp(run.id, actor_id=test_actor_id)

        assert report.pr_count == 2
        assert report.for_item(frame.id).total_quantity == Decimal("7")
        assert report.for_item(wheel.id).total_quantity == Decimal("14")
        assert report.total_quantity == Decimal("21")
        assert len({r.pr_id for r in report.generated}) == 2

    def test_sufficient_rows_not_procured(
        self, mrp, bike, frame, wheel, warehouse, make_bom, make_production_order, stock,
        test_actor_id,
    ):
        make_bom(bike, [(frame, 1), (wheel, 1)])
        make_production_order(bike, 5)
        stock(wheel, warehouse, 5)
        run = mrp.execute_mrp(30, actor_id=test_actor_id)

        report = mrp.generate_prs_from_mrp(run.id, actor_id=test_actor_id)

        assert [r.item_id for r in report.generated] == [frame.id]
        (sufficient,) = mrp.get_requirements(run.id, RequirementStatus.SUFFICIENT)
        assert sufficient.item_id == wheel.id
        assert sufficient.pr_id is None


class TestPurchaseRequestShape:

    def test_draft_pending_with_run_reference(
        self, mrp, today, bike, frame, make_bom, make_production_order, test_actor_id,
    ):
        make_bom(bike, [(frame, 2)])
        make_production_order(bike, 15, required_in_days=5)
        run = mrp.execute_mrp(30, actor_id=test_actor_id)

        mrp.generate_prs_from_mrp(run.id, actor_id=test_actor_id)

        (pr,) = mrp.get_prs_by_run(run.id)
        assert pr.status is PurchaseRequestStatus.DRAFT
        assert pr.approval_status is ApprovalStatus.PENDING
        assert pr.mrp_run_id == run.id
        assert pr.request_date == today
        assert pr.required_date == today + timedelta(days=5)
        assert pr.justification == f"Auto-generated from MRP Run {run.run_number} for Frame tube"
        assert pr.lines[0].line_number == 1
        assert pr.lines[0].notes == "MRP shortage: 30 RM-FRAME"

    def test_pr_numbers_within_one_minute(
        self, mrp, bike, frame, wheel, make_bom, make_production_order, test_actor_id,
    ):
        make_bom(bike, [(frame, 1), (wheel, 1)])
        make_production_order(bike, 1)
        run = mrp.execute_mrp(30, actor_id=test_actor_id)

        report = mrp.generate_prs_from_mrp(run.id, actor_id=test_actor_id)

        assert sorted(r.pr_number for r in report.generated) == [
            "PR-MRP-20240101-1200",
            "PR-MRP-20240101-1200-02",
        ]


class TestConsumption:

    def test_rows_marked_pr_created(
        self, mrp, bike, frame, make_bom, make_production_order, test_actor_id,
    ):
        make_bom(bike, [(frame, 1)])
        make_production_order(bike, 2)
        make_production_order(bike, 3)
        run = mrp.execute_mrp(30, actor_id=test_actor_id)

        report = mrp.generate_prs_from_mrp(run.id, actor_id=test_actor_id)

        pr_id = report.generated[0].pr_id
        rows = mrp.get_shortages(run.id)
        assert {r.status for r in rows} == {RequirementStatus.PR_CREATED}
        assert {r.pr_id for r in rows} == {pr_id}
        assert mrp.get_requirements(run.id, RequirementStatus.SHORTAGE) == []

    def test_second_invocation_is_noop(
        self, mrp, bike, frame, make_bom, make_production_order, test_actor_id, captured_logs,
    ):
        make_bom(bike, [(frame, 1)])
        make_production_order(bike, 2)
        run = mrp.execute_mrp(30, actor_id=test_actor_id)
        mrp.generate_prs_from_mrp(run.id, actor_id=test_actor_id)

        with pytest.raises(NoShortagesError):
            mrp.generate_prs_from_mrp(run.id, actor_id=test_actor_id)

        assert len(mrp.get_prs_by_run(run.id)) == 1
        assert any(r["message"] == "pr_generation_no_shortages" for r in captured_logs())

    def test_run_without_shortages(
        self, mrp, bike, frame, warehouse, make_bom, make_production_order, stock, test_actor_id,
    ):
        make_bom(bike, [(frame, 1)])
        make_production_order(bike, 2)
        stock(frame, warehouse, 2)
        run = mrp.execute_mrp(30, actor_id=test_actor_id)

        with pytest.raises(NoShortagesError):
            mrp.generate_prs_from_mrp(run.id, actor_id=test_actor_id)

    def test_generation_audited(
        self, mrp, auditor_service, bike, frame, make_bom, make_production_order, test_actor_id,
    ):
        make_bom(bike, [(frame, 1)])
        make_production_order(bike, 2)
        run = mrp.execute_mrp(30, actor_id=test_actor_id)

        report = mrp.generate_prs_from_mrp(run.id, actor_id=test_actor_id)

        trace = auditor_service.get_trace("MRPRun", run.id)
        assert trace.actions == (
            AuditAction.MRP_EXECUTED.value,
            AuditAction.PRS_GENERATED_FROM_MRP.value,
        )
        pr_trace = auditor_service.get_trace("PurchaseRequest", report.generated[0].pr_id)
        assert pr_trace.actions == (AuditAction.PR_AUTO_GENERATED.value,)
        assert auditor_service.validate_chain() is True


class TestFailureIsolation:

    def test_deleted_item_skipped(
        self, mrp, session, bike, frame, wheel, make_bom, make_production_order, test_actor_id,
        captured_logs,
    ):
        bom = make_bom(bike, [(frame, 1), (wheel, 1)])
        make_production_order(bike, 4)
        run = mrp.execute_mrp(30, actor_id=test_actor_id)
        session.delete(bom)
        session.flush()
        session.delete(wheel)
        session.commit()

        report = mrp.generate_prs_from_mrp(run.id, actor_id=test_actor_id)

        assert [r.item_id for r in report.generated] == [frame.id]
        (skipped,) = report.skipped
        assert skipped.item_id == wheel.id
        assert skipped.reason == "item_not_found"
        (left,) = mrp.get_requirements(run.id, RequirementStatus.SHORTAGE)
        assert left.item_id == wheel.id
        assert any(
            r["message"] == "pr_generation_item_skipped" and r["reason"] == "item_not_found"
            for r in captured_logs()
        )

    def test_unknown_run(self, mrp, test_actor_id):
        with pytest.raises(MRPRunNotFoundError):
            mrp.generate_prs_from_mrp(uuid4(), actor_id=test_actor_id)

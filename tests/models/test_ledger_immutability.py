"""
ORM immutability tests.

Verifies:
- Inventory transactions cannot be updated or deleted
- Terminal MRP runs are frozen and a run cannot re-enter running
- Requirement quantities are frozen; the only status change is
  shortage -> pr_created with pr_id set, and a consumed requirement
  cannot be deleted
- A run with consumed requirements cannot be deleted
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from mfg_kernel.exceptions import (
    IllegalRequirementTransitionError,
    ImmutabilityViolationError,
)
from mfg_kernel.models.inventory import InventoryTransaction
from mfg_kernel.models.mrp import MRPRequirement, MRPRun, MRPRunStatus, RequirementStatus


@pytest.fixture
def make_run(session, deterministic_clock, test_actor_id):
    def _make(status: MRPRunStatus = MRPRunStatus.COMPLETED) -> MRPRun:
        run = MRPRun(
            run_number=f"MRP-T-{uuid4().hex[:6]}",
            run_date=deterministic_clock.now(),
            planning_horizon_days=30,
            status=status.value,
            total_requirements=0,
            total_shortages=0,
            created_by_id=test_actor_id,
        )
        session.add(run)
        session.flush()
        return run
    return _make


@pytest.fixture
def make_requirement(session, today, test_actor_id):
    def _make(run: MRPRun, shortage: Decimal = Decimal("5")) -> MRPRequirement:
        row = MRPRequirement(
            mrp_run_id=run.id,
            production_order_id=uuid4(),
            item_id=uuid4(),
            required_quantity=Decimal("10"),
            available_quantity=Decimal("10") - shortage,
            shortage_quantity=shortage,
            required_date=today + timedelta(days=3),
            status=(RequirementStatus.SHORTAGE if shortage else RequirementStatus.SUFFICIENT).value,
            created_by_id=test_actor_id,
        )
        session.add(row)
        session.flush()
        return row
    return _make


class TestTransactionLog:

    def test_update_blocked(self, session, item, warehouse, stock):
        posting = stock(item, warehouse, 10)
        txn = session.get(InventoryTransaction, posting.transaction_id)

        txn.quantity = Decimal("99")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_delete_blocked(self, session, item, warehouse, stock):
        posting = stock(item, warehouse, 10)
        txn = session.get(InventoryTransaction, posting.transaction_id)

        session.delete(txn)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


class TestRunLifecycle:

    def test_running_to_completed_allowed(self, session, make_run):
        run = make_run(MRPRunStatus.RUNNING)

        run.status = MRPRunStatus.COMPLETED.value
        run.total_requirements = 3
        session.flush()

        assert run.is_terminal

    @pytest.mark.parametrize("terminal", [MRPRunStatus.COMPLETED, MRPRunStatus.FAILED])
    def test_terminal_run_frozen(self, session, make_run, terminal):
        run = make_run(terminal)

        run.notes = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_metadata_only_change_allowed(self, session, make_run):
        run = make_run(MRPRunStatus.COMPLETED)

        run.updated_by_id = uuid4()
        session.flush()

    def test_delete_with_consumed_requirement_blocked(self, session, make_run, make_requirement):
        run = make_run()
        row = make_requirement(run)
        row.status = RequirementStatus.PR_CREATED.value
        row.pr_id = uuid4()
        session.flush()

        session.delete(row.run)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


class TestRequirementTransitions:

    def test_shortage_to_pr_created_with_pr_id(self, session, make_run, make_requirement):
        row = make_requirement(make_run())

        row.status = RequirementStatus.PR_CREATED.value
        row.pr_id = uuid4()
        session.flush()

        assert row.status_enum is RequirementStatus.PR_CREATED

    def test_pr_created_without_pr_id_rejected(self, session, make_run, make_requirement):
        row = make_requirement(make_run())

        row.status = RequirementStatus.PR_CREATED.value
        with pytest.raises(IllegalRequirementTransitionError):
            session.flush()
        session.rollback()

    def test_back_to_shortage_rejected(self, session, make_run, make_requirement):
        row = make_requirement(make_run())
        row.status = RequirementStatus.PR_CREATED.value
        row.pr_id = uuid4()
        session.flush()

        row.status = RequirementStatus.SHORTAGE.value
        row.pr_id = None
        with pytest.raises(IllegalRequirementTransitionError):
            session.flush()
        session.rollback()

    def test_sufficient_cannot_become_pr_created(self, session, make_run, make_requirement):
        row = make_requirement(make_run(), shortage=Decimal("0"))

        row.status = RequirementStatus.PR_CREATED.value
        row.pr_id = uuid4()
        with pytest.raises(IllegalRequirementTransitionError):
            session.flush()
        session.rollback()

    def test_quantities_frozen(self, session, make_run, make_requirement):
        row = make_requirement(make_run())

        row.shortage_quantity = Decimal("1")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_consumed_requirement_cannot_be_deleted(self, session, make_run, make_requirement):
        row = make_requirement(make_run())
        row.status = RequirementStatus.PR_CREATED.value
        row.pr_id = uuid4()
        session.flush()

        session.delete(row)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

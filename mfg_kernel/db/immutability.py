"""
ORM-level immutability enforcement.

===============================================================================
WHAT IS PROTECTED
===============================================================================

Entity                | Rule
----------------------|-------------------------------------------------------
InventoryTransaction  | Append-only.  Never updated, never deleted.
AuditEvent            | Append-only.  Never updated, never deleted.
MRPRun                | RUNNING -> COMPLETED | FAILED only.  Frozen once
                      | terminal.  Not deletable while any requirement
                      | carries a pr_id.
MRPRequirement        | Quantities, dates, order and item are frozen.  The
                      | only status change is SHORTAGE -> PR_CREATED, and it
                      | must set pr_id, which is then frozen.  Not deletable
                      | once pr_id is set.

updated_at/updated_by_id are metadata and may always change.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update / before_delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

The previous value of a column comes from SQLAlchemy attribute history, so
the check sees the transition being flushed, not just the end state.

Core-level ``update()``/``delete()`` statements bypass these listeners.  The
one place that issues such a statement (the procurement generator's
check-and-set on requirement status) encodes the same transition in its
WHERE clause.

===============================================================================
USAGE
===============================================================================

    from mfg_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that need to corrupt data on purpose may call
``unregister_immutability_listeners()`` and re-register afterwards.
"""

from sqlalchemy import event, func, inspect, select
from sqlalchemy.orm.attributes import get_history

from mfg_kernel.exceptions import (
    IllegalRequirementTransitionError,
    ImmutabilityViolationError,
)
from mfg_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _blocked(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _changed_fields(target) -> set[str]:
    state = inspect(target)
    return {
        attr.key
        for attr in state.mapper.column_attrs
        if state.attrs[attr.key].history.has_changes()
    }


def _previous_value(target, key: str):
    history = get_history(target, key)
    if history.deleted:
        return history.deleted[0]
    return getattr(target, key)


# =============================================================================
# Append-only tables
# =============================================================================


def _check_inventory_transaction_update(mapper, connection, target):
    _blocked(
        "InventoryTransaction", target, "UPDATE",
        "Inventory transactions are append-only; post a compensating transaction",
    )


def _check_inventory_transaction_delete(mapper, connection, target):
    _blocked(
        "InventoryTransaction", target, "DELETE",
        "Inventory transactions cannot be deleted",
    )


def _check_audit_event_update(mapper, connection, target):
    _blocked("AuditEvent", target, "UPDATE", "Audit events are immutable")


def _check_audit_event_delete(mapper, connection, target):
    _blocked("AuditEvent", target, "DELETE", "Audit events cannot be deleted")


# =============================================================================
# Planning runs
# =============================================================================


def _check_mrp_run_update(mapper, connection, target):
    from mfg_kernel.models.mrp import MRPRunStatus

    changed = _changed_fields(target) - _METADATA_FIELDS
    if not changed:
        return

    previous_status = MRPRunStatus(_previous_value(target, "status"))
    if previous_status.is_terminal:
        _blocked(
            "MRPRun", target, "UPDATE",
            f"Run is {previous_status.value}; terminal runs are immutable",
        )

    if "status" in changed and MRPRunStatus(target.status) is MRPRunStatus.RUNNING:
        _blocked("MRPRun", target, "UPDATE", "Run cannot re-enter running")


def _check_mrp_run_delete(mapper, connection, target):
    from mfg_kernel.models.mrp import MRPRequirement

    referenced = connection.execute(
        select(func.count())
        .select_from(MRPRequirement)
        .where(
            MRPRequirement.mrp_run_id == target.id,
            MRPRequirement.pr_id.is_not(None),
        )
    ).scalar_one()
    if referenced:
        _blocked(
            "MRPRun", target, "DELETE",
            f"{referenced} requirement(s) were consumed by purchase requests",
        )


def _check_mrp_requirement_update(mapper, connection, target):
    from mfg_kernel.models.mrp import RequirementStatus

    changed = _changed_fields(target) - _METADATA_FIELDS
    if not changed:
        return

    frozen = changed - {"status", "pr_id"}
    if frozen:
        _blocked(
            "MRPRequirement", target, "UPDATE",
            f"Requirement fields are frozen: {', '.join(sorted(frozen))}",
        )

    previous_status = RequirementStatus(_previous_value(target, "status"))
    new_status = RequirementStatus(target.status)
    legal = (
        previous_status is RequirementStatus.SHORTAGE
        and new_status is RequirementStatus.PR_CREATED
        and _previous_value(target, "pr_id") is None
        and target.pr_id is not None
    )
    if not legal:
        logger.error(
            "illegal_requirement_transition_blocked",
            extra={
                "requirement_id": str(target.id),
                "from_status": previous_status.value,
                "to_status": new_status.value,
            },
        )
        raise IllegalRequirementTransitionError(
            str(target.id), previous_status.value, new_status.value,
        )


def _check_mrp_requirement_delete(mapper, connection, target):
    if _previous_value(target, "pr_id") is not None:
        _blocked(
            "MRPRequirement", target, "DELETE",
            "Requirement was consumed by a purchase request",
        )


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from mfg_kernel.models.audit_event import AuditEvent
    from mfg_kernel.models.inventory import InventoryTransaction
    from mfg_kernel.models.mrp import MRPRequirement, MRPRun

    return (
        (InventoryTransaction, "before_update", _check_inventory_transaction_update),
        (InventoryTransaction, "before_delete", _check_inventory_transaction_delete),
        (AuditEvent, "before_update", _check_audit_event_update),
        (AuditEvent, "before_delete", _check_audit_event_delete),
        (MRPRun, "before_update", _check_mrp_run_update),
        (MRPRun, "before_delete", _check_mrp_run_delete),
        (MRPRequirement, "before_update", _check_mrp_requirement_update),
        (MRPRequirement, "before_delete", _check_mrp_requirement_delete),
    )


def register_immutability_listeners() -> None:
    """Register all listeners.  Safe to call more than once."""
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """Remove all listeners.  TESTS ONLY."""
    for target, event_name, fn in _listeners():
        _safe_remove_listener(target, event_name, fn)

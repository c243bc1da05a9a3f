"""
Typed Exception Hierarchy for the Manufacturing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger and the planning engine must react to failures by
kind, never by parsing messages. Every error therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (item, warehouse, bucket, quantities...)

Example:
    try:
        ledger.adjust_quantity(item_id, warehouse_id, Bucket.AVAILABLE, -qty, ...)
    except InsufficientStockError as e:
        api_response(code=e.code, bucket=e.bucket, current=e.current)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ManufacturingKernelError (base)
    |
    +-- ValidationError
    |
    +-- InsufficientStockError
    |
    +-- NotFoundError
    |   +-- ItemNotFoundError
    |   +-- WarehouseNotFoundError
    |   +-- ProductionOrderNotFoundError
    |   +-- MRPRunNotFoundError
    |   +-- PurchaseRequestNotFoundError
    |   +-- DocumentNotFoundError
    |
    +-- StateConflictError
    |   +-- RunAlreadyTerminatedError
    |   +-- RunNotCompletedError
    |   +-- RunReferencedError
    |   +-- IllegalRequirementTransitionError
    |   +-- DocumentAlreadyCancelledError
    |   +-- ImmutabilityViolationError
    |   +-- OptimisticLockError
    |
    +-- NoShortagesError
    |
    +-- IntegrityViolationError
        +-- NegativeBucketError
        +-- ReconciliationMismatchError
        +-- AuditChainBrokenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|---------------------------------------
Validation      | VALIDATION_ERROR              | Malformed or out-of-range input
Stock           | INSUFFICIENT_STOCK            | Bucket would go negative
----------------|-------------------------------|---------------------------------------
Not found       | ITEM_NOT_FOUND                | Item id unknown
                | WAREHOUSE_NOT_FOUND           | Warehouse id unknown
                | PRODUCTION_ORDER_NOT_FOUND    | Production order id unknown
                | MRP_RUN_NOT_FOUND             | Run id unknown
                | PURCHASE_REQUEST_NOT_FOUND    | Purchase request id unknown
                | DOCUMENT_NOT_FOUND            | No ledger postings for a reference
----------------|-------------------------------|---------------------------------------
State conflict  | RUN_ALREADY_TERMINATED        | Completing/failing a terminal run
                | RUN_NOT_COMPLETED             | Generating PRs from a non-completed run
                | RUN_REFERENCED                | Deleting a run that procurement used
                | ILLEGAL_REQUIREMENT_TRANSITION| Anything but shortage -> pr_created
                | DOCUMENT_ALREADY_CANCELLED    | Cancelling a document twice
                | IMMUTABILITY_VIOLATION        | Updating/deleting append-only rows
                | OPTIMISTIC_LOCK_CONFLICT      | Check-and-set lost a race
----------------|-------------------------------|---------------------------------------
Planning        | NO_SHORTAGES                  | Nothing left to generate in a run
----------------|-------------------------------|---------------------------------------
Integrity       | NEGATIVE_BUCKET               | Stored bucket found below zero
                | RECONCILIATION_MISMATCH       | Log replay != stored balance
                | AUDIT_CHAIN_BROKEN            | Audit hash chain validation failed

===============================================================================
HANDLING PATTERNS
===============================================================================

1. MAP KINDS TO RESPONSE SEMANTICS via ``ERROR_STATUS_MAP``:

    except ManufacturingKernelError as e:
        status = http_status_for(e)   # 400 / 404 / 409 / 500

2. INTEGRITY ERRORS ARE FATAL: never clamp, never retry.

    except NegativeBucketError as e:
        alert_operations(e)
        halt_processing()

3. NO SHORTAGES IS NOT A FAILURE:

    try:
        results = generator.generate_prs_from_mrp(run_id)
    except NoShortagesError:
        results = []
"""

from decimal import Decimal


class ManufacturingKernelError(Exception):
    """
    Base exception for all manufacturing kernel errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "MANUFACTURING_KERNEL_ERROR"


class ValidationError(ManufacturingKernelError):
    """Malformed or out-of-range input, rejected before any mutation."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InsufficientStockError(ManufacturingKernelError):
    """The operation would drive an inventory bucket below zero."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        item_id: str,
        warehouse_id: str,
        bucket: str,
        current: Decimal,
        requested: Decimal,
    ):
        self.item_id = item_id
        self.warehouse_id = warehouse_id
        self.bucket = bucket
        self.current = current
        self.requested = requested
        super().__init__(
            f"Insufficient {bucket} stock for item {item_id} in warehouse "
            f"{warehouse_id}: current {current}, requested {requested}"
        )


# Not-found exceptions


class NotFoundError(ManufacturingKernelError):
    """Base exception for missing referenced entities."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class ItemNotFoundError(NotFoundError):
    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__("Item", item_id)


class WarehouseNotFoundError(NotFoundError):
    code: str = "WAREHOUSE_NOT_FOUND"

    def __init__(self, warehouse_id: str):
        self.warehouse_id = warehouse_id
        super().__init__("Warehouse", warehouse_id)


class ProductionOrderNotFoundError(NotFoundError):
    code: str = "PRODUCTION_ORDER_NOT_FOUND"

    def __init__(self, production_order_id: str):
        self.production_order_id = production_order_id
        super().__init__("ProductionOrder", production_order_id)


class MRPRunNotFoundError(NotFoundError):
    code: str = "MRP_RUN_NOT_FOUND"

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__("MRPRun", run_id)


class PurchaseRequestNotFoundError(NotFoundError):
    code: str = "PURCHASE_REQUEST_NOT_FOUND"

    def __init__(self, purchase_request_id: str):
        self.purchase_request_id = purchase_request_id
        super().__init__("PurchaseRequest", purchase_request_id)


class DocumentNotFoundError(NotFoundError):
    """No ledger transactions exist for the given document reference."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, reference_type: str, reference_id: str):
        self.reference_type = reference_type
        self.reference_id = reference_id
        super().__init__(reference_type, reference_id)


# State-conflict exceptions


class StateConflictError(ManufacturingKernelError):
    """Base exception for illegal status transitions and stale writes."""

    code: str = "STATE_CONFLICT"


class RunAlreadyTerminatedError(StateConflictError):
    """An MRP run left `running` once already; it cannot terminate again."""

    code: str = "RUN_ALREADY_TERMINATED"

    def __init__(self, run_id: str, status: str):
        self.run_id = run_id
        self.status = status
        super().__init__(f"MRP run {run_id} is already {status}")


class RunNotCompletedError(StateConflictError):
    code: str = "RUN_NOT_COMPLETED"

    def __init__(self, run_id: str, status: str):
        self.run_id = run_id
        self.status = status
        super().__init__(
            f"MRP run {run_id} is {status}; only completed runs can generate "
            "purchase requests"
        )


class RunReferencedError(StateConflictError):
    """
    The run has requirements consumed by procurement.

    Once a purchase request exists for a run, the run is a permanent
    audit artifact.
    """

    code: str = "RUN_REFERENCED"

    def __init__(self, run_id: str, referenced_count: int):
        self.run_id = run_id
        self.referenced_count = referenced_count
        super().__init__(
            f"Cannot delete MRP run {run_id}: {referenced_count} requirement(s) "
            "have purchase requests"
        )


class IllegalRequirementTransitionError(StateConflictError):
    code: str = "ILLEGAL_REQUIREMENT_TRANSITION"

    def __init__(self, requirement_id: str, from_status: str, to_status: str):
        self.requirement_id = requirement_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Requirement {requirement_id}: illegal transition "
            f"{from_status} -> {to_status}"
        )


class DocumentAlreadyCancelledError(StateConflictError):
    code: str = "DOCUMENT_ALREADY_CANCELLED"

    def __init__(self, reference_type: str, reference_id: str):
        self.reference_type = reference_type
        self.reference_id = reference_id
        super().__init__(f"{reference_type} {reference_id} is already cancelled")


class ImmutabilityViolationError(StateConflictError):
    """Attempted to modify or delete an append-only or terminal record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


class OptimisticLockError(StateConflictError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


class NoShortagesError(ManufacturingKernelError):
    """Generation was invoked on a run with nothing left unresolved."""

    code: str = "NO_SHORTAGES"

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"No unresolved shortages in MRP run {run_id}")


# Integrity exceptions


class IntegrityViolationError(ManufacturingKernelError):
    """
    Base exception for violated stored-state invariants.

    These are never user errors. They indicate corruption or a bug and
    must be surfaced loudly rather than corrected.
    """

    code: str = "INTEGRITY_VIOLATION"


class NegativeBucketError(IntegrityViolationError):
    code: str = "NEGATIVE_BUCKET"

    def __init__(self, item_id: str, warehouse_id: str, bucket: str, value: Decimal):
        self.item_id = item_id
        self.warehouse_id = warehouse_id
        self.bucket = bucket
        self.value = value
        super().__init__(
            f"Stored {bucket} balance for item {item_id} in warehouse "
            f"{warehouse_id} is negative: {value}"
        )


class ReconciliationMismatchError(IntegrityViolationError):
    code: str = "RECONCILIATION_MISMATCH"

    def __init__(
        self,
        item_id: str,
        warehouse_id: str,
        bucket: str,
        stored: Decimal,
        replayed: Decimal,
    ):
        self.item_id = item_id
        self.warehouse_id = warehouse_id
        self.bucket = bucket
        self.stored = stored
        self.replayed = replayed
        super().__init__(
            f"Ledger mismatch for item {item_id} in warehouse {warehouse_id}, "
            f"bucket {bucket}: stored {stored}, replayed {replayed}"
        )


class AuditChainBrokenError(IntegrityViolationError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


# Response semantics for the calling layer. Most specific class wins.
ERROR_STATUS_MAP: dict[type[ManufacturingKernelError], int] = {
    ValidationError: 400,
    InsufficientStockError: 400,
    NoShortagesError: 400,
    NotFoundError: 404,
    StateConflictError: 409,
    IntegrityViolationError: 500,
    ManufacturingKernelError: 500,
}


def status_for(error: ManufacturingKernelError) -> int:
    """Return the response status for an error by walking its MRO."""
    for klass in type(error).__mro__:
        if klass in ERROR_STATUS_MAP:
            return ERROR_STATUS_MAP[klass]
    return 500

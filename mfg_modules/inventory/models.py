"""
Inventory Workflow Results (``mfg_modules.inventory.models``).

Frozen DTOs returned by ``InventoryService``.  The audit-grade record of a
movement is the ``InventoryTransaction`` row; these objects only carry the
outcome back to the caller.
"""

from dataclasses import dataclass
from decimal import Decimal

from mfg_kernel.domain.values import BalanceSnapshot, DocumentRef
from mfg_kernel.services.ledger_service import LedgerPosting


@dataclass(frozen=True)
class MovementResult:
    """Outcome of one workflow call: the document and the postings it made."""

    reference: DocumentRef
    postings: tuple[LedgerPosting, ...]

    @property
    def balance(self) -> BalanceSnapshot:
        """Balance after the last posting."""
        return self.postings[-1].balance

    @property
    def transaction_ids(self):
        return tuple(p.transaction_id for p in self.postings)


@dataclass(frozen=True)
class CancellationResult:
    """
    Compensating postings written for a cancelled document.

    ``reversed_quantity`` is the sum of the absolute bucket effects undone.
    """

    original: DocumentRef
    cancellation: DocumentRef
    postings: tuple[LedgerPosting, ...]
    reversed_quantity: Decimal

"""Write-side services of the manufacturing kernel.  All flush, none commit."""

from mfg_kernel.services.auditor_service import AuditorService
from mfg_kernel.services.ledger_service import BalanceSeed, LedgerPosting, LedgerService
from mfg_kernel.services.sequence_service import SequenceService

__all__ = [
    "AuditorService",
    "BalanceSeed",
    "LedgerPosting",
    "LedgerService",
    "SequenceService",
]

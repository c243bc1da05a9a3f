"""
Inventory Module (``mfg_modules.inventory``).

Goods receipt, goods issue, manual adjustment, status transfer and
production output workflows, all posting through the kernel ledger.
"""

from mfg_modules.inventory.models import CancellationResult, MovementResult
from mfg_modules.inventory.service import InventoryService

__all__ = [
    "CancellationResult",
    "InventoryService",
    "MovementResult",
]

"""
Production Module (``mfg_modules.production``).

Production orders and single-level bills of materials.  Owned by the
surrounding ERP's production workflows; read by the requirement calculator.
"""

from mfg_modules.production.models import (
    BOM,
    BOMLine,
    OrderPriority,
    ProductionOrder,
    ProductionOrderStatus,
)

__all__ = [
    "BOM",
    "BOMLine",
    "OrderPriority",
    "ProductionOrder",
    "ProductionOrderStatus",
]

"""
Manufacturing Modules.

Orchestration over the manufacturing kernel.  Each module holds its domain
DTOs, its ORM tables where it owns any, and a service that owns the
transaction boundary.

Modules:
- Production: production orders and bills of materials (read by planning)
- Purchasing: purchase requests written by procurement generation
- Inventory: receipts, issues, adjustments, status transfers, output
- MRP: requirements netting, planning runs, procurement generation
"""

from mfg_modules import inventory, mrp, production, purchasing

__all__ = ["inventory", "mrp", "production", "purchasing"]

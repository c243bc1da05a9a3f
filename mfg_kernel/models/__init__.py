"""ORM models of the manufacturing kernel."""

from mfg_kernel.models.audit_event import AuditAction, AuditEvent
from mfg_kernel.models.inventory import InventoryBalance, InventoryTransaction
from mfg_kernel.models.master_data import Item, UnitOfMeasure, Warehouse
from mfg_kernel.models.mrp import (
    MRPRequirement,
    MRPRun,
    MRPRunStatus,
    RequirementStatus,
)

__all__ = [
    "AuditAction",
    "AuditEvent",
    "InventoryBalance",
    "InventoryTransaction",
    "Item",
    "UnitOfMeasure",
    "Warehouse",
    "MRPRun",
    "MRPRunStatus",
    "MRPRequirement",
    "RequirementStatus",
]

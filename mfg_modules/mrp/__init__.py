"""
MRP Module (``mfg_modules.mrp``).

Requirements netting and shortage-to-procurement:

- ``RequirementCalculator``: one netting pass over open production orders.
- ``ProcurementGenerator``: one purchase request per short item.
- ``MRPService``: runs, their requirement rows and generated requests.
"""

from mfg_modules.mrp.calculator import RequirementCalculator, component_demand
from mfg_modules.mrp.generator import ProcurementGenerator
from mfg_modules.mrp.models import (
    CalculationResult,
    GenerationReport,
    MRPRunRecord,
    PRGenerationResult,
    RequirementRecord,
    RunPage,
    SkippedGroup,
)
from mfg_modules.mrp.service import NO_ORDERS_NOTE, MRPService

__all__ = [
    "CalculationResult",
    "GenerationReport",
    "MRPRunRecord",
    "MRPService",
    "NO_ORDERS_NOTE",
    "PRGenerationResult",
    "ProcurementGenerator",
    "RequirementCalculator",
    "RequirementRecord",
    "RunPage",
    "SkippedGroup",
    "component_demand",
]

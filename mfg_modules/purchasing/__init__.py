"""
Purchasing Module (``mfg_modules.purchasing``).

Purchase requests written by the procurement generator.  Approval and
purchase-order conversion are external.
"""

from mfg_modules.purchasing.models import (
    ApprovalStatus,
    PurchaseRequest,
    PurchaseRequestLine,
    PurchaseRequestStatus,
)

__all__ = [
    "ApprovalStatus",
    "PurchaseRequest",
    "PurchaseRequestLine",
    "PurchaseRequestStatus",
]

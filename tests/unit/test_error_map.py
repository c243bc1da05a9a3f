"""
Error taxonomy tests.

Verifies:
- Every error carries a stable machine-readable code
- status_for() maps error kinds to response semantics, most specific first
"""

from decimal import Decimal

import pytest

from mfg_kernel.exceptions import (
    AuditChainBrokenError,
    DocumentAlreadyCancelledError,
    ImmutabilityViolationError,
    InsufficientStockError,
    ItemNotFoundError,
    ManufacturingKernelError,
    MRPRunNotFoundError,
    NegativeBucketError,
    NoShortagesError,
    RunReferencedError,
    ValidationError,
    status_for,
)


def _all_subclasses(cls):
    for sub in cls.__subclasses__():
        yield sub
        yield from _all_subclasses(sub)


class TestCodes:

    def test_codes_unique(self):
        codes = [c.code for c in _all_subclasses(ManufacturingKernelError)]
        assert len(codes) == len(set(codes))

    def test_insufficient_stock_carries_context(self):
        exc = InsufficientStockError("i-1", "w-1", "available", Decimal("3"), Decimal("5"))

        assert exc.code == "INSUFFICIENT_STOCK"
        assert exc.current == Decimal("3")
        assert "requested 5" in str(exc)

    def test_validation_field(self):
        assert ValidationError("bad", field="quantity").field == "quantity"


class TestStatusMapping:

    @pytest.mark.parametrize("error, status", [
        (ValidationError("bad"), 400),
        (InsufficientStockError("i", "w", "available", Decimal("0"), Decimal("1")), 400),
        (NoShortagesError("r"), 400),
        (ItemNotFoundError("i"), 404),
        (MRPRunNotFoundError("r"), 404),
        (RunReferencedError("r", 2), 409),
        (DocumentAlreadyCancelledError("goods_issue", "d"), 409),
        (ImmutabilityViolationError("MRPRun", "r", "terminal"), 409),
        (NegativeBucketError("i", "w", "available", Decimal("-1")), 500),
        (AuditChainBrokenError("e", "a", "b"), 500),
        (ManufacturingKernelError("unknown"), 500),
    ])
    def test_status_for(self, error, status):
        assert status_for(error) == status

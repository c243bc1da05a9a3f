"""Read-only query side of the manufacturing kernel."""

from mfg_kernel.selectors.ledger_selector import LedgerSelector, TransactionRecord

__all__ = ["LedgerSelector", "TransactionRecord"]

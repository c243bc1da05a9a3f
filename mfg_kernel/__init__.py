"""
Manufacturing Kernel

The inventory ledger and the state the planning engine records:
- Per-(item, warehouse) balances in four status buckets
- An append-only transaction log every balance change is recorded in
- Planning runs and their requirement rows
- A hash-chained audit trail
"""

__version__ = "0.1.0"

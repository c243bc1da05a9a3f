"""Database layer - engine, base classes, types and immutability listeners."""

from mfg_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from mfg_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from mfg_kernel.db.types import Quantity, round_quantity

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Quantity",
    "round_quantity",
]

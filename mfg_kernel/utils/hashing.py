"""
Deterministic hashing utilities.

Used for the audit hash chain and for fingerprinting netting results so
that repeated planning passes over an unchanged snapshot can be compared.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        # 10.500 and 10.5 must hash identically
        return str(obj.normalize())
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """Sorted keys, no whitespace, stable rendering of Decimal/date/UUID."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict) -> str:
    """Hex SHA-256 of the canonical JSON form of ``payload``."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_audit_event(
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Compute the chained hash of an audit event.

    hash = SHA-256(entity_type | entity_id | action | payload_hash | prev_hash)
    with "GENESIS" standing in for the missing predecessor.
    """
    components = [
        entity_type,
        str(entity_id),
        action,
        payload_hash,
        prev_hash or "GENESIS",
    ]
    data = "|".join(components)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def fingerprint_requirements(rows: list[dict]) -> str:
    """
    Order-independent hash of a netting result.

    Each row holds production_order_id, item_id, required_quantity,
    available_quantity, shortage_quantity, required_date and status.
    Run ids and row ids are deliberately not part of the input.
    """
    sorted_rows = sorted(
        rows,
        key=lambda r: (str(r["production_order_id"]), str(r["item_id"])),
    )
    return hash_payload({"requirements": sorted_rows})

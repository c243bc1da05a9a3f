"""
Run and purchase request numbers.

Numbers have the form ``<PREFIX>-YYYYMMDD-HHMM``.  The first number handed
out in a minute carries no suffix; later ones get ``-02``, ``-03`` and so
on from a per-minute counter in ``SequenceService``.
"""

from datetime import datetime

from sqlalchemy.orm import Session

from mfg_kernel.services.sequence_service import SequenceService


def format_number(prefix: str, moment: datetime, ordinal: int) -> str:
    base = f"{prefix}-{moment:%Y%m%d-%H%M}"
    if ordinal <= 1:
        return base
    return f"{base}-{ordinal:02d}"


def allocate_number(session: Session, prefix: str, moment: datetime) -> str:
    """Next number for ``prefix`` in the minute of ``moment``."""
    ordinal = SequenceService(session).next_value(f"{prefix}:{moment:%Y%m%d-%H%M}")
    return format_number(prefix, moment, ordinal)

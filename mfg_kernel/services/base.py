"""
BaseService -- abstract base for services that write.

Services receive the caller's Session and only ``flush()``.  The caller
(a workflow, the run recorder, a script or a test) owns commit and
rollback, which is what makes "balance change + log append" one unit of
work.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from mfg_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """Holds the caller's session.  Never commits or rolls back."""

    def __init__(self, session: Session):
        self.session = session

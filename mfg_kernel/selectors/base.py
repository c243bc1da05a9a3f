"""
Module: mfg_kernel.selectors.base
Responsibility: Base class of the read-only query side.  Selectors take the
    caller's Session, run queries and return frozen dataclasses.  They never
    add, delete, flush or commit.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from mfg_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):

    def __init__(self, session: Session):
        self.session = session

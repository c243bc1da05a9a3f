"""
SequenceService -- monotonic counters via locked rows.

Responsibility:
    Hands out strictly increasing integers per named sequence.  Used for
    audit event ordering, for the per-minute suffix of run and purchase
    request numbers, and as the single-writer lock for planning runs.

Architecture position:
    Kernel > Services -- infrastructure called by AuditorService and the
    MRP module.

Invariants enforced:
    - The counter row is the only source of the next value; max()+1 over
      the data tables is never used.
    - The increment is visible only after the caller commits, and the row
      stays locked (SELECT ... FOR UPDATE) until then.  Two transactions
      allocating from the same sequence therefore serialize.

Failure modes:
    - IntegrityError when two transactions create the same counter
      concurrently: handled with a savepoint rollback and a locked re-read.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from mfg_kernel.db.base import Base
from mfg_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """One named counter."""

    __tablename__ = "sequence_counters"

    # audit_event, mrp_run_execution, mrp_run:20240101-1200, ...
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Allocates values from named counters inside the caller's transaction.

    Does not commit.  A rolled-back transaction gives its values back.
    """

    AUDIT_EVENT = "audit_event"
    MRP_RUN_EXECUTION = "mrp_run_execution"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Lock the counter row (creating it on first use), increment, return.

        Returns:
            A value > 0, strictly greater than any value previously
            returned for ``sequence_name`` by a committed transaction.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # Another transaction may create the counter at the same time;
            # the savepoint keeps the caller's other work intact.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing; None if never allocated."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    def reset(self, sequence_name: str, value: int = 0) -> None:
        """Tests and migrations only."""
        counter = self._locked_counter(sequence_name)
        if counter is None:
            self._session.add(SequenceCounter(name=sequence_name, current_value=value))
        else:
            counter.current_value = value
        self._session.flush()

    def initialize_sequences(self) -> None:
        """Create the well-known counters so their rows exist to be locked."""
        for name in (self.AUDIT_EVENT, self.MRP_RUN_EXECUTION):
            if self.current_value(name) is None:
                self._session.add(SequenceCounter(name=name, current_value=0))
        self._session.flush()

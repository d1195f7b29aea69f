"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Hands out strictly increasing integers for a named sequence.  The
    inventory movement log is ordered by these numbers, so the order in
    which movements were applied survives postings that share a clock
    reading.

Architecture position:
    Kernel > Services.  Runs inside the caller's transaction; never commits.

Invariants enforced:
    - The locked counter row is the only source of the next value; values
      are never derived from MAX() over the numbered table.
    - Allocation is transactional: a rolled-back posting gives its values
      back.

Failure modes:
    - A concurrent first use of a name races on the unique constraint; the
      loser rolls back its savepoint and increments the winner's row.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from farm_kernel.logging_config import get_logger
from farm_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """Allocates blocks of sequence numbers in the caller's transaction."""

    INVENTORY_MOVEMENT = "inventory_movement"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def allocate(self, sequence_name: str, count: int = 1) -> int:
        """
        Reserve ``count`` consecutive values and return the first.

        The values first .. first + count - 1 are strictly greater than
        anything previously allocated for ``sequence_name``.
        """
        if count < 1:
            raise ValueError("count must be at least 1")

        counter = self._locked_counter(sequence_name)
        if counter is None:
            try:
                with self._session.begin_nested():
                    self._session.add(SequenceCounter(name=sequence_name, current_value=count))
                    self._session.flush()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "first": 1, "count": count},
                )
                return 1
            except IntegrityError:
                logger.debug("sequence_counter_race_retry", extra={"sequence_name": sequence_name})
                counter = self._locked_counter(sequence_name)

        first = counter.current_value + 1
        counter.current_value += count
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "first": first, "count": count},
        )
        return first

    def next_value(self, sequence_name: str) -> int:
        return self.allocate(sequence_name, 1)

    def current_value(self, sequence_name: str) -> int | None:
        """Last value handed out, or None if the sequence was never used."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter is not None else None

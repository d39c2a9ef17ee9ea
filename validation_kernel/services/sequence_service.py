"""
Gap-free, strictly increasing sequence numbers backed by locked counter rows.

The audit log takes its ``seq`` from here.  A counter row is read with
``SELECT ... FOR UPDATE`` and bumped in the caller's transaction, so two
writers can never draw the same value and a rollback gives the value back.
Counting rows (``max(seq) + 1``) is never used.

The service never commits; the caller owns the transaction.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from validation_kernel.logging_config import get_logger
from validation_kernel.models.sequence_counter import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:

    AUDIT_EVENT = "audit_event"

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, sequence_name: str) -> int:
        """Allocate the next value of ``sequence_name`` (the first is 1)."""
        counter = self._lock(sequence_name)
        if counter is None and self._create(sequence_name):
            value = 1
        else:
            # Either the row existed, or a rival created it first
            counter = counter or self._lock(sequence_name)
            if counter is None:
                raise LookupError(f"sequence counter {sequence_name!r} vanished")
            counter.current_value += 1
            self._session.flush()
            value = counter.current_value

        logger.debug("sequence_allocated", extra={"sequence_name": sequence_name, "value": value})
        return value

    def _lock(self, sequence_name: str) -> SequenceCounter | None:
        stmt = (
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self._session.scalars(stmt).one_or_none()

    def _create(self, sequence_name: str) -> bool:
        """Insert the counter at 1 inside a savepoint; False if a rival won."""
        try:
            with self._session.begin_nested():
                self._session.add(SequenceCounter(name=sequence_name, current_value=1))
        except IntegrityError:
            logger.debug("sequence_counter_race", extra={"sequence_name": sequence_name})
            return False
        return True

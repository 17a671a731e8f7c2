"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing sequence numbers for stock movements.  The
    sequence breaks created_at ties when replaying a product's history.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by InventoryLedger once per request, before any product write.

Invariants enforced:
    - Monotonic: the locked counter row is the sole source of the next
      value; ``MAX(sequence) + 1`` is never used.
    - Transactional: an allocated value becomes visible only when the
      caller's transaction commits; a rollback returns it.
    - Lock order: the counter row is locked before any product row; see
      ``reserve``.

Failure modes:
    - IntegrityError on a concurrent first-use race for a counter row
      (handled via savepoint rollback and re-read).
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from stock_kernel.db.base import Base
from stock_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """One named sequence and its last allocated value."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()``.

    Usage:
        seq = SequenceService(session).next_value(SequenceService.STOCK_MOVEMENT)
    """

    STOCK_MOVEMENT = "stock_movement"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        # populate_existing: the identity map may hold a stale value
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Lock the counter row (creating it on first use), increment it and
        return the new value.  Always > 0.
        """
        return self.reserve(sequence_name, 1)[0]

    def reserve(self, sequence_name: str, count: int) -> list[int]:
        """
        Allocate ``count`` consecutive values under one counter lock.

        The lock is held until the caller's transaction ends.  Callers must
        reserve before locking any other row: every writer takes the counter
        lock first.
        """
        if count <= 0:
            raise ValueError(f"count must be positive, got {count}")

        counter = self._locked_counter(sequence_name)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=count)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "first": 1, "last": count},
                )
                return list(range(1, count + 1))
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        first = counter.current_value + 1
        counter.current_value += count
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "first": first, "last": counter.current_value},
        )
        return list(range(first, counter.current_value + 1))

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing, or None if never used."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

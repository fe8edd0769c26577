"""
SequenceService -- gap-free counters for voucher numbers and audit seq.

Each named sequence is one ``sequence_counters`` row.  Allocation locks
that row (``SELECT ... FOR UPDATE``), bumps it and flushes, so two
transactions asking for the same sequence are served one after the
other and a rolled-back transaction hands its number back.  Never derive
the next number from ``max(...) + 1`` over the numbered table.

``initialize_sequences()`` runs from ``create_tables`` and seeds the
well-known counters; a name first used ad hoc is created lazily, and two
writers racing to create it will see an IntegrityError on one side.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from fulfillment_kernel.db.base import Base
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """Allocates sequence values inside the caller's transaction."""

    RECEIPT_VOUCHER = "receipt_voucher"
    AUDIT_EVENT = "audit_event"

    WELL_KNOWN = (RECEIPT_VOUCHER, AUDIT_EVENT)

    def __init__(self, session: Session):
        self._session = session

    def _counter(self, name: str, *, lock: bool) -> SequenceCounter | None:
        stmt = select(SequenceCounter).where(SequenceCounter.name == name)
        if lock:
            # populate_existing: a counter already in the identity map must
            # reflect the row we just locked, not a stale read.
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """Lock, increment and return the counter; the first value is 1."""
        counter = self._counter(sequence_name, lock=True)
        if counter is None:
            counter = SequenceCounter(name=sequence_name, current_value=0)
            self._session.add(counter)

        counter.current_value += 1
        self._session.flush()

        value = counter.current_value
        logger.debug("sequence_allocated", extra={"sequence_name": sequence_name, "value": value})
        return value

    def initialize_sequences(self) -> None:
        missing = [n for n in self.WELL_KNOWN if self._counter(n, lock=False) is None]
        self._session.add_all(SequenceCounter(name=n, current_value=0) for n in missing)
        self._session.flush()

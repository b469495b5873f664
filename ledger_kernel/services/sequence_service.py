"""
Gap-tolerant monotonic counters backed by one locked row per counter.

Voucher numbering draws from a counter named after the tenant, voucher
type and fiscal year.  The next value always comes from the locked
counter row and never from ``MAX(number) + 1`` over vouchers, and the
increment rides on the caller's transaction: a voucher that fails
validation after numbering rolls its value back with everything else.
"""

from uuid import UUID

from sqlalchemy import String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from ledger_kernel.db.base import Base
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(200), unique=True)
    current_value: Mapped[int] = mapped_column(default=0)


class SequenceService:
    """Allocates values under ``SELECT ... FOR UPDATE``.  Flushes, never commits."""

    def __init__(self, session: Session):
        self._session = session

    @staticmethod
    def voucher_counter_name(tenant_id: UUID, voucher_type_id: UUID, fiscal_year_id: UUID) -> str:
        return f"voucher:{tenant_id}:{voucher_type_id}:{fiscal_year_id}"

    def next_value(self, sequence_name: str) -> int:
        """Increment ``sequence_name`` and return the new value (first is 1)."""
        counter = self._lock(sequence_name) or self._create(sequence_name)
        counter.current_value += 1
        self._session.flush()

        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Last value handed out, or None for a counter never used."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

    def _lock(self, sequence_name: str) -> SequenceCounter | None:
        stmt = (
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def _create(self, sequence_name: str) -> SequenceCounter:
        """Insert a zeroed counter; on a lost race, lock the winner's row."""
        savepoint = self._session.begin_nested()
        counter = SequenceCounter(name=sequence_name, current_value=0)
        self._session.add(counter)
        try:
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_race", extra={"sequence_name": sequence_name})
            counter = self._lock(sequence_name)
            if counter is None:
                raise
            return counter
        savepoint.commit()
        return counter

"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session contract for every write-side service.
    Services persist through ``session.flush()`` and never commit: the
    caller (``session_scope``, ``run_in_transaction`` or a test harness)
    owns commit and rollback, so multi-step operations such as
    cancel-with-reversal stay atomic.

Architecture position:
    Kernel > Services -- imperative shell.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base
from ledger_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel services.

    Guarantees:
        - Never calls ``session.commit()`` or ``session.rollback()``.
        - Every timestamp comes from the injected clock.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

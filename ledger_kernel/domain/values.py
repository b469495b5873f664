"""
Values -- monetary primitives and account-nature sign conventions.

Responsibility:
    The handful of value types every other layer agrees on: the five
    account natures and their normal side, debit/credit sides, the
    ``BalancePair`` magnitude+side representation, and decimal coercion.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Money is ``Decimal`` end to end; ``to_decimal`` refuses nothing but
      converts floats (SQLite aggregates) through ``str`` and rounds them
      to the storage scale so binary noise never leaks in.
    - ASSETS and EXPENSES are debit-normal; LIABILITIES, INCOME and EQUITY
      are credit-normal.
    - A ``BalancePair`` has at most one non-zero side.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

ZERO = Decimal("0")
DEFAULT_TOLERANCE = Decimal("0.01")
# Scale of stored amounts (Numeric(38, 9))
_STORAGE_SCALE = Decimal("0.000000001")


class Nature(str, Enum):
    """Top-level classification of an account group."""

    ASSETS = "assets"
    LIABILITIES = "liabilities"
    INCOME = "income"
    EXPENSES = "expenses"
    EQUITY = "equity"

    @property
    def is_debit_normal(self) -> bool:
        return self in _DEBIT_NORMAL

    @property
    def precedence(self) -> int:
        return NATURE_PRECEDENCE.index(self)


NATURE_PRECEDENCE: tuple[Nature, ...] = (
    Nature.ASSETS,
    Nature.LIABILITIES,
    Nature.INCOME,
    Nature.EXPENSES,
    Nature.EQUITY,
)

_DEBIT_NORMAL = frozenset({Nature.ASSETS, Nature.EXPENSES})


class Side(str, Enum):
    """Debit or credit."""

    DEBIT = "debit"
    CREDIT = "credit"


def to_decimal(value: Any) -> Decimal:
    """Coerce a database or caller value to Decimal (None -> 0)."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value)).quantize(_STORAGE_SCALE)
    return Decimal(value)


def signed_amount(amount: Decimal, side: Side) -> Decimal:
    """Debit-positive signed form of a magnitude on a side."""
    return amount if side == Side.DEBIT else -amount


def natural_amount(nature: Nature, debit_net: Decimal) -> Decimal:
    """Convert a debit-positive net into the nature's natural sign.

    Debit-normal natures keep ``debit - credit``; credit-normal natures
    report ``credit - debit``.
    """
    return debit_net if nature.is_debit_normal else -debit_net


@dataclass(frozen=True)
class BalancePair:
    """A balance expressed as a debit/credit pair with one side non-zero."""

    debit: Decimal = ZERO
    credit: Decimal = ZERO

    @classmethod
    def from_net(cls, debit_net: Decimal) -> BalancePair:
        """Build from a debit-positive net amount."""
        if debit_net >= 0:
            return cls(debit=debit_net, credit=ZERO)
        return cls(debit=ZERO, credit=-debit_net)

    @property
    def net(self) -> Decimal:
        """Debit-positive net (debit - credit)."""
        return self.debit - self.credit

    @property
    def side(self) -> Side | None:
        if self.debit > 0:
            return Side.DEBIT
        if self.credit > 0:
            return Side.CREDIT
        return None

    @property
    def magnitude(self) -> Decimal:
        return abs(self.net)

    @property
    def is_zero(self) -> bool:
        return self.debit == 0 and self.credit == 0


def within_tolerance(a: Decimal, b: Decimal, tolerance: Decimal = DEFAULT_TOLERANCE) -> bool:
    return abs(a - b) <= tolerance

"""
PostingPolicy -- tenant-level knobs for balance visibility and matching.

Responsibility:
    Carries the configuration that decides which voucher statuses count
    toward balances, the equality tolerance, the bank matching window and
    the per-call item ceilings.  Built by ``ledger_config`` from YAML; the
    kernel only ever sees this frozen value.

Architecture position:
    Kernel > Domain -- pure, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ledger_kernel.domain.values import DEFAULT_TOLERANCE
from ledger_kernel.domain.vouchers import (
    VoucherStatus,
    matchable_statuses,
    visible_statuses,
)


@dataclass(frozen=True)
class PostingPolicy:
    """
    Guarantees:
        - ``include_unapproved`` False means only APPROVED vouchers (and
          cancelled ones paired with their approved reversal) affect
          balances.  True adds DRAFT and PENDING_APPROVAL ("tentative
          posting").  REJECTED never counts.
        - A voucher accepted within ``tolerance`` is stored exactly
          balanced: the residue goes to ``round_off_ledger``, created on
          first use under ``round_off_group``.
    """

    include_unapproved: bool = False
    tolerance: Decimal = DEFAULT_TOLERANCE
    match_window_days: int = 3
    max_import_lines: int = 5000
    max_auto_match_items: int = 5000
    voucher_number_width: int = 5
    round_off_ledger: str = "Round Off"
    round_off_group: str = "Indirect Expenses"

    def __post_init__(self) -> None:
        if self.tolerance < 0:
            raise ValueError(f"tolerance must be non-negative, got {self.tolerance}")
        if self.match_window_days < 0:
            raise ValueError(
                f"match_window_days must be non-negative, got {self.match_window_days}"
            )
        if self.max_import_lines <= 0 or self.max_auto_match_items <= 0:
            raise ValueError("item ceilings must be positive")
        if self.voucher_number_width <= 0:
            raise ValueError("voucher_number_width must be positive")
        if not self.round_off_ledger or not self.round_off_group:
            raise ValueError("round_off_ledger and round_off_group must be non-empty")

    @property
    def visible_statuses(self) -> frozenset[VoucherStatus]:
        return visible_statuses(self.include_unapproved)

    @property
    def matchable_statuses(self) -> frozenset[VoucherStatus]:
        return matchable_statuses(self.include_unapproved)

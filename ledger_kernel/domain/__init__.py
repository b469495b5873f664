"""Pure domain layer: values, voucher state machine, chart tree, policy, clock."""

from ledger_kernel.domain.bank import CandidateEntry, StatementLineRef
from ledger_kernel.domain.chart import ChartTree, GroupNode, GroupRecord, LedgerRecord
from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.policy import PostingPolicy
from ledger_kernel.domain.values import (
    DEFAULT_TOLERANCE,
    NATURE_PRECEDENCE,
    ZERO,
    BalancePair,
    Nature,
    Side,
)
from ledger_kernel.domain.vouchers import (
    VOUCHER_TRANSITIONS,
    EntryInput,
    VoucherHeader,
    VoucherNature,
    VoucherStatus,
)

__all__ = [
    "BalancePair",
    "CandidateEntry",
    "ChartTree",
    "Clock",
    "DEFAULT_TOLERANCE",
    "DeterministicClock",
    "EntryInput",
    "GroupNode",
    "GroupRecord",
    "LedgerRecord",
    "NATURE_PRECEDENCE",
    "Nature",
    "PostingPolicy",
    "Side",
    "StatementLineRef",
    "SystemClock",
    "VOUCHER_TRANSITIONS",
    "VoucherHeader",
    "VoucherNature",
    "VoucherStatus",
    "ZERO",
]

"""
Setup templates -- declarative default chart and voucher types.

Responsibility:
    Frozen descriptions of the groups and voucher types a new tenant starts
    with.  ``ledger_config`` parses them from YAML; ChartService and
    VoucherService turn them into rows.

Architecture position:
    Kernel > Domain -- pure, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass

from ledger_kernel.domain.values import Nature
from ledger_kernel.domain.vouchers import VoucherNature, VoucherStatus


@dataclass(frozen=True)
class GroupTemplate:
    """One group of the default chart.  ``parent`` is a group name."""

    name: str
    nature: Nature
    parent: str | None = None
    affects_gross_profit: bool = False
    sequence: int = 0


@dataclass(frozen=True)
class VoucherTypeTemplate:
    name: str
    nature: VoucherNature
    prefix: str
    initial_status: VoucherStatus = VoucherStatus.DRAFT


@dataclass(frozen=True)
class ChartTemplate:
    """Default groups (parents before children) and voucher types."""

    groups: tuple[GroupTemplate, ...] = ()
    voucher_types: tuple[VoucherTypeTemplate, ...] = ()

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for group in self.groups:
            if group.name in seen:
                raise ValueError(f"Duplicate group {group.name!r} in chart template")
            if group.parent is not None and group.parent not in seen:
                raise ValueError(
                    f"Group {group.name!r} is listed before its parent {group.parent!r}"
                )
            seen.add(group.name)

"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into the kernel's frozen configuration
dataclasses: ``PostingPolicy`` and ``ChartTemplate``.  Callers go through
``ledger_config.get_posting_policy()`` / ``get_default_chart()``.

Architecture position
---------------------
**Config layer**.  Depends on ``ledger_kernel.domain`` only; the kernel
never imports this package.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` naming the field; there
  are no silent defaults for required fields and unknown keys are refused.
* Money-valued settings are parsed through ``str`` into ``Decimal``.
* ``compute_checksum`` gives a deterministic SHA-256 of the parsed source.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ledger_kernel.domain.policy import PostingPolicy
from ledger_kernel.domain.templates import (
    ChartTemplate,
    GroupTemplate,
    VoucherTypeTemplate,
)
from ledger_kernel.domain.values import Nature
from ledger_kernel.domain.vouchers import VoucherNature, VoucherStatus

_POLICY_KEYS = frozenset({
    "include_unapproved",
    "tolerance",
    "match_window_days",
    "max_import_lines",
    "max_auto_match_items",
    "voucher_number_width",
    "round_off_ledger",
    "round_off_group",
})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"{field}: expected a decimal, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field}: expected a decimal, got {value!r}") from exc


def parse_posting_policy(data: dict[str, Any]) -> PostingPolicy:
    """
    Parse a ``PostingPolicy`` from a dict.

    Absent keys take the dataclass defaults.

    Raises:
        ValueError: unknown keys, or a value ``PostingPolicy`` rejects.
    """
    unknown = set(data) - _POLICY_KEYS
    if unknown:
        raise ValueError(f"Unknown posting policy keys: {sorted(unknown)}")

    kwargs: dict[str, Any] = {}
    if "include_unapproved" in data:
        if not isinstance(data["include_unapproved"], bool):
            raise ValueError(
                f"include_unapproved: expected true/false, got {data['include_unapproved']!r}"
            )
        kwargs["include_unapproved"] = data["include_unapproved"]
    if "tolerance" in data:
        kwargs["tolerance"] = parse_decimal(data["tolerance"], "tolerance")
    for key in ("match_window_days", "max_import_lines", "max_auto_match_items", "voucher_number_width"):
        if key in data:
            kwargs[key] = int(data[key])
    for key in ("round_off_ledger", "round_off_group"):
        if key in data:
            if not isinstance(data[key], str):
                raise ValueError(f"{key}: expected a name, got {data[key]!r}")
            kwargs[key] = data[key]
    return PostingPolicy(**kwargs)


def parse_group_template(data: dict[str, Any]) -> GroupTemplate:
    return GroupTemplate(
        name=data["name"],
        nature=Nature(data["nature"]),
        parent=data.get("parent"),
        affects_gross_profit=bool(data.get("affects_gross_profit", False)),
        sequence=int(data.get("sequence", 0)),
    )


def parse_voucher_type_template(data: dict[str, Any]) -> VoucherTypeTemplate:
    return VoucherTypeTemplate(
        name=data["name"],
        nature=VoucherNature(data["nature"]),
        prefix=data["prefix"],
        initial_status=VoucherStatus(data.get("initial_status", VoucherStatus.DRAFT.value)),
    )


def parse_chart_template(data: dict[str, Any]) -> ChartTemplate:
    """
    Parse a ``ChartTemplate``.

    Groups must list parents before children; ``ChartTemplate`` checks it.
    """
    return ChartTemplate(
        groups=tuple(parse_group_template(g) for g in data.get("groups", [])),
        voucher_types=tuple(
            parse_voucher_type_template(v) for v in data.get("voucher_types", [])
        ),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()

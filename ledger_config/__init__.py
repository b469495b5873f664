"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    ``get_posting_policy()`` and ``get_default_chart()`` are the only ways
    the rest of the system obtains configuration.  Both read the bundled
    YAML under ``defaults/`` unless a path is given.

Architecture position:
    Configuration -- sits above ``ledger_kernel`` and below
    ``ledger_services``.  The kernel MUST NEVER import from here.

Audit relevance:
    Every load emits a ``config_loaded`` log record with the source path
    and checksum, tying reports back to the exact policy that produced
    them.
"""

from __future__ import annotations

from pathlib import Path

from ledger_config.loader import (
    compute_checksum,
    load_yaml_file,
    parse_chart_template,
    parse_posting_policy,
)
from ledger_kernel.domain.policy import PostingPolicy
from ledger_kernel.domain.templates import ChartTemplate
from ledger_kernel.logging_config import get_logger

logger = get_logger("config")

DEFAULTS_DIR = Path(__file__).parent / "defaults"
DEFAULT_POLICY_PATH = DEFAULTS_DIR / "posting_policy.yaml"
DEFAULT_CHART_PATH = DEFAULTS_DIR / "default_chart.yaml"


def get_posting_policy(path: Path | str | None = None) -> PostingPolicy:
    """Load the posting policy (``posting_policy`` section of the file)."""
    source = Path(path) if path is not None else DEFAULT_POLICY_PATH
    data = load_yaml_file(source).get("posting_policy") or {}
    policy = parse_posting_policy(data)
    logger.info(
        "config_loaded",
        extra={
            "config": "posting_policy",
            "path": str(source),
            "checksum": compute_checksum(data),
            "include_unapproved": policy.include_unapproved,
        },
    )
    return policy


def get_default_chart(path: Path | str | None = None) -> ChartTemplate:
    """Load the default chart-of-accounts and voucher-type template."""
    source = Path(path) if path is not None else DEFAULT_CHART_PATH
    data = load_yaml_file(source)
    template = parse_chart_template(data)
    logger.info(
        "config_loaded",
        extra={
            "config": "default_chart",
            "path": str(source),
            "checksum": compute_checksum(data),
            "group_count": len(template.groups),
            "voucher_type_count": len(template.voucher_types),
        },
    )
    return template


__all__ = [
    "DEFAULT_CHART_PATH",
    "DEFAULT_POLICY_PATH",
    "get_default_chart",
    "get_posting_policy",
]

"""
Trace logging for the pure engines.

``@traced_engine`` leaves inputs and outputs alone and emits one DEBUG
``engine_trace`` record per call: engine name and version, the qualified
function name, a fingerprint of chosen keyword arguments, the size of the
result when it has one, and the wall time.  Two calls with equal traced
inputs always produce the same fingerprint.
"""

from __future__ import annotations

import functools
import hashlib
import logging
import time
from collections.abc import Callable, Mapping
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.tracer")

_SCALARS = (str, int, Decimal, UUID, date)


def _canonical(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, _SCALARS):
        return str(value)
    if isinstance(value, Mapping):
        return "{" + ",".join(f"{k}:{v}" for k, v in sorted(
            (str(key), _canonical(val)) for key, val in value.items()
        )) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(map(_canonical, value)) + "]"
    return repr(value)


def compute_input_fingerprint(fields: tuple[str, ...], kwargs: Mapping[str, Any]) -> str:
    """16 hex chars of SHA-256 over ``name=value`` pairs; absent names hash as null."""
    text = "|".join(f"{name}={_canonical(kwargs.get(name))}" for name in fields)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def _result_size(result: Any) -> int | None:
    for attr in ("rows", "pairs"):
        items = getattr(result, attr, None)
        if items is not None:
            return len(items)
    return None


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = (time.perf_counter() - started) * 1000

            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    "engine_trace",
                    extra={
                        "engine_name": engine_name,
                        "engine_version": engine_version,
                        "function": func.__qualname__,
                        "input_fingerprint": (
                            compute_input_fingerprint(fingerprint_fields, kwargs)
                            if fingerprint_fields
                            else ""
                        ),
                        "result_size": _result_size(result),
                        "duration_ms": round(elapsed_ms, 2),
                    },
                )
            return result

        return wrapper

    return decorator

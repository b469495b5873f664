"""Structured JSON logging for the ledger kernel.

Every record is one JSON line: a fixed envelope (``ts``, ``level``,
``logger``, ``message``), the request-scoped fields held by
``LogContext`` (tenant, actor, voucher, bank account, correlation id),
then whatever the call site passed in ``extra``.  Kernel exceptions
attached with ``exc_info`` are flattened into ``exc_*`` fields so a
rejected voucher can be found by code and difference without parsing
the message.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Mapping
from uuid import UUID

LOGGER_NAMESPACE = "ledger"

_EMPTY: Mapping[str, str] = MappingProxyType({})

_context: ContextVar[Mapping[str, str]] = ContextVar("ledger_log_context", default=_EMPTY)


# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------


class LogContext:
    """Request-scoped fields added to every record.

    The fields live in one immutable mapping held by a ``ContextVar``, so
    concurrent requests on other threads or tasks never see each other's
    tenant or actor, and ``bind`` can restore the previous mapping in one
    step.
    """

    FIELDS = (
        "correlation_id",
        "tenant_id",
        "actor_id",
        "voucher_id",
        "bank_account_id",
    )

    @staticmethod
    def _merged(values: Mapping[str, Any]) -> Mapping[str, str]:
        current = dict(_context.get())
        for name, val in values.items():
            if val is not None and name in LogContext.FIELDS:
                current[name] = str(val)
        return MappingProxyType(current)

    @classmethod
    def set(
        cls,
        *,
        correlation_id: str | None = None,
        tenant_id: str | None = None,
        actor_id: str | None = None,
        voucher_id: str | None = None,
        bank_account_id: str | None = None,
    ) -> None:
        """Set context fields.  None leaves a field unchanged."""
        _context.set(
            cls._merged(
                {
                    "correlation_id": correlation_id,
                    "tenant_id": tenant_id,
                    "actor_id": actor_id,
                    "voucher_id": voucher_id,
                    "bank_account_id": bank_account_id,
                }
            )
        )

    @classmethod
    def get_all(cls) -> dict[str, str]:
        """Set fields, in declaration order."""
        current = _context.get()
        return {name: current[name] for name in cls.FIELDS if name in current}

    @classmethod
    def clear(cls) -> None:
        _context.set(_EMPTY)

    @classmethod
    def bind(cls, **kwargs: Any) -> "_BoundContext":
        """Set fields for the duration of a ``with`` block.

        Values are stringified, so UUIDs can be passed directly.  None
        values and unknown names are ignored.
        """
        return _BoundContext(kwargs)


class _BoundContext:
    def __init__(self, values: Mapping[str, Any]):
        self._values = values
        self._token = None

    def __enter__(self) -> type[LogContext]:
        self._token = _context.set(LogContext._merged(self._values))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        _context.reset(self._token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_RESERVED: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(obj: Any) -> Any:
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """Type, message, kernel error code and public attributes."""
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, val in vars(exc).items():
        if not name.startswith("_") and name != "code":
            fields[f"exc_{name}"] = val
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        payload.update(
            (key, val)
            for key, val in vars(record).items()
            if key not in _RESERVED and key not in payload
        )

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


# ---------------------------------------------------------------------------
# Logger factory and setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Child of the ``ledger`` logger, e.g. ``ledger.services.voucher``."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the ``ledger`` logger.

    Only the first call has an effect until ``reset_logging`` runs.
    ``level`` takes a number or a name such as ``"DEBUG"``.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    namespace = logging.getLogger(LOGGER_NAMESPACE)
    namespace.setLevel(level.upper() if isinstance(level, str) else level)
    namespace.propagate = False
    namespace.addHandler(handler)


def reset_logging() -> None:
    """Drop handlers and allow ``configure_logging`` again.  For tests."""
    global _configured
    with _lock:
        _configured = False
    namespace = logging.getLogger(LOGGER_NAMESPACE)
    namespace.handlers.clear()
    namespace.setLevel(logging.WARNING)

"""Database layer - engine, session scope and declarative base classes."""

from ledger_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from ledger_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    run_in_transaction,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "run_in_transaction",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
]

"""Database layer - engine, base classes, and money helpers."""

from payroll_kernel.db.base import SYSTEM_ACTOR_ID, UUID, Base, TrackedBase, UUIDString
from payroll_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from payroll_kernel.db.types import round_money, to_decimal, validate_currency

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "SYSTEM_ACTOR_ID",
    "round_money",
    "to_decimal",
    "validate_currency",
]

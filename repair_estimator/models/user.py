"""
User roles and the session context every service call runs under.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class UserRole(str, Enum):
    """Staff roles. Labor rates are keyed by the same roles."""
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    STORE_MANAGER = "store_manager"
    ASSOCIATE = "associate"
    BENCH_JEWELER = "bench_jeweler"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()

    @property
    def can_approve_overrides(self) -> bool:
        return self in (UserRole.SUPER_ADMIN, UserRole.ADMIN, UserRole.STORE_MANAGER)


@dataclass(frozen=True)
class SessionContext:
    """Who is acting, and for which company and store."""
    company_id: str
    store_id: str | None
    user_id: str
    role: UserRole = UserRole.ASSOCIATE


class SessionProvider(Protocol):
    """Source of the current session. Authentication lives outside this package."""

    def current(self) -> SessionContext:
        ...


class StaticSessionProvider:
    """Session provider returning a fixed context (per request or per test)."""

    def __init__(self, context: SessionContext):
        self._context = context

    def current(self) -> SessionContext:
        return self._context

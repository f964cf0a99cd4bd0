"""
Redirects component port definitions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from ._demand import RedirectDemand
from .models import RedirectRule


class RedirectRepoPort(Protocol):
    """Repository interface for redirect rules."""

    def get_by_id(self, redirect_id: int) -> RedirectRule | None:
        """Get redirect by ID (deleted rows included)."""
        ...

    def find_matching_rules(self, host: str, path: str, query: str) -> list[RedirectRule]:
        """
        Coarse candidate lookup for a request.

        Returns enabled, non-deleted rules on the wildcard host or the
        given host whose source could match the path. The matcher makes
        the final decision.
        """
        ...

    def find_by_source(self, source_host: str, source_path: str) -> list[RedirectRule]:
        """Non-deleted rules with exactly this (host, path), oldest first."""
        ...

    def insert(self, rule: RedirectRule) -> int:
        """Insert a rule and return its new id."""
        ...

    def update(self, redirect_id: int, fields: dict[str, Any]) -> None:
        """Update selected columns of a rule."""
        ...

    def increment_hit(self, redirect_id: int, hit_on: datetime) -> None:
        """Atomically bump hit_count and set last_hit_on."""
        ...

    def soft_delete(self, redirect_id: int) -> None:
        """Flag a rule as deleted."""
        ...

    def find_by_demand(self, demand: RedirectDemand) -> list[RedirectRule]:
        """One page of rules filtered and sorted by the demand."""
        ...

    def count_by_demand(self, demand: RedirectDemand) -> int:
        """Total number of rules matching the demand."""
        ...

    def list_hosts(self) -> list[str]:
        """Distinct source hosts in use."""
        ...

    def list_all(self) -> list[RedirectRule]:
        """All non-deleted rules."""
        ...


class TimePort(Protocol):
    """Time provider interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...

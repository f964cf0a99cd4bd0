"""
Slugs component port definitions.
"""

from __future__ import annotations

from types import TracebackType
from typing import Protocol

from src.components.redirects.models import RedirectCandidate, RedirectRule
from src.components.redirects.ports import RedirectRepoPort, TimePort
from src.components.sites.ports import PageRepoPort

__all__ = [
    "PageRepoPort",
    "PersistHooksPort",
    "RedirectRepoPort",
    "TimePort",
    "UnitOfWorkPort",
]


class PersistHooksPort(Protocol):
    """Extension points around each auto-created redirect."""

    def before_persist(self, candidate: RedirectCandidate) -> RedirectCandidate:
        """Return the candidate to store (possibly modified)."""
        ...

    def after_persist(self, rule: RedirectRule) -> None:
        """Notify about the stored row."""
        ...


class UnitOfWorkPort(Protocol):
    """Transaction scope shared by the page and redirect repositories."""

    @property
    def pages(self) -> PageRepoPort: ...

    @property
    def redirects(self) -> RedirectRepoPort: ...

    def __enter__(self) -> UnitOfWorkPort: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None: ...

    def commit(self) -> None:
        """Commit the transaction."""
        ...

    def rollback(self) -> None:
        """Roll back the transaction."""
        ...

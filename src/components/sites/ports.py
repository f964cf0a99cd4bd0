"""
Sites component port definitions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from .models import PageRecord


class PageRepoPort(Protocol):
    """Read/write access to the page tree."""

    def get_by_id(self, page_id: int) -> PageRecord | None:
        """Get a page row (default or translation) by its own id."""
        ...

    def get_in_language(self, default_page_id: int, language_id: int) -> PageRecord | None:
        """Get the row of a page in a language (the default row for language 0)."""
        ...

    def list_children(self, parent_id: int) -> list[PageRecord]:
        """List non-deleted default-language children ordered by sorting."""
        ...

    def update_slug(self, page_id: int, slug: str) -> None:
        """Replace the slug of a single page row."""
        ...


class TimePort(Protocol):
    """Time provider interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...

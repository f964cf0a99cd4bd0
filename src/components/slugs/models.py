"""
Slugs component input/output models.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from src.components.redirects.models import RedirectRule


@dataclass(frozen=True)
class SlugValidationError:
    """Slug rename validation error."""

    code: str
    message: str
    field: str | None = None


@dataclass(frozen=True)
class SlugChangeItem:
    """
    One pending slug change of a page row.

    original and changed are read-only snapshots of the page fields that
    matter for routing. Use with_changed() to derive a new item.
    """

    page_id: int
    default_page_id: int
    site_identifier: str
    language_id: int
    original: Mapping[str, Any]
    changed: Mapping[str, Any]

    def __post_init__(self) -> None:
        object.__setattr__(self, "original", MappingProxyType(dict(self.original)))
        object.__setattr__(self, "changed", MappingProxyType(dict(self.changed)))

    def with_changed(self, changed: Mapping[str, Any]) -> SlugChangeItem:
        return SlugChangeItem(
            page_id=self.page_id,
            default_page_id=self.default_page_id,
            site_identifier=self.site_identifier,
            language_id=self.language_id,
            original=self.original,
            changed=changed,
        )

    @property
    def original_slug(self) -> str:
        return str(self.original.get("slug", ""))

    @property
    def changed_slug(self) -> str:
        return str(self.changed.get("slug", ""))


@dataclass
class SlugChangeResult:
    """What a slug change did to pages and redirects."""

    created: list[RedirectRule] = field(default_factory=list)
    updated: list[RedirectRule] = field(default_factory=list)
    skipped: list[tuple[str, str]] = field(default_factory=list)
    removed: list[int] = field(default_factory=list)
    updated_slugs: dict[int, str] = field(default_factory=dict)


# --- Input Models ---


@dataclass(frozen=True)
class RenamePageInput:
    """Input for renaming a page row."""

    page_id: int
    new_slug: str
    correlation_id: str | None = None


# --- Output Models ---


@dataclass(frozen=True)
class RenamePageOutput:
    """Output of a rename."""

    result: SlugChangeResult | None
    correlation_id: str | None = None
    errors: list[SlugValidationError] = field(default_factory=list)
    success: bool = True

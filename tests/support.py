"""
Shared test doubles and the page tree used across the suite.

Tree (default language 0, translations in language 1):

    1  /                                  (site root)      5  /
    +- 2  /dummy-1-2                                       21 /dummy-1-2
    |  +- 4  /dummy-1-2/dummy-1-2-3                        41 /dummy-1-2/dummy-1-2-3
    +- 3  /dummy-1-3                                       31 /dummy-1-3
       +- 8  /dummy-1-3/dummy-1-3-8                        81 /dummy-1-3/dummy-1-3-8
"""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from src.components.redirects import RedirectDemand, RedirectRule
from src.components.sites import (
    PageRecord,
    PageTypeSuffix,
    Site,
    SiteLanguage,
    SiteRedirectSettings,
)

FROZEN_NOW = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


def build_site(
    redirects: SiteRedirectSettings | None = None,
    page_type_suffix: PageTypeSuffix | None = None,
) -> Site:
    return Site(
        identifier="main",
        root_page_id=1,
        base="/",
        languages=(
            SiteLanguage(language_id=0, base="/en/", title="English"),
            SiteLanguage(language_id=1, base="https://de.example.com/", title="German"),
        ),
        page_type_suffix=page_type_suffix,
        redirects=redirects or SiteRedirectSettings(),
    )


def tree_pages() -> list[PageRecord]:
    return [
        PageRecord(id=1, slug="/", title="Home"),
        PageRecord(id=2, slug="/dummy-1-2", parent_id=1, sorting=1),
        PageRecord(id=3, slug="/dummy-1-3", parent_id=1, sorting=2),
        PageRecord(id=4, slug="/dummy-1-2/dummy-1-2-3", parent_id=2),
        PageRecord(id=8, slug="/dummy-1-3/dummy-1-3-8", parent_id=3),
        PageRecord(id=5, slug="/", language_id=1, translation_of=1),
        PageRecord(id=21, slug="/dummy-1-2", parent_id=1, language_id=1, translation_of=2),
        PageRecord(id=31, slug="/dummy-1-3", parent_id=1, language_id=1, translation_of=3),
        PageRecord(
            id=41, slug="/dummy-1-2/dummy-1-2-3", parent_id=2, language_id=1, translation_of=4
        ),
        PageRecord(
            id=81, slug="/dummy-1-3/dummy-1-3-8", parent_id=3, language_id=1, translation_of=8
        ),
    ]


def make_rule(redirect_id: int | None = None, **overrides: Any) -> RedirectRule:
    values: dict[str, Any] = {
        "id": redirect_id,
        "source_host": "*",
        "source_path": "/old",
        "target": "/new",
        "created_at": FROZEN_NOW,
        "updated_at": FROZEN_NOW,
    }
    values.update(overrides)
    return RedirectRule(**values)


# --- In-memory repositories ---


class InMemoryPageRepo:
    """In-memory page repository for testing."""

    def __init__(self, pages: list[PageRecord] | None = None) -> None:
        self._pages: dict[int, PageRecord] = {}
        for page in pages or []:
            self.save(page)

    def get_by_id(self, page_id: int) -> PageRecord | None:
        return self._pages.get(page_id)

    def get_in_language(self, default_page_id: int, language_id: int) -> PageRecord | None:
        if language_id == 0:
            page = self._pages.get(default_page_id)
            return page if page is not None and page.language_id == 0 else None
        for page in sorted(self._pages.values(), key=lambda p: p.id):
            if (
                page.translation_of == default_page_id
                and page.language_id == language_id
                and not page.deleted
            ):
                return page
        return None

    def list_children(self, parent_id: int) -> list[PageRecord]:
        children = [
            p
            for p in self._pages.values()
            if p.parent_id == parent_id and p.language_id == 0 and not p.deleted
        ]
        return sorted(children, key=lambda p: (p.sorting, p.id))

    def update_slug(self, page_id: int, slug: str) -> None:
        self._pages[page_id] = replace(self._pages[page_id], slug=slug)

    def save(self, page: PageRecord) -> PageRecord:
        self._pages[page.id] = page
        return page

    def set(self, page_id: int, **changes: Any) -> None:
        """Change fields of a stored page (for testing)."""
        self._pages[page_id] = replace(self._pages[page_id], **changes)


class InMemoryRedirectRepo:
    """In-memory redirect repository for testing."""

    def __init__(self) -> None:
        self._rules: dict[int, RedirectRule] = {}
        self._next_id = 1
        self.fail_hits = False

    def get_by_id(self, redirect_id: int) -> RedirectRule | None:
        return self._rules.get(redirect_id)

    def find_matching_rules(self, host: str, path: str, query: str) -> list[RedirectRule]:
        return [
            r
            for r in self._ordered()
            if not r.deleted
            and not r.disabled
            and (r.source_host == "*" or r.source_host.lower() == host.lower())
        ]

    def find_by_source(self, source_host: str, source_path: str) -> list[RedirectRule]:
        return [
            r
            for r in self._ordered()
            if not r.deleted
            and not r.is_regexp
            and r.source_host == source_host
            and r.source_path == source_path
        ]

    def insert(self, rule: RedirectRule) -> int:
        new_id = self._next_id
        self._next_id += 1
        self._rules[new_id] = replace(rule, id=new_id)
        return new_id

    def update(self, redirect_id: int, fields: dict[str, Any]) -> None:
        self._rules[redirect_id] = replace(self._rules[redirect_id], **fields)

    def increment_hit(self, redirect_id: int, hit_on: datetime) -> None:
        if self.fail_hits:
            raise RuntimeError("hit counter unavailable")
        rule = self._rules[redirect_id]
        self._rules[redirect_id] = replace(rule, hit_count=rule.hit_count + 1, last_hit_on=hit_on)

    def soft_delete(self, redirect_id: int) -> None:
        self.update(redirect_id, {"deleted": True})

    def find_by_demand(self, demand: RedirectDemand) -> list[RedirectRule]:
        return demand.apply(self._rules.values())[0]

    def count_by_demand(self, demand: RedirectDemand) -> int:
        return demand.apply(self._rules.values())[1]

    def list_hosts(self) -> list[str]:
        return sorted({r.source_host for r in self._rules.values() if not r.deleted})

    def list_all(self) -> list[RedirectRule]:
        return [r for r in self._ordered() if not r.deleted]

    def add(self, rule: RedirectRule) -> RedirectRule:
        """Store a rule as-is, bypassing validation (for testing)."""
        new_id = self.insert(rule)
        return self._rules[new_id]

    def live(self) -> list[RedirectRule]:
        return self.list_all()

    def _ordered(self) -> list[RedirectRule]:
        return [self._rules[k] for k in sorted(self._rules)]


class InMemoryUnitOfWork:
    """Unit of work over the in-memory repos; rolls back unless committed."""

    def __init__(self, pages: InMemoryPageRepo, redirects: InMemoryRedirectRepo) -> None:
        self._pages = pages
        self._redirects = redirects
        self._snapshot: tuple[dict[int, PageRecord], dict[int, RedirectRule], int] | None = None
        self.commits = 0

    @property
    def pages(self) -> InMemoryPageRepo:
        return self._pages

    @property
    def redirects(self) -> InMemoryRedirectRepo:
        return self._redirects

    def __enter__(self) -> InMemoryUnitOfWork:
        self._snapshot = (
            dict(self._pages._pages),
            dict(self._redirects._rules),
            self._redirects._next_id,
        )
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._snapshot is not None:
            self.rollback()

    def commit(self) -> None:
        self.commits += 1
        self._snapshot = None

    def rollback(self) -> None:
        if self._snapshot is None:
            return
        pages, rules, next_id = self._snapshot
        self._pages._pages = pages
        self._redirects._rules = rules
        self._redirects._next_id = next_id
        self._snapshot = None

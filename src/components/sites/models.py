"""
Sites component models.

Site topology is read-only configuration; pages are the routable tree
the redirects point into.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class PageType(str, Enum):
    """Kind of page node."""

    STANDARD = "standard"
    LINK = "link"
    SHORTCUT = "shortcut"
    FOLDER = "folder"
    SPACER = "spacer"
    RECYCLER = "recycler"


# Page types that never render under their own URL
NON_ROUTABLE_PAGE_TYPES = frozenset({PageType.FOLDER, PageType.SPACER, PageType.RECYCLER})


@dataclass(frozen=True)
class PageRecord:
    """
    One page row in one language.

    Default-language rows carry the tree (parent_id). Translations point to
    their default row through translation_of and share its parent.
    The slug is the full path of the page below the site base.
    """

    id: int
    slug: str
    parent_id: int = 0
    language_id: int = 0
    translation_of: int | None = None
    title: str = ""
    page_type: PageType = PageType.STANDARD
    hidden: bool = False
    start_time: datetime | None = None
    end_time: datetime | None = None
    extend_to_subpages: bool = False
    required_groups: frozenset[int] = frozenset()
    sorting: int = 0
    deleted: bool = False

    @property
    def default_id(self) -> int:
        """Identity used by page references, shared by all translations."""
        return self.translation_of or self.id


@dataclass(frozen=True)
class FrontendUser:
    """Visitor identity as far as page access is concerned."""

    id: int | str
    groups: frozenset[int] = frozenset()


@dataclass(frozen=True)
class BaseUrl:
    """Resolved base of a site language."""

    scheme: str
    host: str
    path: str

    @property
    def source_host(self) -> str:
        """Host a redirect for this base is bound to ("*" for host-less bases)."""
        return self.host or "*"

    @property
    def path_prefix(self) -> str:
        return self.path.rstrip("/")


@dataclass(frozen=True)
class SiteLanguage:
    """Language variant of a site."""

    language_id: int
    base: str
    title: str = ""
    enabled: bool = True


@dataclass(frozen=True)
class PageTypeSuffix:
    """Route enhancer mapping URL suffixes to page types."""

    default: str = ""
    map: dict[str, int] = field(default_factory=dict)

    def suffix_for(self, page_type: int) -> str | None:
        if self.default in self.map and self.map[self.default] == page_type:
            return self.default
        for suffix, mapped_type in self.map.items():
            if mapped_type == page_type:
                return suffix
        if page_type == 0:
            return self.default
        return None


@dataclass(frozen=True)
class SiteRedirectSettings:
    """Per-site behaviour of automatic redirect creation."""

    auto_update_slugs: bool = True
    auto_create_redirects: bool = True
    redirect_ttl_days: int = 0
    http_status_code: int = 307
    page_types: tuple[int, ...] = (0,)


@dataclass(frozen=True)
class Site:
    """Routable root with its language variants."""

    identifier: str
    root_page_id: int
    base: str = "/"
    languages: tuple[SiteLanguage, ...] = ()
    page_type_suffix: PageTypeSuffix | None = None
    redirects: SiteRedirectSettings = field(default_factory=SiteRedirectSettings)

    def all_languages(self) -> tuple[SiteLanguage, ...]:
        if self.languages:
            return self.languages
        return (SiteLanguage(language_id=0, base="/"),)

    def language(self, language_id: int) -> SiteLanguage | None:
        for language in self.all_languages():
            if language.language_id == language_id:
                return language
        return None

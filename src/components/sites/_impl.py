"""
SiteFinder - site topology lookups over the page tree.

Key behaviors:
- A page belongs to the site whose root page is its nearest ancestor
- Relative language bases are appended to the site base, absolute ones stand alone
- A page is routable when it is a rendering page type, visible in its time
  window, and no ancestor hides its subtree (extend_to_subpages)
- Folders and spacers do not hide their children
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from urllib.parse import urlsplit

from src.rules.models import Rules, SiteRules

from .models import (
    NON_ROUTABLE_PAGE_TYPES,
    BaseUrl,
    FrontendUser,
    PageRecord,
    PageTypeSuffix,
    Site,
    SiteLanguage,
    SiteRedirectSettings,
)
from .ports import PageRepoPort, TimePort

logger = logging.getLogger(__name__)


# --- Base / path helpers ---


def resolve_base(site_base: str, language_base: str) -> BaseUrl:
    """Combine a site base and a language base into a concrete base URL."""
    language = urlsplit(language_base)
    if language.netloc:
        return BaseUrl(
            scheme=language.scheme,
            host=language.netloc,
            path=language.path or "/",
        )

    site = urlsplit(site_base)
    site_path = site.path or "/"
    if language.path and language.path != "/":
        path = site_path.rstrip("/") + "/" + language.path.lstrip("/")
    else:
        path = site_path
    return BaseUrl(scheme=site.scheme, host=site.netloc, path=path or "/")


def join_base_and_slug(base_path: str, slug: str) -> str:
    """Append a page slug to a base path ("/en/" + "/about" -> "/en/about")."""
    prefix = base_path.rstrip("/")
    if not slug or slug == "/":
        return prefix + "/"
    if not slug.startswith("/"):
        slug = "/" + slug
    return prefix + slug


def site_from_rules(rules: SiteRules) -> Site:
    """Build a Site from its rules.yaml definition."""
    suffix = None
    if rules.page_type_suffix is not None:
        suffix = PageTypeSuffix(
            default=rules.page_type_suffix.default,
            map=dict(rules.page_type_suffix.map),
        )
    settings = rules.redirects
    return Site(
        identifier=rules.identifier,
        root_page_id=rules.root_page_id,
        base=rules.base,
        languages=tuple(
            SiteLanguage(
                language_id=lang.language_id,
                base=lang.base,
                title=lang.title,
                enabled=lang.enabled,
            )
            for lang in rules.languages
        ),
        page_type_suffix=suffix,
        redirects=SiteRedirectSettings(
            auto_update_slugs=settings.auto_update_slugs,
            auto_create_redirects=settings.auto_create_redirects,
            redirect_ttl_days=settings.redirect_ttl_days,
            http_status_code=settings.http_status_code,
            page_types=tuple(settings.page_types),
        ),
    )


def sites_from_rules(rules: Rules) -> list[Site]:
    return [site_from_rules(s) for s in rules.sites]


# --- Site Finder ---


class SiteFinder:
    """
    Site topology service.

    Answers which site/language a page lives in, what its URL is and
    whether it is reachable at all.
    """

    def __init__(
        self,
        sites: Iterable[Site],
        pages: PageRepoPort,
        time_port: TimePort | None = None,
    ) -> None:
        self._sites = {site.identifier: site for site in sites}
        self._by_root = {site.root_page_id: site for site in self._sites.values()}
        self._pages = pages
        self._time_port = time_port

    def _now(self) -> datetime:
        if self._time_port:
            return self._time_port.now_utc()
        return datetime.now(UTC)

    @property
    def sites(self) -> Sequence[Site]:
        return list(self._sites.values())

    def get_site(self, identifier: str) -> Site | None:
        return self._sites.get(identifier)

    def _default_row(self, page_id: int) -> PageRecord | None:
        page = self._pages.get_by_id(page_id)
        if page is not None and page.translation_of:
            return self._pages.get_by_id(page.translation_of)
        return page

    def site_for_page(self, page_id: int) -> Site | None:
        """Find the site a page (or translation) belongs to."""
        page = self._default_row(page_id)
        visited: set[int] = set()
        while page is not None and page.id not in visited:
            site = self._by_root.get(page.id)
            if site is not None:
                return site
            visited.add(page.id)
            if not page.parent_id:
                break
            page = self._pages.get_by_id(page.parent_id)
        return None

    def ancestors(self, page: PageRecord) -> list[PageRecord]:
        """Default-language ancestors, nearest first, up to the site root."""
        result: list[PageRecord] = []
        current = self._default_row(page.default_id)
        visited = {page.default_id}
        while current is not None and current.id not in self._by_root and current.parent_id:
            parent = self._pages.get_by_id(current.parent_id)
            if parent is None or parent.id in visited:
                break
            visited.add(parent.id)
            result.append(parent)
            current = parent
        return result

    def language_base(self, site: Site, language: SiteLanguage) -> BaseUrl:
        return resolve_base(site.base, language.base)

    def full_path(self, site: Site, language: SiteLanguage, slug: str) -> str:
        return join_base_and_slug(self.language_base(site, language).path, slug)

    # --- Routability ---

    def is_visible(self, page: PageRecord, now: datetime | None = None) -> bool:
        """Check hidden flag and the publication window."""
        now = now or self._now()
        if page.deleted or page.hidden:
            return False
        if page.start_time is not None and page.start_time > now:
            return False
        if page.end_time is not None and page.end_time <= now:
            return False
        return True

    def is_routable(
        self,
        page: PageRecord,
        user: FrontendUser | None = None,
        check_access: bool = False,
        now: datetime | None = None,
    ) -> bool:
        """
        Check whether a page renders under its own URL.

        Access groups are only enforced with check_access, because a
        restricted page still owns its URL.
        """
        now = now or self._now()
        if page.page_type in NON_ROUTABLE_PAGE_TYPES:
            return False
        if not self.is_visible(page, now):
            return False
        if check_access and page.required_groups:
            if user is None or not (page.required_groups & user.groups):
                return False

        for ancestor in self.ancestors(page):
            if ancestor.deleted:
                return False
            if ancestor.extend_to_subpages and not self.is_visible(ancestor, now):
                return False
        return True

    def routable_sites_languages_for(self, page_id: int) -> list[tuple[str, int]]:
        """List (site identifier, language id) pairs where the page is live."""
        site = self.site_for_page(page_id)
        if site is None:
            return []
        default_row = self._default_row(page_id)
        if default_row is None:
            return []

        pairs: list[tuple[str, int]] = []
        for language in site.all_languages():
            if not language.enabled:
                continue
            row = self._pages.get_in_language(default_row.id, language.language_id)
            if row is not None and self.is_routable(row):
                pairs.append((site.identifier, language.language_id))
        return pairs

    def resolve_path(self, page_id: int, language_id: int, site_id: str) -> str | None:
        """Full path (base + slug) of a page in a language, or None."""
        site = self.get_site(site_id)
        if site is None:
            return None
        language = site.language(language_id)
        default_row = self._default_row(page_id)
        if language is None or default_row is None:
            return None
        row = self._pages.get_in_language(default_row.id, language_id)
        if row is None or row.deleted:
            return None
        return self.full_path(site, language, row.slug)

    def build_page_url(
        self,
        page_id: int,
        language_id: int,
        request_scheme: str,
        request_host: str,
        user: FrontendUser | None = None,
    ) -> str | None:
        """
        Build the absolute URL of a page in a language.

        Returns None if the page is gone, not routable for this visitor,
        or the language is not enabled on its site.
        """
        site = self.site_for_page(page_id)
        if site is None:
            logger.debug("Page %s is not part of any site", page_id)
            return None
        language = site.language(language_id)
        if language is None or not language.enabled:
            return None

        row = self._pages.get_in_language(page_id, language_id)
        if row is None or not self.is_routable(row, user=user, check_access=True):
            return None

        base = self.language_base(site, language)
        scheme = base.scheme or request_scheme
        host = base.host or request_host
        return f"{scheme}://{host}{join_base_and_slug(base.path, row.slug)}"

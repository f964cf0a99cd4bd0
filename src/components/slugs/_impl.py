"""
SlugService - keeps redirects correct when a page slug changes.

Key behaviors:
- The renamed page gets redirects from its old URL only if it was
  routable before the change (not hidden, inside its time window, a
  rendering page type, no ancestor hiding it via extend_to_subpages)
- The subtree is walked breadth-first in the same language; descendants
  whose slug carries the old prefix get the new prefix and, if routable,
  redirects from their old URL
- Redirect sources follow the language base (host or "*") and the
  page type suffix of the site
- Manual or protected redirects on the same source are never touched;
  an existing auto-created one is updated instead of duplicated
- Auto-created redirects sitting on a new live URL are soft-deleted
- Everything runs in the caller's transaction; errors propagate
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from src.components.redirects import (
    CreationType,
    RedirectCandidate,
    RedirectRule,
    format_page_target,
)
from src.components.sites import (
    PageRecord,
    Site,
    SiteFinder,
    SiteLanguage,
    join_base_and_slug,
)

from .models import SlugChangeItem, SlugChangeResult, SlugValidationError
from .ports import (
    PageRepoPort,
    PersistHooksPort,
    RedirectRepoPort,
    TimePort,
    UnitOfWorkPort,
)

logger = logging.getLogger(__name__)

# Page fields captured in a change item snapshot
SNAPSHOT_FIELDS = (
    "slug",
    "hidden",
    "start_time",
    "end_time",
    "page_type",
    "extend_to_subpages",
    "deleted",
)


# --- Slug helpers ---


def normalize_slug(slug: str) -> str:
    """Leading slash, no trailing slash (except for the root slug)."""
    slug = (slug or "").strip()
    if not slug.startswith("/"):
        slug = "/" + slug
    return slug.rstrip("/") or "/"


def replace_slug_prefix(slug: str, old_prefix: str, new_prefix: str) -> str | None:
    """
    Move a descendant slug from under old_prefix to under new_prefix.

    Returns None when the slug does not live under old_prefix.
    """
    if slug == old_prefix:
        return new_prefix
    new_base = new_prefix.rstrip("/")
    if old_prefix == "/":
        if slug.startswith("/"):
            return new_base + slug
        return None
    old_base = old_prefix.rstrip("/")
    if slug.startswith(old_base + "/"):
        return new_base + slug[len(old_base) :]
    return None


def apply_page_type_suffix(path: str, suffix: str | None) -> str:
    """Append a route suffix ("/", ".html", "feed.xml") to a page path."""
    if not suffix:
        return path
    if suffix == "/":
        return path if path.endswith("/") else path + "/"
    if path.endswith("/"):
        return path
    if suffix.startswith("."):
        return path + suffix
    return path + "/" + suffix.lstrip("/")


def _unique(items: Iterable[tuple[str, str]]) -> list[tuple[str, str]]:
    seen: set[tuple[str, str]] = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


# --- Change item factory ---


class SlugChangeItemFactory:
    """Build change items from the stored page row."""

    def __init__(self, pages: PageRepoPort, site_finder: SiteFinder) -> None:
        self._pages = pages
        self._site_finder = site_finder

    def create(self, page_id: int) -> SlugChangeItem | None:
        page = self._pages.get_by_id(page_id)
        if page is None:
            return None
        site = self._site_finder.site_for_page(page_id)
        if site is None:
            logger.debug("Page %s is outside of any site, no change item", page_id)
            return None
        snapshot = {name: getattr(page, name) for name in SNAPSHOT_FIELDS}
        return SlugChangeItem(
            page_id=page.id,
            default_page_id=page.default_id,
            site_identifier=site.identifier,
            language_id=page.language_id,
            original=snapshot,
            changed=snapshot,
        )


# --- Slug Service ---


class SlugService:
    """
    Slug-change analyzer.

    Rewrites descendant slugs and creates redirects from old URLs for
    one pending slug change. It does not update the renamed page itself.
    """

    def __init__(
        self,
        pages: PageRepoPort,
        redirects: RedirectRepoPort,
        site_finder: SiteFinder,
        hooks: PersistHooksPort | None = None,
        time_port: TimePort | None = None,
    ) -> None:
        self._pages = pages
        self._redirects = redirects
        self._site_finder = site_finder
        self._hooks = hooks
        self._time_port = time_port

    def _now(self) -> datetime:
        if self._time_port:
            return self._time_port.now_utc()
        return datetime.now(UTC)

    def rebuild_slugs_for_slug_change(
        self,
        page_id: int,
        change_item: SlugChangeItem,
        correlation_id: str,
    ) -> SlugChangeResult:
        result = SlugChangeResult()
        old_slug = change_item.original_slug
        new_slug = change_item.changed_slug
        if not old_slug or old_slug == new_slug:
            return result

        site = self._site_finder.get_site(change_item.site_identifier)
        if site is None:
            logger.warning("Unknown site %s for page %s", change_item.site_identifier, page_id)
            return result
        settings = site.redirects
        if not settings.auto_update_slugs and not settings.auto_create_redirects:
            return result

        language = site.language(change_item.language_id)
        page = self._pages.get_by_id(page_id)
        if language is None or page is None:
            logger.warning(
                "Page %s (language %s) is not available on site %s",
                page_id,
                change_item.language_id,
                site.identifier,
            )
            return result
        if not language.enabled:
            logger.debug("Language %s of site %s is disabled, no redirects", language.language_id, site.identifier)
            return result

        protected_ids: set[int] = set()
        if settings.auto_create_redirects:
            before = replace(page, **dict(change_item.original))
            if self._site_finder.is_routable(before):
                self._create_redirects(site, language, page, old_slug, correlation_id, result, protected_ids)
            else:
                logger.debug("Page %s was not routable before the change, no redirect for it", page_id)
            after = replace(page, **dict(change_item.changed))
            self._clear_shadowing(site, language, after, new_slug, result, protected_ids)

        if settings.auto_update_slugs:
            self._rebuild_sub_pages(
                site,
                language,
                change_item.default_page_id,
                old_slug,
                new_slug,
                correlation_id,
                result,
                protected_ids,
            )

        logger.info(
            "Slug change of page %s: %d redirects created, %d updated, %d removed, %d slugs rewritten",
            page_id,
            len(result.created),
            len(result.updated),
            len(result.removed),
            len(result.updated_slugs),
        )
        return result

    # --- Subtree ---

    def _rebuild_sub_pages(
        self,
        site: Site,
        language: SiteLanguage,
        root_page_id: int,
        old_prefix: str,
        new_prefix: str,
        correlation_id: str,
        result: SlugChangeResult,
        protected_ids: set[int],
    ) -> None:
        queue: deque[int] = deque([root_page_id])
        visited = {root_page_id}
        while queue:
            parent_id = queue.popleft()
            for child in self._pages.list_children(parent_id):
                if child.id in visited:
                    continue
                visited.add(child.id)
                queue.append(child.id)

                row = self._pages.get_in_language(child.id, language.language_id)
                if row is None or row.deleted:
                    continue
                new_slug = replace_slug_prefix(row.slug, old_prefix, new_prefix)
                if new_slug is None or new_slug == row.slug:
                    continue

                self._pages.update_slug(row.id, new_slug)
                result.updated_slugs[row.id] = new_slug

                if not site.redirects.auto_create_redirects:
                    continue
                if self._site_finder.is_routable(row):
                    self._create_redirects(site, language, row, row.slug, correlation_id, result, protected_ids)
                self._clear_shadowing(
                    site, language, replace(row, slug=new_slug), new_slug, result, protected_ids
                )

    # --- Redirect sources ---

    def redirect_sources(self, site: Site, language: SiteLanguage, slug: str) -> list[tuple[str, str]]:
        """(host, path) pairs under which a slug is reachable."""
        base = self._site_finder.language_base(site, language)
        path = join_base_and_slug(base.path, slug)
        suffix_config = site.page_type_suffix
        if suffix_config is None:
            return [(base.source_host, path)]
        return _unique(
            (base.source_host, apply_page_type_suffix(path, suffix_config.suffix_for(page_type)))
            for page_type in site.redirects.page_types
        )

    def _create_redirects(
        self,
        site: Site,
        language: SiteLanguage,
        page: PageRecord,
        old_slug: str,
        correlation_id: str,
        result: SlugChangeResult,
        protected_ids: set[int],
    ) -> None:
        settings = site.redirects
        end_time = None
        if settings.redirect_ttl_days > 0:
            end_time = self._now() + timedelta(days=settings.redirect_ttl_days)
        target = format_page_target(page.default_id, language.language_id)

        for host, path in self.redirect_sources(site, language, old_slug):
            candidate = RedirectCandidate(
                source_host=host,
                source_path=path,
                target=target,
                target_status_code=settings.http_status_code,
                end_time=end_time,
                correlation_id=correlation_id,
            )
            stored = self._persist(candidate, result)
            if stored is not None and stored.id is not None:
                protected_ids.add(stored.id)

    def _persist(self, candidate: RedirectCandidate, result: SlugChangeResult) -> RedirectRule | None:
        if self._hooks is not None:
            candidate = self._hooks.before_persist(candidate)

        existing = self._redirects.find_by_source(candidate.source_host, candidate.source_path)
        if any(r.protected or r.creation_type == CreationType.MANUAL for r in existing):
            logger.debug(
                "Skipping %s%s: occupied by a manual or protected redirect",
                candidate.source_host,
                candidate.source_path,
            )
            result.skipped.append((candidate.source_host, candidate.source_path))
            return None

        now = self._now()
        if existing:
            current = existing[0]
            if current.id is None:
                return None
            self._drop_duplicates(existing[1:], result)
            if current.target == candidate.target and not current.disabled:
                result.skipped.append((candidate.source_host, candidate.source_path))
                return current
            self._redirects.update(
                current.id,
                {
                    "target": candidate.target,
                    "target_status_code": candidate.target_status_code,
                    "end_time": candidate.end_time,
                    "correlation_id": candidate.correlation_id,
                    "disabled": False,
                    "updated_at": now,
                },
            )
            stored = self._redirects.get_by_id(current.id)
            if stored is None:
                return None
            logger.info("Updated auto redirect %s: %s -> %s", stored.id, stored.source_path, stored.target)
            result.updated.append(stored)
        else:
            new_id = self._redirects.insert(candidate.to_rule(now))
            stored = self._redirects.get_by_id(new_id) or replace(candidate.to_rule(now), id=new_id)
            logger.info("Created auto redirect %s: %s -> %s", new_id, stored.source_path, stored.target)
            result.created.append(stored)

        if self._hooks is not None:
            self._hooks.after_persist(stored)
        return stored

    def _drop_duplicates(self, duplicates: Sequence[RedirectRule], result: SlugChangeResult) -> None:
        for rule in duplicates:
            if rule.id is None:
                continue
            self._redirects.soft_delete(rule.id)
            result.removed.append(rule.id)
            logger.info("Removed duplicate auto redirect %s for %s%s", rule.id, rule.source_host, rule.source_path)

    def _clear_shadowing(
        self,
        site: Site,
        language: SiteLanguage,
        page: PageRecord,
        new_slug: str,
        result: SlugChangeResult,
        protected_ids: set[int],
    ) -> None:
        """Soft-delete auto redirects that would hide the page's new URL."""
        if not self._site_finder.is_routable(page):
            return
        for host, path in self.redirect_sources(site, language, new_slug):
            for rule in self._redirects.find_by_source(host, path):
                if rule.id is None or rule.id in protected_ids:
                    continue
                if rule.protected or rule.creation_type != CreationType.AUTO_CREATED:
                    continue
                self._redirects.soft_delete(rule.id)
                result.removed.append(rule.id)
                logger.info("Removed auto redirect %s shadowing %s%s", rule.id, host, path)


# --- Rename ---


class SlugRenameService:
    """
    Rename a page row and keep redirects correct, in one transaction.
    """

    def __init__(
        self,
        uow: UnitOfWorkPort,
        sites: Sequence[Site],
        hooks: PersistHooksPort | None = None,
        time_port: TimePort | None = None,
    ) -> None:
        self._uow = uow
        self._sites = sites
        self._hooks = hooks
        self._time_port = time_port

    def rename(
        self,
        page_id: int,
        new_slug: str,
        correlation_id: str | None = None,
    ) -> tuple[SlugChangeResult | None, list[SlugValidationError]]:
        """
        Change a page slug.

        Returns:
            Tuple of (result, errors). Result is None if validation fails.
        """
        if not new_slug or not new_slug.strip():
            return None, [
                SlugValidationError(
                    code="slug_required",
                    message="Slug is required",
                    field="slug",
                )
            ]
        new_slug = normalize_slug(new_slug)
        correlation_id = correlation_id or str(uuid4())

        with self._uow as uow:
            site_finder = SiteFinder(self._sites, uow.pages, self._time_port)
            change_item = SlugChangeItemFactory(uow.pages, site_finder).create(page_id)
            if change_item is None:
                return None, [
                    SlugValidationError(
                        code="not_found",
                        message=f"Page {page_id} not found in any site",
                        field="page_id",
                    )
                ]
            if change_item.original_slug == new_slug:
                return SlugChangeResult(), []

            change_item = change_item.with_changed({**change_item.original, "slug": new_slug})
            service = SlugService(
                pages=uow.pages,
                redirects=uow.redirects,
                site_finder=site_finder,
                hooks=self._hooks,
                time_port=self._time_port,
            )
            result = service.rebuild_slugs_for_slug_change(page_id, change_item, correlation_id)
            uow.pages.update_slug(page_id, new_slug)
            result.updated_slugs[page_id] = new_slug
            uow.commit()

        return result, []

"""
Redirect targets - parsing and resolution.

A stored target string is parsed once into one of three variants:
- AbsoluteTarget: "https://example.com/path?x=1"
- RelativeTarget: "/path?x=1" (resolved against the request host)
- PageTarget: "page://12?language=1&x=1" (resolved through the site finder)

Key behaviors:
- Malformed or dangerous targets (javascript:, data:, ...) parse to None
- Request query parameters are kept; target parameters win on collision
- $1..$9 in a regex rule's target are replaced with the match groups
- Resolution fails open: anything that cannot be built returns None
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import parse_qsl, unquote_plus, urlencode, urlsplit, urlunsplit

from src.components.sites import SiteFinder

from .models import RedirectRule, RequestContext

logger = logging.getLogger(__name__)

PAGE_SCHEME = "page"
DANGEROUS_SCHEMES = ("javascript:", "data:", "vbscript:", "file:")
_GROUP_REFERENCE = re.compile(r"\$(\d)")

QueryParams = Mapping[str, str] | Sequence[tuple[str, str]]


# --- Target variants ---


@dataclass(frozen=True)
class AbsoluteTarget:
    url: str


@dataclass(frozen=True)
class RelativeTarget:
    path: str


@dataclass(frozen=True)
class PageTarget:
    page_id: int
    language_id: int = 0
    params: tuple[tuple[str, str], ...] = ()


Target = AbsoluteTarget | RelativeTarget | PageTarget


def is_absolute_url(url: str) -> bool:
    """Check if URL is absolute (has scheme and host)."""
    try:
        parsed = urlsplit(url)
    except ValueError:
        return False
    return bool(parsed.scheme and parsed.netloc)


def is_internal_path(path: str) -> bool:
    """Check if a target is a path on the current host."""
    if not path:
        return False
    if "://" in path or path.startswith("//"):
        return False
    lower_path = path.lower()
    return not any(lower_path.startswith(proto) for proto in DANGEROUS_SCHEMES)


def parse_target(target: str) -> Target | None:
    """Parse a stored target string; None if it is malformed."""
    target = (target or "").strip()
    if not target:
        return None

    if target.lower().startswith(PAGE_SCHEME + "://"):
        return _parse_page_target(target)

    if is_absolute_url(target):
        scheme = urlsplit(target).scheme.lower()
        if scheme not in ("http", "https"):
            return None
        return AbsoluteTarget(url=target)

    if not is_internal_path(target):
        return None
    if not target.startswith("/"):
        target = "/" + target
    return RelativeTarget(path=target)


def _parse_page_target(target: str) -> PageTarget | None:
    try:
        parts = urlsplit(target)
        page_id = int(parts.netloc)
    except ValueError:
        return None
    if page_id <= 0:
        return None

    language_id = 0
    params: list[tuple[str, str]] = []
    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        if key == "language":
            try:
                language_id = int(value)
            except ValueError:
                return None
        else:
            params.append((key, value))
    if language_id < 0:
        return None
    return PageTarget(page_id=page_id, language_id=language_id, params=tuple(params))


def format_page_target(
    page_id: int,
    language_id: int = 0,
    params: Mapping[str, str] | None = None,
) -> str:
    """Build the stored form of a page reference."""
    query = [("language", str(language_id))]
    if params:
        query.extend((k, v) for k, v in params.items() if k != "language")
    return f"{PAGE_SCHEME}://{page_id}?{urlencode(query)}"


# --- Source patterns ---


@lru_cache(maxsize=256)
def compile_source_pattern(source_path: str, ignore_case: bool = False) -> re.Pattern[str]:
    """Compile a regex source path; raises re.error when it is invalid."""
    return re.compile(source_path, re.IGNORECASE if ignore_case else 0)


def match_subject(rule: RedirectRule, path: str, query: str) -> str:
    """The string a rule's source_path is compared against."""
    if rule.respect_query_parameters and query:
        return f"{path}?{query}"
    return path


def substitute_groups(target: str, match: re.Match[str]) -> str:
    """Replace $1..$9 with regex groups (missing groups become empty)."""

    def _group(ref: re.Match[str]) -> str:
        index = int(ref.group(1))
        if index > (match.re.groups or 0):
            return ""
        return match.group(index) or ""

    return _GROUP_REFERENCE.sub(_group, target)


# --- Resolver ---


def _query_key(segment: str) -> str:
    return unquote_plus(segment.partition("=")[0])


def _request_query(params: QueryParams | None, context: RequestContext) -> str:
    if params is None:
        return context.query
    pairs = params.items() if isinstance(params, Mapping) else params
    return urlencode(list(pairs))


def _merge_query(url: str, request_query: str, extra: Sequence[tuple[str, str]] = ()) -> str:
    """
    Append the request query to url.

    Request segments are copied verbatim (repeated keys and encoding intact).
    A key set by the target replaces every request segment with that key, at
    the position of its first occurrence.
    """
    parts = urlsplit(url)
    target_segments = [s for s in parts.query.split("&") if s]
    target_segments.extend(urlencode([pair]) for pair in extra)

    overrides: dict[str, list[str]] = {}
    for segment in target_segments:
        overrides.setdefault(_query_key(segment), []).append(segment)

    merged: list[str] = []
    emitted: set[str] = set()
    for segment in request_query.split("&"):
        if not segment:
            continue
        key = _query_key(segment)
        if key not in overrides:
            merged.append(segment)
        elif key not in emitted:
            merged.extend(overrides[key])
            emitted.add(key)
    for key, segments in overrides.items():
        if key not in emitted:
            merged.extend(segments)

    return urlunsplit((parts.scheme, parts.netloc, parts.path, "&".join(merged), parts.fragment))


class TargetResolver:
    """
    Expand a matched rule's target into a concrete URL.

    The request is passed in explicitly as a RequestContext.
    """

    def __init__(self, site_finder: SiteFinder | None = None, ignore_case: bool = False) -> None:
        self._site_finder = site_finder
        self._ignore_case = ignore_case

    def resolve(
        self,
        rule: RedirectRule,
        request_query_params: QueryParams | None,
        context: RequestContext,
    ) -> str | None:
        """
        Resolve a rule's target; None when it does not resolve.

        request_query_params defaults to the raw query of the context.
        """
        request_query = _request_query(request_query_params, context)

        raw_target = rule.target
        if rule.is_regexp:
            raw_target = self._expand_groups(rule, context)
            if raw_target is None:
                return None

        target = parse_target(raw_target)
        if target is None:
            logger.warning("Redirect %s has a malformed target %r", rule.id, rule.target)
            return None

        try:
            if isinstance(target, AbsoluteTarget):
                if not request_query:
                    return target.url
                return _merge_query(target.url, request_query)
            if isinstance(target, RelativeTarget):
                return self._resolve_relative(rule, target, request_query, context)
            return self._resolve_page(rule, target, request_query, context)
        except ValueError:
            logger.warning("Could not build target URL for redirect %s", rule.id, exc_info=True)
            return None

    def _expand_groups(self, rule: RedirectRule, context: RequestContext) -> str | None:
        try:
            pattern = compile_source_pattern(rule.source_path, self._ignore_case)
        except re.error:
            logger.warning("Redirect %s has an invalid regex %r", rule.id, rule.source_path)
            return None
        match = pattern.search(match_subject(rule, context.path, context.query))
        if match is None:
            return rule.target
        return substitute_groups(rule.target, match)

    def _resolve_relative(
        self,
        rule: RedirectRule,
        target: RelativeTarget,
        request_query: str,
        context: RequestContext,
    ) -> str | None:
        if not context.host:
            return None
        scheme = "https" if rule.force_https else context.scheme
        url = f"{scheme}://{context.host_with_port}{target.path}"
        if not request_query:
            return url
        return _merge_query(url, request_query)

    def _resolve_page(
        self,
        rule: RedirectRule,
        target: PageTarget,
        request_query: str,
        context: RequestContext,
    ) -> str | None:
        if self._site_finder is None:
            return None
        url = self._site_finder.build_page_url(
            target.page_id,
            target.language_id,
            request_scheme=context.scheme,
            request_host=context.host_with_port,
            user=context.user,
        )
        if url is None:
            logger.debug(
                "Page %s (language %s) of redirect %s does not resolve",
                target.page_id,
                target.language_id,
                rule.id,
            )
            return None
        if rule.force_https and url.startswith("http://"):
            url = "https://" + url[len("http://") :]
        if not request_query and not target.params:
            return url
        return _merge_query(url, request_query, target.params)

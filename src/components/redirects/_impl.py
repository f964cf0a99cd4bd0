"""
Redirect engine - matching, hit tracking and admin management.

Key behaviors:
- Candidates come from the store; the matcher makes the final decision
- Precedence: exact host over "*", exact path over case-insensitive
  path over regex, lowest id on ties
- Invalid stored regexes are logged and skipped
- A matched rule whose target does not resolve falls through (no redirect)
- Hit tracking is best effort: failures are logged, never raised
- Admin deletes are soft; protected rules survive bulk cleanup
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any

from src.components.sites import SiteFinder
from src.rules.models import RedirectRules

from ._demand import RedirectDemand
from ._targets import (
    AbsoluteTarget,
    PageTarget,
    RelativeTarget,
    TargetResolver,
    compile_source_pattern,
    is_absolute_url,
    match_subject,
    parse_target,
)
from .models import (
    WILDCARD_HOST,
    CreateRedirectInput,
    CreationType,
    IntegrityStatus,
    MatchOutput,
    RedirectRule,
    RedirectValidationError,
    RequestContext,
)
from .ports import RedirectRepoPort, TimePort

logger = logging.getLogger(__name__)

REDIRECT_BY_HEADER = "X-Redirect-By"

# Columns an admin may change through update()
UPDATABLE_FIELDS = frozenset(
    {
        "source_host",
        "source_path",
        "target",
        "target_status_code",
        "is_regexp",
        "respect_query_parameters",
        "force_https",
        "disabled",
        "protected",
        "disable_hitcount",
        "start_time",
        "end_time",
    }
)

# --- Configuration ---


@dataclass(frozen=True)
class RedirectConfig:
    """Redirect configuration from rules."""

    hit_count_enabled: bool = True
    match_case_insensitive: bool = False
    redirect_by_header: str = "Slug Redirects"
    default_status_code: int = 307
    allowed_status_codes: tuple[int, ...] = (301, 302, 303, 307, 308)

    @classmethod
    def from_rules(cls, rules: RedirectRules) -> RedirectConfig:
        return cls(
            hit_count_enabled=rules.hit_count_enabled,
            match_case_insensitive=rules.match_case_insensitive,
            redirect_by_header=rules.redirect_by_header,
            default_status_code=rules.default_status_code,
            allowed_status_codes=tuple(rules.allowed_status_codes),
        )


DEFAULT_CONFIG = RedirectConfig()


def _utc_now(time_port: TimePort | None) -> datetime:
    if time_port:
        return time_port.now_utc()
    return datetime.now(UTC)


# --- Matcher ---


class RedirectMatcher:
    """Pick the one rule that applies to a request, or None."""

    def __init__(
        self,
        repo: RedirectRepoPort,
        config: RedirectConfig | None = None,
        time_port: TimePort | None = None,
    ) -> None:
        self._repo = repo
        self._config = config or DEFAULT_CONFIG
        self._time_port = time_port

    def match(self, host: str, path: str, query: str = "") -> RedirectRule | None:
        now = _utc_now(self._time_port)
        host = host.lower()
        best: RedirectRule | None = None
        best_key: tuple[int, int, int] | None = None

        for rule in self._repo.find_matching_rules(host, path, query):
            if not rule.is_active(now):
                continue
            host_rank = self._host_rank(rule, host)
            if host_rank is None:
                continue
            path_rank = self._path_rank(rule, path, query)
            if path_rank is None:
                continue
            key = (host_rank, path_rank, rule.id or 0)
            if best_key is None or key < best_key:
                best, best_key = rule, key

        return best

    def _host_rank(self, rule: RedirectRule, host: str) -> int | None:
        if rule.source_host.lower() == host:
            return 0
        if rule.source_host == WILDCARD_HOST:
            return 1
        return None

    def _path_rank(self, rule: RedirectRule, path: str, query: str) -> int | None:
        subject = match_subject(rule, path, query)
        if not rule.is_regexp:
            if rule.source_path == subject:
                return 0
            if self._config.match_case_insensitive and rule.source_path.lower() == subject.lower():
                return 1
            return None

        try:
            pattern = compile_source_pattern(rule.source_path, self._config.match_case_insensitive)
        except re.error:
            logger.warning("Skipping redirect %s: invalid regex %r", rule.id, rule.source_path)
            return None
        if pattern.search(subject) is None:
            return None
        return 2


# --- Hit Tracker ---


class HitTracker:
    """Count redirect hits; never fails the redirect itself."""

    def __init__(
        self,
        repo: RedirectRepoPort,
        config: RedirectConfig | None = None,
        time_port: TimePort | None = None,
    ) -> None:
        self._repo = repo
        self._config = config or DEFAULT_CONFIG
        self._time_port = time_port

    def record_hit(self, rule: RedirectRule) -> None:
        if not self._config.hit_count_enabled or rule.disable_hitcount or rule.id is None:
            return
        try:
            self._repo.increment_hit(rule.id, _utc_now(self._time_port))
        except Exception:
            logger.exception("Could not record hit for redirect %s", rule.id)


# --- Request handling ---


class RedirectHandler:
    """
    Request-level redirect decision.

    Combines matcher and resolver into a MatchOutput with the status code
    and headers of the response to send. Hit tracking is left to the
    caller, after the response exists.
    """

    def __init__(
        self,
        matcher: RedirectMatcher,
        resolver: TargetResolver,
        tracker: HitTracker,
        config: RedirectConfig | None = None,
    ) -> None:
        self._matcher = matcher
        self._resolver = resolver
        self._tracker = tracker
        self._config = config or DEFAULT_CONFIG

    def handle(self, context: RequestContext) -> MatchOutput:
        rule = self._matcher.match(context.host_with_port, context.path, context.query)
        if rule is None:
            return MatchOutput(rule=None, target_url=None)

        target_url = self._resolver.resolve(rule, None, context)
        if target_url is None:
            logger.debug("Redirect %s matched %s but its target does not resolve", rule.id, context.path)
            return MatchOutput(rule=None, target_url=None)

        logger.debug("Redirecting %s to %s (rule %s)", context.path, target_url, rule.id)
        return MatchOutput(
            rule=rule,
            target_url=target_url,
            status_code=rule.target_status_code,
            headers={REDIRECT_BY_HEADER: f"{self._config.redirect_by_header} {rule.id}"},
        )

    def record_hit(self, rule: RedirectRule) -> None:
        self._tracker.record_hit(rule)


# --- Validation Functions ---


def validate_source_host(host: str) -> list[RedirectValidationError]:
    if not host:
        return [
            RedirectValidationError(
                code="source_host_required",
                message="Source host is required (use * for any host)",
                field="source_host",
            )
        ]
    if host != WILDCARD_HOST and ("/" in host or " " in host):
        return [
            RedirectValidationError(
                code="invalid_source_host",
                message="Source host must be a host name, optionally with port",
                field="source_host",
            )
        ]
    return []


def validate_source_path(source: str, is_regexp: bool = False) -> list[RedirectValidationError]:
    """Validate source path (or pattern)."""
    errors: list[RedirectValidationError] = []

    if not source:
        errors.append(
            RedirectValidationError(
                code="source_required",
                message="Source path is required",
                field="source_path",
            )
        )
        return errors

    if is_regexp:
        try:
            compile_source_pattern(source)
        except re.error as exc:
            errors.append(
                RedirectValidationError(
                    code="invalid_regex",
                    message=f"Source pattern is not a valid regular expression: {exc}",
                    field="source_path",
                )
            )
        return errors

    if is_absolute_url(source):
        errors.append(
            RedirectValidationError(
                code="source_cannot_be_url",
                message="Source must be a path, not a full URL",
                field="source_path",
            )
        )
    elif not source.startswith("/"):
        errors.append(
            RedirectValidationError(
                code="source_must_start_with_slash",
                message="Source path must start with /",
                field="source_path",
            )
        )

    return errors


def validate_target(target: str) -> list[RedirectValidationError]:
    if not target:
        return [
            RedirectValidationError(
                code="target_required",
                message="Target is required",
                field="target",
            )
        ]
    if parse_target(target) is None:
        return [
            RedirectValidationError(
                code="invalid_target",
                message="Target must be an http(s) URL, a path or a page reference",
                field="target",
            )
        ]
    return []


def validate_status_code(
    status_code: int,
    config: RedirectConfig = DEFAULT_CONFIG,
) -> list[RedirectValidationError]:
    if status_code not in config.allowed_status_codes:
        allowed = ", ".join(str(code) for code in config.allowed_status_codes)
        return [
            RedirectValidationError(
                code="invalid_status_code",
                message=f"Status code must be one of {allowed}",
                field="target_status_code",
            )
        ]
    return []


def is_self_reference(rule: RedirectRule) -> bool:
    """Relative target pointing back at the rule's own source."""
    if rule.is_regexp:
        return False
    target = parse_target(rule.target)
    if not isinstance(target, RelativeTarget):
        return False
    return target.path.split("?", 1)[0] == rule.source_path.split("?", 1)[0]


def detect_loop(rule: RedirectRule) -> list[RedirectValidationError]:
    if is_self_reference(rule):
        return [
            RedirectValidationError(
                code="redirect_loop",
                message="Redirect cannot point to itself",
                field="target",
            )
        ]
    return []


def validate_rule(
    rule: RedirectRule,
    config: RedirectConfig = DEFAULT_CONFIG,
) -> list[RedirectValidationError]:
    errors: list[RedirectValidationError] = []
    errors.extend(validate_source_host(rule.source_host))
    errors.extend(validate_source_path(rule.source_path, rule.is_regexp))
    errors.extend(validate_target(rule.target))
    errors.extend(validate_status_code(rule.target_status_code, config))
    if rule.start_time and rule.end_time and rule.end_time <= rule.start_time:
        errors.append(
            RedirectValidationError(
                code="invalid_time_window",
                message="End time must be after start time",
                field="end_time",
            )
        )
    if not errors:
        errors.extend(detect_loop(rule))
    return errors


# --- Redirect Service ---


class RedirectService:
    """
    Redirect administration.

    Create, edit, soft-delete, list, bulk cleanup and integrity checks
    over the redirect store.
    """

    def __init__(
        self,
        repo: RedirectRepoPort,
        site_finder: SiteFinder | None = None,
        time_port: TimePort | None = None,
        config: RedirectConfig | None = None,
    ) -> None:
        """Initialize service."""
        self._repo = repo
        self._site_finder = site_finder
        self._time_port = time_port
        self._config = config or DEFAULT_CONFIG

    def _now(self) -> datetime:
        return _utc_now(self._time_port)

    def get(self, redirect_id: int) -> RedirectRule | None:
        rule = self._repo.get_by_id(redirect_id)
        if rule is None or rule.deleted:
            return None
        return rule

    def create(
        self, inp: CreateRedirectInput
    ) -> tuple[RedirectRule | None, list[RedirectValidationError]]:
        """
        Create a manual redirect.

        Returns:
            Tuple of (redirect, errors). Redirect is None if validation fails.
        """
        now = self._now()
        rule = RedirectRule(
            id=None,
            source_host=(inp.source_host or WILDCARD_HOST).lower(),
            source_path=inp.source_path,
            target=inp.target.strip(),
            target_status_code=inp.status_code or self._config.default_status_code,
            is_regexp=inp.is_regexp,
            respect_query_parameters=inp.respect_query_parameters,
            force_https=inp.force_https,
            protected=inp.protected,
            disable_hitcount=inp.disable_hitcount,
            start_time=inp.start_time,
            end_time=inp.end_time,
            creation_type=CreationType.MANUAL,
            created_at=now,
            updated_at=now,
        )

        errors = validate_rule(rule, self._config)
        if errors:
            return None, errors

        rule = replace(rule, integrity_status=self._integrity_of(rule))
        new_id = self._repo.insert(rule)
        logger.info("Created redirect %s: %s%s -> %s", new_id, rule.source_host, rule.source_path, rule.target)
        return replace(rule, id=new_id), []

    def update(
        self,
        redirect_id: int,
        updates: dict[str, Any],
    ) -> tuple[RedirectRule | None, list[RedirectValidationError]]:
        """
        Update an existing redirect.

        Validates the resulting rule the same way create does.
        """
        rule = self.get(redirect_id)
        if rule is None:
            return None, [
                RedirectValidationError(
                    code="not_found",
                    message=f"Redirect {redirect_id} not found",
                )
            ]

        unknown = sorted(set(updates) - UPDATABLE_FIELDS)
        if unknown:
            return rule, [
                RedirectValidationError(
                    code="unknown_field",
                    message=f"Field cannot be updated: {name}",
                    field=name,
                )
                for name in unknown
            ]

        fields = dict(updates)
        if "source_host" in fields:
            fields["source_host"] = (fields["source_host"] or WILDCARD_HOST).lower()
        updated = replace(rule, **fields)

        errors = validate_rule(updated, self._config)
        if errors:
            return rule, errors

        fields["updated_at"] = self._now()
        if "target" in fields:
            fields["integrity_status"] = self._integrity_of(updated)
        self._repo.update(redirect_id, fields)
        return replace(rule, **fields), []

    def delete(self, redirect_id: int) -> bool:
        """Soft-delete a redirect."""
        if self.get(redirect_id) is None:
            return False
        self._repo.soft_delete(redirect_id)
        logger.info("Deleted redirect %s", redirect_id)
        return True

    def search(self, demand: RedirectDemand | None = None) -> tuple[list[RedirectRule], int]:
        """One page of redirects and the total count."""
        demand = demand or RedirectDemand()
        return self._repo.find_by_demand(demand), self._repo.count_by_demand(demand)

    def list_hosts(self) -> list[str]:
        return self._repo.list_hosts()

    def cleanup(self, demand: RedirectDemand) -> list[int]:
        """Soft-delete every unprotected redirect matching the demand."""
        removed: list[int] = []
        for rule in self._repo.list_all():
            if rule.protected or rule.id is None or not demand.matches(rule):
                continue
            self._repo.soft_delete(rule.id)
            removed.append(rule.id)
        logger.info("Cleanup removed %d redirects", len(removed))
        return removed

    # --- Integrity ---

    def _integrity_of(self, rule: RedirectRule) -> IntegrityStatus:
        target = parse_target(rule.target)
        if target is None:
            return IntegrityStatus.BROKEN
        if isinstance(target, AbsoluteTarget):
            return IntegrityStatus.UNKNOWN
        if isinstance(target, RelativeTarget):
            if rule.source_host == WILDCARD_HOST and is_self_reference(rule):
                return IntegrityStatus.BROKEN
            return IntegrityStatus.UNKNOWN
        return self._page_integrity(target)

    def _page_integrity(self, target: PageTarget) -> IntegrityStatus:
        if self._site_finder is None:
            return IntegrityStatus.UNKNOWN
        url = self._site_finder.build_page_url(
            target.page_id,
            target.language_id,
            request_scheme="https",
            request_host="localhost",
        )
        if url is None:
            return IntegrityStatus.BROKEN
        return IntegrityStatus.OK

    def check_integrity(self) -> dict[int, IntegrityStatus]:
        """Recompute integrity status for all redirects; store changes."""
        statuses: dict[int, IntegrityStatus] = {}
        for rule in self._repo.list_all():
            if rule.id is None:
                continue
            status = self._integrity_of(rule)
            statuses[rule.id] = status
            if status != rule.integrity_status:
                self._repo.update(rule.id, {"integrity_status": status})
        broken = sum(1 for s in statuses.values() if s == IntegrityStatus.BROKEN)
        logger.info("Integrity check: %d redirects, %d broken", len(statuses), broken)
        return statuses


# --- Factories ---


def create_redirect_service(
    repo: RedirectRepoPort,
    site_finder: SiteFinder | None = None,
    config: RedirectConfig | None = None,
    time_port: TimePort | None = None,
) -> RedirectService:
    """Create a RedirectService."""
    return RedirectService(
        repo=repo,
        site_finder=site_finder,
        time_port=time_port,
        config=config,
    )


def create_redirect_handler(
    repo: RedirectRepoPort,
    site_finder: SiteFinder | None = None,
    config: RedirectConfig | None = None,
    time_port: TimePort | None = None,
) -> RedirectHandler:
    """Wire matcher, resolver and hit tracker over one store."""
    config = config or DEFAULT_CONFIG
    return RedirectHandler(
        matcher=RedirectMatcher(repo, config, time_port),
        resolver=TargetResolver(site_finder, ignore_case=config.match_case_insensitive),
        tracker=HitTracker(repo, config, time_port),
        config=config,
    )

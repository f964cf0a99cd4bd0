"""
Tests for redirect matching, request handling and hit tracking.

Precedence: exact host over "*", exact path over case-insensitive path
over regex, lowest id on ties.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from src.components.redirects import (
    HitTracker,
    RedirectConfig,
    RedirectMatcher,
    RequestContext,
    create_redirect_handler,
)
from tests.support import FROZEN_NOW, InMemoryRedirectRepo, make_rule


@pytest.fixture
def matcher(redirects: InMemoryRedirectRepo, clock) -> RedirectMatcher:
    return RedirectMatcher(redirects, time_port=clock)


@pytest.fixture
def ci_matcher(redirects: InMemoryRedirectRepo, clock) -> RedirectMatcher:
    return RedirectMatcher(redirects, RedirectConfig(match_case_insensitive=True), clock)


class TestPrecedence:
    def test_no_rules_no_match(self, matcher) -> None:
        assert matcher.match("example.com", "/a") is None

    def test_exact_host_beats_wildcard(self, matcher, redirects) -> None:
        redirects.add(make_rule(source_host="*", source_path="/a"))
        specific = redirects.add(make_rule(source_host="example.com", source_path="/a"))

        assert matcher.match("example.com", "/a") == specific

    def test_host_is_compared_case_insensitively(self, matcher, redirects) -> None:
        rule = redirects.add(make_rule(source_host="example.com", source_path="/a"))
        assert matcher.match("EXAMPLE.com", "/a") == rule

    def test_other_host_does_not_match(self, matcher, redirects) -> None:
        redirects.add(make_rule(source_host="example.com", source_path="/a"))
        assert matcher.match("other.org", "/a") is None

    def test_exact_path_beats_regex(self, matcher, redirects) -> None:
        redirects.add(make_rule(source_path="^/a", is_regexp=True))
        exact = redirects.add(make_rule(source_path="/a"))

        assert matcher.match("example.com", "/a") == exact

    def test_host_rank_beats_path_rank(self, matcher, redirects) -> None:
        redirects.add(make_rule(source_host="*", source_path="/a"))
        regex_on_host = redirects.add(
            make_rule(source_host="example.com", source_path="^/a", is_regexp=True)
        )

        assert matcher.match("example.com", "/a") == regex_on_host

    def test_lowest_id_wins_ties(self, matcher, redirects) -> None:
        first = redirects.add(make_rule(source_path="^/a", is_regexp=True))
        redirects.add(make_rule(source_path="^/a/?", is_regexp=True))

        assert matcher.match("example.com", "/a") == first

    def test_case_insensitive_exact_beats_regex(self, ci_matcher, redirects) -> None:
        redirects.add(make_rule(source_path="^/A", is_regexp=True))
        folded = redirects.add(make_rule(source_path="/A"))

        assert ci_matcher.match("example.com", "/a") == folded

    def test_exact_beats_case_insensitive(self, ci_matcher, redirects) -> None:
        redirects.add(make_rule(source_path="/A"))
        exact = redirects.add(make_rule(source_path="/a"))

        assert ci_matcher.match("example.com", "/a") == exact

    def test_case_sensitive_by_default(self, matcher, redirects) -> None:
        redirects.add(make_rule(source_path="/A"))
        assert matcher.match("example.com", "/a") is None

    def test_trailing_slash_is_significant(self, matcher, redirects) -> None:
        redirects.add(make_rule(source_path="/a/"))
        assert matcher.match("example.com", "/a") is None


class TestMatchFilters:
    def test_disabled_rule_is_skipped(self, matcher, redirects) -> None:
        redirects.add(make_rule(source_path="/a", disabled=True))
        assert matcher.match("example.com", "/a") is None

    def test_deleted_rule_is_skipped(self, matcher, redirects) -> None:
        redirects.add(make_rule(source_path="/a", deleted=True))
        assert matcher.match("example.com", "/a") is None

    def test_rule_before_start_time_is_skipped(self, matcher, redirects) -> None:
        redirects.add(make_rule(source_path="/a", start_time=FROZEN_NOW + timedelta(hours=1)))
        assert matcher.match("example.com", "/a") is None

    def test_rule_after_end_time_is_skipped(self, matcher, redirects) -> None:
        redirects.add(make_rule(source_path="/a", end_time=FROZEN_NOW))
        assert matcher.match("example.com", "/a") is None

    def test_rule_inside_window_matches(self, matcher, redirects) -> None:
        rule = redirects.add(
            make_rule(
                source_path="/a",
                start_time=FROZEN_NOW - timedelta(days=1),
                end_time=FROZEN_NOW + timedelta(days=1),
            )
        )
        assert matcher.match("example.com", "/a") == rule

    def test_invalid_regex_is_skipped(self, matcher, redirects) -> None:
        redirects.add(make_rule(source_path="(", is_regexp=True))
        fallback = redirects.add(make_rule(source_path="^/a$", is_regexp=True))

        assert matcher.match("example.com", "/a") == fallback

    def test_query_is_ignored_by_default(self, matcher, redirects) -> None:
        rule = redirects.add(make_rule(source_path="/a"))
        assert matcher.match("example.com", "/a", "x=1") == rule

    def test_respect_query_parameters(self, matcher, redirects) -> None:
        rule = redirects.add(make_rule(source_path="/a?x=1", respect_query_parameters=True))

        assert matcher.match("example.com", "/a", "x=1") == rule
        assert matcher.match("example.com", "/a") is None
        assert matcher.match("example.com", "/a", "x=2") is None

    def test_host_with_port(self, matcher, redirects) -> None:
        rule = redirects.add(make_rule(source_host="example.com:8080", source_path="/a"))

        assert matcher.match("example.com:8080", "/a") == rule
        assert matcher.match("example.com", "/a") is None


class TestRedirectHandler:
    def test_redirect_by_header_names_rule(self, redirects, clock) -> None:
        rule = redirects.add(make_rule(source_path="/a", target="/b", target_status_code=301))
        handler = create_redirect_handler(redirects, time_port=clock)

        decision = handler.handle(RequestContext(scheme="https", host="example.com", path="/a"))

        assert decision.rule == rule
        assert decision.target_url == "https://example.com/b"
        assert decision.status_code == 301
        assert decision.headers == {"X-Redirect-By": f"Slug Redirects {rule.id}"}

    def test_custom_header_value(self, redirects, clock) -> None:
        rule = redirects.add(make_rule(source_path="/a", target="/b"))
        handler = create_redirect_handler(
            redirects, config=RedirectConfig(redirect_by_header="Acme"), time_port=clock
        )

        decision = handler.handle(RequestContext(host="example.com", path="/a"))

        assert decision.headers["X-Redirect-By"] == f"Acme {rule.id}"

    def test_unresolvable_target_falls_through(self, redirects, clock) -> None:
        redirects.add(make_rule(source_path="/a", target="page://999?language=0"))
        handler = create_redirect_handler(redirects, time_port=clock)

        decision = handler.handle(RequestContext(host="example.com", path="/a"))

        assert decision.rule is None
        assert decision.target_url is None

    def test_handle_does_not_count_hits(self, redirects, clock) -> None:
        rule = redirects.add(make_rule(source_path="/a", target="/b"))
        handler = create_redirect_handler(redirects, time_port=clock)

        handler.handle(RequestContext(host="example.com", path="/a"))

        assert redirects.get_by_id(rule.id).hit_count == 0


class TestHitTracker:
    def test_records_hit(self, redirects, clock) -> None:
        rule = redirects.add(make_rule(source_path="/a"))
        HitTracker(redirects, time_port=clock).record_hit(rule)

        stored = redirects.get_by_id(rule.id)
        assert stored.hit_count == 1
        assert stored.last_hit_on == FROZEN_NOW

    def test_disabled_globally(self, redirects, clock) -> None:
        rule = redirects.add(make_rule(source_path="/a"))
        HitTracker(redirects, RedirectConfig(hit_count_enabled=False), clock).record_hit(rule)

        assert redirects.get_by_id(rule.id).hit_count == 0

    def test_disabled_per_rule(self, redirects, clock) -> None:
        rule = redirects.add(make_rule(source_path="/a", disable_hitcount=True))
        HitTracker(redirects, time_port=clock).record_hit(rule)

        assert redirects.get_by_id(rule.id).hit_count == 0

    def test_store_failure_is_swallowed(self, redirects, clock, caplog) -> None:
        rule = redirects.add(make_rule(source_path="/a"))
        redirects.fail_hits = True

        HitTracker(redirects, time_port=clock).record_hit(rule)

        assert "Could not record hit" in caplog.text

"""
Tests for RedirectService (admin management of redirect rules).
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from src.components.redirects import (
    CreateRedirectInput,
    CreationType,
    IntegrityStatus,
    RedirectConfig,
    RedirectDemand,
    RedirectService,
    create_redirect_service,
    detect_loop,
    validate_source_path,
    validate_status_code,
    validate_target,
)
from tests.support import FROZEN_NOW, InMemoryRedirectRepo, make_rule


@pytest.fixture
def service(redirects: InMemoryRedirectRepo, site_finder, clock) -> RedirectService:
    return create_redirect_service(redirects, site_finder=site_finder, time_port=clock)


def _codes(errors) -> list[str]:
    return [e.code for e in errors]


# --- Validation ---


class TestValidateSourcePath:
    def test_valid_path(self) -> None:
        assert validate_source_path("/old") == []

    def test_required(self) -> None:
        assert _codes(validate_source_path("")) == ["source_required"]

    def test_must_start_with_slash(self) -> None:
        assert _codes(validate_source_path("old")) == ["source_must_start_with_slash"]

    def test_cannot_be_url(self) -> None:
        assert _codes(validate_source_path("https://example.com/old")) == ["source_cannot_be_url"]

    def test_regex_is_compiled(self) -> None:
        assert validate_source_path(r"^/old/(\d+)$", is_regexp=True) == []
        assert _codes(validate_source_path("(", is_regexp=True)) == ["invalid_regex"]


class TestValidateTarget:
    def test_accepts_all_variants(self) -> None:
        assert validate_target("/new") == []
        assert validate_target("https://example.com") == []
        assert validate_target("page://2?language=0") == []

    def test_rejects_dangerous(self) -> None:
        assert _codes(validate_target("javascript:alert(1)")) == ["invalid_target"]

    def test_required(self) -> None:
        assert _codes(validate_target("")) == ["target_required"]


class TestValidateStatusCode:
    @pytest.mark.parametrize("code", [301, 302, 303, 307, 308])
    def test_allowed(self, code: int) -> None:
        assert validate_status_code(code) == []

    @pytest.mark.parametrize("code", [200, 304, 404])
    def test_rejected(self, code: int) -> None:
        assert _codes(validate_status_code(code)) == ["invalid_status_code"]

    def test_configured_list(self) -> None:
        config = RedirectConfig(allowed_status_codes=(301,))
        assert _codes(validate_status_code(307, config)) == ["invalid_status_code"]


class TestDetectLoop:
    def test_self_reference(self) -> None:
        assert _codes(detect_loop(make_rule(source_path="/a", target="/a"))) == ["redirect_loop"]

    def test_self_reference_ignoring_query(self) -> None:
        assert _codes(detect_loop(make_rule(source_path="/a", target="/a?x=1"))) == [
            "redirect_loop"
        ]

    def test_other_target(self) -> None:
        assert detect_loop(make_rule(source_path="/a", target="/b")) == []

    def test_regex_rules_are_not_checked(self) -> None:
        assert detect_loop(make_rule(source_path="/a", target="/a", is_regexp=True)) == []


# --- Service ---


class TestCreate:
    def test_creates_manual_redirect(self, service, redirects) -> None:
        rule, errors = service.create(
            CreateRedirectInput(source_host="Example.COM", source_path="/old", target="/new")
        )

        assert errors == []
        assert rule is not None and rule.id is not None
        assert rule.source_host == "example.com"
        assert rule.creation_type == CreationType.MANUAL
        assert rule.target_status_code == 307
        assert rule.created_at == FROZEN_NOW
        assert redirects.get_by_id(rule.id) is not None

    def test_default_status_from_config(self, redirects, clock) -> None:
        service = RedirectService(redirects, time_port=clock, config=RedirectConfig(default_status_code=301))
        rule, _ = service.create(CreateRedirectInput(source_path="/old", target="/new"))
        assert rule.target_status_code == 301

    def test_rejects_invalid_input(self, service, redirects) -> None:
        rule, errors = service.create(
            CreateRedirectInput(source_path="old", target="javascript:x", status_code=200)
        )

        assert rule is None
        assert set(_codes(errors)) == {
            "source_must_start_with_slash",
            "invalid_target",
            "invalid_status_code",
        }
        assert redirects.list_all() == []

    def test_rejects_loop(self, service) -> None:
        rule, errors = service.create(CreateRedirectInput(source_path="/a", target="/a"))
        assert rule is None
        assert _codes(errors) == ["redirect_loop"]

    def test_rejects_inverted_time_window(self, service) -> None:
        rule, errors = service.create(
            CreateRedirectInput(
                source_path="/a",
                target="/b",
                start_time=FROZEN_NOW,
                end_time=FROZEN_NOW - timedelta(days=1),
            )
        )
        assert rule is None
        assert _codes(errors) == ["invalid_time_window"]

    def test_page_target_integrity(self, service) -> None:
        ok, _ = service.create(CreateRedirectInput(source_path="/a", target="page://2?language=0"))
        broken, _ = service.create(
            CreateRedirectInput(source_path="/b", target="page://999?language=0")
        )

        assert ok.integrity_status == IntegrityStatus.OK
        assert broken.integrity_status == IntegrityStatus.BROKEN


class TestUpdate:
    def test_updates_fields(self, service, redirects, clock) -> None:
        rule, _ = service.create(CreateRedirectInput(source_path="/old", target="/new"))
        clock.advance(hours=1)

        updated, errors = service.update(rule.id, {"target": "/newer", "disabled": True})

        assert errors == []
        assert updated.target == "/newer"
        assert updated.disabled is True
        assert updated.updated_at == FROZEN_NOW + timedelta(hours=1)
        assert redirects.get_by_id(rule.id).target == "/newer"

    def test_not_found(self, service) -> None:
        rule, errors = service.update(999, {"target": "/x"})
        assert rule is None
        assert _codes(errors) == ["not_found"]

    def test_unknown_field(self, service) -> None:
        rule, _ = service.create(CreateRedirectInput(source_path="/old", target="/new"))
        _, errors = service.update(rule.id, {"hit_count": 100})
        assert _codes(errors) == ["unknown_field"]

    def test_validates_result(self, service, redirects) -> None:
        rule, _ = service.create(CreateRedirectInput(source_path="/old", target="/new"))
        _, errors = service.update(rule.id, {"target": "/old"})

        assert _codes(errors) == ["redirect_loop"]
        assert redirects.get_by_id(rule.id).target == "/new"


class TestDelete:
    def test_soft_delete(self, service, redirects) -> None:
        rule, _ = service.create(CreateRedirectInput(source_path="/old", target="/new"))

        assert service.delete(rule.id) is True
        assert service.get(rule.id) is None
        assert redirects.get_by_id(rule.id).deleted is True

    def test_delete_missing(self, service) -> None:
        assert service.delete(999) is False


class TestSearch:
    def test_search_and_hosts(self, service) -> None:
        service.create(CreateRedirectInput(source_host="b.example.com", source_path="/1", target="/x"))
        service.create(CreateRedirectInput(source_host="a.example.com", source_path="/2", target="/x"))

        page, total = service.search(RedirectDemand())

        assert total == 2
        assert [r.source_host for r in page] == ["a.example.com", "b.example.com"]
        assert service.list_hosts() == ["a.example.com", "b.example.com"]


class TestCleanup:
    def test_removes_matching_unprotected(self, service, redirects) -> None:
        keep = redirects.add(make_rule(source_path="/a", hit_count=0, protected=True))
        drop = redirects.add(make_rule(source_path="/b", hit_count=0))
        used = redirects.add(make_rule(source_path="/c", hit_count=10))

        removed = service.cleanup(RedirectDemand(max_hits=1))

        assert removed == [drop.id]
        assert redirects.get_by_id(keep.id).deleted is False
        assert redirects.get_by_id(used.id).deleted is False


class TestCheckIntegrity:
    def test_statuses(self, service, redirects, pages) -> None:
        page_ok = redirects.add(make_rule(source_path="/a", target="page://2?language=0"))
        page_gone = redirects.add(make_rule(source_path="/b", target="page://3?language=0"))
        external = redirects.add(make_rule(source_path="/c", target="https://example.org"))
        relative = redirects.add(make_rule(source_path="/d", target="/e"))
        self_ref = redirects.add(make_rule(source_path="/f", target="/f"))
        malformed = redirects.add(make_rule(source_path="/g", target="javascript:x"))
        pages.set(3, deleted=True)

        statuses = service.check_integrity()

        assert statuses == {
            page_ok.id: IntegrityStatus.OK,
            page_gone.id: IntegrityStatus.BROKEN,
            external.id: IntegrityStatus.UNKNOWN,
            relative.id: IntegrityStatus.UNKNOWN,
            self_ref.id: IntegrityStatus.BROKEN,
            malformed.id: IntegrityStatus.BROKEN,
        }
        assert redirects.get_by_id(page_gone.id).integrity_status == IntegrityStatus.BROKEN

from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import timedelta

import pytest

from src.adapters.sqlite_db import SQLiteUnitOfWork
from src.components.redirects import CreationType, HitTracker, IntegrityStatus, RedirectDemand
from src.components.sites import PageRecord, PageType
from tests.support import FROZEN_NOW, make_rule

# --- Pages ---


def test_page_round_trip(sqlite_pages):
    page = PageRecord(
        id=100,
        slug="/x",
        parent_id=1,
        page_type=PageType.FOLDER,
        hidden=True,
        start_time=FROZEN_NOW,
        required_groups=frozenset({1, 2}),
    )
    sqlite_pages.save(page)

    assert sqlite_pages.get_by_id(100) == page


def test_get_in_language(sqlite_pages):
    assert sqlite_pages.get_in_language(2, 0).id == 2
    assert sqlite_pages.get_in_language(2, 1).id == 21
    assert sqlite_pages.get_in_language(2, 5) is None
    # Translation ids are not default ids
    assert sqlite_pages.get_in_language(21, 0) is None


def test_list_children_in_sorting_order(sqlite_pages):
    assert [p.id for p in sqlite_pages.list_children(1)] == [2, 3]
    assert [p.id for p in sqlite_pages.list_children(2)] == [4]


def test_list_children_skips_deleted(sqlite_pages):
    page = sqlite_pages.get_by_id(3)
    sqlite_pages.save(replace(page, deleted=True))

    assert [p.id for p in sqlite_pages.list_children(1)] == [2]


def test_update_slug(sqlite_pages):
    sqlite_pages.update_slug(4, "/new")
    assert sqlite_pages.get_by_id(4).slug == "/new"


# --- Redirects ---


def test_redirect_round_trip(sqlite_redirects):
    rule = make_rule(
        source_host="example.com",
        source_path="/a",
        target="page://2?language=0",
        target_status_code=301,
        force_https=True,
        end_time=FROZEN_NOW + timedelta(days=1),
        creation_type=CreationType.AUTO_CREATED,
        integrity_status=IntegrityStatus.OK,
        correlation_id="c-1",
    )
    new_id = sqlite_redirects.insert(rule)

    stored = sqlite_redirects.get_by_id(new_id)
    assert stored.id == new_id
    assert stored.source_host == "example.com"
    assert stored.target_status_code == 301
    assert stored.force_https is True
    assert stored.end_time == FROZEN_NOW + timedelta(days=1)
    assert stored.creation_type == CreationType.AUTO_CREATED
    assert stored.integrity_status == IntegrityStatus.OK
    assert stored.correlation_id == "c-1"


def test_find_matching_rules_is_coarse(sqlite_redirects):
    exact = sqlite_redirects.insert(make_rule(source_path="/a"))
    regex = sqlite_redirects.insert(make_rule(source_path="^/b", is_regexp=True))
    sqlite_redirects.insert(make_rule(source_path="/other"))
    sqlite_redirects.insert(make_rule(source_host="other.org", source_path="/a"))
    sqlite_redirects.insert(make_rule(source_path="/a", disabled=True))
    with_query = sqlite_redirects.insert(make_rule(source_path="/a?x=1", respect_query_parameters=True))
    folded = sqlite_redirects.insert(make_rule(source_host="Example.com", source_path="/A"))

    ids = [r.id for r in sqlite_redirects.find_matching_rules("example.com", "/a", "x=1")]

    assert ids == [exact, regex, with_query, folded]


def test_find_by_source(sqlite_redirects):
    first = sqlite_redirects.insert(make_rule(source_path="/a"))
    sqlite_redirects.insert(make_rule(source_path="/a", is_regexp=True))
    deleted = sqlite_redirects.insert(make_rule(source_path="/a"))
    sqlite_redirects.soft_delete(deleted)

    assert [r.id for r in sqlite_redirects.find_by_source("*", "/a")] == [first]


def test_update_and_increment_hit(sqlite_redirects):
    new_id = sqlite_redirects.insert(make_rule(source_path="/a"))

    sqlite_redirects.update(new_id, {"target": "/b", "disabled": True})
    sqlite_redirects.increment_hit(new_id, FROZEN_NOW)
    sqlite_redirects.increment_hit(new_id, FROZEN_NOW + timedelta(minutes=1))

    stored = sqlite_redirects.get_by_id(new_id)
    assert stored.target == "/b"
    assert stored.disabled is True
    assert stored.hit_count == 2
    assert stored.last_hit_on == FROZEN_NOW + timedelta(minutes=1)


def test_concurrent_hits_are_all_counted(sqlite_redirects, clock):
    new_id = sqlite_redirects.insert(make_rule(source_path="/a"))
    rule = sqlite_redirects.get_by_id(new_id)
    tracker = HitTracker(sqlite_redirects, time_port=clock)

    with ThreadPoolExecutor(max_workers=32) as pool:
        list(pool.map(lambda _: tracker.record_hit(rule), range(32)))

    assert sqlite_redirects.get_by_id(new_id).hit_count == 32


def test_update_rejects_unknown_column(sqlite_redirects):
    new_id = sqlite_redirects.insert(make_rule(source_path="/a"))
    with pytest.raises(ValueError, match="Unknown redirect columns"):
        sqlite_redirects.update(new_id, {"id; DROP TABLE redirects": 1})


def test_demand_filter_sort_and_page(sqlite_redirects):
    sqlite_redirects.insert(make_rule(source_host="b.example.com", source_path="/z", hit_count=5))
    second = sqlite_redirects.insert(make_rule(source_host="a.example.com", source_path="/y"))
    third = sqlite_redirects.insert(make_rule(source_host="a.example.com", source_path="/x"))
    gone = sqlite_redirects.insert(make_rule(source_host="c.example.com", source_path="/w"))
    sqlite_redirects.soft_delete(gone)

    demand = RedirectDemand(limit=2)
    assert [r.id for r in sqlite_redirects.find_by_demand(demand)] == [third, second]
    assert sqlite_redirects.count_by_demand(demand) == 3

    filtered = RedirectDemand(source_hosts=("a.example.com",), source_path="y")
    assert [r.id for r in sqlite_redirects.find_by_demand(filtered)] == [second]
    assert sqlite_redirects.count_by_demand(RedirectDemand(max_hits=1)) == 2

    assert sqlite_redirects.list_hosts() == ["a.example.com", "b.example.com"]
    assert len(sqlite_redirects.list_all()) == 3


def test_demand_matches_in_memory_evaluation(sqlite_redirects):
    sqlite_redirects.insert(make_rule(source_path="/a", hit_count=3, protected=True))
    sqlite_redirects.insert(make_rule(source_path="/b", creation_type=CreationType.AUTO_CREATED))
    sqlite_redirects.insert(
        make_rule(source_path="/c", created_at=FROZEN_NOW - timedelta(days=100))
    )

    demands = [
        RedirectDemand(protected=True),
        RedirectDemand(creation_type="auto_created"),
        RedirectDemand(older_than=FROZEN_NOW - timedelta(days=30)),
        RedirectDemand(order_field="hit_count", order_direction="desc"),
    ]
    rules = sqlite_redirects.list_all()
    for demand in demands:
        expected = [r.id for r in demand.apply(rules)[0]]
        assert [r.id for r in sqlite_redirects.find_by_demand(demand)] == expected


# --- Unit of work ---


def test_unit_of_work_commit(db_path, sqlite_pages):
    with SQLiteUnitOfWork(db_path) as uow:
        uow.pages.update_slug(2, "/committed")
        uow.redirects.insert(make_rule(source_path="/a"))
        uow.commit()

    assert sqlite_pages.get_by_id(2).slug == "/committed"
    assert len(SQLiteUnitOfWork(db_path).redirects.list_all()) == 1


def test_unit_of_work_rolls_back_on_error(db_path, sqlite_pages, sqlite_redirects):
    with pytest.raises(RuntimeError), SQLiteUnitOfWork(db_path) as uow:
        uow.pages.update_slug(2, "/lost")
        uow.redirects.insert(make_rule(source_path="/a"))
        raise RuntimeError("boom")

    assert sqlite_pages.get_by_id(2).slug == "/dummy-1-2"
    assert sqlite_redirects.list_all() == []


def test_unit_of_work_without_commit_discards(db_path, sqlite_pages):
    with SQLiteUnitOfWork(db_path) as uow:
        uow.pages.update_slug(2, "/discarded")

    assert sqlite_pages.get_by_id(2).slug == "/dummy-1-2"

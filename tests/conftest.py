import os
from pathlib import Path

import pytest

from src.adapters.clock import FrozenClock
from src.adapters.sqlite.migrator import SQLiteMigrator
from src.adapters.sqlite_db import SQLitePageRepo, SQLiteRedirectRepo
from src.components.sites import Site, SiteFinder
from src.rules.loader import load_rules
from src.rules.models import Rules
from tests.support import (
    FROZEN_NOW,
    InMemoryPageRepo,
    InMemoryRedirectRepo,
    build_site,
    tree_pages,
)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(FROZEN_NOW)


@pytest.fixture
def site() -> Site:
    return build_site()


@pytest.fixture
def pages() -> InMemoryPageRepo:
    """In-memory page tree, see tests/support.py."""
    return InMemoryPageRepo(tree_pages())


@pytest.fixture
def redirects() -> InMemoryRedirectRepo:
    return InMemoryRedirectRepo()


@pytest.fixture
def site_finder(site, pages, clock) -> SiteFinder:
    return SiteFinder([site], pages, clock)


@pytest.fixture
def rules() -> Rules:
    # Real rules from project root; tests run from there
    rules_path = Path("rules.yaml").resolve()
    if not rules_path.exists():
        raise FileNotFoundError(f"Rules not found at {rules_path}")
    return load_rules(rules_path)


@pytest.fixture
def db_path(tmp_path) -> str:
    """Migrated temporary SQLite database."""
    path = os.path.join(str(tmp_path), "redirects.db")
    SQLiteMigrator(path, "migrations").run_migrations()
    return path


@pytest.fixture
def sqlite_pages(db_path) -> SQLitePageRepo:
    """SQLite page repo seeded with the test tree."""
    repo = SQLitePageRepo(db_path)
    for page in tree_pages():
        repo.save(page)
    return repo


@pytest.fixture
def sqlite_redirects(db_path) -> SQLiteRedirectRepo:
    return SQLiteRedirectRepo(db_path)

import os
from functools import lru_cache
from pathlib import Path

from fastapi import Depends

from src.adapters.clock import SystemClock
from src.adapters.sqlite_db import SQLitePageRepo, SQLiteRedirectRepo, SQLiteUnitOfWork
from src.components.redirects import (
    RedirectConfig,
    RedirectHandler,
    RedirectService,
    create_redirect_handler,
)
from src.components.sites import Site, SiteFinder, sites_from_rules
from src.rules.loader import load_rules
from src.rules.models import Rules
from src.shell.hooks.redirect_hooks import RedirectHooks


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(os.environ.get("REDIRECTS_DATA_DIR", "./data"))
        self.db_path = str(self.data_dir / "redirects.db")
        self.rules_path = Path(os.environ.get("REDIRECTS_RULES_PATH", str(self.base_dir / "rules.yaml")))
        self.migrations_dir = str(self.base_dir / "migrations")


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def _load_rules_cached(path: Path) -> Rules:
    return load_rules(path)


def get_rules(settings: Settings = Depends(get_settings)) -> Rules:
    return _load_rules_cached(settings.rules_path)


def get_sites(rules: Rules = Depends(get_rules)) -> list[Site]:
    return sites_from_rules(rules)


def get_redirect_config(rules: Rules = Depends(get_rules)) -> RedirectConfig:
    return RedirectConfig.from_rules(rules.redirects)


# --- Repos ---
def get_redirect_repo(settings: Settings = Depends(get_settings)) -> SQLiteRedirectRepo:
    return SQLiteRedirectRepo(settings.db_path)


def get_page_repo(settings: Settings = Depends(get_settings)) -> SQLitePageRepo:
    return SQLitePageRepo(settings.db_path)


def get_unit_of_work(settings: Settings = Depends(get_settings)) -> SQLiteUnitOfWork:
    return SQLiteUnitOfWork(settings.db_path)


# Time adapter for deterministic time operations
_clock_instance: SystemClock | None = None


def get_clock() -> SystemClock:
    """Get clock singleton."""
    global _clock_instance
    if _clock_instance is None:
        _clock_instance = SystemClock()
    return _clock_instance


# Hooks registered by the application (pre/post persist, redirect hit)
_hooks_instance: RedirectHooks | None = None


def get_redirect_hooks() -> RedirectHooks:
    """Get hooks singleton."""
    global _hooks_instance
    if _hooks_instance is None:
        _hooks_instance = RedirectHooks()
    return _hooks_instance


# --- Component Services ---
def get_site_finder(
    sites: list[Site] = Depends(get_sites),
    pages: SQLitePageRepo = Depends(get_page_repo),
    clock: SystemClock = Depends(get_clock),
) -> SiteFinder:
    return SiteFinder(sites, pages, clock)


def get_redirect_service(
    repo: SQLiteRedirectRepo = Depends(get_redirect_repo),
    site_finder: SiteFinder = Depends(get_site_finder),
    config: RedirectConfig = Depends(get_redirect_config),
    clock: SystemClock = Depends(get_clock),
) -> RedirectService:
    """Get redirect component service."""
    return RedirectService(repo=repo, site_finder=site_finder, time_port=clock, config=config)


def build_redirect_handler() -> RedirectHandler:
    """Redirect handler for the middleware, which runs outside of Depends."""
    settings = get_settings()
    rules = _load_rules_cached(settings.rules_path)
    clock = get_clock()
    site_finder = SiteFinder(sites_from_rules(rules), SQLitePageRepo(settings.db_path), clock)
    return create_redirect_handler(
        SQLiteRedirectRepo(settings.db_path),
        site_finder=site_finder,
        config=RedirectConfig.from_rules(rules.redirects),
        time_port=clock,
    )

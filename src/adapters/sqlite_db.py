"""
SQLite Database Adapter.

Implements the page and redirect repository ports using SQLite.
Repositories work on their own short-lived connection, or on the shared
connection of a SQLiteUnitOfWork (then only the unit of work commits).
"""

from __future__ import annotations

import sqlite3
from dataclasses import fields as dataclass_fields
from datetime import datetime
from enum import Enum
from typing import Any

from src.components.redirects import (
    CreationType,
    IntegrityStatus,
    RedirectDemand,
    RedirectRule,
)
from src.components.sites import PageRecord, PageType

# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def parse_dt(s: str | None) -> datetime | None:
    """Parse ISO datetime string."""
    return datetime.fromisoformat(s) if s else None


def to_db(value: Any) -> Any:
    """Convert a model value to its column representation."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, frozenset):
        return ",".join(str(v) for v in sorted(value))
    return value


def parse_groups(s: str | None) -> frozenset[int]:
    if not s:
        return frozenset()
    return frozenset(int(part) for part in s.split(",") if part.strip())


# -----------------------------------------------------------------------------
# Base SQLite Repository
# -----------------------------------------------------------------------------


class SQLiteRepoBase:
    """Base class for SQLite repositories."""

    def __init__(self, db_path: str, connection: sqlite3.Connection | None = None):
        self.db_path = db_path
        self._external_conn = connection

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection (uses external if provided)."""
        if self._external_conn is not None:
            return self._external_conn

        conn = sqlite3.connect(self.db_path)
        conn.row_factory = dict_factory
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def _should_close(self) -> bool:
        """Whether to close connection after use."""
        return self._external_conn is None

    def _query(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> list[dict[str, Any]]:
        conn = self._get_conn()
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            if self._should_close():
                conn.close()

    def _execute(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> int | None:
        """Run a write statement; returns lastrowid."""
        conn = self._get_conn()
        try:
            cursor = conn.execute(sql, params)
            if self._should_close():
                conn.commit()
            return cursor.lastrowid
        finally:
            if self._should_close():
                conn.close()


# -----------------------------------------------------------------------------
# Page Repository
# -----------------------------------------------------------------------------

PAGE_COLUMNS = (
    "id",
    "parent_id",
    "language_id",
    "translation_of",
    "slug",
    "title",
    "page_type",
    "hidden",
    "start_time",
    "end_time",
    "extend_to_subpages",
    "required_groups",
    "sorting",
    "deleted",
)


class SQLitePageRepo(SQLiteRepoBase):
    """SQLite implementation of PageRepoPort."""

    def get_by_id(self, page_id: int) -> PageRecord | None:
        rows = self._query("SELECT * FROM pages WHERE id = ?", (page_id,))
        return self._map_row(rows[0]) if rows else None

    def get_in_language(self, default_page_id: int, language_id: int) -> PageRecord | None:
        if language_id == 0:
            rows = self._query(
                "SELECT * FROM pages WHERE id = ? AND language_id = 0", (default_page_id,)
            )
        else:
            rows = self._query(
                """
                SELECT * FROM pages
                WHERE translation_of = ? AND language_id = ? AND deleted = 0
                ORDER BY id LIMIT 1
                """,
                (default_page_id, language_id),
            )
        return self._map_row(rows[0]) if rows else None

    def list_children(self, parent_id: int) -> list[PageRecord]:
        rows = self._query(
            """
            SELECT * FROM pages
            WHERE parent_id = ? AND language_id = 0 AND deleted = 0
            ORDER BY sorting, id
            """,
            (parent_id,),
        )
        return [self._map_row(r) for r in rows]

    def update_slug(self, page_id: int, slug: str) -> None:
        self._execute("UPDATE pages SET slug = ? WHERE id = ?", (slug, page_id))

    def save(self, page: PageRecord) -> PageRecord:
        placeholders = ", ".join("?" for _ in PAGE_COLUMNS)
        updates = ", ".join(f"{c}=excluded.{c}" for c in PAGE_COLUMNS if c != "id")
        self._execute(
            f"""
            INSERT INTO pages ({", ".join(PAGE_COLUMNS)}) VALUES ({placeholders})
            ON CONFLICT(id) DO UPDATE SET {updates}
            """,
            tuple(to_db(getattr(page, c)) for c in PAGE_COLUMNS),
        )
        return page

    def list_all(self) -> list[PageRecord]:
        rows = self._query("SELECT * FROM pages ORDER BY id")
        return [self._map_row(r) for r in rows]

    def _map_row(self, row: dict[str, Any]) -> PageRecord:
        return PageRecord(
            id=row["id"],
            parent_id=row["parent_id"],
            language_id=row["language_id"],
            translation_of=row["translation_of"],
            slug=row["slug"],
            title=row["title"],
            page_type=PageType(row["page_type"]),
            hidden=bool(row["hidden"]),
            start_time=parse_dt(row["start_time"]),
            end_time=parse_dt(row["end_time"]),
            extend_to_subpages=bool(row["extend_to_subpages"]),
            required_groups=parse_groups(row["required_groups"]),
            sorting=row["sorting"],
            deleted=bool(row["deleted"]),
        )


# -----------------------------------------------------------------------------
# Redirect Repository
# -----------------------------------------------------------------------------

REDIRECT_COLUMNS = tuple(f.name for f in dataclass_fields(RedirectRule) if f.name != "id")


class SQLiteRedirectRepo(SQLiteRepoBase):
    """SQLite implementation of RedirectRepoPort."""

    def get_by_id(self, redirect_id: int) -> RedirectRule | None:
        rows = self._query("SELECT * FROM redirects WHERE id = ?", (redirect_id,))
        return self._map_row(rows[0]) if rows else None

    def find_matching_rules(self, host: str, path: str, query: str) -> list[RedirectRule]:
        # Coarse filter only; regex and precedence are decided by the matcher
        with_query = f"{path}?{query}" if query else path
        rows = self._query(
            """
            SELECT * FROM redirects
            WHERE deleted = 0 AND disabled = 0
              AND (source_host = '*' OR lower(source_host) = ?)
              AND (
                is_regexp = 1
                OR source_path IN (?, ?)
                OR lower(source_path) IN (?, ?)
              )
            ORDER BY id
            """,
            (host.lower(), path, with_query, path.lower(), with_query.lower()),
        )
        return [self._map_row(r) for r in rows]

    def find_by_source(self, source_host: str, source_path: str) -> list[RedirectRule]:
        rows = self._query(
            """
            SELECT * FROM redirects
            WHERE deleted = 0 AND is_regexp = 0 AND source_host = ? AND source_path = ?
            ORDER BY id
            """,
            (source_host, source_path),
        )
        return [self._map_row(r) for r in rows]

    def insert(self, rule: RedirectRule) -> int:
        placeholders = ", ".join("?" for _ in REDIRECT_COLUMNS)
        new_id = self._execute(
            f"INSERT INTO redirects ({', '.join(REDIRECT_COLUMNS)}) VALUES ({placeholders})",
            tuple(to_db(getattr(rule, c)) for c in REDIRECT_COLUMNS),
        )
        if new_id is None:
            raise RuntimeError("Insert into redirects returned no id")
        return new_id

    def update(self, redirect_id: int, fields: dict[str, Any]) -> None:
        unknown = set(fields) - set(REDIRECT_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown redirect columns: {sorted(unknown)}")
        if not fields:
            return
        assignments = ", ".join(f"{name} = ?" for name in fields)
        self._execute(
            f"UPDATE redirects SET {assignments} WHERE id = ?",
            (*(to_db(v) for v in fields.values()), redirect_id),
        )

    def increment_hit(self, redirect_id: int, hit_on: datetime) -> None:
        self._execute(
            "UPDATE redirects SET hit_count = hit_count + 1, last_hit_on = ? WHERE id = ?",
            (hit_on.isoformat(), redirect_id),
        )

    def soft_delete(self, redirect_id: int) -> None:
        self._execute("UPDATE redirects SET deleted = 1 WHERE id = ?", (redirect_id,))

    def _demand_where(self, demand: RedirectDemand) -> tuple[str, list[Any]]:
        clauses = ["deleted = 0"]
        params: list[Any] = []
        if demand.source_hosts:
            clauses.append(f"source_host IN ({', '.join('?' for _ in demand.source_hosts)})")
            params.extend(demand.source_hosts)
        if demand.source_path:
            clauses.append("instr(source_path, ?) > 0")
            params.append(demand.source_path)
        if demand.target:
            clauses.append("instr(target, ?) > 0")
            params.append(demand.target)
        if demand.status_codes:
            clauses.append(f"target_status_code IN ({', '.join('?' for _ in demand.status_codes)})")
            params.extend(demand.status_codes)
        if demand.max_hits > 0:
            clauses.append("hit_count < ?")
            params.append(demand.max_hits)
        if demand.older_than is not None:
            clauses.append("created_at < ?")
            params.append(demand.older_than.isoformat())
        if demand.creation_type is not None:
            clauses.append("creation_type = ?")
            params.append(demand.creation_type)
        if demand.protected is not None:
            clauses.append("protected = ?")
            params.append(int(demand.protected))
        if demand.integrity_status:
            clauses.append("integrity_status = ?")
            params.append(demand.integrity_status)
        return " AND ".join(clauses), params

    def find_by_demand(self, demand: RedirectDemand) -> list[RedirectRule]:
        where, params = self._demand_where(demand)
        # order_field is validated against a fixed column list by RedirectDemand
        order = f"{demand.order_field} {demand.order_direction.upper()}"
        if demand.secondary_order_field:
            order += f", {demand.secondary_order_field} ASC"
        rows = self._query(
            f"SELECT * FROM redirects WHERE {where} ORDER BY {order}, id ASC LIMIT ? OFFSET ?",
            [*params, demand.limit, demand.offset],
        )
        return [self._map_row(r) for r in rows]

    def count_by_demand(self, demand: RedirectDemand) -> int:
        where, params = self._demand_where(demand)
        rows = self._query(f"SELECT COUNT(*) AS total FROM redirects WHERE {where}", params)
        return int(rows[0]["total"]) if rows else 0

    def list_hosts(self) -> list[str]:
        rows = self._query(
            "SELECT DISTINCT source_host FROM redirects WHERE deleted = 0 ORDER BY source_host"
        )
        return [r["source_host"] for r in rows]

    def list_all(self) -> list[RedirectRule]:
        rows = self._query("SELECT * FROM redirects WHERE deleted = 0 ORDER BY id")
        return [self._map_row(r) for r in rows]

    def _map_row(self, row: dict[str, Any]) -> RedirectRule:
        return RedirectRule(
            id=row["id"],
            source_host=row["source_host"],
            source_path=row["source_path"],
            target=row["target"],
            target_status_code=row["target_status_code"],
            is_regexp=bool(row["is_regexp"]),
            respect_query_parameters=bool(row["respect_query_parameters"]),
            force_https=bool(row["force_https"]),
            disabled=bool(row["disabled"]),
            deleted=bool(row["deleted"]),
            protected=bool(row["protected"]),
            disable_hitcount=bool(row["disable_hitcount"]),
            hit_count=row["hit_count"],
            last_hit_on=parse_dt(row["last_hit_on"]),
            start_time=parse_dt(row["start_time"]),
            end_time=parse_dt(row["end_time"]),
            creation_type=CreationType(row["creation_type"]),
            integrity_status=IntegrityStatus(row["integrity_status"]),
            correlation_id=row["correlation_id"],
            created_at=parse_dt(row["created_at"]),
            updated_at=parse_dt(row["updated_at"]),
        )


# -----------------------------------------------------------------------------
# Unit of Work
# -----------------------------------------------------------------------------


class SQLiteUnitOfWork:
    """
    SQLite Unit of Work implementation.

    Provides transaction management and access to all repositories.
    Uses a shared connection for all operations within a transaction.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

        # Lazy-initialized repositories
        self._pages: SQLitePageRepo | None = None
        self._redirects: SQLiteRedirectRepo | None = None

    def __enter__(self) -> SQLiteUnitOfWork:
        self._conn = sqlite3.connect(self.db_path)
        self._conn.row_factory = dict_factory
        self._conn.execute("PRAGMA foreign_keys = ON;")
        self._pages = None
        self._redirects = None
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if exc_type is not None:
            self.rollback()
        if self._conn:
            self._conn.close()
            self._conn = None
        self._pages = None
        self._redirects = None

    def commit(self) -> None:
        if self._conn:
            self._conn.commit()

    def rollback(self) -> None:
        if self._conn:
            self._conn.rollback()

    @property
    def pages(self) -> SQLitePageRepo:
        if self._pages is None:
            self._pages = SQLitePageRepo(self.db_path, self._conn)
        return self._pages

    @property
    def redirects(self) -> SQLiteRedirectRepo:
        if self._redirects is None:
            self._redirects = SQLiteRedirectRepo(self.db_path, self._conn)
        return self._redirects

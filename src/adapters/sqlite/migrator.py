import logging
import sqlite3
from contextlib import closing
from pathlib import Path

logger = logging.getLogger(__name__)

# Everything after this marker in a migration file is its rollback script
DOWN_MARKER = "-- Down"


class SQLiteMigrator:
    """Apply migrations/*.sql in filename order, once each."""

    def __init__(self, db_path: str, migrations_dir: str):
        self.db_path = db_path
        self.migrations_dir = Path(migrations_dir)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS _migrations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                filename TEXT UNIQUE NOT NULL,
                applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        return conn

    def _available(self) -> list[Path]:
        return sorted(self.migrations_dir.glob("*.sql"))

    @staticmethod
    def _applied(conn: sqlite3.Connection) -> set[str]:
        return {row[0] for row in conn.execute("SELECT filename FROM _migrations")}

    def pending(self) -> list[str]:
        """Filenames of migrations not yet applied."""
        with closing(self._connect()) as conn:
            applied = self._applied(conn)
        return [p.name for p in self._available() if p.name not in applied]

    def run_migrations(self) -> list[str]:
        """Apply all pending migrations; returns the applied filenames."""
        applied_now: list[str] = []
        with closing(self._connect()) as conn:
            applied = self._applied(conn)
            for path in self._available():
                if path.name in applied:
                    continue
                logger.info("Applying migration: %s", path.name)
                self._apply(conn, path)
                applied_now.append(path.name)

        logger.info("Database %s is up to date (%d applied)", self.db_path, len(applied_now))
        return applied_now

    def _apply(self, conn: sqlite3.Connection, path: Path) -> None:
        up_script = path.read_text().split(DOWN_MARKER)[0]
        try:
            conn.executescript(up_script)
            conn.execute("INSERT INTO _migrations (filename) VALUES (?)", (path.name,))
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise RuntimeError(f"Migration {path.name} failed: {e}") from e

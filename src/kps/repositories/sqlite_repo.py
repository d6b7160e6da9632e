from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

log = logging.getLogger(__name__)


class SqliteKeyValueStore:
    """Key-value store persisted in a single SQLite file.

    Every process or terminal that opens the same file sees the same keys,
    which is what ledger reconciliation relies on.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = str(db_path)

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA journal_mode = WAL;")
        return conn

    def init_db(self) -> None:
        self.run_migrations()

    def _migrations(self) -> list[tuple[int, Callable[[sqlite3.Cursor], None]]]:
        return [
            (1, self._migration_v1_kv),
        ]

    def run_migrations(self) -> None:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            conn.commit()
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            pending = [(v, m) for v, m in self._migrations() if v > current_version]
            if not pending:
                return

            # a brand-new database has nothing to restore
            backup_path = self._create_pre_migration_backup(conn) if current_version else None
            try:
                cur.execute("BEGIN")
                for version, migration in pending:
                    migration(cur)
                    cur.execute(
                        "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                        (version,),
                    )
                conn.commit()
            except Exception as exc:
                conn.rollback()
                self._restore_pre_migration_backup(conn, backup_path)
                raise RuntimeError(
                    "Database migration failed. Original database restored from automatic backup."
                ) from exc
            log.info("db_migrated from=%s to=%s", current_version, pending[-1][0])
        finally:
            conn.close()

    def _backups(self) -> list[Path]:
        db_file = Path(self.db_path)
        return sorted(db_file.parent.glob(f"{db_file.stem}.pre_migration_*.bak"))

    def _create_pre_migration_backup(self, conn: sqlite3.Connection) -> Path:
        """Snapshot through the SQLite backup API (WAL pages included); only
        the newest snapshot is kept."""
        db_file = Path(self.db_path)
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        dst = sqlite3.connect(backup_file)
        try:
            conn.backup(dst)
        finally:
            dst.close()
        for old in self._backups():
            if old != backup_file:
                old.unlink(missing_ok=True)
        return backup_file

    def _restore_pre_migration_backup(self, conn: sqlite3.Connection, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        src = sqlite3.connect(backup_path)
        try:
            src.backup(conn)
        finally:
            src.close()

    def _migration_v1_kv(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
        )

    def keys_with_prefix(self, prefix: str) -> list[str]:
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT key FROM kv_store WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                (escaped + "%",),
            )
            # LIKE is case-insensitive for ASCII in SQLite
            return [str(r[0]) for r in cur.fetchall() if str(r[0]).startswith(prefix)]
        finally:
            conn.close()

    def get(self, key: str) -> Optional[str]:
        conn = self._conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT value FROM kv_store WHERE key=?", (key,))
            row = cur.fetchone()
            return None if row is None else str(row[0])
        finally:
            conn.close()

    def set(self, key: str, value: str) -> None:
        now = datetime.now().replace(microsecond=0).isoformat(sep=" ")
        conn = self._conn()
        try:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
                """,
                (key, value, now),
            )
            conn.commit()
        finally:
            conn.close()

    def delete(self, key: str) -> None:
        conn = self._conn()
        try:
            conn.execute("DELETE FROM kv_store WHERE key=?", (key,))
            conn.commit()
        finally:
            conn.close()


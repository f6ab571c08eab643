"""SQLite connection handling and SQL-file migrations."""

from __future__ import annotations

import os
import re
import sqlite3
import threading
from pathlib import Path
from typing import Any

_SQLITE_DRIVERS = {"sqlite", "sqlite3"}
_MIGRATION_NAME = re.compile(r"^(\d+)_.*\.sql$")
_VERSION_TABLE = "goose_db_version"


class DatabaseError(Exception):
    """Raised when a database operation fails."""


def _check(driver: str, dsn: str) -> None:
    if not driver:
        raise DatabaseError("empty driver")
    if not dsn:
        raise DatabaseError("empty dsn")
    if driver not in _SQLITE_DRIVERS:
        raise DatabaseError(f"unsupported driver: {driver}")


def _open(dsn: str) -> sqlite3.Connection:
    conn = sqlite3.connect(
        dsn,
        uri=dsn.startswith("file:"),
        isolation_level=None,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    return conn


class Database:
    """A thread-safe wrapper around one SQLite connection."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._conn = connection
        self._lock = threading.Lock()
        self._closed = False

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _connection(self) -> sqlite3.Connection:
        if self._closed:
            raise DatabaseError("database is closed")
        return self._conn

    def execute(self, query: str, *args: Any) -> int:
        """Run a statement and return the number of rows it changed."""
        with self._lock:
            try:
                cursor = self._connection().execute(query, args)
                return cursor.rowcount
            except sqlite3.Error as exc:
                raise DatabaseError(str(exc)) from exc

    def fetch_one(self, query: str, *args: Any) -> dict[str, Any] | None:
        """Return the first row of a query as a dict, or None."""
        with self._lock:
            try:
                row = self._connection().execute(query, args).fetchone()
            except sqlite3.Error as exc:
                raise DatabaseError(str(exc)) from exc
        return None if row is None else dict(row)

    def ping(self) -> None:
        self.fetch_one("SELECT 1")

    def close(self) -> None:
        with self._lock:
            if not self._closed:
                self._conn.close()
                self._closed = True


def connect(driver: str, dsn: str) -> Database:
    """Open a database and check that it answers."""
    _check(driver, dsn)
    try:
        conn = _open(dsn)
    except sqlite3.Error as exc:
        raise DatabaseError(f"connect: {exc}, dsn: {dsn}") from exc
    db = Database(conn)
    try:
        db.ping()
    except DatabaseError as exc:
        db.close()
        raise DatabaseError(f"ping: {exc}") from exc
    return db


def _up_statements(text: str) -> list[str]:
    statements: list[str] = []
    buffer: list[str] = []
    in_up = False
    in_block = False
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith("-- +goose"):
            directive = stripped[len("-- +goose"):].strip().upper()
            if directive == "UP":
                in_up = True
            elif directive == "DOWN":
                in_up = False
            elif directive == "STATEMENTBEGIN" and in_up:
                in_block = True
            elif directive == "STATEMENTEND" and in_up:
                in_block = False
                if "".join(buffer).strip():
                    statements.append("\n".join(buffer))
                buffer = []
            continue
        if not in_up:
            continue
        if not in_block and (not stripped or stripped.startswith("--")):
            continue
        buffer.append(line)
        if not in_block and stripped.endswith(";"):
            statements.append("\n".join(buffer))
            buffer = []
    if "".join(buffer).strip():
        statements.append("\n".join(buffer))
    return statements


def _migration_files(directory: Path) -> list[tuple[int, Path]]:
    found: dict[int, Path] = {}
    for path in directory.iterdir():
        match = _MIGRATION_NAME.match(path.name)
        if not match or not path.is_file():
            continue
        version = int(match.group(1))
        if version in found:
            raise DatabaseError(f"duplicate migration version {version}")
        found[version] = path
    return sorted(found.items())


def migrate(driver: str, dsn: str, directory: str | os.PathLike) -> list[int]:
    """Apply pending ``-- +goose Up`` sections; return the versions applied."""
    _check(driver, dsn)
    folder = Path(directory)
    if not folder.is_dir():
        raise DatabaseError(f"migration directory not found: {folder}")
    migrations = _migration_files(folder)
    applied: list[int] = []
    try:
        conn = _open(dsn)
    except sqlite3.Error as exc:
        raise DatabaseError(f"sql open: {exc}") from exc
    try:
        conn.execute(
            f"CREATE TABLE IF NOT EXISTS {_VERSION_TABLE} ("
            "id INTEGER PRIMARY KEY AUTOINCREMENT, "
            "version_id INTEGER NOT NULL, "
            "is_applied INTEGER NOT NULL, "
            "tstamp TIMESTAMP DEFAULT (datetime('now')))"
        )
        row = conn.execute(
            f"SELECT MAX(version_id) FROM {_VERSION_TABLE} WHERE is_applied = 1"
        ).fetchone()
        if row[0] is None:
            conn.execute(
                f"INSERT INTO {_VERSION_TABLE} (version_id, is_applied) VALUES (0, 1)"
            )
            current = 0
        else:
            current = row[0]
        for version, path in migrations:
            if version <= current:
                continue
            statements = _up_statements(path.read_text(encoding="utf-8"))
            conn.execute("BEGIN")
            try:
                for statement in statements:
                    conn.execute(statement)
                conn.execute(
                    f"INSERT INTO {_VERSION_TABLE} (version_id, is_applied) VALUES (?, 1)",
                    (version,),
                )
                conn.execute("COMMIT")
            except sqlite3.Error as exc:
                conn.execute("ROLLBACK")
                raise DatabaseError(f"migration {path.name}: {exc}") from exc
            applied.append(version)
    except sqlite3.Error as exc:
        raise DatabaseError(f"migrate: {exc}") from exc
    finally:
        conn.close()
    return applied
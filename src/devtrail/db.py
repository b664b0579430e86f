from __future__ import annotations

import os
import re
import sqlite3
from contextlib import contextmanager
from typing import Any, Iterator

from .migrations import apply_migrations

_SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA busy_timeout=5000",
    "PRAGMA foreign_keys=ON",
)
_QUOTED = re.compile(r"('(?:[^']|'')*'|\"[^\"]*\")")
_INSERT_OR_IGNORE = re.compile(r"\bINSERT\s+OR\s+IGNORE\b", re.IGNORECASE)

# databases already migrated by this process, keyed by url or absolute path
_migrated: set[str] = set()


def postgres_url() -> str | None:
    url = os.environ.get("DT_DB_URL", "").strip()
    if url.startswith(("postgres://", "postgresql://")):
        return url
    return None


class DBConn:
    """Thin wrapper giving sqlite3 and psycopg connections one dialect.

    Callers write sqlite SQL (``?`` placeholders, ``INSERT OR IGNORE``);
    on Postgres it is rewritten before execution.
    """

    def __init__(self, conn: Any, backend: str) -> None:
        self._conn = conn
        self.backend = backend

    def _sql(self, sql: str) -> str:
        return sql if self.backend == "sqlite" else to_postgres(sql)

    def execute(self, sql: str, params: tuple | list | None = None):
        cursor = self._conn.cursor()
        cursor.execute(self._sql(sql), params or ())
        return cursor

    def executemany(self, sql: str, rows):
        cursor = self._conn.cursor()
        cursor.executemany(self._sql(sql), rows)
        return cursor

    @contextmanager
    def transaction(self) -> Iterator["DBConn"]:
        if self.backend == "sqlite" and not self._conn.in_transaction:
            self._conn.execute("BEGIN IMMEDIATE")
        try:
            yield self
        except BaseException:
            self._conn.rollback()
            raise
        self._conn.commit()

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()

    def __getattr__(self, name: str):
        return getattr(self._conn, name)


def connect_db(path: str) -> DBConn:
    url = postgres_url()
    if url:
        import psycopg

        return _migrate_once(DBConn(psycopg.connect(url), "postgres"), url)

    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    raw = sqlite3.connect(path)
    for pragma in _SQLITE_PRAGMAS:
        raw.execute(pragma)
    return _migrate_once(DBConn(raw, "sqlite"), os.path.abspath(path))


def _migrate_once(conn: DBConn, key: str) -> DBConn:
    if key not in _migrated:
        apply_migrations(conn)
        _migrated.add(key)
    return conn


def to_postgres(sql: str) -> str:
    """Rewrite sqlite-flavoured SQL for psycopg."""
    sql = sql.replace("BEGIN IMMEDIATE", "BEGIN")
    if _INSERT_OR_IGNORE.search(sql):
        sql = _INSERT_OR_IGNORE.sub("INSERT", sql, count=1)
        if "ON CONFLICT" not in sql.upper():
            sql = sql.rstrip().rstrip(";") + " ON CONFLICT DO NOTHING"
    # placeholders inside string literals are left alone
    pieces = _QUOTED.split(sql)
    for index in range(0, len(pieces), 2):
        pieces[index] = pieces[index].replace("?", "%s")
    return "".join(pieces)


def store_errors() -> tuple[type[BaseException], ...]:
    if postgres_url():
        import psycopg

        return (sqlite3.Error, psycopg.Error)
    return (sqlite3.Error,)

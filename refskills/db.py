from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence
from urllib.parse import urlparse

from refskills.config import DEFAULT_REF
from refskills.schema import get_schema_sql
from refskills.util.hashing import REF_KEY_VERSION


logger = logging.getLogger(__name__)


class RefKeyVersionError(RuntimeError):
    """Stored refstr values were derived differently from derive_ref_key()."""


def _detect_dialect(dsn: str) -> str:
    """Return 'postgres' or 'sqlite'."""
    s = (dsn or "").strip()
    if not s:
        return "sqlite"
    try:
        scheme = urlparse(s).scheme.lower()
    except ValueError:
        scheme = ""
    if scheme in ("postgres", "postgresql"):
        return "postgres"
    # Allow sqlite:///path style, but default is file path.
    return "sqlite"


def dialect_of(conn: Any) -> str:
    return getattr(conn, "dialect", "sqlite")


def _qmark_to_pct(sql: str) -> str:
    """Convert SQLite qmark placeholders (?) to psycopg2 placeholders (%s).

    Skips '?' inside single-quoted string literals. Not a full SQL parser, but
    sufficient for the queries in this codebase.
    """
    out: List[str] = []
    in_single = False
    for ch in sql:
        if ch == "'":
            in_single = not in_single
            out.append(ch)
        elif ch == "?" and not in_single:
            out.append("%s")
        else:
            out.append(ch)
    return "".join(out)


class PGCursor:
    def __init__(self, cur: Any):
        self._cur = cur

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> "PGCursor":
        self._cur.execute(_qmark_to_pct(sql), tuple(params or ()))
        return self

    def fetchone(self) -> Any:
        return self._cur.fetchone()

    def fetchall(self) -> Any:
        return self._cur.fetchall()

    @property
    def rowcount(self) -> int:
        return int(self._cur.rowcount or 0)

    def close(self) -> None:
        self._cur.close()


class PGConnection:
    """A tiny adapter that makes psycopg2 connections look like sqlite3 connections."""

    dialect = "postgres"

    def __init__(self, conn: Any):
        self._conn = conn

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> PGCursor:
        wrapper = PGCursor(self._conn.cursor())
        wrapper.execute(sql, params)
        return wrapper

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()


@contextmanager
def connect(db_dsn: str, *, immediate: bool = False) -> Iterator[Any]:
    """Open one transaction against SQLite or Postgres.

    The transaction commits when the block exits normally and rolls back on any
    exception, so callers never observe a half-applied mutation.

    - SQLite: uses WAL + NORMAL sync. With `immediate=True` the transaction starts
      with BEGIN IMMEDIATE, taking the database write lock before the first read so
      read-modify-write sequences cannot interleave.
    - Postgres: uses psycopg2 (RealDictCursor) so rows behave like dicts. Row locks
      are taken explicitly by the queries (SELECT ... FOR UPDATE), so `immediate`
      is a no-op.
    """
    dsn = (db_dsn or "").strip()
    dialect = _detect_dialect(dsn)

    if dialect == "postgres":
        try:
            import psycopg2
            import psycopg2.extras
        except ImportError as e:
            raise RuntimeError(
                "Postgres selected but psycopg2 is not installed. "
                "Install psycopg2-binary and try again."
            ) from e

        # RealDictCursor makes fetchone()/fetchall() rows act like dicts.
        raw = psycopg2.connect(dsn, cursor_factory=psycopg2.extras.RealDictCursor)
        conn = PGConnection(raw)
        try:
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()
        return

    # SQLite fallback
    # Support sqlite:///path style
    if dsn.lower().startswith("sqlite:///"):
        dsn = dsn[len("sqlite:///") :]

    if dsn != ":memory:":
        Path(dsn).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(dsn, timeout=30, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    # Concurrency pragmas (safe defaults for a threaded API)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA busy_timeout=30000;")  # 30s
    try:
        conn.execute("PRAGMA foreign_keys = ON;")
        if immediate:
            conn.execute("BEGIN IMMEDIATE")
        yield conn
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db(db_dsn: str) -> None:
    """Create all tables, run lightweight migrations and seed the default reference.

    Raises RefKeyVersionError if the database was populated with a different
    key derivation than the running code uses.
    """
    dialect = _detect_dialect(db_dsn)
    logger.info("Initializing DB (%s) at %s", dialect, db_dsn)
    with connect(db_dsn) as conn:
        schema_sql = get_schema_sql(dialect)
        # Ensure only one process runs schema DDL at a time.
        # - Postgres: use an advisory lock.
        # - SQLite: DDL already takes an exclusive database lock.
        if dialect == "postgres":
            conn.execute("SELECT pg_advisory_lock(2147483646);")
            try:
                _exec_schema(conn, schema_sql, dialect=dialect)
            finally:
                conn.execute("SELECT pg_advisory_unlock(2147483646);")
        else:
            _exec_schema(conn, schema_sql, dialect=dialect)

        _migrate(conn, dialect=dialect)

        conn.execute(
            "INSERT INTO refs (refstr, name) VALUES (?, ?) ON CONFLICT(refstr) DO NOTHING",
            (DEFAULT_REF, DEFAULT_REF),
        )

        _check_ref_key_version(conn)


def _exec_schema(conn: Any, ddl: str, *, dialect: str) -> None:
    if dialect == "postgres":
        # Execute multi-statement DDL (naive split is OK for our schema)
        statements = [s.strip() for s in ddl.split(";") if s.strip()]
        for stmt in statements:
            conn.execute(stmt)
        return

    # SQLite can run it in one go
    conn.executescript(ddl)


def _has_column(conn: Any, table: str, col: str, *, dialect: str) -> bool:
    if dialect == "postgres":
        r = conn.execute(
            """
            SELECT 1
            FROM information_schema.columns
            WHERE table_schema='public'
              AND table_name=?
              AND column_name=?
            LIMIT 1
            """,
            (table, col),
        ).fetchone()
        return r is not None

    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return any(r["name"] == col for r in rows)


def _parse_skill_blob(refstr: str, blob: Optional[str]) -> List[str]:
    if not blob or not blob.strip():
        return []
    try:
        value = json.loads(blob)
    except ValueError:
        logger.warning("Ref %s has an unreadable relevant_skills blob; treating as empty", refstr)
        return []
    if not isinstance(value, list):
        logger.warning("Ref %s relevant_skills is not a list; treating as empty", refstr)
        return []
    return [str(v) for v in value]


def _migrate(conn: Any, *, dialect: str) -> None:
    """Lightweight forward-only migrations for existing DBs."""
    # refs.relevant_skills: serialized JSON list from the first schema.
    # Move it into ref_skills, dropping names the catalog no longer has.
    if _has_column(conn, "refs", "relevant_skills", dialect=dialect):
        rows = conn.execute("SELECT refstr, relevant_skills FROM refs").fetchall()
        known = {str(r["name"]) for r in conn.execute("SELECT name FROM skills").fetchall()}
        moved = 0
        for row in rows:
            refstr = str(row["refstr"])
            seen: List[str] = []
            for skill in _parse_skill_blob(refstr, row["relevant_skills"]):
                if skill in known and skill not in seen:
                    seen.append(skill)
            for position, skill in enumerate(seen):
                conn.execute(
                    """
                    INSERT INTO ref_skills (refstr, skill_name, position) VALUES (?, ?, ?)
                    ON CONFLICT(refstr, skill_name) DO NOTHING
                    """,
                    (refstr, skill, position),
                )
                moved += 1
        conn.execute("ALTER TABLE refs DROP COLUMN relevant_skills")
        logger.info("Migrated %d skill attachments out of refs.relevant_skills", moved)


def upsert_app_config(conn: Any, key: str, value: str) -> None:
    """Upsert a simple key/value config entry."""
    conn.execute(
        """
        INSERT INTO app_config (key, value) VALUES (?, ?)
        ON CONFLICT(key) DO UPDATE SET value=excluded.value
        """,
        (key, value),
    )


def get_app_config(conn: Any, key: str) -> Optional[str]:
    row = conn.execute("SELECT value FROM app_config WHERE key=?", (key,)).fetchone()
    if row is None:
        return None
    return str(row["value"])


def _check_ref_key_version(conn: Any) -> None:
    # Existing refstr values only match their names under the derivation that made them.
    stored = get_app_config(conn, "ref_key_version")
    if stored is None:
        upsert_app_config(conn, "ref_key_version", REF_KEY_VERSION)
        return
    if stored != REF_KEY_VERSION:
        raise RefKeyVersionError(
            f"database keys were derived with {stored!r}, code uses {REF_KEY_VERSION!r}"
        )

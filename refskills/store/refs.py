from __future__ import annotations

import logging
from typing import Any, Dict, List

from refskills.config import DEFAULT_REF
from refskills.db import dialect_of
from refskills.errors import BadRequestError, ConflictError, DataIntegrityError, NotFoundError
from refskills.util.hashing import derive_ref_key


logger = logging.getLogger(__name__)


def ref_exists(conn: Any, refstr: str) -> bool:
    return conn.execute("SELECT 1 FROM refs WHERE refstr=?", (refstr,)).fetchone() is not None


def lock_ref(conn: Any, refstr: str) -> bool:
    """Lock a reference row for the rest of the transaction.

    Postgres takes a row lock; SQLite already holds the database write lock when
    the connection was opened with `immediate=True`. Returns False if absent.
    """
    sql = "SELECT refstr FROM refs WHERE refstr=?"
    if dialect_of(conn) == "postgres":
        sql += " FOR UPDATE"
    return conn.execute(sql, (refstr,)).fetchone() is not None


def create_ref(conn: Any, name: str) -> str:
    if not name:
        raise BadRequestError("Reference name must not be empty")

    refstr = derive_ref_key(name)
    # The primary key decides: a concurrent create of the same name loses here.
    cur = conn.execute(
        "INSERT INTO refs (refstr, name) VALUES (?, ?) ON CONFLICT(refstr) DO NOTHING",
        (refstr, name),
    )
    if cur.rowcount == 0:
        raise ConflictError("Reference already exists")

    logger.info("Created ref %s (%s)", refstr, name)
    return refstr


def delete_ref(conn: Any, refstr: str) -> None:
    """Delete a reference and its skill attachments. Absent refs are a no-op."""
    if refstr == DEFAULT_REF:
        raise BadRequestError("Cannot delete the default reference")

    conn.execute("DELETE FROM ref_skills WHERE refstr=?", (refstr,))
    cur = conn.execute("DELETE FROM refs WHERE refstr=?", (refstr,))
    if cur.rowcount:
        logger.info("Deleted ref %s", refstr)


def get_ref_name(conn: Any, refstr: str) -> str:
    row = conn.execute("SELECT name FROM refs WHERE refstr=?", (refstr,)).fetchone()
    if row is None:
        raise NotFoundError("Ref does not exist")
    if row["name"] is None:
        raise DataIntegrityError(f"ref {refstr} has no name")
    return str(row["name"])


def list_refs(conn: Any) -> List[Dict[str, str]]:
    rows = conn.execute("SELECT refstr, name FROM refs ORDER BY name, refstr").fetchall()
    return [{"name": str(r["name"]), "refstr": str(r["refstr"])} for r in rows]


def ordered_skills(conn: Any, refstr: str) -> List[str]:
    rows = conn.execute(
        "SELECT skill_name FROM ref_skills WHERE refstr=? ORDER BY position",
        (refstr,),
    ).fetchall()
    return [str(r["skill_name"]) for r in rows]


def get_skills(conn: Any, refstr: str) -> List[str]:
    if not ref_exists(conn, refstr):
        raise NotFoundError("Ref does not exist")
    return ordered_skills(conn, refstr)

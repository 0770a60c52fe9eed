"""Attach / detach catalog skills on references.

Both operations are read-modify-write on one reference, so they must run on a
connection opened with `connect(dsn, immediate=True)`: the reference row stays
locked from the first read to the commit, and two concurrent edits of the same
reference are applied one after the other.
"""

from __future__ import annotations

import logging
from typing import Any, List

from refskills.db import dialect_of
from refskills.errors import NotFoundError
from refskills.store.refs import lock_ref, ordered_skills


logger = logging.getLogger(__name__)


def add_skill(conn: Any, refstr: str, skill: str) -> List[str]:
    """Append `skill` to the reference's skills. Adding an attached skill is a no-op.

    Returns the reference's skills after the change.
    """
    if not lock_ref(conn, refstr):
        raise NotFoundError("Ref does not exist")

    # Share lock: a concurrent delete_skill waits for this transaction, or has
    # already committed and the skill is gone.
    sql = "SELECT name FROM skills WHERE name=?"
    if dialect_of(conn) == "postgres":
        sql += " FOR SHARE"
    if conn.execute(sql, (skill,)).fetchone() is None:
        raise NotFoundError("Skill does not exist")

    current = ordered_skills(conn, refstr)
    if skill in current:
        return current

    row = conn.execute(
        "SELECT COALESCE(MAX(position), -1) + 1 AS next_position FROM ref_skills WHERE refstr=?",
        (refstr,),
    ).fetchone()
    conn.execute(
        "INSERT INTO ref_skills (refstr, skill_name, position) VALUES (?, ?, ?)",
        (refstr, skill, int(row["next_position"])),
    )
    logger.info("Attached skill %r to ref %s", skill, refstr)
    return current + [skill]


def remove_skill(conn: Any, refstr: str, skill: str) -> List[str]:
    """Detach `skill` from the reference. Detaching an absent skill is a no-op."""
    if not lock_ref(conn, refstr):
        raise NotFoundError("Ref does not exist")

    cur = conn.execute(
        "DELETE FROM ref_skills WHERE refstr=? AND skill_name=?",
        (refstr, skill),
    )
    if cur.rowcount:
        logger.info("Detached skill %r from ref %s", skill, refstr)
    return ordered_skills(conn, refstr)

"""Skill catalog.

The catalog is the single source of truth for skill names: a reference may
only carry skills listed here, so deleting a skill also strips it from every
reference inside the same transaction.
"""

from __future__ import annotations

import difflib
import logging
from typing import Any, List, Tuple

from refskills.db import dialect_of
from refskills.errors import BadRequestError, ConflictError


logger = logging.getLogger(__name__)


def skill_exists(conn: Any, name: str) -> bool:
    return conn.execute("SELECT 1 FROM skills WHERE name=?", (name,)).fetchone() is not None


def create_skill(conn: Any, name: str) -> None:
    if not name:
        raise BadRequestError("Skill name must not be empty")
    cur = conn.execute("INSERT INTO skills (name) VALUES (?) ON CONFLICT(name) DO NOTHING", (name,))
    if cur.rowcount == 0:
        raise ConflictError("Skill already exists")
    logger.info("Created skill %r", name)


def delete_skill(conn: Any, name: str) -> bool:
    """Remove a skill from the catalog and from every reference carrying it.

    Returns False (and changes nothing) when the skill is unknown. Must run
    inside a write transaction: the catalog row is locked first so a concurrent
    add_skill either finishes before the cascade scan or sees the skill gone.
    """
    sql = "SELECT name FROM skills WHERE name=?"
    if dialect_of(conn) == "postgres":
        sql += " FOR UPDATE"
    if conn.execute(sql, (name,)).fetchone() is None:
        return False

    cur = conn.execute("DELETE FROM ref_skills WHERE skill_name=?", (name,))
    detached = cur.rowcount
    conn.execute("DELETE FROM skills WHERE name=?", (name,))
    logger.info("Deleted skill %r (detached from %d refs)", name, detached)
    return True


def list_skills(conn: Any) -> List[str]:
    rows = conn.execute("SELECT name FROM skills ORDER BY name").fetchall()
    return [str(r["name"]) for r in rows]


def similarity(a: str, b: str) -> float:
    """Case-insensitive similarity score in [0, 1]."""
    return difflib.SequenceMatcher(None, a.lower(), b.lower()).ratio()


def rank_matches(term: str, names: List[str], threshold: float) -> List[Tuple[str, float]]:
    scored = [(n, similarity(term, n)) for n in names]
    kept = [(n, s) for n, s in scored if s >= threshold]
    # Weakest match first; sort is stable so ties keep catalog order.
    kept.sort(key=lambda pair: pair[1])
    return kept


def search_skills(conn: Any, term: str, threshold: float = 0.5) -> List[str]:
    if not 0.0 <= threshold <= 1.0:
        raise BadRequestError("threshold must be between 0 and 1")

    return [n for n, _ in rank_matches(term, list_skills(conn), threshold)]

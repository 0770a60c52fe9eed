"""Database schema for the reference / skill registry.

Both SQLite and Postgres are supported.

A reference's skills live in a join table (`ref_skills`) rather than a serialized
list column. Membership edits are then single-row inserts/deletes, and the
`(refstr, skill_name)` primary key makes duplicate attachments impossible.
`position` keeps the attachment order.

NOTE: The Postgres schema is generated from the SQLite schema with a small set of
transformations (types).
"""

from __future__ import annotations

import re


SCHEMA_SQLITE = r"""
PRAGMA foreign_keys = ON;

CREATE TABLE IF NOT EXISTS app_config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- References
-- refstr is derived from name (util/hashing.py). name is not unique.
CREATE TABLE IF NOT EXISTS refs (
    refstr TEXT PRIMARY KEY,
    name TEXT NOT NULL
);

-- Skill catalog
CREATE TABLE IF NOT EXISTS skills (
    name TEXT PRIMARY KEY
);

-- Reference <-> skill membership
CREATE TABLE IF NOT EXISTS ref_skills (
    refstr TEXT NOT NULL,
    skill_name TEXT NOT NULL,
    position INTEGER NOT NULL,
    PRIMARY KEY (refstr, skill_name),
    FOREIGN KEY (refstr) REFERENCES refs(refstr) ON DELETE CASCADE,
    FOREIGN KEY (skill_name) REFERENCES skills(name)
);
CREATE INDEX IF NOT EXISTS idx_ref_skills_skill ON ref_skills (skill_name);
CREATE INDEX IF NOT EXISTS idx_ref_skills_order ON ref_skills (refstr, position);
"""


def _sqlite_to_postgres(ddl: str) -> str:
    # Remove SQLite pragmas
    lines: list[str] = []
    for line in ddl.splitlines():
        if line.strip().upper().startswith("PRAGMA "):
            continue
        lines.append(line)
    out = "\n".join(lines)

    # Types
    out = re.sub(r"\bINTEGER\b", "BIGINT", out)

    return out


SCHEMA_POSTGRES = _sqlite_to_postgres(SCHEMA_SQLITE)


def get_schema_sql(dialect: str) -> str:
    d = (dialect or "").lower()
    if d.startswith("post"):
        return SCHEMA_POSTGRES
    return SCHEMA_SQLITE

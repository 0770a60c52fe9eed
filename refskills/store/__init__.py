"""Persistence-facing operations.

Every function takes an open connection from `refskills.db.connect` and runs
inside the caller's transaction; none of them commit.
"""

from .membership import add_skill, remove_skill
from .refs import create_ref, delete_ref, get_ref_name, get_skills, list_refs, ref_exists
from .skills import create_skill, delete_skill, list_skills, search_skills, skill_exists

__all__ = [
    "add_skill",
    "remove_skill",
    "create_ref",
    "delete_ref",
    "get_ref_name",
    "get_skills",
    "list_refs",
    "ref_exists",
    "create_skill",
    "delete_skill",
    "list_skills",
    "search_skills",
    "skill_exists",
]

"""
Tests for refskills.store
=========================

Runs the catalog, reference and membership operations against a real SQLite
file, one transaction per `connect()` block, the way the API uses them.
"""

import sqlite3
import threading

import pytest

from refskills.config import DEFAULT_REF
from refskills.db import RefKeyVersionError, connect, get_app_config, init_db, upsert_app_config
from refskills.errors import BadRequestError, ConflictError, DataIntegrityError, NotFoundError
from refskills.store import (
    add_skill,
    create_ref,
    create_skill,
    delete_ref,
    delete_skill,
    get_ref_name,
    get_skills,
    list_refs,
    list_skills,
    ref_exists,
    remove_skill,
    search_skills,
    skill_exists,
)
from refskills.store.skills import rank_matches
from refskills.util.hashing import REF_KEY_VERSION, derive_ref_key


def _make_ref(dsn: str, name: str) -> str:
    with connect(dsn, immediate=True) as conn:
        return create_ref(conn, name)


def _make_skills(dsn: str, *names: str) -> None:
    with connect(dsn, immediate=True) as conn:
        for n in names:
            create_skill(conn, n)


def _skills(dsn: str, ref: str):
    with connect(dsn) as conn:
        return get_skills(conn, ref)


# =========================================================================
# References
# =========================================================================


class TestReferences:

    def test_create_returns_derived_key(self, dsn):
        key = _make_ref(dsn, "alice")
        assert key == derive_ref_key("alice")
        with connect(dsn) as conn:
            assert get_ref_name(conn, key) == "alice"
            assert get_skills(conn, key) == []

    def test_duplicate_create_conflicts_and_leaves_store_unchanged(self, dsn):
        _make_ref(dsn, "alice")
        with connect(dsn) as conn:
            before = list_refs(conn)
        with pytest.raises(ConflictError):
            _make_ref(dsn, "alice")
        with connect(dsn) as conn:
            assert list_refs(conn) == before

    def test_duplicate_create_from_interleaved_connections(self, dsn):
        # b is opened before a commits; its insert must still report a conflict.
        with connect(dsn) as b:
            with connect(dsn) as a:
                create_ref(a, "alice")
            with pytest.raises(ConflictError):
                create_ref(b, "alice")
        with connect(dsn) as conn:
            assert [r for r in list_refs(conn) if r["name"] == "alice"] == [
                {"name": "alice", "refstr": derive_ref_key("alice")}
            ]

    def test_empty_name_rejected(self, dsn):
        with pytest.raises(BadRequestError):
            _make_ref(dsn, "")

    def test_default_ref_is_seeded(self, dsn):
        with connect(dsn) as conn:
            assert ref_exists(conn, DEFAULT_REF)

    def test_default_ref_cannot_be_deleted(self, dsn):
        with pytest.raises(BadRequestError):
            with connect(dsn, immediate=True) as conn:
                delete_ref(conn, DEFAULT_REF)
        with connect(dsn) as conn:
            assert ref_exists(conn, DEFAULT_REF)

    def test_delete_is_idempotent(self, dsn):
        key = _make_ref(dsn, "alice")
        for _ in range(2):
            with connect(dsn, immediate=True) as conn:
                delete_ref(conn, key)
        with connect(dsn) as conn:
            assert not ref_exists(conn, key)

    def test_delete_drops_attachments(self, dsn):
        key = _make_ref(dsn, "alice")
        _make_skills(dsn, "python")
        with connect(dsn, immediate=True) as conn:
            add_skill(conn, key, "python")
        with connect(dsn, immediate=True) as conn:
            delete_ref(conn, key)
        with connect(dsn) as conn:
            n = conn.execute("SELECT COUNT(*) AS n FROM ref_skills").fetchone()["n"]
        assert n == 0

    def test_missing_ref(self, dsn):
        with connect(dsn) as conn:
            with pytest.raises(NotFoundError):
                get_ref_name(conn, "nope")
            with pytest.raises(NotFoundError):
                get_skills(conn, "nope")

    def test_list_refs(self, dsn):
        a = _make_ref(dsn, "alice")
        b = _make_ref(dsn, "bob")
        with connect(dsn) as conn:
            refs = list_refs(conn)
        assert {"name": "alice", "refstr": a} in refs
        assert {"name": "bob", "refstr": b} in refs
        assert {"name": DEFAULT_REF, "refstr": DEFAULT_REF} in refs


# =========================================================================
# Skill catalog
# =========================================================================


class TestCatalog:

    def test_create_and_list(self, dsn):
        _make_skills(dsn, "rust", "python")
        with connect(dsn) as conn:
            assert sorted(list_skills(conn)) == ["python", "rust"]
            assert skill_exists(conn, "rust")

    def test_duplicate_skill_conflicts(self, dsn):
        _make_skills(dsn, "python")
        with pytest.raises(ConflictError):
            _make_skills(dsn, "python")

    def test_duplicate_skill_from_interleaved_connections(self, dsn):
        with connect(dsn) as b:
            with connect(dsn) as a:
                create_skill(a, "python")
            with pytest.raises(ConflictError):
                create_skill(b, "python")
        with connect(dsn) as conn:
            assert list_skills(conn) == ["python"]

    def test_delete_unknown_skill_is_noop(self, dsn):
        with connect(dsn, immediate=True) as conn:
            assert delete_skill(conn, "ghost") is False

    def test_delete_cascades_to_every_reference(self, dsn):
        r1 = _make_ref(dsn, "r1")
        r2 = _make_ref(dsn, "r2")
        _make_skills(dsn, "s", "t")
        with connect(dsn, immediate=True) as conn:
            add_skill(conn, r1, "s")
            add_skill(conn, r1, "t")
            add_skill(conn, r2, "s")

        with connect(dsn, immediate=True) as conn:
            assert delete_skill(conn, "s") is True

        assert _skills(dsn, r1) == ["t"]
        assert _skills(dsn, r2) == []
        with connect(dsn) as conn:
            assert "s" not in list_skills(conn)

    def test_failed_cascade_rolls_back(self, dsn):
        r1 = _make_ref(dsn, "r1")
        _make_skills(dsn, "s")
        with connect(dsn, immediate=True) as conn:
            add_skill(conn, r1, "s")

        with pytest.raises(RuntimeError):
            with connect(dsn, immediate=True) as conn:
                delete_skill(conn, "s")
                raise RuntimeError("interrupted")

        assert _skills(dsn, r1) == ["s"]
        with connect(dsn) as conn:
            assert skill_exists(conn, "s")


class TestSearch:

    def test_search_finds_prefix(self, dsn):
        _make_skills(dsn, "python", "java", "typescript")
        with connect(dsn) as conn:
            assert search_skills(conn, "pyth") == ["python"]

    def test_search_orders_weakest_first(self, dsn):
        _make_skills(dsn, "python", "pythons", "py")
        with connect(dsn) as conn:
            assert search_skills(conn, "python") == ["py", "pythons", "python"]

    def test_search_is_case_insensitive(self, dsn):
        _make_skills(dsn, "Python")
        with connect(dsn) as conn:
            assert search_skills(conn, "PYTHON") == ["Python"]

    def test_search_nothing_matches(self, dsn):
        _make_skills(dsn, "java")
        with connect(dsn) as conn:
            assert search_skills(conn, "haskell") == []
            assert search_skills(conn, "haskell", 0.99) == []

    def test_search_empty_catalog(self, dsn):
        with connect(dsn) as conn:
            assert search_skills(conn, "anything") == []

    def test_search_threshold_bounds(self, dsn):
        with connect(dsn) as conn:
            with pytest.raises(BadRequestError):
                search_skills(conn, "x", 1.5)
            with pytest.raises(BadRequestError):
                search_skills(conn, "x", -0.1)

    def test_rank_matches_scores_ascending(self):
        ranked = rank_matches("pyth", ["python", "java", "typescript", "pytho"], 0.5)
        scores = [s for _, s in ranked]
        assert scores == sorted(scores)
        assert all(0.5 <= s <= 1.0 for s in scores)
        assert [n for n, _ in ranked] == ["python", "pytho"]

    def test_rank_matches_ties_keep_input_order(self):
        ranked = rank_matches("ab", ["abx", "aby", "abz"], 0.5)
        assert [n for n, _ in ranked] == ["abx", "aby", "abz"]

    def test_zero_threshold_keeps_everything(self):
        ranked = rank_matches("q", ["java", "go"], 0.0)
        assert sorted(n for n, _ in ranked) == ["go", "java"]


# =========================================================================
# Membership protocol
# =========================================================================


class TestMembership:

    def test_add_is_idempotent(self, dsn):
        key = _make_ref(dsn, "alice")
        _make_skills(dsn, "python")
        for _ in range(2):
            with connect(dsn, immediate=True) as conn:
                add_skill(conn, key, "python")
        assert _skills(dsn, key) == ["python"]

    def test_add_preserves_order(self, dsn):
        key = _make_ref(dsn, "alice")
        _make_skills(dsn, "c", "a", "b")
        with connect(dsn, immediate=True) as conn:
            for s in ("c", "a", "b"):
                add_skill(conn, key, s)
        assert _skills(dsn, key) == ["c", "a", "b"]

    def test_readd_after_remove_goes_last(self, dsn):
        key = _make_ref(dsn, "alice")
        _make_skills(dsn, "a", "b")
        with connect(dsn, immediate=True) as conn:
            add_skill(conn, key, "a")
            add_skill(conn, key, "b")
            remove_skill(conn, key, "a")
            assert add_skill(conn, key, "a") == ["b", "a"]

    def test_add_unknown_skill(self, dsn):
        key = _make_ref(dsn, "alice")
        with pytest.raises(NotFoundError):
            with connect(dsn, immediate=True) as conn:
                add_skill(conn, key, "ghost")
        assert _skills(dsn, key) == []

    def test_add_to_unknown_ref(self, dsn):
        _make_skills(dsn, "python")
        with pytest.raises(NotFoundError):
            with connect(dsn, immediate=True) as conn:
                add_skill(conn, "nope", "python")

    def test_remove_absent_skill_is_noop(self, dsn):
        key = _make_ref(dsn, "alice")
        _make_skills(dsn, "python")
        with connect(dsn, immediate=True) as conn:
            add_skill(conn, key, "python")
            assert remove_skill(conn, key, "rust") == ["python"]
        assert _skills(dsn, key) == ["python"]

    def test_remove(self, dsn):
        key = _make_ref(dsn, "alice")
        _make_skills(dsn, "python", "rust")
        with connect(dsn, immediate=True) as conn:
            add_skill(conn, key, "python")
            add_skill(conn, key, "rust")
        with connect(dsn, immediate=True) as conn:
            assert remove_skill(conn, key, "python") == ["rust"]

    def test_remove_from_unknown_ref(self, dsn):
        with pytest.raises(NotFoundError):
            with connect(dsn, immediate=True) as conn:
                remove_skill(conn, "nope", "python")

    def test_concurrent_adds_are_not_lost(self, dsn):
        key = _make_ref(dsn, "alice")
        names = [f"skill-{i}" for i in range(8)]
        _make_skills(dsn, *names)

        barrier = threading.Barrier(len(names))
        errors = []

        def worker(skill: str) -> None:
            try:
                barrier.wait()
                with connect(dsn, immediate=True) as conn:
                    add_skill(conn, key, skill)
            except Exception as e:  # collected and asserted below
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n,)) for n in names]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert sorted(_skills(dsn, key)) == sorted(names)

    def test_concurrent_add_and_cascade_delete_stay_consistent(self, dsn):
        key = _make_ref(dsn, "alice")
        _make_skills(dsn, "a")
        barrier = threading.Barrier(2)
        outcomes = {}

        def adder() -> None:
            barrier.wait()
            try:
                with connect(dsn, immediate=True) as conn:
                    add_skill(conn, key, "a")
                outcomes["add"] = "ok"
            except NotFoundError:
                outcomes["add"] = "skill gone"

        def deleter() -> None:
            barrier.wait()
            with connect(dsn, immediate=True) as conn:
                delete_skill(conn, "a")
            outcomes["delete"] = "ok"

        threads = [threading.Thread(target=adder), threading.Thread(target=deleter)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes["delete"] == "ok"
        assert outcomes["add"] in ("ok", "skill gone")
        # Whichever ran first, the skill is gone everywhere.
        assert _skills(dsn, key) == []
        with connect(dsn) as conn:
            assert list_skills(conn) == []


# =========================================================================
# Legacy schema migration
# =========================================================================


def test_init_db_migrates_serialized_skill_lists(tmp_path):
    path = str(tmp_path / "legacy.sqlite")
    raw = sqlite3.connect(path)
    raw.executescript(
        """
        CREATE TABLE refs (refstr TEXT PRIMARY KEY, name TEXT, relevant_skills TEXT);
        CREATE TABLE skills (name TEXT PRIMARY KEY);
        INSERT INTO skills (name) VALUES ('python'), ('rust');
        INSERT INTO refs VALUES ('r1', 'one', '["rust", "gone", "python", "rust"]');
        INSERT INTO refs VALUES ('r2', 'two', '');
        INSERT INTO refs VALUES ('r3', 'three', 'not json');
        INSERT INTO refs VALUES ('r4', NULL, '[]');
        """
    )
    raw.commit()
    raw.close()

    init_db(path)

    with connect(path) as conn:
        assert get_skills(conn, "r1") == ["rust", "python"]
        assert get_skills(conn, "r2") == []
        assert get_skills(conn, "r3") == []
        cols = [r["name"] for r in conn.execute("PRAGMA table_info(refs)").fetchall()]
        assert "relevant_skills" not in cols
        assert ref_exists(conn, DEFAULT_REF)
        with pytest.raises(DataIntegrityError):
            get_ref_name(conn, "r4")

    # Running again is harmless.
    init_db(path)
    with connect(path) as conn:
        assert get_skills(conn, "r1") == ["rust", "python"]


# =========================================================================
# Ref key derivation version
# =========================================================================


def test_init_db_records_ref_key_version(dsn):
    with connect(dsn) as conn:
        assert get_app_config(conn, "ref_key_version") == REF_KEY_VERSION
    # Same version on a second start is fine.
    init_db(dsn)


def test_init_db_refuses_other_ref_key_version(dsn):
    with connect(dsn) as conn:
        upsert_app_config(conn, "ref_key_version", "siphash13_urlsafe_v0")
    with pytest.raises(RefKeyVersionError):
        init_db(dsn)

"""Database layer tests.

All tests use an in-memory SQLite database so they are:
- Fast (no disk I/O)
- Isolated (each fixture gets a fresh DB)
- Side-effect free (nothing written to ~/.mailsift)
"""

from __future__ import annotations

import sqlite3
from typing import Generator

import pytest

from mailsift.db.connection import get_connection
from mailsift.db.migrations import MIGRATIONS, current_version, init_db
from mailsift.db.results import SQLiteResultStore
from mailsift.models import AggregatedResult, SourceBreakdown


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def conn() -> Generator[sqlite3.Connection, None, None]:
    """In-memory connection with the schema initialised."""
    connection = get_connection(db_path=":memory:")
    init_db(connection)
    yield connection
    connection.close()


@pytest.fixture()
def store(conn: sqlite3.Connection) -> SQLiteResultStore:
    return SQLiteResultStore(conn)


def _result(matched: bool = True, confidence: float = 0.8) -> AggregatedResult:
    if not matched:
        return AggregatedResult.empty()
    return AggregatedResult(
        matched_overall=True,
        merged_fields={"skills": ["React", "Go"]},
        by_source=[
            SourceBreakdown(
                source="https://acme.example/jobs/1",
                kind="retrieved",
                fields={"skills": ["React", "Go"]},
                reasoning=["mentions React"],
                confidence=confidence,
                matched_chunks=1,
            )
        ],
        overall_confidence=confidence,
        total_matches=1,
    )


# ---------------------------------------------------------------------------
# connection / init
# ---------------------------------------------------------------------------

class TestConnection:
    def test_foreign_keys_enabled(self, conn: sqlite3.Connection) -> None:
        row = conn.execute("PRAGMA foreign_keys").fetchone()
        assert row[0] == 1

    def test_wal_mode(self, conn: sqlite3.Connection) -> None:
        row = conn.execute("PRAGMA journal_mode").fetchone()
        # In-memory DBs always return 'memory', on-disk returns 'wal'
        assert row[0] in ("wal", "memory")

    def test_creates_parent_directory(self, tmp_path) -> None:
        db_path = tmp_path / "nested" / "results.db"
        connection = get_connection(db_path)
        connection.close()
        assert db_path.parent.is_dir()


class TestInitDb:
    def test_tables_exist(self, conn: sqlite3.Connection) -> None:
        tables = {
            r[0]
            for r in conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table'"
            ).fetchall()
        }
        assert "analysis_results" in tables
        assert "schema_version" in tables

    def test_migrations_applied(self, conn: sqlite3.Connection) -> None:
        assert current_version(conn) == MIGRATIONS[-1][0]
        columns = {r["name"] for r in conn.execute("PRAGMA table_info(analysis_results)")}
        assert "strategy" in columns

    def test_idempotent(self, conn: sqlite3.Connection) -> None:
        """Calling init_db twice must not raise."""
        init_db(conn)
        assert current_version(conn) == MIGRATIONS[-1][0]


# ---------------------------------------------------------------------------
# SQLiteResultStore
# ---------------------------------------------------------------------------

class TestResultStore:
    def test_store_and_get(self, store: SQLiteResultStore) -> None:
        store.store("run-1", _result(), document_id="offer.eml", strategy="hybrid")

        stored = store.get("run-1")
        assert stored is not None
        assert stored.document_id == "offer.eml"
        assert stored.state == "completed"
        assert stored.strategy == "hybrid"
        assert stored.result.merged_fields == {"skills": ["React", "Go"]}
        assert stored.result.by_source[0].source == "https://acme.example/jobs/1"

    def test_get_missing_returns_none(self, store: SQLiteResultStore) -> None:
        assert store.get("nope") is None

    def test_empty_strategy_stored_as_null(self, store: SQLiteResultStore) -> None:
        store.store("run-1", _result(matched=False), document_id="d")
        assert store.get("run-1").strategy is None

    def test_store_replaces_same_run(self, store: SQLiteResultStore) -> None:
        store.store("run-1", _result(confidence=0.4), document_id="d")
        store.store("run-1", _result(confidence=0.9), document_id="d")

        assert store.get("run-1").result.overall_confidence == 0.9
        assert len(store.list_results()) == 1

    def test_list_newest_first(self, store: SQLiteResultStore) -> None:
        for i in range(3):
            store.store(f"run-{i}", _result(), document_id="d")

        ids = [r.run_id for r in store.list_results()]
        assert ids == ["run-2", "run-1", "run-0"]

    def test_list_filters(self, store: SQLiteResultStore) -> None:
        store.store("a", _result(), document_id="one")
        store.store("b", _result(matched=False), document_id="one")
        store.store("c", _result(), document_id="two")

        assert {r.run_id for r in store.list_results(document_id="one")} == {"a", "b"}
        assert {r.run_id for r in store.list_results(matched_only=True)} == {"a", "c"}
        assert len(store.list_results(limit=1)) == 1

    def test_to_dict(self, store: SQLiteResultStore) -> None:
        store.store("run-1", _result(), document_id="d", strategy="direct_fetch")
        data = store.get("run-1").to_dict()

        assert data["run_id"] == "run-1"
        assert data["result"]["matched_overall"] is True
        assert data["result"]["total_matches"] == 1

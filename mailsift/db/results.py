"""Persistence of aggregated analysis results.

One row per completed run, keyed by run id.  The full
:class:`~mailsift.models.AggregatedResult` is stored as JSON; the headline
columns (``matched_overall``, ``overall_confidence``) are duplicated so they
can be filtered on without decoding.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from mailsift.models import AggregatedResult


class ResultStore(Protocol):
    def store(
        self,
        run_id: str,
        result: AggregatedResult,
        *,
        document_id: str = "",
        strategy: str = "",
    ) -> None:
        ...


@dataclass
class StoredResult:
    run_id: str
    document_id: str
    state: str
    strategy: Optional[str]
    result: AggregatedResult
    created_at: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "document_id": self.document_id,
            "state": self.state,
            "strategy": self.strategy,
            "created_at": self.created_at,
            "result": self.result.to_dict(),
        }


def _row_to_stored(row: sqlite3.Row) -> StoredResult:
    return StoredResult(
        run_id=row["run_id"],
        document_id=row["document_id"],
        state=row["state"],
        strategy=row["strategy"],
        result=AggregatedResult.from_dict(json.loads(row["result_json"])),
        created_at=row["created_at"],
    )


class SQLiteResultStore:
    """:class:`ResultStore` over an initialised SQLite connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._lock = threading.Lock()

    def store(
        self,
        run_id: str,
        result: AggregatedResult,
        *,
        document_id: str = "",
        strategy: str = "",
    ) -> None:
        """Insert or replace the result for *run_id*."""
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO analysis_results
                    (run_id, document_id, state, matched_overall,
                     overall_confidence, result_json, strategy)
                VALUES (?, ?, 'completed', ?, ?, ?, ?)
                """,
                (
                    run_id,
                    document_id,
                    int(result.matched_overall),
                    result.overall_confidence,
                    json.dumps(result.to_dict()),
                    strategy or None,
                ),
            )

    def get(self, run_id: str) -> Optional[StoredResult]:
        """Fetch a stored result by *run_id*.  Returns ``None`` if not found."""
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM analysis_results WHERE run_id = ?", (run_id,)
            ).fetchone()
        return _row_to_stored(row) if row else None

    def list_results(
        self,
        document_id: Optional[str] = None,
        matched_only: bool = False,
        limit: int = 50,
    ) -> list[StoredResult]:
        """Return stored results, newest first."""
        clauses: list[str] = []
        params: list[Any] = []
        if document_id is not None:
            clauses.append("document_id = ?")
            params.append(document_id)
        if matched_only:
            clauses.append("matched_overall = 1")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)

        with self._lock:
            rows = self._conn.execute(
                f"SELECT * FROM analysis_results {where} "
                "ORDER BY created_at DESC, rowid DESC LIMIT ?",
                params,
            ).fetchall()
        return [_row_to_stored(r) for r in rows]

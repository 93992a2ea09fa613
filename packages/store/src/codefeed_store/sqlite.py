"""SQLiteStore — single-file database store for long or shared histories.

Why SQLite as the alternative store:
- Batteries included: ships with Python, no extra dependencies.
- Indexed dedupe: ``exists`` is one indexed lookup instead of parsing every
  report file like JsonDirectoryStore.
- Can be placed on a shared path (CI cache, network drive) so several
  checkouts skip ranges someone else already analyzed.

Schema:
  reports           — one row per report, full JSON document in ``body_json``.
  branch_analyses   — one row per (report, branch) with the analyzed range,
                      indexed for the dedupe lookup.
"""

from __future__ import annotations

import json
import logging
import sqlite3

from codefeed_store.base import BaseStore
from codefeed_store.models import AnalysisReport

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS reports (
    id          TEXT PRIMARY KEY,
    created_at  TEXT NOT NULL,
    body_json   TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS branch_analyses (
    report_id   TEXT NOT NULL REFERENCES reports (id),
    branch      TEXT NOT NULL,
    from_ref    TEXT NOT NULL,
    to_ref      TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_branch_range ON branch_analyses (branch, from_ref, to_ref);
"""


class SQLiteStore(BaseStore):
    """Stores reports in a local SQLite database file.

    The database path defaults to ``.codefeed/codefeed.db``. Configure via
    .codefeed.yml: ``store: sqlite`` and ``store_path: /path/to/codefeed.db``.
    """

    def __init__(self, db_path: str = ".codefeed/codefeed.db"):
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def save(self, report: AnalysisReport) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT INTO reports (id, created_at, body_json) VALUES (?, ?, ?)",
                (report.id, report.created_at, json.dumps(report.to_dict())),
            )
            self._conn.executemany(
                "INSERT INTO branch_analyses (report_id, branch, from_ref, to_ref) VALUES (?, ?, ?, ?)",
                [(report.id, b.branch, b.from_ref, b.to_ref) for b in report.branches],
            )

    def exists(self, branch: str, from_ref: str, to_ref: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM branch_analyses WHERE branch=? AND from_ref=? AND to_ref=? LIMIT 1",
            (branch, from_ref, to_ref),
        ).fetchone()
        return row is not None

    def list_report_ids(self) -> list[str]:
        rows = self._conn.execute("SELECT id FROM reports ORDER BY created_at, id").fetchall()
        return [r["id"] for r in rows]

    def get_report(self, report_id: str) -> AnalysisReport | None:
        row = self._conn.execute("SELECT body_json FROM reports WHERE id=?", (report_id,)).fetchone()
        if row is None:
            return None
        try:
            return AnalysisReport.from_dict(json.loads(row["body_json"]))
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning("Stored report %s is corrupt: %s", report_id, e)
            return None

    def close(self) -> None:
        self._conn.close()

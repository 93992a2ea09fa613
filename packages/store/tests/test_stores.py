"""Tests for codefeed-store implementations."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from codefeed_store.json_dir import JsonDirectoryStore
from codefeed_store.models import AnalysisReport, BranchAnalysis, FileSummary
from codefeed_store.sqlite import SQLiteStore

FROM = "b" * 40
TO = "a" * 40


def _make_report(branch="main", from_ref=FROM, to_ref=TO, second=0):
    analysis = BranchAnalysis(
        branch=branch,
        high_level_summary="Adds a login flow.",
        from_ref=from_ref,
        to_ref=to_ref,
        file_summaries=[
            FileSummary(file="src/login.py", summary="New login view.", diff="@@ -0,0 +1 @@\n+login()\n"),
            FileSummary(file="tests/test_login.py", summary="Covers the view."),
        ],
        noisy_files=["package-lock.json"],
    )
    now = datetime(2026, 3, 1, 9, 30, second, tzinfo=timezone.utc)
    return AnalysisReport.create([analysis], now=now)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class TestModels:
    def test_id_is_filename_safe_timestamp(self):
        report = _make_report()
        assert report.created_at == "2026-03-01T09:30:00+00:00"
        assert report.id == "2026-03-01T09-30-00+00-00"
        assert ":" not in report.id

    def test_json_keys(self):
        d = _make_report().to_dict()
        assert set(d) == {"id", "createdAt", "branches"}
        branch = d["branches"][0]
        assert branch["highLevelSummary"] == "Adds a login flow."
        assert branch["from"] == FROM
        assert branch["to"] == TO
        assert branch["noisyChanges"] == ["package-lock.json"]
        assert branch["summaries"][0]["diff"].startswith("@@")

    def test_summary_without_diff_omits_key(self):
        assert "diff" not in FileSummary(file="a.py", summary="x").to_dict()

    def test_from_dict_restores_report(self):
        report = _make_report()
        restored = AnalysisReport.from_dict(json.loads(json.dumps(report.to_dict())))
        assert restored == report

    def test_covers_exact_range_only(self):
        report = _make_report()
        assert report.covers("main", FROM, TO)
        assert not report.covers("main", TO, FROM)
        assert not report.covers("feature", FROM, TO)


# ---------------------------------------------------------------------------
# Behaviour shared by every backend
# ---------------------------------------------------------------------------


@pytest.fixture(params=["json", "sqlite"])
def store(request, tmp_path):
    if request.param == "json":
        s = JsonDirectoryStore(tmp_path / "analyses")
    else:
        s = SQLiteStore(db_path=str(tmp_path / "codefeed.db"))
    yield s
    s.close()


class TestStoreContract:
    def test_empty_store(self, store):
        assert store.list_report_ids() == []
        assert store.get_report("missing") is None
        assert not store.exists("main", FROM, TO)

    def test_exists_after_save(self, store):
        store.save(_make_report())
        assert store.exists("main", FROM, TO)

    def test_exists_is_false_for_other_ranges(self, store):
        store.save(_make_report())
        assert not store.exists("main", FROM, "c" * 40)
        assert not store.exists("feature", FROM, TO)

    def test_get_report_round_trip(self, store):
        report = _make_report()
        store.save(report)
        assert store.get_report(report.id) == report

    def test_list_report_ids_oldest_first(self, store):
        newer = _make_report(to_ref="c" * 40, second=30)
        older = _make_report(second=0)
        store.save(newer)
        store.save(older)
        assert store.list_report_ids() == [older.id, newer.id]

    def test_reports_are_never_overwritten(self, store):
        store.save(_make_report())
        with pytest.raises(Exception):
            store.save(_make_report())


# ---------------------------------------------------------------------------
# JsonDirectoryStore
# ---------------------------------------------------------------------------


class TestJsonDirectoryStore:
    def test_writes_one_file_per_report(self, tmp_path):
        store = JsonDirectoryStore(tmp_path / "analyses")
        report = _make_report()
        store.save(report)

        path = tmp_path / "analyses" / f"{report.id}.json"
        assert path.is_file()
        assert json.loads(path.read_text())["id"] == report.id

    def test_save_creates_directory(self, tmp_path):
        store = JsonDirectoryStore(tmp_path / "deep" / "analyses")
        store.save(_make_report())
        assert (tmp_path / "deep" / "analyses").is_dir()

    def test_corrupt_file_is_skipped(self, tmp_path):
        directory = tmp_path / "analyses"
        directory.mkdir()
        (directory / "broken.json").write_text("{not json")
        store = JsonDirectoryStore(directory)
        store.save(_make_report())

        assert store.exists("main", FROM, TO)
        assert store.get_report("broken") is None

    def test_id_cannot_escape_directory(self, tmp_path):
        store = JsonDirectoryStore(tmp_path / "analyses")
        (tmp_path / "secret.json").write_text(json.dumps(_make_report().to_dict()))
        assert store.get_report("../secret") is None

    def test_get_report_accepts_file_name(self, tmp_path):
        store = JsonDirectoryStore(tmp_path / "analyses")
        report = _make_report()
        store.save(report)
        assert store.get_report(f"{report.id}.json") == report

    def test_ignores_other_files(self, tmp_path):
        directory = tmp_path / "analyses"
        directory.mkdir()
        (directory / "notes.txt").write_text("hello")
        assert JsonDirectoryStore(directory).list_report_ids() == []


# ---------------------------------------------------------------------------
# SQLiteStore
# ---------------------------------------------------------------------------


class TestSQLiteStore:
    def test_persists_across_connections(self, tmp_path):
        db = str(tmp_path / "codefeed.db")
        report = _make_report()
        store = SQLiteStore(db_path=db)
        store.save(report)
        store.close()

        reopened = SQLiteStore(db_path=db)
        try:
            assert reopened.exists("main", FROM, TO)
            assert reopened.get_report(report.id) == report
        finally:
            reopened.close()

    def test_multi_branch_report_indexes_every_branch(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "codefeed.db"))
        report = _make_report()
        report.branches.append(
            BranchAnalysis(branch="feature", high_level_summary="x", from_ref="d" * 40, to_ref="e" * 40)
        )
        store.save(report)

        assert store.exists("main", FROM, TO)
        assert store.exists("feature", "d" * 40, "e" * 40)
        store.close()

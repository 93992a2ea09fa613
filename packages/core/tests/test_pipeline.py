"""Tests for run orchestration (analyze_branch / run_analysis)."""

import json
from unittest.mock import MagicMock

import pytest

from codefeed_core.config import DEFAULT_CONFIG
from codefeed_core.errors import (
    AnalysisInProgressError,
    ConfigurationError,
    MissingCredentialError,
    VersionControlReadError,
)
from codefeed_core.models import ChangeRange, CommitRecord
from codefeed_core.pipeline import NO_PRIMARY_FILES, attach_diffs, run_analysis
from codefeed_core.providers.base import BaseProvider
from codefeed_core.session import AnalysisSession
from codefeed_store.json_dir import JsonDirectoryStore
from codefeed_store.models import FileSummary

FROM = "b" * 40
TO = "a" * 40

REFLOG = f"{TO} origin/main@{{0}}: pull: Fast-forward\n{FROM} origin/main@{{1}}: clone: from example.com"

COMMITS = [
    CommitRecord(hash="c2", message="Add login", files=["src/login.py", "tests/test_login.py"]),
    CommitRecord(hash="c1", message="Bump deps", files=["package-lock.json"]),
]


class _ScriptedProvider(BaseProvider):
    """Answers each kind of pipeline prompt with a canned response."""

    FAMILY = "stub"
    MODEL = "stub-1"

    def __init__(self, batch_error=None):
        super().__init__(context_budget=100_000)
        self.batch_error = batch_error
        self.prompts = []

    def _call_api(self, model: str, prompt: str) -> str:
        self.prompts.append(prompt)
        if "maintain analysis rules" in prompt:
            return json.dumps({"ignore_patterns": [], "file_groups": [["src/login.py", "tests/test_login.py"]]})
        if prompt.startswith("Analyze the following git diff"):
            if self.batch_error is not None:
                raise self.batch_error
            return json.dumps(
                {
                    "highLevelSummary": "Adds login.",
                    "fileSummaries": [
                        {"file": "src/login.py", "summary": "New login view."},
                        {"file": "tests/test_login.py", "summary": "Tests the login view."},
                    ],
                }
            )
        return "The branch adds a login flow."


def _config(**overrides):
    config = {
        **DEFAULT_CONFIG,
        "fallback_model": None,
        "retry_backoff": 0,
        "anthropic_api_key": "ant-key",
        "openai_api_key": None,
    }
    config.update(overrides)
    return config


def _git(tmp_path, commits=COMMITS, remotes=("origin",)):
    git = MagicMock()
    git.toplevel.return_value = tmp_path
    git.remotes.return_value = list(remotes)
    git.current_branch.return_value = "main"
    git.default_branch.return_value = "main"
    git.rev_parse.return_value = TO
    git.reflog.return_value = REFLOG
    git.log.return_value = commits
    git.diff.side_effect = lambda from_ref, to_ref, paths=(): "".join(
        f"diff --git a/{p} b/{p}\n@@ -1 +1 @@\n+change in {p}\n" for p in paths
    )
    return git


@pytest.fixture
def provider(mocker):
    stub = _ScriptedProvider()
    mocker.patch("codefeed_core.pipeline._get_provider", return_value=stub)
    return stub


@pytest.fixture
def store(tmp_path):
    return JsonDirectoryStore(tmp_path / ".codefeed" / "analyses")


class TestRunAnalysis:
    def test_produces_and_saves_report(self, tmp_path, provider, store):
        report = run_analysis(_config(), git=_git(tmp_path), store=store)

        assert report is not None
        assert store.list_report_ids() == [report.id]
        analysis = report.branches[0]
        assert analysis.branch == "main"
        assert analysis.from_ref == FROM
        assert analysis.to_ref == TO
        assert analysis.high_level_summary == "The branch adds a login flow."
        assert [s.file for s in analysis.file_summaries] == ["src/login.py", "tests/test_login.py"]
        assert analysis.noisy_files == ["package-lock.json"]

    def test_diffs_attached_per_file(self, tmp_path, provider, store):
        report = run_analysis(_config(), git=_git(tmp_path), store=store)
        summary = report.branches[0].file_summaries[0]
        assert "+change in src/login.py" in summary.diff
        assert "tests/test_login.py" not in summary.diff

    def test_heuristics_persisted_in_data_dir(self, tmp_path, provider, store):
        run_analysis(_config(), git=_git(tmp_path), store=store)

        saved = json.loads((tmp_path / ".codefeed" / "heuristics.json").read_text())
        assert saved["file_groups"] == [["src/login.py", "tests/test_login.py"]]

    def test_default_store_is_json_under_data_dir(self, tmp_path, provider):
        report = run_analysis(_config(), git=_git(tmp_path))
        assert (tmp_path / ".codefeed" / "analyses" / f"{report.id}.json").is_file()

    def test_already_analyzed_range_is_skipped(self, tmp_path, provider, store):
        git = _git(tmp_path)
        assert run_analysis(_config(), git=git, store=store) is not None

        assert run_analysis(_config(), git=git, store=store) is None
        assert len(store.list_report_ids()) == 1

    def test_force_reanalyzes(self, tmp_path, provider, store, mocker):
        git = _git(tmp_path)
        first = run_analysis(_config(), git=git, store=store)
        # Distinct ids: the id is the creation timestamp.
        mocker.patch(
            "codefeed_store.models.AnalysisReport.create",
            side_effect=lambda branches, now=None: type(first)(id="second", created_at="later", branches=branches),
        )

        second = run_analysis(_config(), git=git, store=store, force=True)

        assert second is not None
        assert store.list_report_ids() == sorted([first.id, "second"])

    def test_only_noisy_files(self, tmp_path, provider, store):
        commits = [CommitRecord(hash="c1", message="Bump deps", files=["yarn.lock"])]
        report = run_analysis(_config(), git=_git(tmp_path, commits=commits), store=store)

        analysis = report.branches[0]
        assert analysis.high_level_summary == NO_PRIMARY_FILES
        assert analysis.file_summaries == []
        assert analysis.noisy_files == ["yarn.lock"]

    def test_no_commits_gives_no_report(self, tmp_path, provider, store):
        assert run_analysis(_config(), git=_git(tmp_path, commits=[]), store=store) is None
        assert store.list_report_ids() == []

    def test_baseline_first_run_does_nothing(self, tmp_path, provider, store):
        git = _git(tmp_path)
        git.reflog.return_value = ""
        assert run_analysis(_config(first_run="baseline"), git=git, store=store) is None
        git.log.assert_not_called()

    def test_explicit_branches(self, tmp_path, provider, store):
        git = _git(tmp_path)
        run_analysis(_config(), git=git, store=store, branches=["release"])
        git.reflog.assert_called_once_with("origin/release")

    @pytest.mark.parametrize("force", [False, True])
    def test_repeated_branch_analyzed_once(self, tmp_path, provider, store, force):
        git = _git(tmp_path)

        report = run_analysis(_config(), git=git, store=store, branches=["main", "main"], force=force)

        assert [(a.branch, a.from_ref, a.to_ref) for a in report.branches] == [("main", FROM, TO)]
        git.reflog.assert_called_once_with("origin/main")
        git.log.assert_called_once()

    def test_missing_remote_is_fatal_before_any_work(self, tmp_path, provider, store):
        git = _git(tmp_path, remotes=["upstream"])
        with pytest.raises(ConfigurationError, match="origin"):
            run_analysis(_config(), git=git, store=store)
        git.log.assert_not_called()
        assert provider.prompts == []

    def test_missing_credential_is_fatal(self, tmp_path, store, mocker):
        mocker.patch("codefeed_core.pipeline._get_provider", side_effect=MissingCredentialError("ANTHROPIC_API_KEY"))
        with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY"):
            run_analysis(_config(), git=_git(tmp_path), store=store)

    def test_transport_error_aborts_branch_only(self, tmp_path, store, mocker):
        stub = _ScriptedProvider(batch_error=ConnectionError("connection reset"))
        mocker.patch("codefeed_core.pipeline._get_provider", return_value=stub)
        git = _git(tmp_path)
        git.current_branch.return_value = "feature"

        report = run_analysis(_config(), git=git, store=store)

        # Both branches hit the same failing batch; neither produces a report.
        assert report is None
        assert git.reflog.call_count == 2

    def test_unreadable_batch_diff_is_skipped(self, tmp_path, provider, store):
        git = _git(tmp_path)
        git.diff.side_effect = VersionControlReadError("bad object")

        report = run_analysis(_config(), git=git, store=store)

        analysis = report.branches[0]
        assert analysis.file_summaries == []
        assert "No file summaries" in analysis.high_level_summary

    def test_session_guard(self, tmp_path, provider, store):
        session = AnalysisSession()
        with session.running():
            assert session.is_analyzing
            with pytest.raises(AnalysisInProgressError):
                run_analysis(_config(), git=_git(tmp_path), store=store, session=session)
        assert not session.is_analyzing

    def test_session_released_after_failure(self, tmp_path, provider, store):
        session = AnalysisSession()
        with pytest.raises(ConfigurationError):
            run_analysis(_config(), git=_git(tmp_path, remotes=[]), store=store, session=session)
        assert not session.is_analyzing


class TestAttachDiffs:
    def test_read_error_leaves_diff_empty(self):
        git = MagicMock()
        git.diff.side_effect = VersionControlReadError("gone")
        summaries = [FileSummary(file="a.py", summary="x")]

        result = attach_diffs(git, ChangeRange("main", FROM, TO), summaries)

        assert result[0].diff is None
        assert result[0].summary == "x"

    def test_keeps_order(self):
        git = MagicMock()
        git.diff.side_effect = lambda f, t, paths: f"diff of {paths[0]}"
        summaries = [FileSummary(file=f"f{i}.py", summary="x") for i in range(6)]

        result = attach_diffs(git, ChangeRange("main", FROM, TO), summaries)

        assert [s.diff for s in result] == [f"diff of f{i}.py" for i in range(6)]

    def test_empty(self):
        assert attach_diffs(MagicMock(), ChangeRange("main", FROM, TO), []) == []

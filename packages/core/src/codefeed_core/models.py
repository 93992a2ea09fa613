"""Data passed between pipeline stages.

Report-side types (FileSummary, BranchAnalysis, AnalysisReport) live in
codefeed_store.models because they are the persisted shapes.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ChangeRange:
    """The commit span analyzed for one branch in one run."""

    branch: str
    from_ref: str
    to_ref: str


@dataclass
class CommitRecord:
    hash: str
    message: str
    files: list[str] = field(default_factory=list)


@dataclass
class ChangeSet:
    """Commits in a range plus the union of their paths split by relevance."""

    commits: list[CommitRecord] = field(default_factory=list)
    primary_files: list[str] = field(default_factory=list)
    noisy_files: list[str] = field(default_factory=list)


@dataclass
class Heuristics:
    """Provider-learned rules that persist across runs.

    ignore_patterns are substrings; a changed path containing any of them is
    treated as noise. file_groups are sets of paths that tend to change
    together and are summarized in the same batch.
    """

    ignore_patterns: list[str] = field(default_factory=list)
    file_groups: list[list[str]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "ignore_patterns": list(self.ignore_patterns),
            "file_groups": [list(group) for group in self.file_groups],
        }

"""Analysis report data models.

These are the persisted shapes. The JSON document written for a report is

    {"id": ..., "createdAt": ..., "branches": [
        {"branch": ..., "highLevelSummary": ..., "summaries": [{"file", "summary", "diff"?}],
         "noisyChanges": [...], "from": ..., "to": ...}]}

so reports written by earlier codefeed versions stay readable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass
class FileSummary:
    """Provider summary of one primary file; ``diff`` is attached from local git."""

    file: str
    summary: str
    diff: str | None = None

    def to_dict(self) -> dict:
        d = {"file": self.file, "summary": self.summary}
        if self.diff is not None:
            d["diff"] = self.diff
        return d

    @staticmethod
    def from_dict(d: dict) -> FileSummary:
        return FileSummary(file=d.get("file", ""), summary=d.get("summary", ""), diff=d.get("diff"))


@dataclass
class BranchAnalysis:
    branch: str
    high_level_summary: str
    from_ref: str
    to_ref: str
    file_summaries: list[FileSummary] = field(default_factory=list)
    noisy_files: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "branch": self.branch,
            "highLevelSummary": self.high_level_summary,
            "summaries": [s.to_dict() for s in self.file_summaries],
            "noisyChanges": list(self.noisy_files),
            "from": self.from_ref,
            "to": self.to_ref,
        }

    @staticmethod
    def from_dict(d: dict) -> BranchAnalysis:
        return BranchAnalysis(
            branch=d.get("branch", ""),
            high_level_summary=d.get("highLevelSummary", ""),
            from_ref=d.get("from", ""),
            to_ref=d.get("to", ""),
            file_summaries=[FileSummary.from_dict(s) for s in d.get("summaries", [])],
            noisy_files=list(d.get("noisyChanges", [])),
        )


@dataclass
class AnalysisReport:
    """One run's output across all analyzed branches. Never modified once saved."""

    id: str
    created_at: str  # ISO-8601 UTC timestamp
    branches: list[BranchAnalysis] = field(default_factory=list)

    @classmethod
    def create(cls, branches: list[BranchAnalysis], now: datetime | None = None) -> AnalysisReport:
        """Build a report whose id is its creation time, made safe for file names."""
        created = (now or datetime.now(timezone.utc)).isoformat()
        return cls(id=created.replace(":", "-"), created_at=created, branches=list(branches))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "createdAt": self.created_at,
            "branches": [b.to_dict() for b in self.branches],
        }

    @staticmethod
    def from_dict(d: dict) -> AnalysisReport:
        return AnalysisReport(
            id=d.get("id", ""),
            created_at=d.get("createdAt", ""),
            branches=[BranchAnalysis.from_dict(b) for b in d.get("branches", [])],
        )

    def covers(self, branch: str, from_ref: str, to_ref: str) -> bool:
        return any(b.branch == branch and b.from_ref == from_ref and b.to_ref == to_ref for b in self.branches)

"""JsonDirectoryStore — one JSON file per report under ``.codefeed/analyses``.

The default store. Reports are plain files the dashboard (or a human) can read
directly: ``<report id>.json``, where the id is the report's creation time with
colons replaced so it is a valid file name everywhere.

``exists`` parses every report file on each call. That is linear in the
number of reports, which is fine for a per-developer history; switch to
SQLiteStore for large shared histories.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterator

from codefeed_store.base import BaseStore
from codefeed_store.models import AnalysisReport

logger = logging.getLogger(__name__)

_SUFFIX = ".json"


class JsonDirectoryStore(BaseStore):
    def __init__(self, directory: str | Path):
        self._dir = Path(directory)

    @property
    def directory(self) -> Path:
        return self._dir

    def save(self, report: AnalysisReport) -> None:
        """Write the report to ``<id>.json``. Refuses to overwrite an existing report."""
        self._dir.mkdir(parents=True, exist_ok=True)
        path = self._path_for(report.id)
        with open(path, "x", encoding="utf-8") as f:
            json.dump(report.to_dict(), f, indent=2)
        logger.debug("Saved report %s to %s", report.id, path)

    def exists(self, branch: str, from_ref: str, to_ref: str) -> bool:
        return any(report.covers(branch, from_ref, to_ref) for report in self._iter_reports())

    def list_report_ids(self) -> list[str]:
        if not self._dir.is_dir():
            return []
        return sorted(p.stem for p in self._dir.glob(f"*{_SUFFIX}"))

    def get_report(self, report_id: str) -> AnalysisReport | None:
        path = self._path_for(report_id)
        if not path.is_file():
            return None
        return self._read(path)

    def _iter_reports(self) -> Iterator[AnalysisReport]:
        for report_id in self.list_report_ids():
            report = self._read(self._path_for(report_id))
            if report is not None:
                yield report

    def _path_for(self, report_id: str) -> Path:
        # Only the final path component is used, so an id can never point
        # outside the reports directory.
        name = Path(report_id).name
        if name.endswith(_SUFFIX):
            name = name[: -len(_SUFFIX)]
        return self._dir / f"{name}{_SUFFIX}"

    @staticmethod
    def _read(path: Path) -> AnalysisReport | None:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return AnalysisReport.from_dict(data)
        except (OSError, json.JSONDecodeError, AttributeError, TypeError) as e:
            logger.warning("Could not parse existing analysis file %s: %s", path.name, e)
            return None

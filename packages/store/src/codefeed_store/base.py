"""Abstract store interface.

Any storage backend (JSON directory, SQLite) implements this interface. The
pipeline and CLI depend on BaseStore, not on a concrete backend, so backends
are swappable without touching either.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from codefeed_store.models import AnalysisReport


class BaseStore(ABC):
    """Append-only persistence for analysis reports.

    Stored reports are never mutated or deleted. ``exists`` is the dedupe
    check the pipeline runs per branch before spending provider calls.
    """

    @abstractmethod
    def save(self, report: AnalysisReport) -> None:
        """Persist a completed report."""

    @abstractmethod
    def exists(self, branch: str, from_ref: str, to_ref: str) -> bool:
        """Return True if any stored report already analyzed this exact range."""

    @abstractmethod
    def list_report_ids(self) -> list[str]:
        """Return stored report ids, oldest first. Empty list if none — never raises."""

    @abstractmethod
    def get_report(self, report_id: str) -> AnalysisReport | None:
        """Return one report by id, or None if it does not exist."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional — subclasses that need cleanup should override this.
        Default is a no-op so callers can always call close() safely.
        """

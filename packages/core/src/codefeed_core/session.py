from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from codefeed_core.errors import AnalysisInProgressError


class AnalysisSession:
    """Run-scoped state shared by everything that starts or observes an analysis.

    Holds the single "analysis in progress" flag that stops repeated user
    actions from starting overlapping runs. The pipeline runs on one thread, so
    a plain boolean is enough; consumers such as a dashboard read it through
    ``is_analyzing``.
    """

    def __init__(self):
        self._analyzing = False

    @property
    def is_analyzing(self) -> bool:
        return self._analyzing

    @contextmanager
    def running(self) -> Iterator[AnalysisSession]:
        if self._analyzing:
            raise AnalysisInProgressError("Analysis already in progress.")
        self._analyzing = True
        try:
            yield self
        finally:
            self._analyzing = False

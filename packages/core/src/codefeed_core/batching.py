"""Smart batching: group related primary files into one summarization call each."""

from __future__ import annotations

from typing import Iterable, Sequence

from codefeed_core.models import CommitRecord


def create_smart_batches(
    primary_files: Sequence[str],
    file_groups: Iterable[Sequence[str]],
    commits: Iterable[CommitRecord],
) -> list[list[str]]:
    """Partition ``primary_files`` into ordered batches.

    1. Learned groups, in stored order: the group's still-unassigned members
       form a batch when there are at least two of them. A lone survivor is
       left for the next passes.
    2. Commits, in log order: the unassigned files each commit touched.
    3. Whatever is left (files no commit in range mentions) as one last batch.

    Every primary file lands in exactly one batch.
    """
    remaining = set(primary_files)
    batches: list[list[str]] = []

    def take(candidates: Iterable[str]) -> list[str]:
        batch = []
        for path in candidates:
            if path in remaining:
                remaining.discard(path)
                batch.append(path)
        return batch

    for group in file_groups:
        members = [path for path in dict.fromkeys(group) if path in remaining]
        if len(members) > 1:
            batches.append(take(members))

    for commit in commits:
        batch = take(commit.files)
        if batch:
            batches.append(batch)

    leftovers = take(primary_files)
    if leftovers:
        batches.append(leftovers)

    return batches

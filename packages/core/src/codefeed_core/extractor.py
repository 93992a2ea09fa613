from __future__ import annotations

import logging
from typing import Iterable, Sequence

from codefeed_core.models import ChangeRange, ChangeSet, CommitRecord
from codefeed_core.utils.files import classify_files

logger = logging.getLogger(__name__)


def classify_commits(
    commits: Sequence[CommitRecord],
    ignore_patterns: Iterable[str] = (),
    exclude: Iterable[str] = (),
) -> ChangeSet:
    """Split the union of the commits' paths into primary and noisy files.

    ``ignore_patterns`` are the learned heuristics; ``exclude`` comes from the
    user's config. Both use the same substring matching as the built-in
    lockfile patterns.
    """
    all_files = [path for commit in commits for path in commit.files]
    primary, noisy = classify_files(all_files, [*ignore_patterns, *exclude])
    return ChangeSet(commits=list(commits), primary_files=primary, noisy_files=noisy)


def extract_change_set(
    git,
    change_range: ChangeRange,
    ignore_patterns: Iterable[str] = (),
    exclude: Iterable[str] = (),
) -> ChangeSet:
    """List the commits in ``change_range`` and classify the paths they touched."""
    commits = git.log(change_range.from_ref, change_range.to_ref)
    change_set = classify_commits(commits, ignore_patterns, exclude)
    logger.debug(
        "%s: %d commit(s), %d primary and %d noisy file(s)",
        change_range.branch,
        len(change_set.commits),
        len(change_set.primary_files),
        len(change_set.noisy_files),
    )
    return change_set

"""Choosing the commit range to analyze for a branch.

The interesting boundary is the sync point: the last time the local branch
pulled from its remote counterpart. The remote-tracking ref's reflog records
every pull as an entry like

    <hash> refs/remotes/origin/main@{0}: pull: Fast-forward

so the value the ref had just before the most recent pull is the entry one
line further down (reflogs list newest first). Everything between that commit
and the branch head is what arrived with the pull plus any local work.
"""

from __future__ import annotations

import logging
import re

from codefeed_core.errors import VersionControlReadError
from codefeed_core.models import ChangeRange

logger = logging.getLogger(__name__)

FIRST_RUN_FALLBACK = "fallback"
FIRST_RUN_BASELINE = "baseline"

_DEFAULT_FALLBACK_WINDOW = 5

# "<hash> <selector>: <message>". The hash may be abbreviated in hand-written
# or default-format reflogs.
_REFLOG_LINE_RE = re.compile(r"^([0-9a-f]{7,40})\s+\S+:\s+(.*)$")
_SYNC_EVENT_RE = re.compile(r"^pull\b")


def parse_reflog(reflog: str) -> list[tuple[str, str]]:
    """Return (hash, message) pairs for every well-formed reflog line, newest first."""
    entries = []
    for line in reflog.splitlines():
        match = _REFLOG_LINE_RE.match(line.strip())
        if match:
            entries.append((match.group(1), match.group(2)))
    return entries


def find_sync_point(reflog: str) -> str | None:
    """Return the remote ref's value immediately before its most recent pull."""
    entries = parse_reflog(reflog)
    for index, (_, message) in enumerate(entries):
        if _SYNC_EVENT_RE.match(message):
            if index + 1 < len(entries):
                return entries[index + 1][0]
            # The pull is the oldest entry we have; nothing precedes it.
            return None
    return None


def get_sync_point(git, branch: str, remote: str = "origin") -> str | None:
    try:
        reflog = git.reflog(f"{remote}/{branch}")
    except VersionControlReadError as e:
        logger.debug("Could not read reflog for %s/%s: %s", remote, branch, e)
        return None
    return find_sync_point(reflog)


def _fallback_from_ref(git, branch: str, remote: str, window: int) -> str | None:
    """Apply the fallback chain: remote root commit → remote tip's parent → fixed window."""
    remote_branch = f"{remote}/{branch}"

    try:
        roots = git.root_commits(remote_branch)
        if roots:
            logger.info("No sync point for %s; using the oldest commit of %s.", branch, remote_branch)
            return roots[-1]
    except VersionControlReadError as e:
        logger.debug("Root commit lookup failed for %s: %s", remote_branch, e)

    try:
        parent = git.rev_parse(f"{remote_branch}~1")
        logger.info("No sync point for %s; using the parent of %s.", branch, remote_branch)
        return parent
    except VersionControlReadError as e:
        logger.debug("Parent lookup failed for %s: %s", remote_branch, e)

    try:
        start = git.rev_parse(f"{branch}~{window}")
        logger.info("No sync point for %s; using the last %d commits.", branch, window)
        return start
    except VersionControlReadError as e:
        logger.debug("Window lookup failed for %s~%d: %s", branch, window, e)

    return None


def resolve_range(
    git,
    branch: str,
    remote: str = "origin",
    first_run: str = FIRST_RUN_FALLBACK,
    fallback_window: int = _DEFAULT_FALLBACK_WINDOW,
) -> ChangeRange | None:
    """Return the range to analyze for ``branch``, or None if there is nothing to do.

    None means either a baseline-establishing run (``first_run="baseline"``
    and no sync point yet) or an empty range where from and to coincide.
    Raises VersionControlReadError only if the branch head itself cannot be read.
    """
    to_ref = git.rev_parse(branch)

    from_ref = get_sync_point(git, branch, remote)
    if from_ref is None:
        if first_run == FIRST_RUN_BASELINE:
            return None
        from_ref = _fallback_from_ref(git, branch, remote, fallback_window)

    if not from_ref or from_ref == to_ref:
        return None
    return ChangeRange(branch=branch, from_ref=from_ref, to_ref=to_ref)


def branches_to_analyze(git, remote: str = "origin") -> list[str]:
    """The remote's default branch, plus the checked-out branch if it differs."""
    current = git.current_branch()
    default = git.default_branch(remote) or current or "main"

    branches = [default]
    if current and current != "HEAD" and current != default:
        branches.append(current)
    return branches

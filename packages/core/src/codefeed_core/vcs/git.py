"""Read-only access to the local git repository via the git executable.

Every method shells out to ``git`` in the repository directory and returns
plain strings or CommitRecords. Any non-zero exit becomes a
VersionControlReadError so callers can skip the affected ref or file instead
of crashing. Nothing here writes to the repository except ``fetch``, which only
the CLI calls before an analysis.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Iterable

from codefeed_core.errors import VersionControlReadError
from codefeed_core.models import CommitRecord

logger = logging.getLogger(__name__)

# Record and field separators for `git log --format`; neither can appear in a
# commit subject or a path.
_RECORD_SEP = "\x1e"
_FIELD_SEP = "\x1f"

_HEAD_BRANCH_PREFIX = "HEAD branch:"


class GitRepository:
    def __init__(self, path: str | Path = "."):
        self.path = Path(path)

    def _run(self, *args: str) -> str:
        # core.quotepath=off keeps non-ASCII paths readable instead of octal-escaped.
        cmd = ["git", "-c", "core.quotepath=off", *args]
        try:
            result = subprocess.run(cmd, cwd=self.path, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise VersionControlReadError("git executable not found on PATH") from e
        if result.returncode != 0:
            raise VersionControlReadError(f"git {' '.join(args)} failed: {result.stderr.strip()}")
        return result.stdout

    # ------------------------------------------------------------------ #
    # Refs                                                                 #
    # ------------------------------------------------------------------ #

    def toplevel(self) -> Path:
        return Path(self._run("rev-parse", "--show-toplevel").strip())

    def rev_parse(self, ref: str) -> str:
        return self._run("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}").strip()

    def current_branch(self) -> str:
        return self._run("rev-parse", "--abbrev-ref", "HEAD").strip()

    def remotes(self) -> list[str]:
        return [line.strip() for line in self._run("remote").splitlines() if line.strip()]

    def default_branch(self, remote: str = "origin") -> str | None:
        """Return the remote's default branch name, or None if it cannot be told.

        Tries the locally cached ``refs/remotes/<remote>/HEAD`` first and only
        then asks the remote itself via ``git remote show``.
        """
        try:
            ref = self._run("symbolic-ref", "--quiet", f"refs/remotes/{remote}/HEAD").strip()
            prefix = f"refs/remotes/{remote}/"
            if ref.startswith(prefix):
                return ref[len(prefix) :]
        except VersionControlReadError:
            logger.debug("No cached HEAD for %s; querying the remote.", remote)

        try:
            info = self._run("remote", "show", remote)
        except VersionControlReadError as e:
            logger.debug("git remote show %s failed: %s", remote, e)
            return None
        for line in info.splitlines():
            line = line.strip()
            if line.startswith(_HEAD_BRANCH_PREFIX):
                name = line[len(_HEAD_BRANCH_PREFIX) :].strip()
                return None if not name or name == "(unknown)" else name
        return None

    def reflog(self, ref: str) -> str:
        """Raw reflog of ``ref``, newest entry first, with full hashes."""
        return self._run("reflog", "show", "--format=%H %gd: %gs", ref)

    def root_commits(self, ref: str) -> list[str]:
        """Commits reachable from ``ref`` that have no parent, oldest last."""
        return [line.strip() for line in self._run("rev-list", "--max-parents=0", ref).splitlines() if line.strip()]

    # ------------------------------------------------------------------ #
    # Changes                                                              #
    # ------------------------------------------------------------------ #

    def diff(self, from_ref: str, to_ref: str, paths: Iterable[str] = ()) -> str:
        return self._run("diff", f"{from_ref}..{to_ref}", "--", *paths)

    def log(self, from_ref: str, to_ref: str) -> list[CommitRecord]:
        """Commits in ``from_ref..to_ref`` with the paths each one touched, newest first."""
        output = self._run(
            "log",
            "--name-only",
            f"--format={_RECORD_SEP}%H{_FIELD_SEP}%s",
            f"{from_ref}..{to_ref}",
        )
        return parse_log(output)

    def fetch(self, remote: str = "origin") -> None:
        self._run("fetch", remote)


def parse_log(output: str) -> list[CommitRecord]:
    commits = []
    for record in output.split(_RECORD_SEP):
        if not record.strip():
            continue
        header, _, body = record.partition("\n")
        commit_hash, _, message = header.partition(_FIELD_SEP)
        files = [line.strip() for line in body.splitlines() if line.strip()]
        commits.append(CommitRecord(hash=commit_hash.strip(), message=message.strip(), files=files))
    return commits

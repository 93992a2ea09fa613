"""Learning ignore patterns and file groups from commit history.

Heuristics are persisted between runs in ``<data_dir>/heuristics.json``:

    {"ignore_patterns": ["dist/", ".log"], "file_groups": [["a.py", "test_a.py"]]}

Each run with new commits asks the provider for an updated rule set. The
answer is merged additively: learned rules are only ever added, never
removed, so one bad answer cannot wipe out what earlier runs learned. Any
failure to get a usable answer leaves the previous rules untouched.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Sequence

from codefeed_core.errors import ProviderError, StructuredResponseError
from codefeed_core.models import CommitRecord, Heuristics
from codefeed_core.retry import RetryPolicy
from codefeed_core.structured import parse_json_object

logger = logging.getLogger(__name__)

HEURISTICS_FILE = "heuristics.json"


def load_heuristics(path: str | Path) -> Heuristics:
    """Read persisted heuristics, or return an empty set if there are none usable."""
    p = Path(path)
    if not p.exists():
        return Heuristics()
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
        return validate_heuristics(data)
    except (OSError, json.JSONDecodeError, StructuredResponseError) as e:
        logger.warning("Ignoring unreadable heuristics file %s: %s", p, e)
        return Heuristics()


def save_heuristics(path: str | Path, heuristics: Heuristics) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(heuristics.to_dict(), indent=2), encoding="utf-8")


def validate_heuristics(data) -> Heuristics:
    """Check the ``{ignore_patterns, file_groups}`` shape and build a Heuristics from it."""
    if not isinstance(data, dict):
        raise StructuredResponseError("heuristics must be a JSON object")
    patterns = data.get("ignore_patterns")
    groups = data.get("file_groups")
    if not isinstance(patterns, list) or not isinstance(groups, list):
        raise StructuredResponseError("'ignore_patterns' and 'file_groups' must both be lists")
    if not all(isinstance(p, str) for p in patterns):
        raise StructuredResponseError("'ignore_patterns' must contain only strings")
    if not all(isinstance(g, list) and all(isinstance(f, str) for f in g) for g in groups):
        raise StructuredResponseError("'file_groups' must be a list of lists of paths")
    return Heuristics(ignore_patterns=list(patterns), file_groups=[list(g) for g in groups])


def parse_heuristics_response(raw: str) -> Heuristics:
    return validate_heuristics(parse_json_object(raw, required=("ignore_patterns", "file_groups")))


def merge_heuristics(previous: Heuristics, proposed: Heuristics) -> Heuristics:
    """Union of both rule sets; previous rules keep their position and order."""
    patterns = list(dict.fromkeys([*previous.ignore_patterns, *(p for p in proposed.ignore_patterns if p)]))

    groups = [list(g) for g in previous.file_groups]
    seen = {frozenset(g) for g in groups}
    for group in proposed.file_groups:
        members = list(dict.fromkeys(f for f in group if f))
        key = frozenset(members)
        if len(members) > 1 and key not in seen:
            seen.add(key)
            groups.append(members)

    return Heuristics(ignore_patterns=patterns, file_groups=groups)


def _format_history(commits: Sequence[CommitRecord]) -> str:
    blocks = []
    for commit in commits:
        files = "\n".join(f"- {f}" for f in commit.files)
        blocks.append(f"Commit: {commit.hash}\nMessage: {commit.message}\nFiles:\n{files}")
    return "\n\n".join(blocks)


def build_heuristics_prompt(previous: Heuristics, commits: Sequence[CommitRecord]) -> str:
    return f"""You are helping maintain analysis rules for a git repository.

## Current rules
{json.dumps(previous.to_dict(), indent=2)}

## New commits since the last analysis
{_format_history(commits)}

## Task
Update the rules based on the new commits:
- If some changed files are clearly noise (build output, generated files, logs),
  add a substring that identifies them to "ignore_patterns".
- If some files are consistently changed together in the same commits, add them
  as a group to "file_groups".
- Keep every existing rule unless the commits give a clear reason to change it.

### Output Format:
Respond with **only** a valid JSON object:

{{
  "ignore_patterns": ["pattern1", "pattern2"],
  "file_groups": [
    ["path/to/fileA.py", "path/to/fileB.py"]
  ]
}}

Do not return any text outside the JSON object."""


def update_heuristics(
    provider,
    previous: Heuristics,
    commits: Sequence[CommitRecord],
    policy: RetryPolicy | None = None,
) -> Heuristics:
    """Return ``previous`` merged with the provider's proposal for ``commits``.

    Returns ``previous`` itself, unmodified, when there are no commits, when
    every attempt produced malformed JSON, or when the provider call fails.
    """
    if not commits:
        return previous

    policy = policy or RetryPolicy()
    prompt = build_heuristics_prompt(previous, commits)
    try:
        proposed = policy.execute(provider, prompt, parse_heuristics_response)
    except ProviderError as e:
        logger.warning("Heuristics update skipped, provider call failed: %s", e)
        return previous

    if proposed is None:
        logger.warning("Heuristics update skipped, keeping the previous rules.")
        return previous
    return merge_heuristics(previous, proposed)

"""Noisy vs. primary classification of changed paths.

Matching is substring-based, not glob-based: a path is noisy when any pattern
occurs anywhere in it. "yarn.lock" therefore also matches
"docs/yarn.lock.example", and "dist/" matches every path with a dist/ segment.
Learned ignore patterns rely on these broad matches.
"""

from __future__ import annotations

from typing import Iterable

BASE_NOISY_PATTERNS = (
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "poetry.lock",
    "Pipfile.lock",
    "Cargo.lock",
    "composer.lock",
    "Gemfile.lock",
    "go.sum",
)


def unique_paths(paths: Iterable[str]) -> list[str]:
    """De-duplicate paths, keeping the first occurrence order."""
    seen: set[str] = set()
    result = []
    for path in paths:
        if path and path not in seen:
            seen.add(path)
            result.append(path)
    return result


def is_noisy(file_name: str, patterns: Iterable[str]) -> bool:
    return any(pattern and pattern in file_name for pattern in patterns)


def classify_files(paths: Iterable[str], extra_patterns: Iterable[str] = ()) -> tuple[list[str], list[str]]:
    """Split paths into (primary, noisy) using the base lockfile set plus ``extra_patterns``."""
    patterns = [*BASE_NOISY_PATTERNS, *extra_patterns]
    primary: list[str] = []
    noisy: list[str] = []
    for path in unique_paths(paths):
        (noisy if is_noisy(path, patterns) else primary).append(path)
    return primary, noisy

"""Core analysis orchestration."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Sequence

from rich.console import Console

from codefeed_core.batching import create_smart_batches
from codefeed_core.config import data_dir
from codefeed_core.errors import ConfigurationError, MissingCredentialError, ProviderError, VersionControlReadError
from codefeed_core.extractor import classify_commits, extract_change_set
from codefeed_core.heuristics import HEURISTICS_FILE, load_heuristics, save_heuristics, update_heuristics
from codefeed_core.models import ChangeRange
from codefeed_core.providers.anthropic import AnthropicProvider
from codefeed_core.providers.openai import OpenAIProvider
from codefeed_core.range_resolver import branches_to_analyze, resolve_range
from codefeed_core.retry import RetryPolicy
from codefeed_core.session import AnalysisSession
from codefeed_core.summarizer import Summarizer
from codefeed_core.vcs.git import GitRepository
from codefeed_store.base import BaseStore
from codefeed_store.json_dir import JsonDirectoryStore
from codefeed_store.models import AnalysisReport, BranchAnalysis, FileSummary

console = Console()
logger = logging.getLogger(__name__)

NO_PRIMARY_FILES = "No primary files to analyze."

ANALYSES_DIR = "analyses"

# Diff attachment is the only fan-out in the pipeline: read-only git calls, no provider.
_DIFF_WORKERS = 4

_PROVIDERS = {
    "anthropic": (AnthropicProvider, "anthropic_api_key"),
    "openai": (OpenAIProvider, "openai_api_key"),
}


def _get_provider(config: dict, family: str, model_name: str | None = None):
    try:
        provider_cls, key_name = _PROVIDERS[family]
    except KeyError:
        raise ConfigurationError(f"Unknown model provider: {family!r}. Choose 'anthropic' or 'openai'.")
    budget = (config.get("context_budgets") or {}).get(family)
    return provider_cls(api_key=config.get(key_name), model=model_name, context_budget=budget)


def _get_fallback_provider(config: dict):
    """The secondary provider, or None when it is disabled or has no credential."""
    family = config.get("fallback_model")
    if not family or family == config["model"]:
        return None
    try:
        return _get_provider(config, family, config.get("fallback_model_name"))
    except MissingCredentialError as e:
        logger.warning("Fallback provider %s disabled: %s", family, e)
        return None


def _retry_policy(config: dict) -> RetryPolicy:
    return RetryPolicy(max_attempts=int(config.get("max_attempts", 3)), backoff=float(config.get("retry_backoff", 1.0)))


def attach_diffs(git, change_range: ChangeRange, summaries: Sequence[FileSummary]) -> list[FileSummary]:
    """Return copies of ``summaries`` with each file's diff read from local git.

    Files whose diff cannot be read (history pruned, path gone) keep
    ``diff=None`` and a warning is logged.
    """

    def with_diff(summary: FileSummary) -> FileSummary:
        try:
            diff = git.diff(change_range.from_ref, change_range.to_ref, [summary.file])
        except VersionControlReadError as e:
            logger.warning("Could not get diff for %s: %s", summary.file, e)
            diff = None
        return FileSummary(file=summary.file, summary=summary.summary, diff=diff)

    if not summaries:
        return []
    with ThreadPoolExecutor(max_workers=min(_DIFF_WORKERS, len(summaries))) as pool:
        return list(pool.map(with_diff, summaries))


def analyze_branch(
    git,
    change_range: ChangeRange,
    config: dict,
    store: BaseStore,
    summarizer: Summarizer,
    heuristics_path: Path,
    force: bool = False,
) -> BranchAnalysis | None:
    """Run the per-branch pipeline; None when there is nothing new to report."""
    branch = change_range.branch
    short_from, short_to = change_range.from_ref[:7], change_range.to_ref[:7]
    console.print(f"Changes on [bold]{branch}[/bold] since {short_from}...")

    exclude = config.get("exclude", [])
    previous = load_heuristics(heuristics_path)
    change_set = extract_change_set(git, change_range, previous.ignore_patterns, exclude)

    # Step 1: learn from the new commits, then classify with what was learned.
    heuristics = previous
    if change_set.commits:
        console.print("[dim]Updating heuristics from new commits...[/dim]")
        heuristics = update_heuristics(summarizer.provider, previous, change_set.commits, summarizer.policy)
        if heuristics is not previous:
            save_heuristics(heuristics_path, heuristics)
            logger.info("Heuristics updated and saved to %s", heuristics_path)
            change_set = classify_commits(change_set.commits, heuristics.ignore_patterns, exclude)

    if not force and store.exists(branch, change_range.from_ref, change_range.to_ref):
        console.print(
            f"[yellow]Analysis for {branch} between {short_from} and {short_to} already exists. Skipping.[/yellow]"
        )
        return None

    if not change_set.primary_files:
        if change_set.noisy_files:
            return BranchAnalysis(
                branch=branch,
                high_level_summary=NO_PRIMARY_FILES,
                from_ref=change_range.from_ref,
                to_ref=change_range.to_ref,
                noisy_files=change_set.noisy_files,
            )
        console.print("[yellow]No new changes found.[/yellow]")
        return None

    # Step 2: smart batches, summarized strictly one after another.
    batches = create_smart_batches(change_set.primary_files, heuristics.file_groups, change_set.commits)
    console.print(f"Found {len(change_set.primary_files)} changed file(s); analyzing in {len(batches)} batch(es).")

    file_summaries: list[FileSummary] = []
    for i, batch in enumerate(batches, 1):
        console.print(f"  [[{i}/{len(batches)}]] {', '.join(batch)}")
        try:
            batch_diff = git.diff(change_range.from_ref, change_range.to_ref, batch)
        except VersionControlReadError as e:
            logger.warning("Could not get diff for %s: %s", ", ".join(batch), e)
            continue
        if not batch_diff:
            continue
        result = summarizer.summarize_batch(batch_diff, branch, batch)
        if result is not None:
            file_summaries.extend(result.file_summaries)

    high_level = summarizer.final_summary(file_summaries, branch)

    return BranchAnalysis(
        branch=branch,
        high_level_summary=high_level,
        from_ref=change_range.from_ref,
        to_ref=change_range.to_ref,
        file_summaries=attach_diffs(git, change_range, file_summaries),
        noisy_files=change_set.noisy_files,
    )


def run_analysis(
    config: dict,
    git=None,
    store: BaseStore | None = None,
    session: AnalysisSession | None = None,
    force: bool = False,
    branches: Sequence[str] | None = None,
) -> AnalysisReport | None:
    """Analyze every selected branch and persist one report.

    Returns None when no branch produced anything new (baseline runs,
    duplicates, empty ranges). Raises ConfigurationError before doing any
    work if the remote or the primary provider's credential is missing, and
    AnalysisInProgressError if ``session`` already has a run going.
    """
    session = session or AnalysisSession()
    with session.running():
        git = git if git is not None else GitRepository()
        repo_root = git.toplevel()
        remote = config.get("remote", "origin")

        if remote not in git.remotes():
            raise ConfigurationError(
                f"This repository does not have a remote named {remote!r}. Please add one to continue."
            )

        provider = _get_provider(config, config["model"], config.get("model_name"))
        summarizer = Summarizer(provider, _get_fallback_provider(config), _retry_policy(config))

        state_dir = data_dir(config, repo_root)
        heuristics_path = state_dir / HEURISTICS_FILE
        if store is None:
            store = JsonDirectoryStore(state_dir / ANALYSES_DIR)

        results: list[BranchAnalysis] = []
        # The same branch named twice would yield two entries for one range.
        selected = list(dict.fromkeys(branches or branches_to_analyze(git, remote)))
        for branch in selected:
            console.print(f"\n[bold cyan]Analyzing branch: {branch}[/bold cyan]")
            try:
                change_range = resolve_range(
                    git,
                    branch,
                    remote=remote,
                    first_run=config.get("first_run", "fallback"),
                    fallback_window=int(config.get("fallback_window", 5)),
                )
            except VersionControlReadError as e:
                logger.warning("Skipping %s: %s", branch, e)
                continue

            if change_range is None:
                console.print(
                    "[yellow]No sync point yet; establishing a baseline. "
                    "Run codefeed again after your next `git pull`.[/yellow]"
                )
                continue

            try:
                analysis = analyze_branch(git, change_range, config, store, summarizer, heuristics_path, force)
            except ProviderError as e:
                logger.error("Analysis of %s aborted: %s", branch, e)
                console.print(f"[red]Analysis of {branch} aborted: {e}[/red]")
                continue
            except VersionControlReadError as e:
                logger.warning("Skipping %s: %s", branch, e)
                continue

            if analysis is not None:
                results.append(analysis)

        if not results:
            console.print("\n[yellow]No new changes detected on analyzed branches.[/yellow]")
            return None

        report = AnalysisReport.create(results)
        store.save(report)
        console.print(f"\n[green]Analysis saved as {report.id}[/green]")
        return report

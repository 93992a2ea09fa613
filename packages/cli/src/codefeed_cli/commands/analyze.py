"""analyze command — run the analysis pipeline on the current repository."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markdown import Markdown

from codefeed_core.errors import AnalysisInProgressError, ConfigurationError, VersionControlReadError
from codefeed_core.pipeline import run_analysis
from codefeed_core.vcs.git import GitRepository

console = Console()


@click.command("analyze")
@click.option("--force", "-f", is_flag=True, help="Re-analyze ranges that already have a stored report.")
@click.option(
    "--branch",
    "branches",
    multiple=True,
    help="Branch to analyze (repeatable). Defaults to the remote's default branch and the current branch.",
)
@click.option(
    "--model",
    type=click.Choice(["anthropic", "openai"]),
    default=None,
    help="AI model provider. Overrides config file.",
)
@click.option("--fetch", "fetch_first", is_flag=True, help="Run `git fetch` on the remote before analyzing.")
@click.pass_context
def analyze_cmd(ctx, force: bool, branches: tuple[str, ...], model: str | None, fetch_first: bool):
    """Summarize what changed since your last pull.

    Finds the last sync point of each branch with its remote, groups the
    changed files into related batches, and asks the configured provider for
    per-file and overall summaries. The report is stored in .codefeed/.

    \b
    Required environment variables:
      ANTHROPIC_API_KEY    Required when using --model anthropic
      OPENAI_API_KEY       Required when using --model openai (also enables fallback)
    """
    from codefeed_core.config import validate_config

    config = dict(ctx.obj["config"])
    if model is not None:
        config["model"] = model
        if config.get("fallback_model") == model:
            config["fallback_model"] = "openai" if model == "anthropic" else "anthropic"

    try:
        validate_config(config)
    except ConfigurationError as e:
        raise click.UsageError(str(e))

    git = GitRepository()
    if fetch_first:
        remote = config.get("remote", "origin")
        console.print(f"Fetching latest changes from {remote}...")
        try:
            git.fetch(remote)
        except VersionControlReadError as e:
            console.print(f"[yellow]Fetch failed, analyzing local state: {e}[/yellow]")

    try:
        report = run_analysis(
            config,
            git=git,
            store=ctx.obj["store"],
            force=force,
            branches=list(branches) or None,
        )
    except ConfigurationError as e:
        raise click.UsageError(str(e))
    except AnalysisInProgressError as e:
        raise click.ClickException(str(e))
    except VersionControlReadError as e:
        raise click.ClickException(f"Could not read the repository: {e}")

    if report is None:
        return

    for analysis in report.branches:
        console.rule(f"[bold]{analysis.branch}[/bold]  {analysis.from_ref[:7]}..{analysis.to_ref[:7]}")
        console.print(Markdown(analysis.high_level_summary))

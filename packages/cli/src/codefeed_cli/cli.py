"""CLI entry point for codefeed.

Commands:
  analyze  — summarize what changed on the default and current branch since the last pull
  history  — list stored analysis reports
  show     — print one stored report
"""

from __future__ import annotations

import importlib.metadata
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from codefeed_cli.commands.analyze import analyze_cmd
from codefeed_cli.commands.history import history_cmd
from codefeed_cli.commands.show import show_cmd

console = Console()


def _repo_root() -> Path:
    """The enclosing git work tree, or the current directory outside one."""
    from codefeed_core.errors import VersionControlReadError
    from codefeed_core.vcs.git import GitRepository

    try:
        return GitRepository().toplevel()
    except VersionControlReadError:
        return Path.cwd()


def _build_store(config: dict, repo_root: Path | None = None):
    """Instantiate the configured store from .codefeed.yml settings.

    Store selection hierarchy:
      store: sqlite → SQLiteStore (store_path or <data_dir>/codefeed.db)
      (default)     → JsonDirectoryStore (store_path or <data_dir>/analyses)

    This factory lives in cli.py so neither codefeed_core nor codefeed_store
    know about the CLI config format.
    """
    from codefeed_core.config import data_dir
    from codefeed_core.pipeline import ANALYSES_DIR

    state_dir = data_dir(config, repo_root if repo_root is not None else _repo_root())
    store_path = config.get("store_path")

    if config.get("store") == "sqlite":
        from codefeed_store.sqlite import SQLiteStore

        db_path = Path(store_path) if store_path else state_dir / "codefeed.db"
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return SQLiteStore(db_path=str(db_path))

    from codefeed_store.json_dir import JsonDirectoryStore

    return JsonDirectoryStore(Path(store_path) if store_path else state_dir / ANALYSES_DIR)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


@click.group()
@click.version_option(
    version=importlib.metadata.version("codefeed"),
    prog_name="codefeed",
)
@click.option(
    "--config",
    "config_path",
    default=".codefeed.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="CODEFEED_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Summarize recent git changes with AI."""
    from codefeed_core.config import load_config
    from codefeed_core.errors import ConfigurationError

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        raise click.UsageError(str(e))

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.obj["config_path"] = config_path
    ctx.call_on_close(store.close)


main.add_command(analyze_cmd)
main.add_command(history_cmd)
main.add_command(show_cmd)

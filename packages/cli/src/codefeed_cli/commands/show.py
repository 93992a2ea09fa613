"""show command — print one stored report."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.syntax import Syntax

console = Console()


@click.command("show")
@click.argument("report_id", required=False)
@click.option("--diffs", is_flag=True, help="Include each file's diff.")
@click.pass_context
def show_cmd(ctx, report_id: str | None, diffs: bool):
    """Print a stored report. Defaults to the most recent one."""
    store = ctx.obj.get("store") if ctx.obj else None
    if store is None:
        raise click.UsageError("No store configured.")

    if report_id is None:
        report_ids = store.list_report_ids()
        if not report_ids:
            console.print("[yellow]No analysis reports found. Run `codefeed analyze` first.[/yellow]")
            return
        report_id = report_ids[-1]

    report = store.get_report(report_id)
    if report is None:
        raise click.ClickException(f"Report {report_id!r} not found.")

    console.print(f"[bold]Report {report.id}[/bold]  [dim]{report.created_at}[/dim]")
    for b in report.branches:
        console.rule(f"[bold]{b.branch}[/bold]  {b.from_ref[:7]}..{b.to_ref[:7]}")
        console.print(Markdown(b.high_level_summary))
        for s in b.file_summaries:
            console.print(f"\n[bold cyan]{s.file}[/bold cyan]")
            console.print(f"  {s.summary}")
            if diffs and s.diff:
                console.print(Syntax(s.diff, "diff", theme="ansi_dark", word_wrap=True))
        if b.noisy_files:
            console.print(f"\n[dim]Noisy changes ({len(b.noisy_files)}): {', '.join(b.noisy_files)}[/dim]")

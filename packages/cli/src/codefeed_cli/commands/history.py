"""history command — list stored analysis reports."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()


@click.command("history")
@click.option("--limit", default=20, show_default=True, help="Maximum number of reports to show.")
@click.pass_context
def history_cmd(ctx, limit: int):
    """Show stored analysis reports, most recent first."""
    store = ctx.obj.get("store") if ctx.obj else None
    if store is None:
        raise click.UsageError("No store configured.")

    report_ids = store.list_report_ids()
    if not report_ids:
        console.print("[yellow]No analysis reports found. Run `codefeed analyze` first.[/yellow]")
        return

    # Show most recent first, capped at --limit.
    report_ids = list(reversed(report_ids))[:limit]

    table = Table(title="Analysis History", show_header=True, header_style="bold cyan")
    table.add_column("Report", style="bold")
    table.add_column("Created At", width=20)
    table.add_column("Branch")
    table.add_column("Range", width=16)
    table.add_column("Files", justify="right", width=6)
    table.add_column("Noisy", justify="right", width=6)

    for report_id in report_ids:
        report = store.get_report(report_id)
        if report is None:
            continue
        created = report.created_at[:19].replace("T", " ")
        for i, b in enumerate(report.branches):
            table.add_row(
                report.id if i == 0 else "",
                created if i == 0 else "",
                b.branch,
                f"{b.from_ref[:7]}..{b.to_ref[:7]}",
                str(len(b.file_summaries)),
                str(len(b.noisy_files)),
            )

    console.print(table)

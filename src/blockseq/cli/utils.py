"""
CLI utility helpers — consoles and report rendering.
"""

from __future__ import annotations

from collections.abc import Sequence

import typer
from rich.console import Console
from rich.table import Table

from blockseq.core.errors import BlockseqError
from blockseq.execution.models import BatchRun, BatchState
from blockseq.execution.queue import QueueReport

console = Console()
err_console = Console(stderr=True)

_STATE_STYLE = {
    BatchState.SUCCEEDED: "green",
    BatchState.FAILED: "red",
    BatchState.TIMED_OUT: "yellow",
}


def fail(error: BlockseqError) -> typer.Exit:
    """Print ``error`` and return the exit to raise (code 1)."""
    err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    return typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def print_report(report: QueueReport, *, title: str = "") -> None:
    """Render a queue run summary as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in report.to_dict().items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")


def print_runs(runs: Sequence[BatchRun], *, title: str = "Batches") -> None:
    """Render batch outcomes as a Rich table."""
    if not runs:
        console.print("[dim]No batches to run.[/dim]")
        return

    table = Table(title=title, show_lines=False, pad_edge=False)
    for col in ("index", "range", "state", "exit_code", "duration_seconds"):
        table.add_column(col, overflow="fold")
    for run in runs:
        style = _STATE_STYLE.get(run.state, "")
        duration = run.duration_seconds
        table.add_row(
            str(run.batch.index),
            run.batch.label,
            f"[{style}]{run.state.value}[/{style}]" if style else run.state.value,
            str(run.exit_code),
            f"{duration:.1f}" if duration is not None else "-",
        )
    console.print(table)

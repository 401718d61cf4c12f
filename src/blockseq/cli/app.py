"""
Root Typer application for the blockseq CLI.

Commands::

    blockseq encode     --project-id ID | --corpus PATH   encode in-process
    blockseq batches    --corpus PATH --batch-size N      supervised batch run
    blockseq show       PATH                              encode one local file
    blockseq legend                                       token vocabulary
    blockseq run-slice  (hidden)                          one batch unit

A run that completes exits 0 however many projects failed; failures are
reported through the errors file and the audit log. Setup errors (missing
corpus, conflicting options, misaligned or unwritable audit log) exit 1.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.table import Table

from blockseq import __version__
from blockseq.cli.utils import console, fail, print_report, print_runs
from blockseq.core.errors import ConfigError, ParseError, PersistError
from blockseq.core.logging import LogContext, configure_logging
from blockseq.core.settings import BlockseqSettings, get_settings
from blockseq.domain.encoder import encode
from blockseq.domain.vocabulary import HAT_BLOCKS, TOKEN_LEGEND
from blockseq.execution.audit import AuditLog
from blockseq.execution.pipeline import JobPipeline
from blockseq.execution.queue import JobQueue, QueueReport
from blockseq.execution.sink import ResultSink, SinkPaths
from blockseq.execution.supervisor import BatchSupervisor, slice_command
from blockseq.sources.corpus import read_corpus, slice_corpus
from blockseq.sources.parser import parse_document
from blockseq.sources.upgrader import DirectoryFormatUpgrader, HttpFormatUpgrader

app = typer.Typer(
    name="blockseq",
    help="blockseq — encode block-based projects into token sequences.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"blockseq {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Override BLOCKSEQ_LOG_LEVEL"),  # noqa: UP007
) -> None:
    """blockseq CLI — sequence encoding for project corpora."""
    settings = get_settings()
    configure_logging(level=log_level or settings.log_level, json_format=settings.json_logs)


# ── Shared helpers ───────────────────────────────────────────────────────


def _sink_paths(
    settings: BlockseqSettings,
    sequences: Path | None,
    identifiers: Path | None,
    errors: Path | None,
    error_details: Path | None,
) -> SinkPaths:
    base = SinkPaths.from_settings(settings)
    return SinkPaths(
        sequences=sequences or base.sequences,
        identifiers=identifiers or base.identifiers,
        errors=errors or base.errors,
        error_details=error_details or base.error_details,
    )


async def _run_queue(
    ids: list[str],
    paths: SinkPaths,
    *,
    settings: BlockseqSettings,
    source_dir: Path | None,
    concurrency: int | None,
) -> QueueReport:
    if source_dir is not None:
        upgrader = DirectoryFormatUpgrader(source_dir)
    else:
        upgrader = HttpFormatUpgrader(settings.project_server, timeout=settings.request_timeout)

    async with upgrader:
        queue = JobQueue(
            JobPipeline(upgrader, ResultSink(paths)),
            concurrency=concurrency or settings.concurrency,
            progress_interval=settings.progress_interval,
        )
        return await queue.run(ids)


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("encode")
def encode_cmd(
    project_id: str | None = typer.Option(None, "--project-id", "-p", help="Encode a single project"),  # noqa: UP007
    corpus: Path | None = typer.Option(None, "--corpus", "-c", help="Identifier CSV (default: BLOCKSEQ_CORPUS_PATH)"),  # noqa: UP007
    source_dir: Path | None = typer.Option(None, "--source-dir", help="Read <id>.sb3/<id>.json from here instead of HTTP"),  # noqa: UP007
    sequences: Path | None = typer.Option(None, "--sequences", help="Sequences output file"),  # noqa: UP007
    identifiers: Path | None = typer.Option(None, "--identifiers", help="Completed identifiers file"),  # noqa: UP007
    errors: Path | None = typer.Option(None, "--errors", help="Failed identifiers file"),  # noqa: UP007
    error_details: Path | None = typer.Option(None, "--error-details", help="JSON-lines failure details"),  # noqa: UP007
    concurrency: int | None = typer.Option(None, "--concurrency", "-j", min=1, help="Jobs in flight"),  # noqa: UP007
) -> None:
    """Encode one project or a whole corpus in this process.

    Example::

        blockseq encode --project-id 10128407
        blockseq encode --corpus all_project_ids.csv --concurrency 8
    """
    settings = get_settings()
    try:
        if project_id is not None and corpus is not None:
            raise ConfigError("--project-id and --corpus are mutually exclusive")
        if project_id is not None:
            ids = [project_id]
        else:
            ids = read_corpus(corpus or settings.corpus_path, header_sentinel=settings.header_sentinel)
    except ConfigError as e:
        raise fail(e) from None

    paths = _sink_paths(settings, sequences, identifiers, errors, error_details)
    report = asyncio.run(
        _run_queue(ids, paths, settings=settings, source_dir=source_dir, concurrency=concurrency)
    )
    print_report(report, title="Encode run")


@app.command("run-slice", hidden=True)
def run_slice_cmd(
    corpus: Path = typer.Option(..., "--corpus", help="Identifier CSV"),
    low: int = typer.Option(..., "--low", min=0, help="First identifier index (inclusive)"),
    high: int = typer.Option(..., "--high", min=0, help="End identifier index (exclusive)"),
    source_dir: Path | None = typer.Option(None, "--source-dir"),  # noqa: UP007
    sequences: Path | None = typer.Option(None, "--sequences"),  # noqa: UP007
    identifiers: Path | None = typer.Option(None, "--identifiers"),  # noqa: UP007
    errors: Path | None = typer.Option(None, "--errors"),  # noqa: UP007
    error_details: Path | None = typer.Option(None, "--error-details"),  # noqa: UP007
    concurrency: int | None = typer.Option(None, "--concurrency", min=1),  # noqa: UP007
) -> None:
    """One batch unit: run the job queue over ``[low, high)`` of the corpus."""
    settings = get_settings()
    try:
        ids = slice_corpus(
            read_corpus(corpus, header_sentinel=settings.header_sentinel), low, high
        )
    except ConfigError as e:
        raise fail(e) from None

    paths = _sink_paths(settings, sequences, identifiers, errors, error_details)
    with LogContext(batch=f"{low}-{high - 1}"):
        asyncio.run(
            _run_queue(ids, paths, settings=settings, source_dir=source_dir, concurrency=concurrency)
        )


@app.command("batches")
def batches_cmd(
    corpus: Path | None = typer.Option(None, "--corpus", "-c", help="Identifier CSV (default: BLOCKSEQ_CORPUS_PATH)"),  # noqa: UP007
    batch_size: int | None = typer.Option(None, "--batch-size", "-b", min=1, help="Identifiers per batch"),  # noqa: UP007
    timeout: float | None = typer.Option(None, "--timeout", "-t", min=0.001, help="Watchdog timeout per batch, seconds"),  # noqa: UP007
    audit_log: Path | None = typer.Option(None, "--audit-log", help="Batch outcome log"),  # noqa: UP007
    resume: bool = typer.Option(True, "--resume/--no-resume", help="Continue after the last audit record"),
    split_outputs: bool = typer.Option(False, "--split-outputs", help="Format {index}/{low}/{high}/{last} in output paths per batch"),
    source_dir: Path | None = typer.Option(None, "--source-dir", help="Read <id>.sb3/<id>.json from here instead of HTTP"),  # noqa: UP007
    sequences: Path | None = typer.Option(None, "--sequences"),  # noqa: UP007
    identifiers: Path | None = typer.Option(None, "--identifiers"),  # noqa: UP007
    errors: Path | None = typer.Option(None, "--errors"),  # noqa: UP007
    error_details: Path | None = typer.Option(None, "--error-details"),  # noqa: UP007
    concurrency: int | None = typer.Option(None, "--concurrency", "-j", min=1),  # noqa: UP007
) -> None:
    """Run the corpus batch by batch, one watched child process per batch.

    Example::

        blockseq batches --corpus all_project_ids.csv --batch-size 1000 --timeout 1800
        blockseq batches --split-outputs --sequences 'data/{low}-{last}.txt'
    """
    settings = get_settings()
    corpus_path = corpus or settings.corpus_path
    size = batch_size or settings.batch_size

    extra: list[str] = []
    if concurrency is not None:
        extra += ["--concurrency", str(concurrency)]
    if source_dir is not None:
        extra += ["--source-dir", str(source_dir)]

    try:
        corpus_size = len(read_corpus(corpus_path, header_sentinel=settings.header_sentinel))
        supervisor = BatchSupervisor(
            corpus_size,
            size,
            timeout=timeout or settings.batch_timeout,
            audit_log=AuditLog(audit_log or settings.audit_log_path),
            command_factory=slice_command(
                corpus_path,
                _sink_paths(settings, sequences, identifiers, errors, error_details),
                split_outputs=split_outputs,
                extra_args=extra,
            ),
            kill_timeout=settings.kill_timeout,
        )
        runs = asyncio.run(supervisor.run(resume=resume))
    except (ConfigError, PersistError) as e:
        raise fail(e) from None

    print_runs(runs)


@app.command("show")
def show_cmd(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Project file (.sb3 or project.json)"),
    trigger: list[str] | None = typer.Option(None, "--trigger", help="Extra opcode allowed to start a stack"),  # noqa: UP007
    count: bool = typer.Option(False, "--count", help="Print the token count instead of the sequence"),
) -> None:
    """Encode one local project file and print its sequence."""
    try:
        project = parse_document(path.read_bytes())
    except ParseError as e:
        raise fail(e) from None

    sequence = encode(project, triggers=HAT_BLOCKS | set(trigger or ()))
    typer.echo(str(len(sequence)) if count else sequence.text)


@app.command("legend")
def legend_cmd() -> None:
    """Print the token vocabulary."""
    table = Table(title="Token vocabulary", pad_edge=False)
    table.add_column("token", style="cyan")
    table.add_column("meaning")
    for token, meaning in TOKEN_LEGEND.items():
        table.add_row(token, meaning)
    console.print(table)


__all__ = ["app"]

"""Batch supervisor — one isolated process per batch, watched by a timer.

WHY
───
A single pathological project can hang a fetch or exhaust memory. Running
each batch in its own child process means a crash or a hang costs one
batch, never the run: the supervisor records the outcome, appends it to the
audit log and moves on.

ARCHITECTURE
────────────
::

    BatchSupervisor.run()
      for batch in plan_batches(M, B, start=resume_index):
        ├── DISPATCHED  command_factory(batch) → create_subprocess_exec
        ├── RUNNING     wait_for(proc.wait(), timeout)
        │     └── timeout: killed_by_watchdog = True
        │                  terminate → wait(kill_timeout) → kill
        ├── SUCCEEDED   exit 0
        ├── FAILED      any other exit (BatchCrash), or spawn failure
        ├── TIMED_OUT   killed_by_watchdog (BatchTimeout)
        └── AuditLog.append(...)   fsynced before the next batch

Batches run strictly one at a time, so the audit log is totally ordered.
The watchdog flag is set before the termination signal is sent; the exit
status of a killed unit is never interpreted on its own.

Example::

    supervisor = BatchSupervisor(
        corpus_size=2500,
        batch_size=1000,
        timeout=1800,
        audit_log=AuditLog("data/batches.log"),
        command_factory=slice_command("ids.csv", SinkPaths.from_settings(settings)),
    )
    runs = await supervisor.run()
"""

from __future__ import annotations

import asyncio
import sys
from collections import Counter
from collections.abc import Callable, Sequence
from pathlib import Path

from blockseq.core.errors import BatchCrash, BatchTimeout, PersistError
from blockseq.core.logging import LogContext, get_logger
from blockseq.execution.audit import AuditLog, AuditRecord
from blockseq.execution.models import Batch, BatchRun, BatchState, plan_batches
from blockseq.execution.sink import SinkPaths

logger = get_logger(__name__)

CommandFactory = Callable[[Batch], Sequence[str]]


def slice_command(
    corpus_path: str | Path,
    paths: SinkPaths,
    *,
    split_outputs: bool = False,
    extra_args: Sequence[str] = (),
) -> CommandFactory:
    """Build ``python -m blockseq run-slice ...`` for each batch.

    With ``split_outputs`` the output paths are formatted per batch (see
    ``SinkPaths.for_batch``).
    """

    def build(batch: Batch) -> list[str]:
        batch_paths = paths.for_batch(batch) if split_outputs else paths
        return [
            sys.executable, "-m", "blockseq", "run-slice",
            "--corpus", str(corpus_path),
            "--low", str(batch.low),
            "--high", str(batch.high),
            *batch_paths.as_args(),
            *extra_args,
        ]

    return build


class BatchSupervisor:
    """Runs the batches of a corpus sequentially, each in a child process.

    Parameters
    ----------
    corpus_size : int
        Number of identifiers in the corpus.
    batch_size : int
        Identifiers per batch.
    timeout : float
        Watchdog timeout per batch, seconds.
    audit_log : AuditLog
        Receives one record per batch before the next one starts.
    command_factory : CommandFactory
        Maps a batch to the argv of its execution unit.
    kill_timeout : float
        Grace period between SIGTERM and SIGKILL.
    """

    def __init__(
        self,
        corpus_size: int,
        batch_size: int,
        *,
        timeout: float,
        audit_log: AuditLog,
        command_factory: CommandFactory,
        kill_timeout: float = 5.0,
    ) -> None:
        self.corpus_size = corpus_size
        self.batch_size = batch_size
        self.timeout = timeout
        self.audit_log = audit_log
        self.command_factory = command_factory
        self.kill_timeout = kill_timeout

    def plan(self, *, resume: bool = True) -> list[Batch]:
        """Batches still to run, starting after the last audit record if ``resume``."""
        start = self.audit_log.resume_index(self.batch_size, self.corpus_size) if resume else 1
        return plan_batches(self.corpus_size, self.batch_size, start_index=start)

    async def run(self, *, resume: bool = True) -> list[BatchRun]:
        """Run every remaining batch. Never raises for a failed batch.

        Raises:
            ConfigError: the audit log cannot be read or does not line up
            PersistError: an outcome could not be appended to the audit log
        """
        batches = self.plan(resume=resume)
        logger.info(
            "supervisor.start",
            corpus_size=self.corpus_size,
            batch_size=self.batch_size,
            batches=len(batches),
            first_index=batches[0].index if batches else None,
            timeout=self.timeout,
        )

        runs: list[BatchRun] = []
        for batch in batches:
            run = await self.run_batch(batch)
            runs.append(run)
            try:
                self.audit_log.append(AuditRecord.for_batch(batch, run.state))
            except PersistError as e:
                # an unrecorded batch would be re-run or skipped on resume; stop here
                logger.error("supervisor.audit_failed", batch=batch.label, state=run.state.value, error=str(e))
                raise

        outcomes = Counter(run.state.value for run in runs)
        logger.info("supervisor.complete", batches=len(runs), **outcomes)
        return runs

    async def run_batch(self, batch: Batch) -> BatchRun:
        """Dispatch one batch and wait for it under the watchdog."""
        run = BatchRun(batch)
        with LogContext(batch=batch.label):
            command = list(self.command_factory(batch))
            try:
                process = await asyncio.create_subprocess_exec(*command)
            except OSError as e:
                run.error = BatchCrash(
                    f"Could not start batch unit: {e}", cause=e
                ).with_context(batch=batch.label)
                run.transition_to(BatchState.FAILED)
                logger.error("batch.spawn_failed", index=batch.index, error=str(e))
                return run

            run.transition_to(BatchState.RUNNING)
            logger.info("batch.dispatched", index=batch.index, pid=process.pid)

            try:
                await asyncio.wait_for(process.wait(), timeout=self.timeout)
            except TimeoutError:
                run.killed_by_watchdog = True
                logger.warning("batch.watchdog_fired", index=batch.index, timeout=self.timeout)
                await self._terminate(process)
            except asyncio.CancelledError:
                await self._terminate(process)
                raise

            run.exit_code = process.returncode
            self._settle(run)
        return run

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """SIGTERM, then SIGKILL after ``kill_timeout``."""
        try:
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=self.kill_timeout)
            except TimeoutError:
                process.kill()
        except ProcessLookupError:
            pass  # already gone
        await process.wait()

    def _settle(self, run: BatchRun) -> None:
        batch = run.batch
        if run.killed_by_watchdog:
            run.error = BatchTimeout(
                f"Batch {batch.label} exceeded {self.timeout}s", timeout=self.timeout
            ).with_context(batch=batch.label)
            run.transition_to(BatchState.TIMED_OUT)
            logger.error("batch.timed_out", index=batch.index, exit_code=run.exit_code)
        elif run.exit_code == 0:
            run.transition_to(BatchState.SUCCEEDED)
            logger.info("batch.succeeded", index=batch.index, duration_seconds=run.duration_seconds)
        else:
            run.error = BatchCrash(
                f"Batch {batch.label} exited with status {run.exit_code}",
                exit_code=run.exit_code,
            ).with_context(batch=batch.label)
            run.transition_to(BatchState.FAILED)
            logger.error("batch.crashed", index=batch.index, exit_code=run.exit_code)

"""Job queue — bounded worker pool over a finite list of project ids.

WHY
───
One batch unit encodes up to ``batch_size`` projects. Most of the time is
spent waiting on the project server, so a handful of asyncio workers
pulling from an ``asyncio.Queue`` keeps the network busy without any
threads.

ARCHITECTURE
────────────
::

    JobQueue(pipeline, concurrency=N)
      ├── .run(ids)          ─ enqueue, start N workers, join, flush errors
      ├── .drained           ─ asyncio.Event set once every id is terminal
      ├── .pending/.active   ─ queue depth / jobs in flight
      └── QueueReport        ─ totals, failures by stage, versions, duration

    worker ─┐
    worker ─┼─▶ JobPipeline.run(id) ─▶ Job ─▶ ErrorAccumulator (failed)
    worker ─┘                                 └─▶ ResultSink.append_errors (once)

Failed jobs are collected in a per-run ``ErrorAccumulator`` owned by the
queue and flushed to the sink once, after the queue drains.

Example::

    queue = JobQueue(pipeline, concurrency=4)
    report = await queue.run(["10128407", "10128408"])
    print(report.succeeded, report.failed)
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from blockseq.core.errors import ConfigError, PersistError
from blockseq.core.logging import get_logger
from blockseq.execution.models import Job, JobFailure, utcnow
from blockseq.execution.pipeline import JobPipeline

logger = get_logger(__name__)


class ErrorAccumulator:
    """Failures of one queue run, in completion order."""

    def __init__(self) -> None:
        self._failures: list[JobFailure] = []

    def record(self, failure: JobFailure) -> None:
        self._failures.append(failure)

    @property
    def failures(self) -> tuple[JobFailure, ...]:
        return tuple(self._failures)

    def by_stage(self) -> dict[str, int]:
        return dict(Counter(f.stage.value for f in self._failures))

    def __len__(self) -> int:
        return len(self._failures)


@dataclass
class QueueReport:
    """Aggregate outcome of one queue run."""

    total: int
    succeeded: int
    failed: int
    empty: int
    failures_by_stage: dict[str, int]
    version_counts: dict[int, int]
    started_at: datetime
    completed_at: datetime
    failures: tuple[JobFailure, ...] = field(default=(), repr=False)

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "empty": self.empty,
            "failures_by_stage": self.failures_by_stage,
            "version_counts": self.version_counts,
            "duration_seconds": self.duration_seconds,
        }


class JobQueue:
    """Runs the job pipeline over a list of ids with bounded concurrency.

    Parameters
    ----------
    pipeline : JobPipeline
        Drives one id to a terminal state; its sink also receives the
        run's error flush.
    concurrency : int
        Number of workers (>= 1).
    progress_interval : float
        Seconds between ``queue.progress`` log lines; ``0`` disables them.
    """

    def __init__(
        self,
        pipeline: JobPipeline,
        *,
        concurrency: int = 4,
        progress_interval: float = 10.0,
    ) -> None:
        if concurrency < 1:
            raise ConfigError(f"concurrency must be >= 1, got {concurrency}")
        self.pipeline = pipeline
        self.concurrency = concurrency
        self.progress_interval = progress_interval
        self.drained = asyncio.Event()
        self._queue: asyncio.Queue[str] | None = None
        self._active = 0
        self._completed = 0

    # ── Inspection ───────────────────────────────────────────────────

    @property
    def pending(self) -> int:
        """Ids not yet picked up by a worker."""
        return self._queue.qsize() if self._queue is not None else 0

    @property
    def active(self) -> int:
        """Jobs currently in flight."""
        return self._active

    # ── Execution ────────────────────────────────────────────────────

    async def run(self, project_ids: Iterable[str]) -> QueueReport:
        """Process every id to a terminal state and flush the run's errors."""
        ids = list(project_ids)
        started_at = utcnow()
        self.drained.clear()
        self._queue = queue = asyncio.Queue()
        self._active = 0
        self._completed = 0
        for project_id in ids:
            queue.put_nowait(project_id)

        errors = ErrorAccumulator()
        tally: dict[str, Any] = {"succeeded": 0, "empty": 0, "versions": Counter()}

        logger.info("queue.start", total=len(ids), concurrency=self.concurrency)

        workers = [
            asyncio.create_task(self._worker(queue, errors, tally))
            for _ in range(min(self.concurrency, len(ids)))
        ]
        progress = (
            asyncio.create_task(self._report_progress(len(ids)))
            if self.progress_interval > 0 and ids
            else None
        )
        try:
            await queue.join()
        finally:
            tasks = workers + ([progress] if progress is not None else [])
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        self.drained.set()
        await self._flush(errors)

        report = QueueReport(
            total=len(ids),
            succeeded=tally["succeeded"],
            failed=len(errors),
            empty=tally["empty"],
            failures_by_stage=errors.by_stage(),
            version_counts=dict(tally["versions"]),
            started_at=started_at,
            completed_at=utcnow(),
            failures=errors.failures,
        )
        logger.info("queue.complete", **report.to_dict())
        return report

    async def _worker(
        self, queue: asyncio.Queue[str], errors: ErrorAccumulator, tally: dict[str, Any]
    ) -> None:
        while True:
            project_id = await queue.get()
            self._active += 1
            try:
                job = await self.pipeline.run(project_id)
                self._record(job, errors, tally)
            finally:
                self._active -= 1
                self._completed += 1
                queue.task_done()

    @staticmethod
    def _record(job: Job, errors: ErrorAccumulator, tally: dict[str, Any]) -> None:
        if job.schema_version is not None:
            tally["versions"][job.schema_version] += 1
        if job.failure is not None:
            errors.record(job.failure)
            return
        tally["succeeded"] += 1
        if job.sequence is not None and job.sequence.is_empty:
            tally["empty"] += 1

    async def _report_progress(self, total: int) -> None:
        while True:
            await asyncio.sleep(self.progress_interval)
            logger.info(
                "queue.progress",
                pending=self.pending,
                active=self.active,
                completed=self._completed,
                total=total,
            )

    async def _flush(self, errors: ErrorAccumulator) -> None:
        try:
            await self.pipeline.sink.append_errors(errors.failures)
        except PersistError as e:
            logger.error("queue.errors_flush_failed", failed=len(errors), error=str(e))

"""Job and batch records with their state machines.

Job lifecycle (strictly forward, no stage retried)::

    PENDING → NORMALIZING → PARSING → ENCODING → PERSISTING → DONE
                   └──────────┴──────────┴───────────┴──────→ FAILED

Batch lifecycle::

    DISPATCHED → RUNNING → SUCCEEDED | FAILED | TIMED_OUT
         └─────────────→ FAILED   (unit could not be started)

Transitions are enforced by ``validate_job_transition`` and
``validate_batch_transition``; anything else raises
``InvalidTransitionError``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from blockseq.core.errors import BlockseqError, ConfigError, InvalidTransitionError
from blockseq.domain.encoder import TokenSequence


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


# =============================================================================
# JOBS
# =============================================================================


class JobState(str, Enum):
    PENDING = "pending"
    NORMALIZING = "normalizing"
    PARSING = "parsing"
    ENCODING = "encoding"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


JOB_VALID_TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.PENDING: frozenset({JobState.NORMALIZING, JobState.FAILED}),
    JobState.NORMALIZING: frozenset({JobState.PARSING, JobState.FAILED}),
    JobState.PARSING: frozenset({JobState.ENCODING, JobState.FAILED}),
    JobState.ENCODING: frozenset({JobState.PERSISTING, JobState.FAILED}),
    JobState.PERSISTING: frozenset({JobState.DONE, JobState.FAILED}),
    JobState.DONE: frozenset(),
    JobState.FAILED: frozenset(),
}


def validate_job_transition(current: JobState, target: JobState) -> None:
    if target not in JOB_VALID_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current.value, target.value, "JobState")


@dataclass(frozen=True)
class JobFailure:
    """Which stage failed for which project, and why."""

    project_id: str
    stage: JobState
    error: BlockseqError

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": self.project_id,
            "stage": self.stage.value,
            "error": self.error.to_dict(),
        }


@dataclass
class Job:
    """One project moving through the pipeline."""

    project_id: str
    state: JobState = JobState.PENDING
    failure: JobFailure | None = None
    sequence: TokenSequence | None = None
    schema_version: int | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def transition_to(self, target: JobState) -> None:
        validate_job_transition(self.state, target)
        if self.started_at is None:
            self.started_at = utcnow()
        self.state = target
        if self.is_terminal:
            self.completed_at = utcnow()

    def fail(self, error: BlockseqError) -> Job:
        """Record ``error`` against the current stage and stop."""
        stage = self.state
        error.with_context(project_id=self.project_id, stage=stage.value)
        self.transition_to(JobState.FAILED)
        self.failure = JobFailure(self.project_id, stage, error)
        return self

    @property
    def is_terminal(self) -> bool:
        return self.state in (JobState.DONE, JobState.FAILED)

    @property
    def succeeded(self) -> bool:
        return self.state is JobState.DONE

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": self.project_id,
            "state": self.state.value,
            "schema_version": self.schema_version,
            "tokens": len(self.sequence) if self.sequence is not None else None,
            "duration_seconds": self.duration_seconds,
            "failure": self.failure.to_dict() if self.failure else None,
        }


# =============================================================================
# BATCHES
# =============================================================================


class BatchState(str, Enum):
    DISPATCHED = "dispatched"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


BATCH_VALID_TRANSITIONS: dict[BatchState, frozenset[BatchState]] = {
    BatchState.DISPATCHED: frozenset({BatchState.RUNNING, BatchState.FAILED}),
    BatchState.RUNNING: frozenset({
        BatchState.SUCCEEDED,
        BatchState.FAILED,
        BatchState.TIMED_OUT,
    }),
    BatchState.SUCCEEDED: frozenset(),
    BatchState.FAILED: frozenset(),
    BatchState.TIMED_OUT: frozenset(),
}


def validate_batch_transition(current: BatchState, target: BatchState) -> None:
    if target not in BATCH_VALID_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current.value, target.value, "BatchState")


@dataclass(frozen=True)
class Batch:
    """Half-open identifier slice ``[low, high)`` with its 1-based index."""

    index: int
    low: int
    high: int

    @property
    def size(self) -> int:
        return self.high - self.low

    @property
    def label(self) -> str:
        """``"<low>-<last>"`` with the inclusive index of the last identifier."""
        return f"{self.low}-{self.high - 1}"


def plan_batches(corpus_size: int, batch_size: int, start_index: int = 1) -> list[Batch]:
    """Batches ``start_index..ceil(corpus_size / batch_size)``, disjoint, covering the corpus.

    >>> [b.label for b in plan_batches(2500, 1000)]
    ['0-999', '1000-1999', '2000-2499']
    """
    if batch_size < 1:
        raise ConfigError(f"batch_size must be >= 1, got {batch_size}")
    if corpus_size < 0:
        raise ConfigError(f"corpus_size must be >= 0, got {corpus_size}")

    count = math.ceil(corpus_size / batch_size)
    return [
        Batch(index, (index - 1) * batch_size, min(index * batch_size, corpus_size))
        for index in range(max(1, start_index), count + 1)
    ]


@dataclass
class BatchRun:
    """What happened to one batch unit."""

    batch: Batch
    state: BatchState = BatchState.DISPATCHED
    exit_code: int | None = None
    error: BlockseqError | None = None
    killed_by_watchdog: bool = False
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None

    def transition_to(self, target: BatchState) -> None:
        validate_batch_transition(self.state, target)
        self.state = target
        if target not in (BatchState.DISPATCHED, BatchState.RUNNING):
            self.finished_at = utcnow()

    @property
    def duration_seconds(self) -> float | None:
        if self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch": self.batch.label,
            "index": self.batch.index,
            "state": self.state.value,
            "exit_code": self.exit_code,
            "killed_by_watchdog": self.killed_by_watchdog,
            "duration_seconds": self.duration_seconds,
            "error": self.error.to_dict() if self.error else None,
        }

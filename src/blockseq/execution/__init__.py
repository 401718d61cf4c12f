"""Execution: job pipeline, worker queue, result sink and batch supervisor."""

from blockseq.execution.audit import AuditLog, AuditMarker, AuditRecord
from blockseq.execution.models import (
    Batch,
    BatchRun,
    BatchState,
    Job,
    JobFailure,
    JobState,
    plan_batches,
)
from blockseq.execution.pipeline import JobPipeline
from blockseq.execution.queue import ErrorAccumulator, JobQueue, QueueReport
from blockseq.execution.sink import ResultSink, SinkPaths
from blockseq.execution.supervisor import BatchSupervisor, slice_command

__all__ = [
    "AuditLog",
    "AuditMarker",
    "AuditRecord",
    "Batch",
    "BatchRun",
    "BatchState",
    "Job",
    "JobFailure",
    "JobState",
    "plan_batches",
    "JobPipeline",
    "ErrorAccumulator",
    "JobQueue",
    "QueueReport",
    "ResultSink",
    "SinkPaths",
    "BatchSupervisor",
    "slice_command",
]

"""Job pipeline — Normalize → Parse → Encode → Persist for one project.

WHY
───
A corpus run touches hundreds of thousands of projects; any one of them may
be unreachable, malformed or slow. Each stage therefore returns a
``Result`` and the driver stops at the first ``Err``, recording the failing
stage on the ``Job`` instead of raising into the worker.

ARCHITECTURE
────────────
::

    JobPipeline.run(project_id) -> Job
      ├── NORMALIZING  upgrader.upgrade(id)     Err → NormalizeError
      ├── PARSING      parser(body)             Err → ParseError
      ├── ENCODING     encoder(project)         never fails
      ├── PERSISTING   sink.append_result(...)  Err → PersistError
      └── DONE | FAILED(stage, error)

Example::

    pipeline = JobPipeline(upgrader, sink)
    job = await pipeline.run("10128407")
    job.state        # JobState.DONE
    job.sequence     # TokenSequence(...)
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from blockseq.core.errors import (
    BlockseqError,
    NormalizeError,
    ParseError,
    PersistError,
)
from blockseq.core.logging import get_logger
from blockseq.core.result import Err, Ok, Result, try_result
from blockseq.domain.encoder import TokenSequence, encode
from blockseq.domain.model import Project
from blockseq.execution.models import Job, JobState
from blockseq.execution.sink import ResultSink
from blockseq.sources.parser import parse_document
from blockseq.sources.upgrader import FormatUpgrader, ProjectBody

logger = get_logger(__name__)

Stage = Callable[[Job, Any], Awaitable[Result[Any]]]


def _as_parse_error(error: Exception) -> Exception:
    if isinstance(error, ParseError):
        return error
    return ParseError(f"Parser failed: {error}", cause=error)


class JobPipeline:
    """Runs one project through the four stages.

    Parameters
    ----------
    upgrader : FormatUpgrader
        Produces a version-3 body for an identifier.
    sink : ResultSink
        Receives the sequence and identifier of successful jobs.
    parser, encoder
        Overridable for tests; default to ``parse_document`` and ``encode``.
    """

    def __init__(
        self,
        upgrader: FormatUpgrader,
        sink: ResultSink,
        *,
        parser: Callable[[ProjectBody], Project] = parse_document,
        encoder: Callable[[Project], TokenSequence] = encode,
    ) -> None:
        self.upgrader = upgrader
        self.sink = sink
        self._parser = parser
        self._encoder = encoder
        self._stages: list[tuple[JobState, Stage]] = [
            (JobState.NORMALIZING, self._normalize),
            (JobState.PARSING, self._parse),
            (JobState.ENCODING, self._encode),
            (JobState.PERSISTING, self._persist),
        ]

    async def run(self, project_id: str) -> Job:
        """Drive ``project_id`` to DONE or FAILED. Never raises."""
        job = Job(project_id)
        value: Any = project_id

        for state, stage in self._stages:
            job.transition_to(state)
            try:
                result = await stage(job, value)
            except Exception as e:
                logger.exception("job.unexpected_error", project_id=project_id, stage=state.value)
                return job.fail(BlockseqError(f"Unexpected error in {state.value}: {e}", cause=e))

            match result:
                case Ok(output):
                    value = output
                case Err(error):
                    self._log_failure(job, error)
                    return job.fail(error)

        job.transition_to(JobState.DONE)
        logger.debug(
            "job.done",
            project_id=project_id,
            tokens=len(job.sequence) if job.sequence is not None else 0,
        )
        return job

    # ── Stages ───────────────────────────────────────────────────────

    async def _normalize(self, job: Job, project_id: str) -> Result[ProjectBody]:
        try:
            return Ok(await self.upgrader.upgrade(project_id))
        except NormalizeError as e:
            return Err(e)
        except Exception as e:
            return Err(NormalizeError(f"Upgrader failed: {e}", cause=e))

    async def _parse(self, job: Job, body: ProjectBody) -> Result[Project]:
        result = try_result(self._parser, body).map_err(_as_parse_error)
        if isinstance(result, Ok):
            job.schema_version = result.value.schema_version
        return result

    async def _encode(self, job: Job, project: Project) -> Result[TokenSequence]:
        job.sequence = self._encoder(project)
        return Ok(job.sequence)

    async def _persist(self, job: Job, sequence: TokenSequence) -> Result[TokenSequence]:
        try:
            await self.sink.append_result(job.project_id, sequence)
        except PersistError as e:
            return Err(e)
        return Ok(sequence)

    # ── Logging ──────────────────────────────────────────────────────

    def _log_failure(self, job: Job, error: Exception) -> None:
        fields = {
            "project_id": job.project_id,
            "stage": job.state.value,
            "error": str(error),
            "error_type": type(error).__name__,
        }
        if isinstance(error, PersistError):
            logger.error("job.persist_failed", **fields)
        else:
            logger.warning("job.failed", **fields)

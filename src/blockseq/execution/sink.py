"""Result sink — append-only persistence for one queue run.

Streams
───────
    sequences       one line per project with a non-empty token sequence
    identifiers     one line per completed job
    errors          one line per failed identifier, written once per run
    error_details   optional JSON lines (project_id, stage, error) alongside

All appends go through a single writer guarded by an ``asyncio.Lock`` and
each record is one ``write`` of a complete line, so concurrent jobs never
interleave partial lines. For a job, the sequence line is written before the
identifier line; if either append fails the job is failed with
``PersistError`` (an already-written sequence line is kept).

Example::

    sink = ResultSink(SinkPaths.from_settings(settings))
    await sink.append_result("10128407", sequence)
    await sink.append_errors(failures)
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from dataclasses import dataclass, replace
from pathlib import Path

from blockseq.core.errors import PersistError
from blockseq.core.settings import BlockseqSettings
from blockseq.domain.encoder import TokenSequence
from blockseq.execution.models import Batch, JobFailure


@dataclass(frozen=True)
class SinkPaths:
    sequences: Path
    identifiers: Path
    errors: Path
    error_details: Path | None = None

    @classmethod
    def from_settings(cls, settings: BlockseqSettings) -> SinkPaths:
        return cls(
            sequences=settings.sequences_path,
            identifiers=settings.identifiers_path,
            errors=settings.errors_path,
            error_details=settings.error_details_path,
        )

    def for_batch(self, batch: Batch) -> SinkPaths:
        """Fill ``{index}``/``{low}``/``{high}``/``{last}`` placeholders for one batch."""

        def fmt(path: Path | None) -> Path | None:
            if path is None:
                return None
            return Path(str(path).format(
                index=batch.index, low=batch.low, high=batch.high, last=batch.high - 1
            ))

        return replace(
            self,
            sequences=fmt(self.sequences),
            identifiers=fmt(self.identifiers),
            errors=fmt(self.errors),
            error_details=fmt(self.error_details),
        )

    def as_args(self) -> list[str]:
        """Command-line overrides understood by ``blockseq run-slice``."""
        args = [
            "--sequences", str(self.sequences),
            "--identifiers", str(self.identifiers),
            "--errors", str(self.errors),
        ]
        if self.error_details is not None:
            args += ["--error-details", str(self.error_details)]
        return args


class ResultSink:
    """Serialized appender over the output streams of one run."""

    def __init__(self, paths: SinkPaths):
        self.paths = paths
        self._lock = asyncio.Lock()

    async def append_result(self, project_id: str, sequence: TokenSequence) -> None:
        """Record a successful job.

        Raises:
            PersistError: either append failed
        """
        async with self._lock:
            if not sequence.is_empty:
                await self._append(self.paths.sequences, sequence.text + "\n", project_id)
            await self._append(self.paths.identifiers, project_id + "\n", project_id)

    async def append_errors(self, failures: Sequence[JobFailure]) -> None:
        """Flush a run's failed identifiers (and details, if configured)."""
        if not failures:
            return
        async with self._lock:
            lines = "".join(f"{f.project_id}\n" for f in failures)
            await self._append(self.paths.errors, lines)
            if self.paths.error_details is not None:
                details = "".join(json.dumps(f.to_dict(), default=str) + "\n" for f in failures)
                await self._append(self.paths.error_details, details)

    async def _append(self, path: Path, data: str, project_id: str | None = None) -> None:
        try:
            await asyncio.to_thread(_append_text, path, data)
        except OSError as e:
            raise PersistError(f"Cannot append to {path}: {e}", cause=e).with_context(
                project_id=project_id, path=str(path)
            )


def _append_text(path: Path, data: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(data)

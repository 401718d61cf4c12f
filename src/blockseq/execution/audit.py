"""Append-only audit log of batch outcomes.

One line per batch, written and fsynced before the supervisor advances::

    SUCCESS 0-999
    ERROR 1000-1999
    TIMEOUT 2000-2499

The range is ``<low>-<last>`` with ``last`` the inclusive index of the final
identifier in the batch. A restarted supervisor resumes after the last line.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from blockseq.core.errors import ConfigError, PersistError
from blockseq.execution.models import Batch, BatchState


class AuditMarker(str, Enum):
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    TIMEOUT = "TIMEOUT"

    @classmethod
    def for_state(cls, state: BatchState) -> AuditMarker:
        if state is BatchState.SUCCEEDED:
            return cls.SUCCESS
        if state is BatchState.TIMED_OUT:
            return cls.TIMEOUT
        if state is BatchState.FAILED:
            return cls.ERROR
        raise ValueError(f"Batch state {state.value} is not terminal")


_LINE = re.compile(r"^(?P<marker>[A-Z]+) (?P<low>\d+)-(?P<last>\d+)$")


@dataclass(frozen=True)
class AuditRecord:
    marker: AuditMarker
    low: int
    last: int

    @classmethod
    def for_batch(cls, batch: Batch, state: BatchState) -> AuditRecord:
        return cls(AuditMarker.for_state(state), batch.low, batch.high - 1)

    @classmethod
    def parse(cls, line: str) -> AuditRecord:
        """Parse one audit line.

        Raises:
            ConfigError: the line is not ``"<marker> <low>-<last>"``
        """
        match = _LINE.match(line.strip())
        if match is None:
            raise ConfigError(f"Malformed audit line: {line.strip()!r}")
        try:
            marker = AuditMarker(match["marker"])
        except ValueError as e:
            raise ConfigError(f"Unknown audit marker: {match['marker']!r}", cause=e)
        return cls(marker, int(match["low"]), int(match["last"]))

    def format(self) -> str:
        return f"{self.marker.value} {self.low}-{self.last}"


class AuditLog:
    """Synchronous append-only audit file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def append(self, record: AuditRecord) -> None:
        """Append and fsync one record.

        Raises:
            PersistError: the audit file cannot be written
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(record.format() + "\n")
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise PersistError(
                f"Cannot append to audit log {self.path}: {e}", cause=e
            ).with_context(path=str(self.path))

    def records(self) -> list[AuditRecord]:
        if not self.path.exists():
            return []
        try:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"Cannot read audit log {self.path}: {e}", cause=e) from e
        return [AuditRecord.parse(line) for line in lines if line.strip()]

    def last(self) -> AuditRecord | None:
        records = self.records()
        return records[-1] if records else None

    def resume_index(self, batch_size: int, corpus_size: int | None = None) -> int:
        """Index of the first batch after the last recorded one (1 if none).

        The last record must cover a whole batch of ``batch_size``, or the
        final partial batch when ``corpus_size`` is given.

        Raises:
            ConfigError: the last record does not line up with ``batch_size``
        """
        record = self.last()
        if record is None:
            return 1
        end = record.last + 1
        aligned = record.low % batch_size == 0 and (
            end == record.low + batch_size
            or (corpus_size is not None and end == corpus_size and end - record.low < batch_size)
        )
        if not aligned:
            raise ConfigError(
                f"Audit record {record.format()!r} does not match batch size {batch_size}"
            ).with_context(path=str(self.path))
        return record.low // batch_size + 2

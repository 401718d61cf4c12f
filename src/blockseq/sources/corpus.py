"""
Corpus source — the ordered list of project identifiers to process.

Reads the first column of a CSV file. Rows whose first field equals the
header sentinel (``"id"`` by default) and blank rows are dropped.

Usage:
    from blockseq.sources.corpus import read_corpus, slice_corpus

    ids = read_corpus("all_project_ids.csv")
    batch = slice_corpus(ids, 1000, 2000)
"""

from __future__ import annotations

import csv
from collections.abc import Sequence
from pathlib import Path

from blockseq.core.errors import ConfigError


def read_corpus(
    path: str | Path,
    *,
    header_sentinel: str = "id",
    encoding: str = "utf-8",
) -> list[str]:
    """Read identifiers from ``path``.

    Raises:
        ConfigError: the file does not exist or cannot be read
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Corpus file not found: {path}")

    ids: list[str] = []
    try:
        with path.open(newline="", encoding=encoding) as f:
            for row in csv.reader(f):
                if not row:
                    continue
                value = row[0].strip()
                if value and value != header_sentinel:
                    ids.append(value)
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise ConfigError(f"Cannot read corpus file {path}: {e}", cause=e) from e
    return ids


def slice_corpus(ids: Sequence[str], low: int, high: int) -> list[str]:
    """``ids[low:high]`` clamped to the corpus bounds."""
    low = max(0, low)
    high = min(len(ids), high)
    return list(ids[low:high]) if low < high else []

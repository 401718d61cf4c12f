"""Runtime settings for blockseq.

``BlockseqSettings`` gathers every knob a corpus run needs (project server,
concurrency, batch size, watchdog timeout, output paths) in one validated,
environment-driven object. CLI options override individual fields.

Fields
──────
project_server     : Base URL projects are fetched from (id is appended)
request_timeout    : Per-request HTTP timeout in seconds
concurrency        : Jobs in flight inside one batch unit
batch_size         : Identifiers per batch unit
batch_timeout      : Watchdog timeout per batch unit, seconds
kill_timeout       : Grace period between SIGTERM and SIGKILL
progress_interval  : Seconds between queue progress log lines
header_sentinel    : First-column value that marks the corpus header row
corpus_path        : Default identifier CSV
sequences_path     : Encoded sequences, one project per line
identifiers_path   : Successfully completed identifiers
errors_path        : Failed identifiers, flushed once per run
error_details_path : Optional JSON-lines failure details
audit_log_path     : One line per batch outcome

Examples:
    >>> import os
    >>> os.environ["BLOCKSEQ_BATCH_SIZE"] = "500"
    >>> BlockseqSettings().batch_size
    500
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BlockseqSettings(BaseSettings):
    """Settings read from ``BLOCKSEQ_*`` environment variables and ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="BLOCKSEQ_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Source ───────────────────────────────────────────────────
    project_server: str = "https://projects.scratch.mit.edu/"
    request_timeout: float = Field(default=30.0, gt=0)

    # ── Execution ────────────────────────────────────────────────
    concurrency: int = Field(default=4, ge=1)
    batch_size: int = Field(default=1000, ge=1)
    batch_timeout: float = Field(default=1800.0, gt=0)
    kill_timeout: float = Field(default=5.0, gt=0)
    progress_interval: float = Field(default=10.0, gt=0)

    # ── Corpus ───────────────────────────────────────────────────
    header_sentinel: str = "id"
    corpus_path: Path = Path("all_project_ids.csv")

    # ── Outputs ──────────────────────────────────────────────────
    sequences_path: Path = Path("data/train.txt")
    identifiers_path: Path = Path("data/textified_ids.txt")
    errors_path: Path = Path("data/errors.txt")
    error_details_path: Path | None = None
    audit_log_path: Path = Path("data/batches.log")

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None


@lru_cache(maxsize=1)
def get_settings() -> BlockseqSettings:
    """Process-wide settings, read once."""
    return BlockseqSettings()

"""
Structured error types for blockseq.

Every failure a corpus run can hit is a ``BlockseqError`` subclass carrying a
category, a retry hint, structured context and the chained cause. Job-level
failures (normalize, parse, persist) are recorded per identifier and never
stop a batch; batch-level failures (crash, timeout) are recorded once in the
audit log and never stop the run.

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                       BlockseqError                          │
        │  (category, retryable, context, cause)                       │
        ├─────────────────────────────────────────────────────────────┤
        │  Job scoped              │  Batch scoped   │  Setup           │
        │  ───────────             │  ────────────   │  ─────           │
        │  NormalizeError (SOURCE) │  BatchError     │  ConfigError     │
        │  ParseError     (PARSE)  │   ├ BatchCrash  │                  │
        │  PersistError (STORAGE)  │   └ BatchTimeout│                  │
        │                          │                 │                  │
        │  InvalidTransitionError (INTERNAL) - illegal state change     │
        └─────────────────────────────────────────────────────────────┘

Examples:
    >>> err = ParseError("missing targets").with_context(project_id="123")
    >>> err.context.project_id
    '123'
    >>> err.to_dict()["category"]
    'PARSE'

Guardrails:
    ❌ DON'T: Raise bare Exception from a pipeline stage
    ✅ DO: Wrap the library exception and pass it as ``cause=``

Tags:
    error-handling, exception-hierarchy, error-context, blockseq
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and log routing."""

    # Infrastructure
    NETWORK = "NETWORK"
    STORAGE = "STORAGE"

    # Source/data errors
    SOURCE = "SOURCE"
    PARSE = "PARSE"

    # Configuration (never retryable)
    CONFIG = "CONFIG"

    # Application errors
    ORCHESTRATION = "ORCHESTRATION"

    # Internal errors
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Typed fields cover what the pipeline knows about a failure; anything else
    goes into ``metadata``. ``to_dict()`` drops unset fields so log lines stay
    short.
    """

    project_id: str | None = None
    stage: str | None = None
    batch: str | None = None
    url: str | None = None
    http_status: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["project_id", "stage", "batch", "url", "http_status"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class BlockseqError(Exception):
    """
    Base class for all blockseq errors.

    Subclasses set ``default_category`` and ``default_retryable``; callers can
    override either per instance.

    Attributes:
        message: Human-readable description
        category: ErrorCategory for routing
        retryable: Whether the failed operation may be attempted again
        context: ErrorContext with structured metadata
        cause: Underlying exception, also chained as ``__cause__``
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> BlockseqError:
        """
        Add context to this error (fluent API).

        Usage:
            raise NormalizeError("fetch failed").with_context(
                project_id="10128407",
                url="https://projects.scratch.mit.edu/10128407",
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# JOB-SCOPED ERRORS
# =============================================================================


class NormalizeError(BlockseqError):
    """Fetching or upgrading a project to the current schema failed."""

    default_category = ErrorCategory.SOURCE
    default_retryable = True


class ParseError(BlockseqError):
    """Malformed or unsupported project document."""

    default_category = ErrorCategory.PARSE
    default_retryable = False


class PersistError(BlockseqError):
    """
    Appending to the result sink failed.

    Fatal to the job but not to the worker. Logged at error level because it
    usually means the sink itself is unhealthy.
    """

    default_category = ErrorCategory.STORAGE
    default_retryable = False


# =============================================================================
# BATCH-SCOPED ERRORS
# =============================================================================


class BatchError(BlockseqError):
    """A batch execution unit did not finish cleanly."""

    default_category = ErrorCategory.ORCHESTRATION
    default_retryable = False


class BatchCrash(BatchError):
    """The batch unit exited abnormally on its own."""

    def __init__(self, message: str, *, exit_code: int | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.exit_code = exit_code
        if exit_code is not None:
            self.context.metadata["exit_code"] = exit_code


class BatchTimeout(BatchError):
    """The watchdog terminated the batch unit."""

    def __init__(self, message: str, *, timeout: float, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.timeout = timeout
        self.context.metadata["timeout"] = timeout


# =============================================================================
# SETUP / INTERNAL ERRORS
# =============================================================================


class ConfigError(BlockseqError):
    """Unrecoverable setup error (missing corpus, invalid settings)."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class InvalidTransitionError(BlockseqError):
    """A job or batch attempted a state change its state machine forbids."""

    def __init__(self, current: str, target: str, entity: str = "state"):
        super().__init__(f"Invalid {entity} transition: {current} → {target}")
        self.current = current
        self.target = target


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "BlockseqError",
    "NormalizeError",
    "ParseError",
    "PersistError",
    "BatchError",
    "BatchCrash",
    "BatchTimeout",
    "ConfigError",
    "InvalidTransitionError",
]

"""Core primitives: errors, Result envelope, logging, settings."""

from blockseq.core.errors import (
    BatchCrash,
    BatchError,
    BatchTimeout,
    BlockseqError,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    InvalidTransitionError,
    NormalizeError,
    ParseError,
    PersistError,
)
from blockseq.core.result import Err, Ok, Result, partition_results, try_result

__all__ = [
    "BatchCrash",
    "BatchError",
    "BatchTimeout",
    "BlockseqError",
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "InvalidTransitionError",
    "NormalizeError",
    "ParseError",
    "PersistError",
    "Ok",
    "Err",
    "Result",
    "partition_results",
    "try_result",
]

"""Project sources: corpus identifiers, format upgraders and the document parser."""

from blockseq.sources.corpus import read_corpus, slice_corpus
from blockseq.sources.parser import decode_document, detect_schema_version, parse_document
from blockseq.sources.upgrader import (
    DirectoryFormatUpgrader,
    FormatUpgrader,
    HttpFormatUpgrader,
    normalize_body,
)

__all__ = [
    "read_corpus",
    "slice_corpus",
    "decode_document",
    "detect_schema_version",
    "parse_document",
    "DirectoryFormatUpgrader",
    "FormatUpgrader",
    "HttpFormatUpgrader",
    "normalize_body",
]

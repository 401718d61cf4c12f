"""Command-line interface for blockseq."""

"""
blockseq - block-graph sequence encoder and resilient batch orchestrator.

Packages:
- blockseq.core: errors, Result envelope, logging, settings
- blockseq.domain: block graph model, token vocabulary, sequence encoder
- blockseq.sources: corpus reader, format upgraders, document parser
- blockseq.execution: job pipeline, worker queue, result sink, batch supervisor
- blockseq.cli: the ``blockseq`` command
"""

__version__ = "0.1.0"

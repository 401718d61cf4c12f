"""Block graph model, token vocabulary and the sequence encoder."""

from blockseq.domain.encoder import TokenSequence, encode, encode_entity, encode_stack
from blockseq.domain.model import Block, Entity, InputValue, Project
from blockseq.domain.vocabulary import TOKEN_LEGEND, is_balanced

__all__ = [
    "Block",
    "Entity",
    "InputValue",
    "Project",
    "TokenSequence",
    "TOKEN_LEGEND",
    "encode",
    "encode_entity",
    "encode_stack",
    "is_balanced",
]

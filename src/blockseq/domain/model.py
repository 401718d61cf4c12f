"""Block graph model — one project's entities and their block maps.

Pure data. Each entity owns an arena (``dict`` of block id → ``Block``); all
traversal is by id lookup inside that arena, never across entities.

Input slots keep only the part of the sb3 input array the encoder looks at
(the element after the shadow-type flag):

    ``str``        reference to another block in the same arena
    ``tuple``      literal descriptor, e.g. ``(4, "10")`` or ``(12, "score", "id")``
    ``None``       empty slot (e.g. an ``if`` with nothing nested)
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

InputValue = str | tuple[Any, ...] | None


@dataclass(frozen=True)
class Block:
    """A node in an entity's block graph."""

    id: str
    opcode: str
    top_level: bool = False
    shadow: bool = False
    fields: Mapping[str, Any] = field(default_factory=dict)
    inputs: Mapping[str, InputValue] = field(default_factory=dict)
    next: str | None = None

    def child_ids(self) -> Iterator[str]:
        """Ids this block points at: block-valued inputs, then ``next``."""
        for value in self.inputs.values():
            if isinstance(value, str):
                yield value
        if self.next is not None:
            yield self.next


@dataclass(frozen=True)
class Entity:
    """The stage or a sprite, with the block arena it owns."""

    name: str
    blocks: Mapping[str, Block] = field(default_factory=dict)
    is_stage: bool = False

    def get(self, block_id: str) -> Block:
        return self.blocks[block_id]

    def __iter__(self) -> Iterator[Block]:
        return iter(self.blocks.values())

    def __len__(self) -> int:
        return len(self.blocks)


@dataclass(frozen=True)
class Project:
    """An ordered collection of entities at one schema version."""

    entities: tuple[Entity, ...]
    schema_version: int = 3

    @property
    def stage(self) -> Entity:
        return next(e for e in self.entities if e.is_stage)

    @property
    def sprites(self) -> tuple[Entity, ...]:
        return tuple(e for e in self.entities if not e.is_stage)

    @property
    def block_count(self) -> int:
        return sum(len(e) for e in self.entities)

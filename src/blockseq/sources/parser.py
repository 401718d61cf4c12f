"""
Project document parser.

Turns a normalized project body into a ``Project`` or raises ``ParseError``.
The encoder trusts whatever this module accepts, so every structural check
the traversal depends on lives here.

Accepted inputs:
    - ``dict``  already-decoded project JSON
    - ``str``   project JSON text
    - ``bytes`` project JSON, or an ``.sb3`` zip archive holding ``project.json``

Checks (each failure is a ``ParseError``):
    - the body decodes and validates against the raw sb3 schema
    - schema version is 3 (``targets`` present)
    - exactly one stage target
    - every ``next``, block-valued input and ``custom_block`` reference
      resolves inside the same entity
    - every ``procedures_definition`` references its prototype
    - the parent → child graph is acyclic

Usage:
    from blockseq.sources.parser import parse_document

    project = parse_document(response.content)
"""

from __future__ import annotations

import io
import json
import zipfile
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from blockseq.core.errors import ParseError
from blockseq.domain import vocabulary as v
from blockseq.domain.model import Block, Entity, InputValue, Project

ZIP_SIGNATURE = b"PK\x03\x04"
PROJECT_JSON = "project.json"


# =============================================================================
# RAW SB3 SCHEMA
# =============================================================================


class RawBlock(BaseModel):
    """A block object exactly as serialized in ``targets[].blocks``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    opcode: str
    next: str | None = None
    inputs: dict[str, list[Any]] = Field(default_factory=dict)
    fields: dict[str, Any] = Field(default_factory=dict)
    shadow: bool = False
    top_level: bool = Field(default=False, alias="topLevel")


class RawTarget(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = ""
    is_stage: bool = Field(default=False, alias="isStage")
    # top-level variable/list reporters are serialized as bare arrays
    blocks: dict[str, RawBlock | list[Any]] = Field(default_factory=dict)


class RawProject(BaseModel):
    model_config = ConfigDict(extra="ignore")

    targets: list[RawTarget]


# =============================================================================
# DECODING
# =============================================================================


def decode_document(body: str | bytes | dict[str, Any]) -> dict[str, Any]:
    """Decode a project body into its JSON object."""
    if isinstance(body, dict):
        return body

    if isinstance(body, bytes) and body.startswith(ZIP_SIGNATURE):
        body = _read_archive(body)

    try:
        document = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ParseError("Project body is not valid JSON", cause=e) from e

    if not isinstance(document, dict):
        raise ParseError(f"Project body is a JSON {type(document).__name__}, expected an object")
    return document


def _read_archive(data: bytes) -> bytes:
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            if PROJECT_JSON not in archive.namelist():
                raise ParseError(f"{PROJECT_JSON} not found in project archive")
            return archive.read(PROJECT_JSON)
    except zipfile.BadZipFile as e:
        raise ParseError("Corrupt project archive", cause=e) from e


def detect_schema_version(document: dict[str, Any]) -> int | None:
    """3 for ``targets``-based documents, 2 for ``objName``/``children`` ones."""
    if "targets" in document:
        return 3
    if "objName" in document or "children" in document:
        return 2
    return None


# =============================================================================
# PARSING
# =============================================================================


def parse_document(body: str | bytes | dict[str, Any]) -> Project:
    """Parse and validate a version-3 project body.

    Raises:
        ParseError: malformed, unsupported or structurally inconsistent body
    """
    document = decode_document(body)

    version = detect_schema_version(document)
    if version is None:
        raise ParseError("Unrecognized project document")
    if version != 3:
        raise ParseError(f"Unsupported schema version {version}; expected 3")

    try:
        raw = RawProject.model_validate(document)
    except ValidationError as e:
        raise ParseError(
            f"Project failed schema validation ({e.error_count()} errors)", cause=e
        ) from e

    stages = sum(1 for t in raw.targets if t.is_stage)
    if stages != 1:
        raise ParseError(f"Project has {stages} stage targets, expected exactly 1")

    entities = tuple(_build_entity(target) for target in raw.targets)
    for entity in entities:
        _check_references(entity)
        _check_acyclic(entity)
        _check_single_parent(entity)

    return Project(entities=entities, schema_version=version)


def _build_entity(target: RawTarget) -> Entity:
    blocks: dict[str, Block] = {}
    for block_id, raw in target.blocks.items():
        if not isinstance(raw, RawBlock):
            continue
        blocks[block_id] = Block(
            id=block_id,
            opcode=raw.opcode,
            top_level=raw.top_level,
            shadow=raw.shadow,
            fields=dict(raw.fields),
            inputs={name: _reduce_input(slot) for name, slot in raw.inputs.items()},
            next=raw.next,
        )
    return Entity(name=target.name, blocks=blocks, is_stage=target.is_stage)


def _reduce_input(slot: list[Any]) -> InputValue:
    """Keep the element after the shadow-type flag."""
    value = slot[1] if len(slot) > 1 else None
    if isinstance(value, list):
        return tuple(value)
    if isinstance(value, str):
        return value
    return None


def _check_references(entity: Entity) -> None:
    for block in entity:
        for child_id in block.child_ids():
            if child_id not in entity.blocks:
                raise ParseError(
                    f"Block {block.id!r} in {entity.name!r} references missing block {child_id!r}"
                )
        if block.opcode == v.PROCEDURES_DEFINITION and not isinstance(
            block.inputs.get(v.CUSTOM_BLOCK_INPUT), str
        ):
            raise ParseError(f"Procedure definition {block.id!r} has no prototype")


def _check_acyclic(entity: Entity) -> None:
    """Iterative three-colour DFS over ``next`` and block-valued inputs."""
    visiting, done = 1, 2
    state: dict[str, int] = {}
    for start in entity.blocks:
        if start in state:
            continue
        state[start] = visiting
        path = [(start, entity.get(start).child_ids())]
        while path:
            block_id, children = path[-1]
            child = next(children, None)
            if child is None:
                state[block_id] = done
                path.pop()
            elif state.get(child) == visiting:
                raise ParseError(f"Cycle through block {child!r} in {entity.name!r}")
            elif child not in state:
                state[child] = visiting
                path.append((child, entity.get(child).child_ids()))


def _check_single_parent(entity: Entity) -> None:
    """Each block is referenced at most once, by one parent.

    A shared child would be encoded once per reference, so sharing at every
    level makes the sequence grow exponentially with the depth of the graph.
    """
    parents: dict[str, str] = {}
    for block in entity:
        for child_id in block.child_ids():
            if child_id in parents:
                raise ParseError(
                    f"Block {child_id!r} in {entity.name!r} is referenced more than once "
                    f"(by {parents[child_id]!r} and {block.id!r})"
                )
            parents[child_id] = block.id

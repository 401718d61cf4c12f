"""Sequence encoder — flattens a project's block graph into tokens.

WHY
───
Sequence models need a flat, symbol-annotated view of a program. The encoder
walks every stack (from a hat block or a procedure definition) top to bottom
and marks structure with explicit delimiters, so the encoding is a one-way,
deterministic projection of the graph.

ARCHITECTURE
────────────
::

    encode(project)
      └── for entity, for root block in arena order
            _STARTSTACK_  encode_stack(entity, root)  _ENDSTACK_

    encode_stack  ─ explicit work stack of tokens and pending visits;
                    _expand(block) yields one block's contribution:

      procedures_definition → "procedures_definition" <prototype> [_NEXT_ …]
      procedures_prototype  → <argument> for each input, nothing else
      argument_reporter_*   → _NUMTEXTARG_ | _BOOLARG_
      procedures_call       → "procedures_call" then the shared cases
      any other block       → opcode (unless shadow) then the shared cases:
          menu              → _MENU_ (_VAR_|_LIST_|menu_option) _MENU_
          no-input reporter → stop here
          inputs            → _STARTINPUT_ … _ENDINPUT_ per slot
          SUBSTACK/2        → _STARTNEST_ … _ENDNEST_
          next              → _NEXT_ <next block>

The work stack replaces native recursion, so very deep scripts cannot exhaust
the interpreter stack. The encoder performs no I/O and never raises for a
project the parser accepted.

Example::

    sequence = encode(project)
    sequence.text   # "_STARTSTACK_ event_whenflagclicked _NEXT_ ... _ENDSTACK_"
"""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass

from blockseq.domain import vocabulary as v
from blockseq.domain.model import Block, Entity, InputValue, Project


@dataclass(frozen=True, slots=True)
class _Visit:
    block_id: str


_Item = str | _Visit


@dataclass(frozen=True)
class TokenSequence:
    """Immutable encoded form of one project."""

    tokens: tuple[str, ...] = ()

    @classmethod
    def from_tokens(cls, tokens: list[str]) -> TokenSequence:
        """Build a sequence, collapsing whitespace runs and trimming."""
        return cls(tuple(" ".join(tokens).split()))

    @property
    def text(self) -> str:
        return " ".join(self.tokens)

    @property
    def is_empty(self) -> bool:
        return not self.tokens

    def __len__(self) -> int:
        return len(self.tokens)

    def __str__(self) -> str:
        return self.text


def encode(
    project: Project, *, triggers: Collection[str] = v.HAT_BLOCKS
) -> TokenSequence:
    """Encode every stack of every entity, in entity and arena order.

    ``triggers`` is the set of opcodes that may head a stack besides
    ``procedures_definition``.
    """
    tokens: list[str] = []
    for entity in project.entities:
        tokens.extend(encode_entity(entity, triggers=triggers))
    return TokenSequence.from_tokens(tokens)


def encode_entity(
    entity: Entity, *, triggers: Collection[str] = v.HAT_BLOCKS
) -> list[str]:
    tokens: list[str] = []
    for block in entity:
        if block.top_level and not block.shadow and v.is_stack_root_opcode(block.opcode, triggers):
            tokens.append(v.START_STACK)
            tokens.extend(encode_stack(entity, block))
            tokens.append(v.END_STACK)
    return tokens


def encode_stack(entity: Entity, root: Block) -> list[str]:
    """Tokens for ``root`` and everything reachable from it."""
    out: list[str] = []
    work: list[_Item] = [_Visit(root.id)]
    while work:
        item = work.pop()
        if isinstance(item, str):
            out.append(item)
            continue
        expansion = _expand(entity, entity.get(item.block_id))
        work.extend(reversed(expansion))
    return out


def _expand(entity: Entity, block: Block) -> list[_Item]:
    opcode = block.opcode
    items: list[_Item] = []

    if opcode == v.PROCEDURES_DEFINITION:
        items.append(v.PROCEDURES_DEFINITION)
        prototype_id = block.inputs.get(v.CUSTOM_BLOCK_INPUT)
        if isinstance(prototype_id, str):
            items.append(_Visit(prototype_id))
        _append_next(block, items)
        return items

    if opcode == v.PROCEDURES_PROTOTYPE:
        for value in block.inputs.values():
            if isinstance(value, str):
                items.append(_Visit(value))
        return items

    if opcode == v.ARGUMENT_REPORTER_NUMTEXT:
        return [v.NUMTEXT_ARG]
    if opcode == v.ARGUMENT_REPORTER_BOOLEAN:
        return [v.BOOL_ARG]

    if opcode == v.PROCEDURES_CALL:
        items.append(v.PROCEDURES_CALL)
    elif not block.shadow:
        items.append(opcode)

    items.extend(_menu_tokens(block))

    if opcode in v.NO_INPUT_BLOCKS:
        return items

    for key, value in block.inputs.items():
        if key not in v.NESTING_INPUTS:
            items.extend(_input_items(entity, key, value))

    # fixed order, whatever order the source document lists them in
    for key in v.NESTING_INPUTS:
        nested_id = block.inputs.get(key)
        if isinstance(nested_id, str):
            items.extend((v.START_NEST, _Visit(nested_id), v.END_NEST))

    _append_next(block, items)
    return items


def _append_next(block: Block, items: list[_Item]) -> None:
    if block.next is not None:
        items.extend((v.NEXT, _Visit(block.next)))


def _is_menu_bearing(block: Block) -> bool:
    opcode = block.opcode
    return (
        v.MENU_MARKER in opcode
        or opcode in v.MENU_BLOCKS
        or (bool(block.fields) and opcode not in v.LITERAL_FIELD_BLOCKS)
    )


def _menu_tokens(block: Block) -> list[str]:
    tokens: list[str] = []
    if _is_menu_bearing(block):
        if v.VARIABLE_FIELD in block.fields:
            kind = v.VAR
        elif v.LIST_FIELD in block.fields:
            kind = v.LIST
        else:
            kind = v.MENU_OPTION
        tokens.extend((v.MENU, kind, v.MENU))

    if block.opcode in v.LITERAL_FIELD_BLOCKS and block.fields:
        tokens.extend(v.NUMTEXT_INPUT for _ in block.fields)
    return tokens


def _input_items(entity: Entity, key: str, value: InputValue) -> list[_Item]:
    if isinstance(value, tuple):
        # the broadcast menu is stored inline as a literal, not as a menu block
        if key == v.BROADCAST_INPUT:
            return [v.MENU, v.MENU_OPTION, v.MENU]

        kind = value[0] if value else None
        if kind == v.VARIABLE_PRIMITIVE:
            placeholder = v.VAR
        elif kind == v.LIST_PRIMITIVE:
            placeholder = v.LIST
        else:
            payload = value[1] if len(value) > 1 else ""
            if payload == "":
                return []
            placeholder = v.NUMTEXT_INPUT
        return [v.START_INPUT, placeholder, v.END_INPUT]

    if isinstance(value, str):
        inserted = entity.get(value)
        if not inserted.shadow or inserted.opcode in v.LITERAL_FIELD_BLOCKS:
            return [v.START_INPUT, _Visit(value), v.END_INPUT]
        # default-value shadow: traversed for its menu, not wrapped as an input
        return [_Visit(value)]

    return []

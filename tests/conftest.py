"""
Shared pytest fixtures and configuration for blockseq tests.

This module provides:
- Builders for raw sb3 block and project documents
- A small well-formed project used across encoder/parser/pipeline tests
- Settings cache isolation

Usage:
    def test_something(sb3_block, sb3_document):
        doc = sb3_document({"hat": sb3_block("event_whenflagclicked", top_level=True)})
"""

import sys
from pathlib import Path
from typing import Any, Callable, Generator

import pytest

# Ensure blockseq package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from blockseq.core.settings import get_settings
from blockseq.execution.sink import ResultSink, SinkPaths


# =============================================================================
# Document builders
# =============================================================================


def build_block(
    opcode: str,
    *,
    next: str | None = None,
    inputs: dict[str, list[Any]] | None = None,
    fields: dict[str, Any] | None = None,
    shadow: bool = False,
    top_level: bool = False,
) -> dict[str, Any]:
    """One block object as serialized in ``targets[].blocks``."""
    return {
        "opcode": opcode,
        "next": next,
        "parent": None,
        "inputs": inputs or {},
        "fields": fields or {},
        "shadow": shadow,
        "topLevel": top_level,
    }


def build_document(
    sprite_blocks: dict[str, Any],
    *,
    stage_blocks: dict[str, Any] | None = None,
    sprite_name: str = "Sprite1",
) -> dict[str, Any]:
    """A version-3 project with a stage and one sprite."""
    return {
        "targets": [
            {"isStage": True, "name": "Stage", "blocks": stage_blocks or {}},
            {"isStage": False, "name": sprite_name, "blocks": sprite_blocks},
        ],
        "monitors": [],
        "extensions": [],
        "meta": {"semver": "3.0.0"},
    }


# Flag → move 10 steps → if <touching mouse-pointer?> then say "Hello!"
SIMPLE_BLOCKS: dict[str, Any] = {
    "hat": build_block("event_whenflagclicked", next="move", top_level=True),
    "move": build_block("motion_movesteps", next="if", inputs={"STEPS": [1, [4, "10"]]}),
    "if": build_block(
        "control_if",
        inputs={"CONDITION": [2, "touch"], "SUBSTACK": [2, "say"]},
    ),
    "touch": build_block("sensing_touchingobject", inputs={"TOUCHINGOBJECTMENU": [1, "menu"]}),
    "menu": build_block(
        "sensing_touchingobjectmenu",
        fields={"TOUCHINGOBJECTMENU": ["_mouse_", None]},
        shadow=True,
    ),
    "say": build_block("looks_say", inputs={"MESSAGE": [1, [10, "Hello!"]]}),
}

SIMPLE_SEQUENCE = (
    "_STARTSTACK_ event_whenflagclicked _NEXT_ motion_movesteps "
    "_STARTINPUT_ numtext_input _ENDINPUT_ _NEXT_ control_if "
    "_STARTINPUT_ sensing_touchingobject _MENU_ menu_option _MENU_ _ENDINPUT_ "
    "_STARTNEST_ looks_say _STARTINPUT_ numtext_input _ENDINPUT_ _ENDNEST_ _ENDSTACK_"
)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clean_settings_cache() -> Generator[None, None, None]:
    """Re-read settings in every test so monkeypatched env vars apply."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def sb3_block() -> Callable[..., dict[str, Any]]:
    return build_block


@pytest.fixture
def sb3_document() -> Callable[..., dict[str, Any]]:
    return build_document


@pytest.fixture
def simple_document() -> dict[str, Any]:
    return build_document(dict(SIMPLE_BLOCKS))


@pytest.fixture
def simple_sequence() -> str:
    return SIMPLE_SEQUENCE


@pytest.fixture
def sink_paths(tmp_path: Path) -> SinkPaths:
    return SinkPaths(
        sequences=tmp_path / "out" / "train.txt",
        identifiers=tmp_path / "out" / "ids.txt",
        errors=tmp_path / "out" / "errors.txt",
        error_details=tmp_path / "out" / "errors.jsonl",
    )


@pytest.fixture
def sink(sink_paths: SinkPaths) -> ResultSink:
    return ResultSink(sink_paths)

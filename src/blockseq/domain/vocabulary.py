"""Token vocabulary and opcode tables used by the sequence encoder."""

from __future__ import annotations

from collections.abc import Collection, Iterable

# ── Structural delimiters ───────────────────────────────────────────────

START_STACK = "_STARTSTACK_"
END_STACK = "_ENDSTACK_"
START_NEST = "_STARTNEST_"
END_NEST = "_ENDNEST_"
START_INPUT = "_STARTINPUT_"
END_INPUT = "_ENDINPUT_"
NEXT = "_NEXT_"

# ── Value placeholders ──────────────────────────────────────────────────

NUMTEXT_INPUT = "numtext_input"
VAR = "_VAR_"
LIST = "_LIST_"
MENU_OPTION = "menu_option"
MENU = "_MENU_"
NUMTEXT_ARG = "_NUMTEXTARG_"
BOOL_ARG = "_BOOLARG_"

# ── Procedure opcodes ───────────────────────────────────────────────────

PROCEDURES_DEFINITION = "procedures_definition"
PROCEDURES_PROTOTYPE = "procedures_prototype"
PROCEDURES_CALL = "procedures_call"
ARGUMENT_REPORTER_NUMTEXT = "argument_reporter_string_number"
ARGUMENT_REPORTER_BOOLEAN = "argument_reporter_boolean"
CUSTOM_BLOCK_INPUT = "custom_block"

TOKEN_LEGEND: dict[str, str] = {
    START_STACK: "beginning of new stack",
    END_STACK: "end of new stack",
    START_NEST: "beginning of nesting",
    END_NEST: "end of nesting",
    START_INPUT: "beginning of input",
    END_INPUT: "end of input",
    NUMTEXT_INPUT: "number or text input",
    VAR: "variable",
    LIST: "list",
    MENU_OPTION: "chosen menu option",
    MENU: "dropdown menu",
    NUMTEXT_ARG: "number or text argument",
    BOOL_ARG: "boolean argument",
    PROCEDURES_DEFINITION: "custom procedure definition",
    PROCEDURES_CALL: "custom procedure call",
    NEXT: "next",
}

# Blocks that may head an independent stack.
HAT_BLOCKS: frozenset[str] = frozenset({
    "event_whenflagclicked",
    "event_whenkeypressed",
    "event_whenthisspriteclicked",
    "event_whenbackdropswitchesto",
    "event_whengreaterthan",
    "event_whenbroadcastreceived",
    "control_start_as_clone",
    "videoSensing_whenMotionGreaterThan",
    "makeymakey_whenMakeyKeyPressed",
    "makeymakey_whenCodePressed",
    "microbit_whenButtonPressed",
    "microbit_whenGesture",
    "microbit_whenTilted",
    "microbit_whenPinConnected",
    "ev3_whenButtonPressed",
    "ev3_whenDistanceLessThan",
    "ev3_whenBrightnessLessThan",
    "boost_whenColor",
    "boost_whenTilted",
    "wedo2_whenDistance",
    "wedo2_whenTilted",
    "gdxfor_whenGesture",
    "gdxfor_whenForcePushedOrPulled",
    "gdxfor_whenTilted",
})

# Oval reporters with no inputs; nothing can be inserted into or follow them.
NO_INPUT_BLOCKS: frozenset[str] = frozenset({
    "motion_xposition",
    "motion_yposition",
    "motion_direction",
    "looks_costumenumbername",
    "looks_backdropnumbername",
    "looks_size",
    "sound_volume",
    "sensing_answer",
    "sensing_mousex",
    "sensing_mousey",
    "sensing_loudness",
    "sensing_timer",
    "sensing_dayssince2000",
    "sensing_username",
    "sensing_current",
})

MENU_BLOCKS: frozenset[str] = frozenset({
    "looks_backdrops",
    "looks_costume",
    "sensing_touchingobjectmenu",
    "sensing_distancetomenu",
    "sensing_keyoptions",
})

MENU_MARKER = "_menu"

# Shadow blocks whose fields hold a literal number/text value.
LITERAL_FIELD_BLOCKS: frozenset[str] = frozenset({"note"})

NESTING_INPUTS: tuple[str, ...] = ("SUBSTACK", "SUBSTACK2")
BROADCAST_INPUT = "BROADCAST_INPUT"
VARIABLE_FIELD = "VARIABLE"
LIST_FIELD = "LIST"

# Leading discriminant of a literal input descriptor.
VARIABLE_PRIMITIVE = 12
LIST_PRIMITIVE = 13

DELIMITER_PAIRS: dict[str, str] = {
    START_STACK: END_STACK,
    START_NEST: END_NEST,
    START_INPUT: END_INPUT,
}


def is_stack_root_opcode(opcode: str, triggers: Collection[str] = HAT_BLOCKS) -> bool:
    return opcode in triggers or opcode == PROCEDURES_DEFINITION


def is_balanced(tokens: Iterable[str]) -> bool:
    """True if every delimiter pair is balanced and properly nested.

    A single left-to-right pass; the open-delimiter depth never goes negative
    and every closer matches the innermost open delimiter.
    """
    closers = set(DELIMITER_PAIRS.values())
    open_stack: list[str] = []
    for token in tokens:
        if token in DELIMITER_PAIRS:
            open_stack.append(DELIMITER_PAIRS[token])
        elif token in closers:
            if not open_stack or open_stack.pop() != token:
                return False
    return not open_stack

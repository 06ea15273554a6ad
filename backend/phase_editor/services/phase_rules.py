"""
Phase Rules — Phase types, defaults and seeding math (Single Source of Truth)

This module defines every constant the structure editor needs to reason about
phases: the allowed phase types, which of them behave like brackets, the
default attribute values used when a document omits them, and the folded
bracket seeding formula.
All other modules must import from here. Do NOT duplicate these rules elsewhere.
"""

from typing import Dict, FrozenSet, Literal, Tuple

# =============================================================================
# Phase Types
# =============================================================================

DRAW = "Draw"
ROUND_ROBIN = "RoundRobin"
SINGLE_ELIMINATION = "SingleElimination"
DOUBLE_ELIMINATION = "DoubleElimination"
POOLS = "Pools"
SWISS = "Swiss"
BRACKET_ROUND = "BracketRound"
AWARD = "Award"

PhaseType = Literal[
    "Draw",
    "RoundRobin",
    "SingleElimination",
    "DoubleElimination",
    "Pools",
    "Swiss",
    "BracketRound",
    "Award",
]

PHASE_TYPES: Tuple[str, ...] = (
    DRAW,
    SINGLE_ELIMINATION,
    DOUBLE_ELIMINATION,
    ROUND_ROBIN,
    POOLS,
    BRACKET_ROUND,
    SWISS,
    AWARD,
)

# Phase types that render as head-to-head brackets (consolation + folded seeding apply)
BRACKET_TYPES: FrozenSet[str] = frozenset({SINGLE_ELIMINATION, DOUBLE_ELIMINATION, BRACKET_ROUND})

SEEDING_STRATEGIES: Tuple[str, ...] = ("Sequential", "Folded", "CrossPool", "Manual")

AWARD_TYPES: Tuple[str, ...] = ("Gold", "Silver", "Bronze", "none")

# =============================================================================
# Defaults
# =============================================================================

DEFAULT_PHASE_TYPE = SINGLE_ELIMINATION
DEFAULT_INCOMING_SLOTS = 8
DEFAULT_ADVANCING_SLOTS = 4
DEFAULT_BEST_OF = 1
DEFAULT_MATCH_DURATION_MINUTES = 30
DEFAULT_SEEDING_STRATEGY = "Sequential"

# Used by "add phase" when the structure is empty
DEFAULT_FIRST_PHASE_INCOMING = 8

# =============================================================================
# Canvas
# =============================================================================

LayoutDirection = Literal["TB", "LR"]
NodeSizePreset = Literal["collapsed", "expanded"]

LAYOUT_DIRECTIONS: Tuple[str, ...] = ("TB", "LR")
NODE_SIZE_PRESETS: Tuple[str, ...] = ("collapsed", "expanded")

# (node_width, node_height, layer_separation, node_separation) per preset.
# Expanded nodes show phase details, so everything spreads out.
NODE_SIZE_SPACING: Dict[str, Tuple[int, int, int, int]] = {
    "collapsed": (220, 80, 80, 40),
    "expanded": (280, 200, 120, 60),
}


# =============================================================================
# Helpers
# =============================================================================

def is_bracket_type(phase_type: str) -> bool:
    """True for phase types that render as brackets."""
    return phase_type in BRACKET_TYPES


def pool_letter(pool_index: int) -> str:
    """
    Return the display letter for a 0-based pool index.

    0 -> "A", 1 -> "B", ..., 25 -> "Z", 26 -> "AA".
    """
    letters = ""
    n = pool_index
    while True:
        letters = chr(ord("A") + n % 26) + letters
        n = n // 26 - 1
        if n < 0:
            return letters


def folded_bracket_slot(position: int, total_slots: int) -> int:
    """
    Return the folded bracket slot for a seed position.

    For 8 slots: 1->1, 2->3, 3->5, 4->7, 5->8, 6->6, 7->4, 8->2.
    Top seeds land on opposite halves and 1 meets 8, 2 meets 7, etc.
    """
    half = total_slots // 2
    if position <= half:
        return position * 2 - 1
    return (total_slots - position + 1) * 2

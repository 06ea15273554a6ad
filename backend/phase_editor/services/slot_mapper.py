"""
Slot Mapper — exit slot -> incoming slot assignments for phase connections.

Responsibilities:
1. Enumerate the addressable exit and incoming slots of a phase (ids + labels)
2. Default mapping when two phases are first connected
3. Presets for an existing connection ("Default (1:1)", "Cross-Pool")
4. Whole-structure auto-generation of rules
5. Manual rewiring of one connection (ConnectionEditor)

Exit slot ids: "{finish_position}" for plain exits, "{pool_index}-{finish_position}"
for pool exits. Incoming slots are numbered 1..incoming_slot_count.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple, Union

from phase_editor.services.errors import MappingPresetError, UnknownPhaseError
from phase_editor.services.phase_graph import AdvancementRule, Phase, PhaseGraph
from phase_editor.services.phase_rules import (
    POOLS,
    folded_bracket_slot,
    is_bracket_type,
    pool_letter,
)

logger = logging.getLogger(__name__)

PRESET_DEFAULT = "default"
PRESET_CROSS_POOL = "cross_pool"

PRESET_LABELS: Dict[str, str] = {
    PRESET_DEFAULT: "Default (1:1)",
    PRESET_CROSS_POOL: "Cross-Pool",
}


# -----------------------------------------------------------------------------
# Slots
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class ExitSlot:
    slot_id: str
    finish_position: int
    pool_index: Optional[int]
    label: str


@dataclass(frozen=True)
class IncomingSlot:
    slot_number: int
    label: str


def exit_slot_id(finish_position: int, pool_index: Optional[int] = None) -> str:
    if pool_index is None:
        return str(finish_position)
    return f"{pool_index}-{finish_position}"


def parse_exit_slot_id(slot_id: str) -> Tuple[Optional[int], int]:
    """Split an exit slot id into (pool_index, finish_position)."""
    if "-" in slot_id:
        pool, rank = slot_id.split("-", 1)
        return int(pool), int(rank)
    return None, int(slot_id)


def advancing_per_pool(phase: Phase) -> int:
    """How many finishers leave each pool of a pool phase."""
    if phase.pool_count <= 0:
        return phase.advancing_slot_count
    return max(1, phase.advancing_slot_count // phase.pool_count)


def exit_slot_count(phase: Phase, pool_index: Optional[int] = None) -> int:
    """Number of finish positions addressable on one exit group of a phase."""
    if phase.has_pool_exits and pool_index is not None:
        return advancing_per_pool(phase)
    if phase.has_loser_exits:
        return 2 * phase.match_count
    return phase.advancing_slot_count


def exit_slots(phase: Phase) -> List[ExitSlot]:
    """
    Exit slots of a phase in display order.

    Pools:             A1, A2, B1, B2, ...  (pool-major)
    BracketRound+L:    W1..Wn then L1..Ln   (n = matches in the round)
    Everything else:   #1..#advancing
    """
    if phase.has_pool_exits:
        per_pool = advancing_per_pool(phase)
        return [
            ExitSlot(exit_slot_id(rank, pool), rank, pool, f"{pool_letter(pool)}{rank}")
            for pool in range(phase.pool_count)
            for rank in range(1, per_pool + 1)
        ]

    if phase.has_loser_exits:
        n = phase.match_count
        slots = [ExitSlot(str(m), m, None, f"W{m}") for m in range(1, n + 1)]
        slots += [ExitSlot(str(n + m), n + m, None, f"L{m}") for m in range(1, n + 1)]
        return slots

    return [
        ExitSlot(str(rank), rank, None, f"#{rank}")
        for rank in range(1, phase.advancing_slot_count + 1)
    ]


def incoming_slots(phase: Phase) -> List[IncomingSlot]:
    return [IncomingSlot(n, str(n)) for n in range(1, phase.incoming_slot_count + 1)]


# -----------------------------------------------------------------------------
# Mappings
# -----------------------------------------------------------------------------

def _connection_phases(graph: PhaseGraph, source: str, target: str) -> Tuple[Phase, Phase]:
    return graph.require(source), graph.require(target)


def free_target_slots(graph: PhaseGraph, source: str, target: str) -> List[int]:
    """Incoming slots of target not fed by any phase other than source, lowest first."""
    held = {
        r.target_slot_number
        for r in graph.incoming_rules(target)
        if r.source_phase != source
    }
    count = graph.require(target).incoming_slot_count
    return [slot for slot in range(1, count + 1) if slot not in held]


def _pool_rules(
    source: Phase,
    target: Phase,
    exits: List[Tuple[int, int]],
    slots: List[int],
) -> List[AdvancementRule]:
    """Pair (pool_index, rank) exits with the given target slots until either runs out."""
    return [
        AdvancementRule(
            source_phase=source.name,
            target_phase=target.name,
            finish_position=rank,
            target_slot_number=slot,
            source_pool_index=pool,
        )
        for (pool, rank), slot in zip(exits, slots)
    ]


def _sequential_rules(
    source: Phase,
    target: Phase,
    positions: List[int],
    slots: List[int],
) -> List[AdvancementRule]:
    return [
        AdvancementRule(
            source_phase=source.name,
            target_phase=target.name,
            finish_position=position,
            target_slot_number=slot,
        )
        for position, slot in zip(positions, slots)
    ]


def _bracket_round_positions(graph: PhaseGraph, source: Phase, target: Phase, n: int) -> List[int]:
    """
    Which finish positions a new connection out of a winners+losers round takes.

    Winners go first; once they are fully mapped to some other phase, the
    next connection takes the losers. If both are taken, map 1..n.
    """
    matches = source.match_count
    mapped_elsewhere = {
        r.finish_position
        for r in graph.outgoing_rules(source.name)
        if r.target_phase != target.name
    }
    winners = list(range(1, matches + 1))
    losers = list(range(matches + 1, 2 * matches + 1))
    winners_done = set(winners) <= mapped_elsewhere
    losers_done = set(losers) <= mapped_elsewhere

    if winners_done and not losers_done:
        logger.debug("Mapping losers of '%s' into '%s'", source.name, target.name)
        return losers
    if not winners_done:
        logger.debug("Mapping winners of '%s' into '%s'", source.name, target.name)
        return winners
    return list(range(1, n + 1))


def default_mapping(graph: PhaseGraph, source: str, target: str) -> List[AdvancementRule]:
    """
    Rules for a freshly made connection. Does not modify the graph.

    Only target slots not held by other connections are filled, lowest first.
    N = min(source advancing, free target slots)
      - Pools (pool_count > 1): per_pool = max(1, N // pool_count), pool-major
      - BracketRound with loser exits: winners or losers range (see above)
      - otherwise: finish i -> i-th free slot for i in 1..N
    """
    src, tgt = _connection_phases(graph, source, target)
    slots = free_target_slots(graph, source, target)
    n = min(src.advancing_slot_count, len(slots))

    if src.has_pool_exits:
        per_pool = max(1, n // src.pool_count)
        exits = [(pool, rank) for pool in range(src.pool_count) for rank in range(1, per_pool + 1)]
        return _pool_rules(src, tgt, exits, slots)

    if src.has_loser_exits:
        return _sequential_rules(src, tgt, _bracket_round_positions(graph, src, tgt, n), slots)

    return _sequential_rules(src, tgt, list(range(1, n + 1)), slots)


def cross_pool_mapping(graph: PhaseGraph, source: str, target: str) -> List[AdvancementRule]:
    """
    Snake seeding from pool standings: rank 1 of every pool first, then rank 2
    in reverse pool order, and so on.

    2 pools x 2 advancing: A1->1, B1->2, B2->3, A2->4
    """
    src, tgt = _connection_phases(graph, source, target)
    if src.phase_type != POOLS or src.pool_count < 2:
        raise MappingPresetError(f"Cross-Pool needs a Pools source with at least 2 pools ('{source}')")

    slots = free_target_slots(graph, source, target)
    n = min(src.advancing_slot_count, len(slots))
    per_pool = max(1, n // src.pool_count)
    exits: List[Tuple[int, int]] = []
    for rank in range(1, per_pool + 1):
        pools = range(src.pool_count) if rank % 2 == 1 else reversed(range(src.pool_count))
        exits.extend((pool, rank) for pool in pools)
    return _pool_rules(src, tgt, exits, slots)


def apply_default_mapping(graph: PhaseGraph, source: str, target: str) -> List[AdvancementRule]:
    """Connect two phases (or reset a connection) using the default mapping."""
    rules = default_mapping(graph, source, target)
    graph.replace_connection_rules(source, target, rules)
    logger.debug("Default mapping %s -> %s: %d rule(s)", source, target, len(rules))
    return rules


def apply_preset(graph: PhaseGraph, source: str, target: str, preset: str) -> List[AdvancementRule]:
    """
    Recompute one connection from a preset, discarding its custom mappings.

    Other connections are left alone.
    """
    key = preset.strip().lower().replace("-", "_").replace(" ", "_")
    if key in ("default", "default_(1:1)", "default_1:1"):
        return apply_default_mapping(graph, source, target)
    if key == PRESET_CROSS_POOL:
        rules = cross_pool_mapping(graph, source, target)
        graph.replace_connection_rules(source, target, rules)
        return rules
    raise MappingPresetError(f"Unknown mapping preset: {preset}")


def available_presets(graph: PhaseGraph, source: str) -> List[str]:
    src = graph.require(source)
    if src.phase_type == POOLS and src.pool_count >= 2:
        return [PRESET_DEFAULT, PRESET_CROSS_POOL]
    return [PRESET_DEFAULT]


# -----------------------------------------------------------------------------
# Auto-generate (whole structure)
# -----------------------------------------------------------------------------

def _auto_exit_keys(phase: Phase) -> List[Tuple[Optional[int], int]]:
    """Exit slots consumed by auto-generate: rank-major for pools, rank order otherwise."""
    if phase.has_pool_exits:
        per_pool = advancing_per_pool(phase)
        return [(pool, rank) for rank in range(1, per_pool + 1) for pool in range(phase.pool_count)]
    return [(None, rank) for rank in range(1, phase.advancing_slot_count + 1)]


def auto_generate_rules(graph: PhaseGraph) -> List[AdvancementRule]:
    """
    Build a full rule set from slot counts alone. Does not modify the graph.

    Repeatedly connects the earliest phase (by sort_order) that still has
    exit slots to the earliest *other* phase that still has incoming slots,
    filling that target before moving on. Bracket targets with Folded
    seeding receive plain exits at their folded slot when it is free.
    """
    ordered = graph.phases_in_order()
    exits: Dict[int, List[Tuple[Optional[int], int]]] = {
        id(p): _auto_exit_keys(p) for p in ordered
    }
    free_slots: Dict[int, List[int]] = {
        id(p): list(range(1, p.incoming_slot_count + 1)) for p in ordered
    }

    rules: List[AdvancementRule] = []
    while True:
        src = next((p for p in ordered if exits[id(p)]), None)
        if src is None:
            break
        tgt = next((p for p in ordered if p is not src and free_slots[id(p)]), None)
        if tgt is None:
            break

        folded = is_bracket_type(tgt.phase_type) and tgt.seeding_strategy == "Folded" and not src.has_pool_exits
        src_exits = exits[id(src)]
        tgt_free = free_slots[id(tgt)]
        while src_exits and tgt_free:
            pool, rank = src_exits.pop(0)
            slot = tgt_free[0]
            if folded:
                wanted = folded_bracket_slot(rank, tgt.incoming_slot_count)
                if wanted in tgt_free:
                    slot = wanted
            tgt_free.remove(slot)
            rules.append(AdvancementRule(
                source_phase=src.name,
                target_phase=tgt.name,
                finish_position=rank,
                target_slot_number=slot,
                source_pool_index=pool,
            ))

    return rules


# -----------------------------------------------------------------------------
# Manual rewiring
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class SourceSelected:
    slot_id: str


Selection = Union[Idle, SourceSelected]

IDLE = Idle()


class ConnectionEditor:
    """
    Edit the rules of one (source, target) connection by clicking slots.

    Selection is either IDLE or SourceSelected(exit slot id). Slots claimed
    by other connections are locked and ignore clicks.
    """

    def __init__(self, graph: PhaseGraph, source: str, target: str):
        self.graph = graph
        self.source = graph.require(source).name
        self.target = graph.require(target).name
        self.selection: Selection = IDLE

    @property
    def connection(self) -> Tuple[str, str]:
        return (self.source, self.target)

    @property
    def rules(self) -> List[AdvancementRule]:
        return self.graph.rules_between(self.source, self.target)

    def exit_slots(self) -> List[ExitSlot]:
        return exit_slots(self.graph.require(self.source))

    def incoming_slots(self) -> List[IncomingSlot]:
        return incoming_slots(self.graph.require(self.target))

    def locked_exit_slots(self) -> Set[str]:
        """Exit slots of the source already sent to some other phase."""
        return {
            r.exit_slot_id
            for r in self.graph.outgoing_rules(self.source)
            if r.target_phase != self.target
        }

    def locked_incoming_slots(self) -> Set[int]:
        """Incoming slots of the target already fed by some other phase."""
        return {
            r.target_slot_number
            for r in self.graph.incoming_rules(self.target)
            if r.source_phase != self.source
        }

    def click_exit_slot(self, slot_id: str) -> Selection:
        if slot_id not in {s.slot_id for s in self.exit_slots()}:
            raise ValueError(f"Phase '{self.source}' has no exit slot '{slot_id}'")
        if slot_id in self.locked_exit_slots():
            logger.debug("Exit slot %s of '%s' is locked", slot_id, self.source)
            return self.selection

        if self.selection == SourceSelected(slot_id):
            self.selection = IDLE
        else:
            self.selection = SourceSelected(slot_id)
        return self.selection

    def click_incoming_slot(self, slot_number: int) -> Optional[AdvancementRule]:
        """
        Commit the selected exit slot to an incoming slot.

        Returns the new rule, or None if nothing was selected or the slot is locked.
        """
        if not isinstance(self.selection, SourceSelected):
            return None
        if slot_number < 1 or slot_number > self.graph.require(self.target).incoming_slot_count:
            raise ValueError(f"Phase '{self.target}' has no incoming slot {slot_number}")
        if slot_number in self.locked_incoming_slots():
            logger.debug("Incoming slot %d of '%s' is locked", slot_number, self.target)
            return None

        pool, rank = parse_exit_slot_id(self.selection.slot_id)
        rule = self.graph.add_or_update_rule(AdvancementRule(
            source_phase=self.source,
            target_phase=self.target,
            finish_position=rank,
            target_slot_number=slot_number,
            source_pool_index=pool,
        ))
        self.selection = IDLE
        return rule

    def click_mapping(self, rule: AdvancementRule) -> bool:
        """Remove one mapping line. Returns False if it was not part of this connection."""
        if rule.connection != self.connection:
            return False
        return self.graph.remove_rules(lambda r: r == rule) > 0

    def apply_preset(self, preset: str) -> List[AdvancementRule]:
        rules = apply_preset(self.graph, self.source, self.target, preset)
        self.selection = IDLE
        return rules

    def close(self) -> None:
        self.selection = IDLE

    def still_valid(self) -> bool:
        """False once either endpoint phase is gone or renamed."""
        try:
            self.graph.require(self.source)
            self.graph.require(self.target)
        except UnknownPhaseError:
            return False
        return True

"""
Phase Graph — in-memory model of a tournament structure.

A structure is a set of phases (keyed by name) plus advancement rules that
map a finish position in one phase to an incoming slot in another.

Storage is arena-style: an ordered list of phases and a name -> index map
that is rebuilt after every structural change. Rules reference phases by
name only, so rename and remove are plain rewrites of the rule list.

Guarantees:
    - add_phase / rename_phase never create a duplicate name
    - remove_phase cascades to every rule touching the phase
    - rename_phase rewrites the phase and all rule references in one step
    - an incoming slot holds at most one rule (add_or_update_rule replaces)
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from phase_editor.services.errors import PhaseNameConflictError, UnknownPhaseError
from phase_editor.services.phase_rules import (
    AWARD,
    BRACKET_ROUND,
    DEFAULT_BEST_OF,
    DEFAULT_FIRST_PHASE_INCOMING,
    DEFAULT_MATCH_DURATION_MINUTES,
    DEFAULT_PHASE_TYPE,
    DEFAULT_SEEDING_STRATEGY,
    DRAW,
    POOLS,
)

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Data Models
# -----------------------------------------------------------------------------

@dataclass
class Position:
    x: float
    y: float


@dataclass
class Phase:
    """One stage of a tournament structure."""
    name: str
    phase_type: str = DEFAULT_PHASE_TYPE
    sort_order: int = 1
    incoming_slot_count: int = 0
    advancing_slot_count: int = 0
    pool_count: int = 0
    best_of: int = DEFAULT_BEST_OF
    include_consolation: bool = False
    award_type: Optional[str] = None
    draw_method: Optional[str] = None
    seeding_strategy: str = DEFAULT_SEEDING_STRATEGY
    match_duration_minutes: int = DEFAULT_MATCH_DURATION_MINUTES
    position: Optional[Position] = None  # canvas only

    @property
    def is_draw(self) -> bool:
        return self.phase_type == DRAW

    @property
    def is_award(self) -> bool:
        return self.phase_type == AWARD

    @property
    def has_pool_exits(self) -> bool:
        """Pools phase whose exit slots are addressed per pool."""
        return self.phase_type == POOLS and self.pool_count > 1

    @property
    def match_count(self) -> int:
        """Head-to-head matches in one bracket round."""
        return self.incoming_slot_count // 2

    @property
    def has_loser_exits(self) -> bool:
        """BracketRound where both winners and losers leave the phase."""
        return self.phase_type == BRACKET_ROUND and (
            self.include_consolation or self.advancing_slot_count >= self.incoming_slot_count
        )


@dataclass(frozen=True)
class AdvancementRule:
    """Finisher `finish_position` of `source_phase` enters `target_slot_number` of `target_phase`."""
    source_phase: str
    target_phase: str
    finish_position: int
    target_slot_number: int
    source_pool_index: Optional[int] = None

    @property
    def connection(self) -> Tuple[str, str]:
        return (self.source_phase, self.target_phase)

    @property
    def exit_slot_id(self) -> str:
        """Exit slot id: "{pool}-{rank}" for pool exits, "{rank}" otherwise."""
        if self.source_pool_index is None:
            return str(self.finish_position)
        return f"{self.source_pool_index}-{self.finish_position}"


# -----------------------------------------------------------------------------
# Graph
# -----------------------------------------------------------------------------

class PhaseGraph:
    """Ordered phases plus the advancement rules between them."""

    def __init__(
        self,
        phases: Optional[List[Phase]] = None,
        rules: Optional[List[AdvancementRule]] = None,
        direction: str = "TB",
        flexible: Optional[Dict[str, Any]] = None,
        exit_positions: Optional[List[Dict[str, Any]]] = None,
    ):
        # Loading path: duplicates are kept so the validator can report them
        self._phases: List[Phase] = list(phases or [])
        self._rules: List[AdvancementRule] = list(rules or [])
        self._index: Dict[str, int] = {}
        self.direction = direction
        self.flexible = flexible
        self.exit_positions: List[Dict[str, Any]] = list(exit_positions or [])
        self._reindex()

    def _reindex(self) -> None:
        self._index = {}
        for idx, phase in enumerate(self._phases):
            self._index.setdefault(phase.name, idx)

    # ── Read access ──

    @property
    def phases(self) -> List[Phase]:
        """Phases in insertion order."""
        return list(self._phases)

    @property
    def rules(self) -> List[AdvancementRule]:
        return list(self._rules)

    def __len__(self) -> int:
        return len(self._phases)

    def __iter__(self) -> Iterator[Phase]:
        return iter(list(self._phases))

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def get(self, name: str) -> Optional[Phase]:
        idx = self._index.get(name)
        return self._phases[idx] if idx is not None else None

    def require(self, name: str) -> Phase:
        phase = self.get(name)
        if phase is None:
            raise UnknownPhaseError(name)
        return phase

    def insertion_index(self, name: str) -> int:
        if name not in self._index:
            raise UnknownPhaseError(name)
        return self._index[name]

    def phases_in_order(self) -> List[Phase]:
        """Phases ordered by sort_order; insertion order breaks ties."""
        return [
            p for _, p in sorted(enumerate(self._phases), key=lambda item: (item[1].sort_order, item[0]))
        ]

    def incoming_rules(self, name: str) -> List[AdvancementRule]:
        return [r for r in self._rules if r.target_phase == name]

    def outgoing_rules(self, name: str) -> List[AdvancementRule]:
        return [r for r in self._rules if r.source_phase == name]

    def rules_between(self, source: str, target: str) -> List[AdvancementRule]:
        return [r for r in self._rules if r.source_phase == source and r.target_phase == target]

    def connections(self) -> List[Tuple[str, str]]:
        """Distinct (source, target) pairs in first-seen rule order."""
        seen: Dict[Tuple[str, str], None] = {}
        for rule in self._rules:
            seen.setdefault(rule.connection, None)
        return list(seen)

    # ── Phase mutations ──

    def add_phase(self, phase: Phase) -> Phase:
        if phase.name in self._index:
            raise PhaseNameConflictError(phase.name)
        self._phases.append(phase)
        self._reindex()
        return phase

    def remove_phase(self, name: str) -> int:
        """
        Remove a phase and every rule that touches it.

        Returns the number of rules removed with it.
        """
        idx = self.insertion_index(name)
        kept = [r for r in self._rules if r.source_phase != name and r.target_phase != name]
        removed = len(self._rules) - len(kept)

        self._phases = self._phases[:idx] + self._phases[idx + 1:]
        self._rules = kept
        self._reindex()

        logger.info("Removed phase '%s' and %d advancement rule(s)", name, removed)
        return removed

    def rename_phase(self, old_name: str, new_name: str) -> None:
        """
        Rename a phase and rewrite every rule reference to it.

        Raises PhaseNameConflictError (graph unchanged) if new_name belongs to
        another phase.
        """
        idx = self.insertion_index(old_name)
        if not new_name or not new_name.strip():
            raise ValueError("Phase name must not be empty")
        if new_name == old_name:
            return
        if new_name in self._index:
            raise PhaseNameConflictError(new_name)

        # Build everything first, then swap in
        phases = list(self._phases)
        phases[idx] = replace(phases[idx], name=new_name)
        rules = [self._renamed_rule(r, old_name, new_name) for r in self._rules]

        self._phases = phases
        self._rules = rules
        self._reindex()
        logger.info("Renamed phase '%s' to '%s'", old_name, new_name)

    @staticmethod
    def _renamed_rule(rule: AdvancementRule, old_name: str, new_name: str) -> AdvancementRule:
        if rule.source_phase != old_name and rule.target_phase != old_name:
            return rule
        return replace(
            rule,
            source_phase=new_name if rule.source_phase == old_name else rule.source_phase,
            target_phase=new_name if rule.target_phase == old_name else rule.target_phase,
        )

    def move_phase(self, name: str, offset: int) -> None:
        """
        Swap a phase with its neighbour in schedule order and renumber 1..n.

        offset is -1 (earlier) or +1 (later). Moves past either end are ignored.
        """
        ordered = self.phases_in_order()
        pos = next(i for i, p in enumerate(ordered) if p is self.require(name))
        swap = pos + offset
        if swap < 0 or swap >= len(ordered):
            return
        ordered[pos], ordered[swap] = ordered[swap], ordered[pos]
        for order, phase in enumerate(ordered, start=1):
            phase.sort_order = order

    def new_phase_defaults(self) -> Phase:
        """
        Defaults for the next phase appended by the list editor.

        Incoming slots follow the advancing count of the last phase in order.
        """
        count = len(self._phases)
        ordered = self.phases_in_order()
        if ordered:
            incoming = ordered[-1].advancing_slot_count or 4
        else:
            incoming = DEFAULT_FIRST_PHASE_INCOMING

        name = f"Phase {count + 1}"
        suffix = count + 1
        while name in self._index:
            suffix += 1
            name = f"Phase {suffix}"

        return Phase(
            name=name,
            sort_order=count + 1,
            incoming_slot_count=incoming,
            advancing_slot_count=max(1, incoming // 2),
        )

    # ── Rule mutations ──

    def add_or_update_rule(self, rule: AdvancementRule) -> AdvancementRule:
        """
        Insert a rule, replacing whatever already occupies its incoming slot
        or its exit slot within the same connection.
        """
        self.require(rule.source_phase)
        self.require(rule.target_phase)

        def _displaced(existing: AdvancementRule) -> bool:
            if (existing.target_phase, existing.target_slot_number) == (rule.target_phase, rule.target_slot_number):
                return True
            return (
                existing.connection == rule.connection
                and existing.source_pool_index == rule.source_pool_index
                and existing.finish_position == rule.finish_position
            )

        self._rules = [r for r in self._rules if not _displaced(r)] + [rule]
        return rule

    def remove_rules(self, predicate: Callable[[AdvancementRule], bool]) -> int:
        """Remove every rule matching predicate. Returns the count removed."""
        kept = [r for r in self._rules if not predicate(r)]
        removed = len(self._rules) - len(kept)
        self._rules = kept
        return removed

    def replace_connection_rules(self, source: str, target: str, rules: List[AdvancementRule]) -> None:
        """Swap out the rules of one connection, leaving all other connections alone."""
        self.require(source)
        self.require(target)
        others = [r for r in self._rules if r.connection != (source, target)]
        self._rules = others
        for rule in rules:
            self.add_or_update_rule(rule)

    def replace_all_rules(self, rules: List[AdvancementRule]) -> None:
        for rule in rules:
            self.require(rule.source_phase)
            self.require(rule.target_phase)
        self._rules = list(rules)

    # ── Misc ──

    def copy(self) -> "PhaseGraph":
        return copy.deepcopy(self)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PhaseGraph):
            return NotImplemented
        return (
            self._phases == other._phases
            and sorted(self._rules, key=_rule_key) == sorted(other._rules, key=_rule_key)
            and self.direction == other.direction
            and self.flexible == other.flexible
            and self.exit_positions == other.exit_positions
        )

    def __repr__(self) -> str:
        return f"PhaseGraph(phases={len(self._phases)}, rules={len(self._rules)}, direction={self.direction!r})"


def _rule_key(rule: AdvancementRule) -> tuple:
    pool = -1 if rule.source_pool_index is None else rule.source_pool_index
    return (rule.source_phase, rule.target_phase, pool, rule.finish_position, rule.target_slot_number)

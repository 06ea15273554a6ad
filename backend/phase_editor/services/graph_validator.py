"""
Structure Validation Report — pass/fail contract for saving a phase structure.

Pure function over a PhaseGraph snapshot. Emits blocking errors (save is
refused) and non-blocking warnings, each with a stable code.

Every list is returned in stable order:
  - checks run in a fixed sequence
  - within a check, phases are visited in insertion order
"""

import logging
from collections import Counter, defaultdict
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

from phase_editor.services.phase_graph import PhaseGraph
from phase_editor.services.phase_sequencer import find_rule_cycle
from phase_editor.services.slot_mapper import exit_slot_count

logger = logging.getLogger(__name__)

# ============================================================================
# Pydantic Response Models
# ============================================================================


class ValidationIssue(BaseModel):
    code: str
    message: str
    phase: Optional[str] = None
    context: Optional[Dict[str, Any]] = None


class StructureValidationReport(BaseModel):
    ok: bool
    errors: List[ValidationIssue]
    warnings: List[ValidationIssue]

    @property
    def error_messages(self) -> List[str]:
        return [e.message for e in self.errors]

    @property
    def warning_messages(self) -> List[str]:
        return [w.message for w in self.warnings]


# ============================================================================
# Checks
# ============================================================================


def _check_entry_and_exit(graph: PhaseGraph, errors: List[ValidationIssue]) -> None:
    if not any(p.is_draw for p in graph.phases):
        errors.append(ValidationIssue(
            code="E_NO_DRAW_PHASE",
            message="Structure needs a Draw phase as its entry point",
        ))
    if not any(p.is_award for p in graph.phases):
        errors.append(ValidationIssue(
            code="E_NO_AWARD_PHASE",
            message="Structure needs an Award phase as its final point",
        ))


def _check_duplicate_names(graph: PhaseGraph, errors: List[ValidationIssue]) -> None:
    counts = Counter(p.name for p in graph.phases)
    for name, count in counts.items():
        if count > 1:
            errors.append(ValidationIssue(
                code="E_DUPLICATE_PHASE_NAME",
                message=f"Phase name '{name}' is used {count} times",
                phase=name,
                context={"count": count},
            ))


def _check_rule_endpoints(
    graph: PhaseGraph,
    errors: List[ValidationIssue],
    warnings: List[ValidationIssue],
) -> None:
    incoming: Dict[str, int] = defaultdict(int)
    outgoing: Dict[str, int] = defaultdict(int)
    for rule in graph.rules:
        outgoing[rule.source_phase] += 1
        incoming[rule.target_phase] += 1

    multi = len(graph) > 1
    for phase in graph.phases:
        if phase.is_draw and incoming[phase.name]:
            warnings.append(ValidationIssue(
                code="W_DRAW_HAS_INCOMING",
                message=f"Draw phase '{phase.name}' should not receive advancement rules",
                phase=phase.name,
                context={"incoming_rules": incoming[phase.name]},
            ))
        if phase.is_award and outgoing[phase.name]:
            warnings.append(ValidationIssue(
                code="W_AWARD_HAS_OUTGOING",
                message=f"Award phase '{phase.name}' should not advance anyone",
                phase=phase.name,
                context={"outgoing_rules": outgoing[phase.name]},
            ))
        if multi and not phase.is_draw and not incoming[phase.name]:
            errors.append(ValidationIssue(
                code="E_ORPHANED_PHASE",
                message=f"Phase '{phase.name}' has no incoming advancement rules",
                phase=phase.name,
            ))
        if multi and not phase.is_award and not outgoing[phase.name]:
            warnings.append(ValidationIssue(
                code="W_NO_OUTGOING",
                message=f"Phase '{phase.name}' has no outgoing advancement rules",
                phase=phase.name,
            ))


def _check_cycles(graph: PhaseGraph, errors: List[ValidationIssue]) -> None:
    cycle = find_rule_cycle(graph)
    if cycle:
        path = " -> ".join(cycle + cycle[:1])
        errors.append(ValidationIssue(
            code="E_CYCLE",
            message=f"Advancement rules loop back on themselves: {path}",
            phase=cycle[0],
            context={"cycle": cycle},
        ))


def _check_slots(graph: PhaseGraph, warnings: List[ValidationIssue]) -> None:
    claimed: Dict[Tuple[str, int], int] = Counter(
        (r.target_phase, r.target_slot_number) for r in graph.rules
    )
    for (target, slot), count in claimed.items():
        if count > 1:
            warnings.append(ValidationIssue(
                code="W_DUPLICATE_TARGET_SLOT",
                message=f"Incoming slot {slot} of '{target}' is fed by {count} rules",
                phase=target,
                context={"target_slot_number": slot, "count": count},
            ))

    for rule in graph.rules:
        source = graph.get(rule.source_phase)
        target = graph.get(rule.target_phase)
        if source is None or target is None:
            continue
        if rule.finish_position < 1 or rule.finish_position > exit_slot_count(source, rule.source_pool_index):
            warnings.append(ValidationIssue(
                code="W_SLOT_OUT_OF_RANGE",
                message=(
                    f"Rule {rule.source_phase} #{rule.exit_slot_id} -> {rule.target_phase}: "
                    f"finish position {rule.finish_position} does not exist"
                ),
                phase=rule.source_phase,
                context={"finish_position": rule.finish_position},
            ))
        if rule.target_slot_number < 1 or rule.target_slot_number > target.incoming_slot_count:
            warnings.append(ValidationIssue(
                code="W_SLOT_OUT_OF_RANGE",
                message=(
                    f"Rule {rule.source_phase} #{rule.exit_slot_id} -> {rule.target_phase}: "
                    f"incoming slot {rule.target_slot_number} does not exist"
                ),
                phase=rule.target_phase,
                context={"target_slot_number": rule.target_slot_number},
            ))


# ============================================================================
# Entry point
# ============================================================================


def validate(graph: PhaseGraph) -> StructureValidationReport:
    """
    Validate a structure. No side effects.

    Errors block save; warnings do not.
    """
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []

    if len(graph) == 0:
        return StructureValidationReport(ok=True, errors=errors, warnings=warnings)

    _check_entry_and_exit(graph, errors)
    _check_duplicate_names(graph, errors)
    _check_rule_endpoints(graph, errors, warnings)
    _check_cycles(graph, errors)
    _check_slots(graph, warnings)

    if errors:
        logger.debug("Structure has %d error(s), %d warning(s)", len(errors), len(warnings))

    return StructureValidationReport(ok=not errors, errors=errors, warnings=warnings)

"""
Structure Serializer — PhaseGraph <-> stored structure document.

Document shape:
    {
      "phases": [{name, phaseType, sortOrder, incomingSlotCount, ...}],
      "advancementRules": [{sourcePhase, targetPhase, finishPosition,
                            targetSlotNumber, sourcePoolIndex}],
      "canvasLayout": {"direction": "TB"|"LR", "nodePositions": {name: {x, y}}}
    }

Reading is lenient, writing is canonical:
  - legacy rules (sourcePhaseOrder/targetPhaseOrder, fromPhase/toPhase) are
    resolved by the sortOrder each phase held at save time and rewritten to
    the name-based form; unresolvable references are dropped with a warning
  - older field aliases (type, incomingSlots, exitingSlots, fromRank, toSlot,
    hasConsolationMatch) are accepted
  - an "auto" entry in advancementRules expands to auto-generated rules
  - flexible templates (isFlexible) keep their generateBracket config
Malformed JSON raises StructureParseError before any graph exists.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from phase_editor import config
from phase_editor.services.errors import StructureParseError
from phase_editor.services.phase_graph import AdvancementRule, Phase, PhaseGraph, Position
from phase_editor.services.phase_rules import (
    DEFAULT_ADVANCING_SLOTS,
    DEFAULT_BEST_OF,
    DEFAULT_INCOMING_SLOTS,
    DEFAULT_MATCH_DURATION_MINUTES,
    DEFAULT_PHASE_TYPE,
    DEFAULT_SEEDING_STRATEGY,
    LAYOUT_DIRECTIONS,
    PHASE_TYPES,
)
from phase_editor.services.slot_mapper import auto_generate_rules

logger = logging.getLogger(__name__)

AUTO_RULES = "auto"

DEFAULT_GENERATE_BRACKET: Dict[str, Any] = {
    "type": "SingleElimination",
    "consolation": False,
    "calculateByes": True,
}


@dataclass
class ParseResult:
    graph: PhaseGraph
    warnings: List[str] = field(default_factory=list)


# -----------------------------------------------------------------------------
# Coercion helpers
# -----------------------------------------------------------------------------

def _first_present(raw: Mapping[str, Any], *keys: str) -> Any:
    """Value of the first key that is present and not null."""
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _as_int(value: Any, default: int, what: str, warnings: List[str]) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        warnings.append(f"{what}: expected a number, got {value!r}; using {default}")
        return default


def _as_optional_int(value: Any, what: str, warnings: List[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        warnings.append(f"{what}: expected a number, got {value!r}; ignoring")
        return None


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _load(doc: Union[str, bytes, Mapping[str, Any]]) -> Mapping[str, Any]:
    if isinstance(doc, (str, bytes)):
        try:
            root = json.loads(doc)
        except json.JSONDecodeError as e:
            raise StructureParseError(f"Invalid JSON in structure: {e}") from e
    else:
        root = doc
    if not isinstance(root, Mapping):
        raise StructureParseError("Structure must be a JSON object")
    return root


# -----------------------------------------------------------------------------
# Read
# -----------------------------------------------------------------------------

def _parse_phase(raw: Mapping[str, Any], index: int, warnings: List[str]) -> Phase:
    position_no = index + 1
    name = raw.get("name") or f"Phase {position_no}"
    where = f"Phase '{name}'"

    phase_type = _first_present(raw, "phaseType", "type") or DEFAULT_PHASE_TYPE
    if phase_type not in PHASE_TYPES:
        warnings.append(f"{where}: unknown phase type {phase_type!r}; using {DEFAULT_PHASE_TYPE}")
        phase_type = DEFAULT_PHASE_TYPE

    sort_order = _as_int(raw.get("sortOrder"), position_no, f"{where} sortOrder", warnings)

    return Phase(
        name=name,
        phase_type=phase_type,
        sort_order=sort_order,
        incoming_slot_count=_as_int(
            _first_present(raw, "incomingSlotCount", "incomingSlots"),
            DEFAULT_INCOMING_SLOTS, f"{where} incomingSlotCount", warnings,
        ),
        advancing_slot_count=_as_int(
            _first_present(raw, "advancingSlotCount", "exitingSlots"),
            DEFAULT_ADVANCING_SLOTS, f"{where} advancingSlotCount", warnings,
        ),
        pool_count=_as_int(raw.get("poolCount"), 0, f"{where} poolCount", warnings),
        best_of=_as_int(raw.get("bestOf"), DEFAULT_BEST_OF, f"{where} bestOf", warnings),
        include_consolation=bool(raw.get("includeConsolation") or raw.get("hasConsolationMatch") or False),
        award_type=raw.get("awardType") or None,
        draw_method=raw.get("drawMethod") or None,
        seeding_strategy=raw.get("seedingStrategy") or DEFAULT_SEEDING_STRATEGY,
        match_duration_minutes=_as_int(
            raw.get("matchDurationMinutes"), DEFAULT_MATCH_DURATION_MINUTES,
            f"{where} matchDurationMinutes", warnings,
        ),
    )


def _resolve_endpoint(
    raw: Mapping[str, Any],
    name_key: str,
    order_keys: tuple,
    names: set,
    by_order: Dict[int, str],
    label: str,
    warnings: List[str],
) -> Optional[str]:
    """Resolve one end of a rule to a phase name, by name or by legacy sortOrder."""
    name = raw.get(name_key)
    if name is not None:
        if name in names:
            return name
        warnings.append(f"Advancement rule {label} phase '{name}' does not exist; rule dropped")
        return None

    order = _first_present(raw, *order_keys)
    if order is None:
        warnings.append(f"Advancement rule has no {label} phase; rule dropped")
        return None
    try:
        resolved = by_order.get(int(order))
    except (TypeError, ValueError):
        resolved = None
    if resolved is None:
        warnings.append(f"Advancement rule {label} order {order!r} matches no phase; rule dropped")
    return resolved


def _parse_rule(
    raw: Mapping[str, Any],
    names: set,
    by_order: Dict[int, str],
    warnings: List[str],
) -> Optional[AdvancementRule]:
    source = _resolve_endpoint(raw, "sourcePhase", ("sourcePhaseOrder", "fromPhase"), names, by_order, "source", warnings)
    target = _resolve_endpoint(raw, "targetPhase", ("targetPhaseOrder", "toPhase"), names, by_order, "target", warnings)
    if source is None or target is None:
        return None

    return AdvancementRule(
        source_phase=source,
        target_phase=target,
        finish_position=_as_int(_first_present(raw, "finishPosition", "fromRank"), 1, "finishPosition", warnings),
        target_slot_number=_as_int(_first_present(raw, "targetSlotNumber", "toSlot"), 1, "targetSlotNumber", warnings),
        source_pool_index=_as_optional_int(raw.get("sourcePoolIndex"), "sourcePoolIndex", warnings),
    )


def _apply_canvas_layout(graph: PhaseGraph, raw: Any, warnings: List[str]) -> None:
    graph.direction = config.DEFAULT_LAYOUT_DIRECTION
    if not isinstance(raw, Mapping):
        return

    direction = raw.get("direction")
    if direction in LAYOUT_DIRECTIONS:
        graph.direction = direction
    elif direction is not None:
        warnings.append(f"Canvas direction {direction!r} is not TB or LR; using {graph.direction}")

    positions = raw.get("nodePositions") or {}
    if not isinstance(positions, Mapping):
        warnings.append("Canvas nodePositions is not an object; positions ignored")
        return

    by_order = {}
    for phase in graph.phases:
        by_order.setdefault(str(phase.sort_order), phase)

    for key, value in positions.items():
        phase = graph.get(key)
        if phase is None:
            # Older canvases keyed nodes by sortOrder
            phase = by_order.get(str(key))
        if phase is None:
            warnings.append(f"Canvas position for unknown phase '{key}' dropped")
            continue
        x = _as_float(value.get("x")) if isinstance(value, Mapping) else None
        y = _as_float(value.get("y")) if isinstance(value, Mapping) else None
        if x is None or y is None:
            warnings.append(f"Canvas position for phase '{key}' is not a point; dropped")
            continue
        phase.position = Position(x, y)


def parse_structure(doc: Union[str, bytes, Mapping[str, Any]]) -> ParseResult:
    """
    Build a PhaseGraph from a stored structure document.

    Raises:
        StructureParseError if the document is not a JSON object or its
        phases / advancementRules are not arrays
    """
    root = _load(doc)
    warnings: List[str] = []

    if root.get("isFlexible"):
        generate = dict(DEFAULT_GENERATE_BRACKET)
        if isinstance(root.get("generateBracket"), Mapping):
            generate.update(root["generateBracket"])
        graph = PhaseGraph(
            flexible={"generateBracket": generate},
            exit_positions=_exit_positions(root),
            direction=config.DEFAULT_LAYOUT_DIRECTION,
        )
        return ParseResult(graph=graph, warnings=warnings)

    raw_phases = root.get("phases") or []
    raw_rules = root.get("advancementRules") or []
    if not isinstance(raw_phases, list):
        raise StructureParseError("'phases' must be an array")
    if not isinstance(raw_rules, list):
        raise StructureParseError("'advancementRules' must be an array")

    phases: List[Phase] = []
    for i, raw in enumerate(raw_phases):
        if not isinstance(raw, Mapping):
            warnings.append(f"Phase entry {i + 1} is not an object; skipped")
            continue
        phases.append(_parse_phase(raw, i, warnings))

    names = {p.name for p in phases}
    by_order: Dict[int, str] = {}
    for phase in phases:
        by_order.setdefault(phase.sort_order, phase.name)

    rules: List[AdvancementRule] = []
    wants_auto = False
    for raw in raw_rules:
        if raw == AUTO_RULES:
            wants_auto = True
            continue
        if not isinstance(raw, Mapping):
            warnings.append(f"Advancement rule {raw!r} is not an object; dropped")
            continue
        rule = _parse_rule(raw, names, by_order, warnings)
        if rule is not None:
            rules.append(rule)

    graph = PhaseGraph(phases=phases, rules=rules, exit_positions=_exit_positions(root))
    if wants_auto:
        graph.replace_all_rules(rules + auto_generate_rules(graph))

    _apply_canvas_layout(graph, root.get("canvasLayout"), warnings)

    for warning in warnings:
        logger.warning("Structure parse: %s", warning)

    return ParseResult(graph=graph, warnings=warnings)


def _exit_positions(root: Mapping[str, Any]) -> List[Dict[str, Any]]:
    value = root.get("exitPositions")
    return list(value) if isinstance(value, list) else []


# -----------------------------------------------------------------------------
# Write
# -----------------------------------------------------------------------------

def _phase_to_dict(phase: Phase) -> Dict[str, Any]:
    return {
        "name": phase.name,
        "phaseType": phase.phase_type,
        "sortOrder": phase.sort_order,
        "incomingSlotCount": phase.incoming_slot_count,
        "advancingSlotCount": phase.advancing_slot_count,
        "poolCount": phase.pool_count,
        "bestOf": phase.best_of,
        "includeConsolation": phase.include_consolation,
        "awardType": phase.award_type,
        "drawMethod": phase.draw_method,
        "seedingStrategy": phase.seeding_strategy,
        "matchDurationMinutes": phase.match_duration_minutes,
    }


def _rule_to_dict(rule: AdvancementRule) -> Dict[str, Any]:
    return {
        "sourcePhase": rule.source_phase,
        "targetPhase": rule.target_phase,
        "finishPosition": rule.finish_position,
        "targetSlotNumber": rule.target_slot_number,
        "sourcePoolIndex": rule.source_pool_index,
    }


def serialize_structure(graph: PhaseGraph) -> Dict[str, Any]:
    """Canonical, name-based structure document for a graph."""
    if graph.flexible is not None:
        doc: Dict[str, Any] = {
            "isFlexible": True,
            "generateBracket": dict(graph.flexible.get("generateBracket") or DEFAULT_GENERATE_BRACKET),
        }
        if graph.exit_positions:
            doc["exitPositions"] = list(graph.exit_positions)
        return doc

    node_positions: Dict[str, Dict[str, float]] = {}
    for phase in graph.phases:
        if phase.position is not None and phase.name not in node_positions:
            node_positions[phase.name] = {"x": phase.position.x, "y": phase.position.y}

    doc = {
        "phases": [_phase_to_dict(p) for p in graph.phases],
        "advancementRules": [_rule_to_dict(r) for r in graph.rules],
    }
    if graph.exit_positions:
        doc["exitPositions"] = list(graph.exit_positions)
    doc["canvasLayout"] = {"direction": graph.direction, "nodePositions": node_positions}
    return doc


def structure_json(graph: PhaseGraph) -> str:
    """Serialized document as the JSON text stored on a template."""
    return json.dumps(serialize_structure(graph), indent=2)

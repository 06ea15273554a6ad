"""Tests for reading and writing stored structure documents."""

import json

import pytest

from phase_editor.services import phase_layout
from phase_editor.services.errors import StructureParseError
from phase_editor.services.phase_graph import Position
from phase_editor.services.structure_serializer import parse_structure, serialize_structure, structure_json


LEGACY_DOC = {
    "phases": [
        {"name": "Draw", "phaseType": "Draw", "sortOrder": 1, "incomingSlotCount": 0, "advancingSlotCount": 4},
        {"name": "Semis", "phaseType": "SingleElimination", "sortOrder": 2,
         "incomingSlotCount": 4, "advancingSlotCount": 2},
        {"name": "Award", "phaseType": "Award", "sortOrder": 3, "incomingSlotCount": 2, "advancingSlotCount": 0},
    ],
    "advancementRules": [
        {"sourcePhaseOrder": 1, "targetPhaseOrder": 2, "finishPosition": 1, "targetSlotNumber": 1},
        {"sourcePhaseOrder": 1, "targetPhaseOrder": 2, "finishPosition": 2, "targetSlotNumber": 2},
        {"sourcePhaseOrder": 2, "targetPhaseOrder": 3, "finishPosition": 1, "targetSlotNumber": 1},
    ],
}


# ---------------------------------------------------------------------------
# round trip
# ---------------------------------------------------------------------------


def test_round_trip(bracket_chain):
    phase_layout.auto_layout(bracket_chain)
    bracket_chain.direction = "LR"

    parsed = parse_structure(serialize_structure(bracket_chain))

    assert parsed.warnings == []
    assert parsed.graph == bracket_chain
    assert parsed.graph.require("Final").position == bracket_chain.require("Final").position


def test_round_trip_through_json_text(pools_structure):
    pools_structure.require("Pools").position = Position(10.5, 20.0)

    parsed = parse_structure(structure_json(pools_structure))

    assert parsed.graph == pools_structure
    assert parsed.graph.require("Pools").position == Position(10.5, 20.0)


def test_round_trip_keeps_zero_values(bracket_chain):
    draw = bracket_chain.require("Draw")
    draw.sort_order = 0
    draw.best_of = 0
    draw.match_duration_minutes = 0

    parsed = parse_structure(serialize_structure(bracket_chain)).graph

    assert parsed == bracket_chain
    assert parsed.require("Draw").sort_order == 0
    assert parsed.require("Draw").match_duration_minutes == 0


def test_null_values_still_get_defaults():
    doc = {"phases": [{"name": "Solo", "sortOrder": None, "bestOf": None, "matchDurationMinutes": None}]}

    solo = parse_structure(doc).graph.require("Solo")

    assert (solo.sort_order, solo.best_of, solo.match_duration_minutes) == (1, 1, 30)


def test_serialized_shape(bracket_chain):
    doc = serialize_structure(bracket_chain)

    assert list(doc) == ["phases", "advancementRules", "canvasLayout"]
    assert doc["phases"][0]["phaseType"] == "Draw"
    assert doc["advancementRules"][0] == {
        "sourcePhase": "Draw",
        "targetPhase": "QuarterFinals",
        "finishPosition": 1,
        "targetSlotNumber": 1,
        "sourcePoolIndex": None,
    }
    assert doc["canvasLayout"] == {"direction": "TB", "nodePositions": {}}


# ---------------------------------------------------------------------------
# legacy documents
# ---------------------------------------------------------------------------


def test_legacy_order_rules_become_names():
    result = parse_structure(LEGACY_DOC)

    assert [(r.source_phase, r.target_phase) for r in result.graph.rules] == [
        ("Draw", "Semis"), ("Draw", "Semis"), ("Semis", "Award"),
    ]
    serialized = serialize_structure(result.graph)
    assert all("sourcePhaseOrder" not in r for r in serialized["advancementRules"])
    assert serialized["advancementRules"][2]["sourcePhase"] == "Semis"


def test_legacy_aliases():
    doc = {
        "phases": [
            {"name": "Draw", "type": "Draw", "sortOrder": 1, "exitingSlots": 2},
            {"name": "R1", "type": "BracketRound", "sortOrder": 2, "incomingSlots": 2,
             "exitingSlots": 1, "hasConsolationMatch": True},
        ],
        "advancementRules": [
            {"fromPhase": 1, "toPhase": 2, "fromRank": 2, "toSlot": 1},
        ],
    }

    graph = parse_structure(doc).graph

    r1 = graph.require("R1")
    assert r1.phase_type == "BracketRound"
    assert r1.incoming_slot_count == 2
    assert r1.include_consolation is True
    assert [(r.source_phase, r.finish_position, r.target_slot_number) for r in graph.rules] == [("Draw", 2, 1)]


def test_unresolvable_rules_are_dropped_with_warning():
    doc = json.loads(json.dumps(LEGACY_DOC))
    doc["advancementRules"].append({"sourcePhaseOrder": 7, "targetPhaseOrder": 2})
    doc["advancementRules"].append({"sourcePhase": "Ghost", "targetPhase": "Semis"})

    result = parse_structure(doc)

    assert len(result.graph.rules) == 3
    assert len(result.warnings) == 2


def test_legacy_canvas_keys_by_sort_order():
    doc = dict(LEGACY_DOC, canvasLayout={"direction": "LR", "nodePositions": {"2": {"x": 5, "y": 6}}})

    graph = parse_structure(doc).graph

    assert graph.direction == "LR"
    assert graph.require("Semis").position == Position(5.0, 6.0)


# ---------------------------------------------------------------------------
# defaults + extras
# ---------------------------------------------------------------------------


def test_missing_fields_get_defaults():
    graph = parse_structure({"phases": [{"name": "Solo"}]}).graph

    solo = graph.require("Solo")
    assert solo.phase_type == "SingleElimination"
    assert solo.sort_order == 1
    assert solo.best_of == 1
    assert solo.seeding_strategy == "Sequential"
    assert solo.match_duration_minutes == 30
    assert graph.direction == "TB"


def test_unknown_phase_type_warns():
    result = parse_structure({"phases": [{"name": "X", "phaseType": "Ladder"}]})
    assert result.graph.require("X").phase_type == "SingleElimination"
    assert len(result.warnings) == 1


def test_auto_rules_entry_expands():
    doc = {
        "phases": [
            {"name": "Draw", "phaseType": "Draw", "sortOrder": 1, "incomingSlotCount": 0, "advancingSlotCount": 2},
            {"name": "Award", "phaseType": "Award", "sortOrder": 2, "incomingSlotCount": 2, "advancingSlotCount": 0},
        ],
        "advancementRules": ["auto"],
    }

    graph = parse_structure(doc).graph

    assert [(r.finish_position, r.target_slot_number) for r in graph.rules] == [(1, 1), (2, 2)]


def test_flexible_template():
    doc = {"isFlexible": True, "generateBracket": {"consolation": True}, "exitPositions": [{"rank": 1}]}

    graph = parse_structure(doc).graph
    out = serialize_structure(graph)

    assert len(graph) == 0
    assert out == {
        "isFlexible": True,
        "generateBracket": {"type": "SingleElimination", "consolation": True, "calculateByes": True},
        "exitPositions": [{"rank": 1}],
    }


def test_duplicate_names_survive_parsing():
    doc = {"phases": [{"name": "Pool", "sortOrder": 1}, {"name": "Pool", "sortOrder": 2}]}
    graph = parse_structure(doc).graph
    assert [p.sort_order for p in graph.phases] == [1, 2]


# ---------------------------------------------------------------------------
# malformed documents
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("doc", [
    "{not json",
    "[]",
    '"just a string"',
    {"phases": {"name": "Draw"}},
    {"phases": [], "advancementRules": "auto"},
])
def test_malformed_documents_raise(doc):
    with pytest.raises(StructureParseError):
        parse_structure(doc)


def test_bytes_are_accepted():
    graph = parse_structure(json.dumps(LEGACY_DOC).encode("utf-8")).graph
    assert len(graph) == 3

"""Tests for the editor session: one user action at a time, pending selection cleared on cancel."""

import pytest

from phase_editor.services.editor_session import EditorSession
from phase_editor.services.errors import PhaseCycleError, StructureNotSavableError
from phase_editor.services.phase_graph import AdvancementRule, Phase, Position
from phase_editor.services.slot_mapper import IDLE, SourceSelected
from phase_editor.services.structure_serializer import serialize_structure


@pytest.fixture
def session(bracket_chain) -> EditorSession:
    return EditorSession(bracket_chain)


def test_open_lays_out_unplaced_structure(bracket_chain):
    session = EditorSession.open(serialize_structure(bracket_chain))

    assert all(p.position is not None for p in session.graph.phases)
    assert session.parse_warnings == []


def test_open_keeps_saved_positions_and_places_the_rest(bracket_chain):
    bracket_chain.require("Draw").position = None
    doc = serialize_structure(bracket_chain)
    doc["canvasLayout"]["nodePositions"] = {"Draw": {"x": 7, "y": 9}}

    session = EditorSession.open(doc)

    assert session.graph.require("Draw").position == Position(7.0, 9.0)
    assert all(p.position is not None for p in session.graph.phases)
    assert "Award" in serialize_structure(session.graph)["canvasLayout"]["nodePositions"]


def test_add_phase_uses_list_defaults_and_places_it(session):
    session.auto_layout()

    phase = session.add_phase()

    assert phase.name == "Phase 6"
    assert phase.sort_order == 6
    # Draw is last by sort_order until the order is synced
    assert phase.incoming_slot_count == 8
    assert phase.position is not None


def test_connect_opens_the_connection(session):
    session.add_phase(Phase(name="Plate", incoming_slot_count=2, advancing_slot_count=1))

    rules = session.connect("QuarterFinals", "Plate")

    assert len(rules) == 2
    assert session.connection.connection == ("QuarterFinals", "Plate")


def test_selecting_other_connection_clears_selection(session):
    session.select_connection("QuarterFinals", "SemiFinals").click_exit_slot("1")
    assert session.connection.selection == SourceSelected("1")

    editor = session.select_connection("SemiFinals", "Final")

    assert editor.selection == IDLE


def test_close_panel_clears_selection(session):
    editor = session.select_connection("QuarterFinals", "SemiFinals")
    editor.click_exit_slot("1")

    session.close_panel()

    assert editor.selection == IDLE
    assert session.connection is None


def test_removing_an_endpoint_closes_the_panel(session):
    session.select_connection("QuarterFinals", "SemiFinals")

    removed = session.remove_phase("SemiFinals")

    assert removed == 6
    assert session.connection is None


def test_removing_an_unrelated_phase_keeps_the_panel(session):
    session.select_connection("QuarterFinals", "SemiFinals")
    session.remove_phase("Award")
    assert session.connection is not None


def test_rename_closes_panel_on_affected_connection(session):
    session.select_connection("QuarterFinals", "SemiFinals")

    session.rename_phase("SemiFinals", "Semis")

    assert session.connection is None
    assert len(session.graph.rules_between("QuarterFinals", "Semis")) == 4


def test_disconnect(session):
    session.select_connection("Final", "Award")

    assert session.disconnect("Final", "Award") == 1
    assert session.connection is None
    assert session.graph.rules_between("Final", "Award") == []


def test_sync_order_and_save(session):
    session.sync_order()

    doc = session.save()

    assert [p["sortOrder"] for p in doc["phases"]] == [1, 2, 3, 4, 5]


def test_save_refused_with_errors(session):
    session.disconnect("Final", "Award")

    with pytest.raises(StructureNotSavableError) as exc_info:
        session.save()

    assert [e.code for e in exc_info.value.report.errors] == ["E_ORPHANED_PHASE"]


def test_sync_order_refuses_cycles(session):
    session.graph.add_or_update_rule(AdvancementRule("Final", "QuarterFinals", 1, 8))
    with pytest.raises(PhaseCycleError):
        session.sync_order()


def test_auto_generate_replaces_rules(session):
    session.select_connection("QuarterFinals", "SemiFinals")

    rules = session.auto_generate_rules()

    assert session.graph.rules == rules
    assert session.connection is None


def test_drag_then_direction_change(session):
    session.drag_end("Draw", 40, 50)

    sides = session.set_direction("LR")

    assert sides == ("left", "right")
    assert session.graph.require("Draw").position.x == 40.0

"""Tests for recomputing sort_order from the advancement rules."""

import pytest

from phase_editor.services import phase_sequencer
from phase_editor.services.errors import PhaseCycleError
from phase_editor.services.phase_graph import AdvancementRule, Phase, PhaseGraph, Position
from phase_editor.services.slot_mapper import auto_generate_rules


def _orders(graph):
    return {p.name: p.sort_order for p in graph.phases}


def test_resync_follows_the_chain(bracket_chain):
    orders = phase_sequencer.resync(bracket_chain)

    expected = {"Draw": 1, "QuarterFinals": 2, "SemiFinals": 3, "Final": 4, "Award": 5}
    assert orders == expected
    assert _orders(bracket_chain) == expected


def test_canvas_height_breaks_ties():
    graph = PhaseGraph()
    graph.add_phase(Phase(name="Draw", phase_type="Draw", advancing_slot_count=4))
    graph.add_phase(Phase(name="Gold", incoming_slot_count=2, position=Position(0, 200)))
    graph.add_phase(Phase(name="Silver", incoming_slot_count=2, position=Position(300, 100)))
    graph.add_or_update_rule(AdvancementRule("Draw", "Gold", 1, 1))
    graph.add_or_update_rule(AdvancementRule("Draw", "Silver", 3, 1))

    phase_sequencer.resync(graph)

    assert _orders(graph) == {"Draw": 1, "Silver": 2, "Gold": 3}


def test_unplaced_phases_follow_placed_ones():
    graph = PhaseGraph()
    graph.add_phase(Phase(name="Unplaced", phase_type="Draw"))
    graph.add_phase(Phase(name="Placed", phase_type="Draw", position=Position(0, 500)))

    assert phase_sequencer.compute_sequence(graph) == {"Placed": 1, "Unplaced": 2}


def test_insertion_order_breaks_remaining_ties():
    graph = PhaseGraph()
    for name in ("C", "A", "B"):
        graph.add_phase(Phase(name=name, phase_type="Draw"))

    assert phase_sequencer.compute_sequence(graph) == {"C": 1, "A": 2, "B": 3}


def test_cycle_raises_without_changes(bracket_chain):
    bracket_chain.add_or_update_rule(AdvancementRule("Final", "QuarterFinals", 1, 8))
    before = _orders(bracket_chain)

    with pytest.raises(PhaseCycleError) as exc_info:
        phase_sequencer.resync(bracket_chain)

    assert set(exc_info.value.cycle) == {"QuarterFinals", "SemiFinals", "Final"}
    assert _orders(bracket_chain) == before


def test_find_rule_cycle_none_when_acyclic(bracket_chain):
    assert phase_sequencer.find_rule_cycle(bracket_chain) is None


def test_duplicate_names_numbered_last():
    graph = PhaseGraph(phases=[
        Phase(name="Pool", sort_order=9),
        Phase(name="Draw", phase_type="Draw", sort_order=9),
        Phase(name="Pool", sort_order=9),
    ])

    phase_sequencer.resync(graph)

    assert [p.sort_order for p in graph.phases] == [1, 2, 3]


def test_compute_sequence_is_pure(bracket_chain):
    before = _orders(bracket_chain)
    phase_sequencer.compute_sequence(bracket_chain)
    assert _orders(bracket_chain) == before


def test_rule_digraph_has_one_edge_per_connection(bracket_chain):
    dg = phase_sequencer.rule_digraph(bracket_chain)
    assert list(dg.nodes) == ["Draw", "QuarterFinals", "SemiFinals", "Final", "Award"]
    assert dg.number_of_edges() == 4


def test_every_rule_points_forward_after_resync(pools_structure):
    pools_structure.replace_all_rules(auto_generate_rules(pools_structure))
    for phase, order in zip(pools_structure.phases, (4, 3, 2, 1)):
        phase.sort_order = order
        phase.position = Position(0, 100 * order)

    phase_sequencer.resync(pools_structure)

    for rule in pools_structure.rules:
        source = pools_structure.require(rule.source_phase)
        target = pools_structure.require(rule.target_phase)
        assert source.sort_order < target.sort_order

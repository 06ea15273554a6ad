import pytest
from fastapi.testclient import TestClient

from phase_editor.main import app
from phase_editor.services.phase_graph import Phase, PhaseGraph
from phase_editor.services.slot_mapper import apply_default_mapping


@pytest.fixture(name="client")
def client_fixture():
    """Provide a test client for the stateless structure endpoints"""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def bracket_chain() -> PhaseGraph:
    """
    Draw(8) -> QuarterFinals(8->4) -> SemiFinals(4->2) -> Final(2->1) -> Award(1),
    each pair connected with the default mapping.

    sort_order is deliberately scrambled so resync has work to do.
    """
    graph = PhaseGraph()
    graph.add_phase(Phase(name="Draw", phase_type="Draw", sort_order=5, incoming_slot_count=0, advancing_slot_count=8))
    graph.add_phase(Phase(name="QuarterFinals", sort_order=3, incoming_slot_count=8, advancing_slot_count=4))
    graph.add_phase(Phase(name="SemiFinals", sort_order=1, incoming_slot_count=4, advancing_slot_count=2))
    graph.add_phase(Phase(name="Final", sort_order=4, incoming_slot_count=2, advancing_slot_count=1))
    graph.add_phase(Phase(name="Award", phase_type="Award", sort_order=2, incoming_slot_count=1, advancing_slot_count=0, award_type="Gold"))

    apply_default_mapping(graph, "Draw", "QuarterFinals")
    apply_default_mapping(graph, "QuarterFinals", "SemiFinals")
    apply_default_mapping(graph, "SemiFinals", "Final")
    apply_default_mapping(graph, "Final", "Award")
    return graph


@pytest.fixture
def pools_structure() -> PhaseGraph:
    """Draw(8) -> Pools(2 pools of 4, 4 advance) -> Playoff(4->1) -> Award, rules not yet made."""
    graph = PhaseGraph()
    graph.add_phase(Phase(name="Draw", phase_type="Draw", sort_order=1, incoming_slot_count=0, advancing_slot_count=8))
    graph.add_phase(Phase(name="Pools", phase_type="Pools", sort_order=2, incoming_slot_count=8, advancing_slot_count=4, pool_count=2))
    graph.add_phase(Phase(name="Playoff", sort_order=3, incoming_slot_count=4, advancing_slot_count=1))
    graph.add_phase(Phase(name="Award", phase_type="Award", sort_order=4, incoming_slot_count=1, advancing_slot_count=0))
    return graph

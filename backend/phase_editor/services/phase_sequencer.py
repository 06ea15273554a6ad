"""
Phase Sequencer — recompute schedule order (sort_order) from advancement rules.

Algorithm (Kahn):
  1. Edges are distinct (source_phase -> target_phase) pairs from the rules.
  2. Ready set starts with every phase that has no incoming edge.
  3. Repeatedly take the ready phase highest on the canvas (smallest y;
     insertion order breaks ties), give it the next sort_order, and release
     its targets whose in-degree drops to zero.

A cyclic rule set has no valid order. That is detected up front (DFS) and
raised as PhaseCycleError; no sort_order is changed in that case.
"""

import heapq
import logging
from typing import Dict, List, Optional, Tuple

import networkx as nx

from phase_editor.services.errors import PhaseCycleError
from phase_editor.services.phase_graph import Phase, PhaseGraph

logger = logging.getLogger(__name__)


def rule_digraph(graph: PhaseGraph) -> nx.DiGraph:
    """
    Directed graph of phase names with one edge per connected phase pair.

    Nodes are added in insertion order so every traversal is deterministic.
    """
    dg = nx.DiGraph()
    for phase in graph.phases:
        if phase.name not in dg:
            dg.add_node(phase.name)
    for source, target in graph.connections():
        if source in dg and target in dg:
            dg.add_edge(source, target)
    return dg


def find_rule_cycle(graph: PhaseGraph) -> Optional[List[str]]:
    """Return the phase names along one directed cycle, or None if the rules are acyclic."""
    dg = rule_digraph(graph)
    try:
        edges = nx.find_cycle(dg, orientation="original")
    except nx.NetworkXNoCycle:
        return None
    return [edge[0] for edge in edges]


def _canvas_key(phase: Phase, insertion_idx: int) -> Tuple[float, int]:
    # Phases never placed on the canvas queue after placed ones
    y = phase.position.y if phase.position is not None else float("inf")
    return (y, insertion_idx)


def compute_sequence(graph: PhaseGraph) -> Dict[str, int]:
    """
    Compute the new sort_order per phase name without touching the graph.

    Raises:
        PhaseCycleError if the rules contain a cycle
    """
    cycle = find_rule_cycle(graph)
    if cycle:
        logger.warning("Cannot resync phase order: cycle through %s", ", ".join(cycle))
        raise PhaseCycleError(cycle)

    dg = rule_digraph(graph)
    in_degree: Dict[str, int] = {name: dg.in_degree(name) for name in dg.nodes}

    ready: List[Tuple[float, int, str]] = []
    for name, degree in in_degree.items():
        if degree == 0:
            y, idx = _canvas_key(graph.require(name), graph.insertion_index(name))
            ready.append((y, idx, name))
    heapq.heapify(ready)

    orders: Dict[str, int] = {}
    next_order = 1
    while ready:
        _, _, name = heapq.heappop(ready)
        orders[name] = next_order
        next_order += 1
        for target in dg.successors(name):
            in_degree[target] -= 1
            if in_degree[target] == 0:
                y, idx = _canvas_key(graph.require(target), graph.insertion_index(target))
                heapq.heappush(ready, (y, idx, target))

    return orders


def resync(graph: PhaseGraph) -> Dict[str, int]:
    """
    Recompute every phase's sort_order from the rule graph.

    Phases sharing a duplicated name are numbered after all others, in
    insertion order, so every phase still receives a distinct order.

    Returns:
        Mapping of phase name -> new sort_order (first occurrence of each name)
    """
    orders = compute_sequence(graph)

    next_order = len(orders) + 1
    seen = set()
    assignments: List[Tuple[Phase, int]] = []
    for phase in graph.phases:
        if phase.name in seen:
            assignments.append((phase, next_order))
            next_order += 1
            continue
        seen.add(phase.name)
        assignments.append((phase, orders[phase.name]))

    for phase, order in assignments:
        phase.sort_order = order

    logger.info("Resynced sort order for %d phase(s)", len(assignments))
    return orders

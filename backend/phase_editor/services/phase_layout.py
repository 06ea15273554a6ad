"""
Phase Layout — deterministic layered auto-layout for the structure canvas.

Pipeline (Sugiyama-style):
  1. Cycle breaking: drop one edge of each cycle so layering terminates
  2. Layer assignment: longest path from the entry phases
  3. Ordering: start from sort_order, refine with barycenter sweeps
  4. Coordinates: pack each layer, centre it against the widest layer

Direction only rotates the picture: TB stacks layers top to bottom, LR
left to right. Changing direction on its own never moves a node; positions
change only on an explicit auto layout or when a new phase has none.
"""

import logging
from typing import Dict, List, Optional, Tuple

import networkx as nx

from phase_editor.services.phase_graph import PhaseGraph, Position
from phase_editor.services.phase_rules import LAYOUT_DIRECTIONS, NODE_SIZE_PRESETS, NODE_SIZE_SPACING
from phase_editor.services.phase_sequencer import rule_digraph

logger = logging.getLogger(__name__)

BARYCENTER_PASSES = 4


def handle_sides(direction: str) -> Tuple[str, str]:
    """(target handle side, source handle side) for a layout direction."""
    if direction == "LR":
        return ("left", "right")
    return ("top", "bottom")


def _check_direction(direction: str) -> None:
    if direction not in LAYOUT_DIRECTIONS:
        raise ValueError(f"direction must be one of {LAYOUT_DIRECTIONS}, got {direction!r}")


def _check_size_preset(size_preset: str) -> None:
    if size_preset not in NODE_SIZE_PRESETS:
        raise ValueError(f"size_preset must be one of {NODE_SIZE_PRESETS}, got {size_preset!r}")


def _acyclic(dg: nx.DiGraph) -> nx.DiGraph:
    dag = dg.copy()
    while True:
        try:
            cycle = nx.find_cycle(dag, orientation="original")
        except nx.NetworkXNoCycle:
            return dag
        source, target = cycle[-1][0], cycle[-1][1]
        dag.remove_edge(source, target)


def assign_layers(graph: PhaseGraph) -> List[List[str]]:
    """Phase names grouped by layer, each layer in sort_order."""
    dag = _acyclic(rule_digraph(graph))

    def _order_key(name: str) -> Tuple[int, int]:
        return (graph.require(name).sort_order, graph.insertion_index(name))

    layer_of: Dict[str, int] = {}
    for name in nx.lexicographical_topological_sort(dag, key=_order_key):
        preds = [layer_of[p] for p in dag.predecessors(name)]
        layer_of[name] = max(preds) + 1 if preds else 0

    layer_count = max(layer_of.values()) + 1 if layer_of else 0
    layers: List[List[str]] = [[] for _ in range(layer_count)]
    for name in sorted(layer_of, key=_order_key):
        layers[layer_of[name]].append(name)
    return layers


def _barycenter(
    neighbours: List[str],
    index_of: Dict[str, int],
) -> Optional[float]:
    positions = [index_of[n] for n in neighbours if n in index_of]
    if not positions:
        return None
    return sum(positions) / len(positions)


def order_layers(graph: PhaseGraph, layers: List[List[str]]) -> List[List[str]]:
    """Reduce crossings with alternating down/up barycenter sweeps."""
    dg = rule_digraph(graph)
    ordering = [list(layer) for layer in layers]

    def _sweep(layer_indices: range, use_predecessors: bool) -> None:
        for li in layer_indices:
            index_of = {n: i for layer in ordering for i, n in enumerate(layer)}
            current = {n: i for i, n in enumerate(ordering[li])}

            def _key(name: str) -> Tuple[float, int]:
                neighbours = list(dg.predecessors(name)) if use_predecessors else list(dg.successors(name))
                bary = _barycenter(neighbours, index_of)
                return (bary if bary is not None else float(current[name]), current[name])

            ordering[li].sort(key=_key)

    for _ in range(BARYCENTER_PASSES):
        _sweep(range(1, len(ordering)), use_predecessors=True)
        _sweep(range(len(ordering) - 2, -1, -1), use_predecessors=False)

    return ordering


def layout(graph: PhaseGraph, direction: str = "TB", size_preset: str = "collapsed") -> Dict[str, Position]:
    """
    Compute top-left node positions for every phase. Does not modify the graph.

    Spacing grows with the "expanded" size preset.
    """
    _check_direction(direction)
    _check_size_preset(size_preset)

    node_w, node_h, layer_sep, node_sep = NODE_SIZE_SPACING[size_preset]
    ordering = order_layers(graph, assign_layers(graph))

    # Extent of a node along its layer, and the step between layers
    along = node_w if direction == "TB" else node_h
    across = (node_h if direction == "TB" else node_w) + layer_sep

    def _extent(count: int) -> float:
        return count * along + max(0, count - 1) * node_sep

    widest = max((_extent(len(layer)) for layer in ordering), default=0)

    positions: Dict[str, Position] = {}
    for li, layer in enumerate(ordering):
        offset = (widest - _extent(len(layer))) / 2
        for i, name in enumerate(layer):
            along_pos = offset + i * (along + node_sep)
            across_pos = float(li * across)
            if direction == "TB":
                positions[name] = Position(x=along_pos, y=across_pos)
            else:
                positions[name] = Position(x=across_pos, y=along_pos)

    logger.debug("Layout %s/%s: %d layer(s), %d node(s)", direction, size_preset, len(ordering), len(positions))
    return positions


def auto_layout(graph: PhaseGraph, size_preset: str = "collapsed") -> Dict[str, Position]:
    """Replace every phase position with a fresh layout in the graph's direction."""
    positions = layout(graph, graph.direction, size_preset)
    for phase in graph.phases:
        pos = positions.get(phase.name)
        if pos is not None:
            phase.position = Position(pos.x, pos.y)
    logger.info("Auto layout placed %d phase(s)", len(positions))
    return positions


def place_missing(graph: PhaseGraph, size_preset: str = "collapsed") -> List[str]:
    """Give a layout position to phases that have none. Returns their names."""
    missing = [p for p in graph.phases if p.position is None]
    if not missing:
        return []
    positions = layout(graph, graph.direction, size_preset)
    placed: List[str] = []
    for phase in missing:
        pos = positions.get(phase.name)
        if pos is not None:
            phase.position = Position(pos.x, pos.y)
            placed.append(phase.name)
    return placed


def set_direction(graph: PhaseGraph, direction: str) -> Tuple[str, str]:
    """Switch layout direction without moving any node. Returns the new handle sides."""
    _check_direction(direction)
    graph.direction = direction
    return handle_sides(direction)


def pin(graph: PhaseGraph, name: str, x: float, y: float) -> Position:
    """Record a manual drag position for a phase."""
    phase = graph.require(name)
    phase.position = Position(float(x), float(y))
    return phase.position


def has_saved_positions(graph: PhaseGraph) -> bool:
    return any(p.position is not None for p in graph.phases)

"""
Editor Session — one open structure editor, driven by discrete user actions.

Each public method is one user action and is applied completely before it
returns; callers re-validate or re-render afterwards. The only state that
survives between actions (besides the graph) is the open connection editor
and its pending exit-slot selection, which is cleared by anything that
cancels it: selecting another connection, closing the panel, committing,
or removing/renaming one of its phases.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from phase_editor import config
from phase_editor.services import phase_layout, phase_sequencer, slot_mapper
from phase_editor.services.errors import StructureNotSavableError
from phase_editor.services.graph_validator import StructureValidationReport, validate
from phase_editor.services.phase_graph import AdvancementRule, Phase, PhaseGraph, Position
from phase_editor.services.slot_mapper import ConnectionEditor
from phase_editor.services.structure_serializer import parse_structure, serialize_structure

logger = logging.getLogger(__name__)


class EditorSession:
    def __init__(self, graph: PhaseGraph, size_preset: Optional[str] = None):
        self.graph = graph
        self.size_preset = size_preset or config.DEFAULT_NODE_SIZE
        self.connection: Optional[ConnectionEditor] = None
        self.parse_warnings: List[str] = []

    @classmethod
    def open(
        cls,
        doc: Union[str, bytes, Mapping[str, Any]],
        size_preset: Optional[str] = None,
    ) -> "EditorSession":
        """Parse a stored document; lay out whatever has no saved position."""
        result = parse_structure(doc)
        session = cls(result.graph, size_preset)
        session.parse_warnings = result.warnings
        if not len(session.graph):
            return session
        if phase_layout.has_saved_positions(session.graph):
            phase_layout.place_missing(session.graph, session.size_preset)
        else:
            phase_layout.auto_layout(session.graph, session.size_preset)
        return session

    # ── Phases ──

    def add_phase(self, phase: Optional[Phase] = None) -> Phase:
        """Add a phase (list-editor defaults if none given) and place it if needed."""
        phase = phase or self.graph.new_phase_defaults()
        self.graph.add_phase(phase)
        if phase.position is None:
            phase_layout.place_missing(self.graph, self.size_preset)
        return phase

    def remove_phase(self, name: str) -> int:
        removed = self.graph.remove_phase(name)
        self._drop_stale_connection()
        return removed

    def rename_phase(self, old_name: str, new_name: str) -> None:
        self.graph.rename_phase(old_name, new_name)
        if self.connection is not None and old_name in self.connection.connection:
            self.close_panel()

    def move_phase(self, name: str, offset: int) -> None:
        self.graph.move_phase(name, offset)

    # ── Connections ──

    def connect(self, source: str, target: str) -> List[AdvancementRule]:
        """Connect two phases with the default mapping and open that connection."""
        rules = slot_mapper.apply_default_mapping(self.graph, source, target)
        self.select_connection(source, target)
        return rules

    def select_connection(self, source: str, target: str) -> ConnectionEditor:
        self.connection = ConnectionEditor(self.graph, source, target)
        return self.connection

    def close_panel(self) -> None:
        if self.connection is not None:
            self.connection.close()
        self.connection = None

    def disconnect(self, source: str, target: str) -> int:
        removed = self.graph.remove_rules(lambda r: r.connection == (source, target))
        if self.connection is not None and self.connection.connection == (source, target):
            self.close_panel()
        return removed

    def auto_generate_rules(self) -> List[AdvancementRule]:
        rules = slot_mapper.auto_generate_rules(self.graph)
        self.graph.replace_all_rules(rules)
        self.close_panel()
        return rules

    def _drop_stale_connection(self) -> None:
        if self.connection is not None and not self.connection.still_valid():
            self.close_panel()

    # ── Canvas ──

    def drag_end(self, name: str, x: float, y: float) -> Position:
        return phase_layout.pin(self.graph, name, x, y)

    def auto_layout(self, size_preset: Optional[str] = None) -> Dict[str, Position]:
        if size_preset:
            self.size_preset = size_preset
        return phase_layout.auto_layout(self.graph, self.size_preset)

    def set_direction(self, direction: str) -> Tuple[str, str]:
        return phase_layout.set_direction(self.graph, direction)

    # ── Order / validation / save ──

    def sync_order(self) -> Dict[str, int]:
        return phase_sequencer.resync(self.graph)

    def validate(self) -> StructureValidationReport:
        return validate(self.graph)

    def save(self) -> Dict[str, Any]:
        """
        Serialize for storage.

        Raises:
            StructureNotSavableError if validation reports errors
        """
        report = self.validate()
        if not report.ok:
            raise StructureNotSavableError(report)
        self.close_panel()
        logger.info("Saving structure: %d phase(s), %d rule(s)", len(self.graph), len(self.graph.rules))
        return serialize_structure(self.graph)

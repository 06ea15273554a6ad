"""
Structure Editor Endpoints — stateless operations on a structure document.

Every endpoint takes the current structure document, applies one editor
action to it, and returns the normalized document plus a fresh validation
report. Storage of templates lives elsewhere; nothing is persisted here.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from phase_editor import config
from phase_editor.services import phase_layout, phase_sequencer, slot_mapper
from phase_editor.services.errors import (
    MappingPresetError,
    PhaseCycleError,
    PhaseNameConflictError,
    StructureParseError,
    UnknownPhaseError,
)
from phase_editor.services.graph_validator import StructureValidationReport, validate
from phase_editor.services.phase_graph import PhaseGraph
from phase_editor.services.structure_serializer import ParseResult, parse_structure, serialize_structure

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Request / Response Models
# ============================================================================


class ParseRequest(BaseModel):
    structure_json: str


class StructureRequest(BaseModel):
    structure: Dict[str, Any]


class LayoutRequest(StructureRequest):
    direction: Optional[str] = None
    size_preset: Optional[str] = None


class ConnectionRequest(StructureRequest):
    source_phase: str
    target_phase: str


class PresetRequest(ConnectionRequest):
    preset: str


class RenamePhaseRequest(StructureRequest):
    old_name: str
    new_name: str


class RemovePhaseRequest(StructureRequest):
    name: str


class SlotsRequest(StructureRequest):
    phase: str


class StructureResponse(BaseModel):
    structure: Dict[str, Any]
    parse_warnings: List[str] = []
    validation: StructureValidationReport


class ExitSlotOut(BaseModel):
    slot_id: str
    finish_position: int
    pool_index: Optional[int] = None
    label: str


class IncomingSlotOut(BaseModel):
    slot_number: int
    label: str


class SlotsResponse(BaseModel):
    phase: str
    exit_slots: List[ExitSlotOut]
    incoming_slots: List[IncomingSlotOut]
    presets: List[str]


# ============================================================================
# Helpers
# ============================================================================


def _parse(structure: Any) -> ParseResult:
    try:
        return parse_structure(structure)
    except StructureParseError as e:
        raise HTTPException(status_code=422, detail=str(e))


def _respond(result: ParseResult) -> StructureResponse:
    return StructureResponse(
        structure=serialize_structure(result.graph),
        parse_warnings=result.warnings,
        validation=validate(result.graph),
    )


def _require(graph: PhaseGraph, name: str) -> None:
    if name not in graph:
        raise HTTPException(status_code=404, detail=f"Phase '{name}' not found")


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/structures/parse", response_model=StructureResponse)
def parse_structure_json(request: ParseRequest) -> StructureResponse:
    """
    Parse stored structure JSON text.

    Legacy order-based rules come back rewritten to phase names.
    Malformed JSON is a 422, separate from structural validation.
    """
    return _respond(_parse(request.structure_json))


@router.post("/structures/validate", response_model=StructureValidationReport)
def validate_structure(request: StructureRequest) -> StructureValidationReport:
    """Errors block save; warnings do not."""
    return validate(_parse(request.structure).graph)


@router.post("/structures/resync", response_model=StructureResponse)
def resync_structure(request: StructureRequest) -> StructureResponse:
    """Recompute sortOrder from the advancement rules ("Sync order")."""
    result = _parse(request.structure)
    try:
        phase_sequencer.resync(result.graph)
    except PhaseCycleError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _respond(result)


@router.post("/structures/auto-layout", response_model=StructureResponse)
def auto_layout_structure(request: LayoutRequest) -> StructureResponse:
    result = _parse(request.structure)
    try:
        if request.direction:
            phase_layout.set_direction(result.graph, request.direction)
        phase_layout.auto_layout(result.graph, request.size_preset or config.DEFAULT_NODE_SIZE)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _respond(result)


@router.post("/structures/connections", response_model=StructureResponse)
def connect_phases(request: ConnectionRequest) -> StructureResponse:
    """Connect two phases using the default slot mapping."""
    result = _parse(request.structure)
    _require(result.graph, request.source_phase)
    _require(result.graph, request.target_phase)
    if request.source_phase == request.target_phase:
        raise HTTPException(status_code=422, detail="A phase cannot advance into itself")

    slot_mapper.apply_default_mapping(result.graph, request.source_phase, request.target_phase)
    return _respond(result)


@router.post("/structures/connections/preset", response_model=StructureResponse)
def apply_mapping_preset(request: PresetRequest) -> StructureResponse:
    result = _parse(request.structure)
    _require(result.graph, request.source_phase)
    _require(result.graph, request.target_phase)
    try:
        slot_mapper.apply_preset(result.graph, request.source_phase, request.target_phase, request.preset)
    except MappingPresetError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _respond(result)


@router.post("/structures/auto-rules", response_model=StructureResponse)
def auto_generate_rules(request: StructureRequest) -> StructureResponse:
    """Replace all rules with ones generated from slot counts."""
    result = _parse(request.structure)
    result.graph.replace_all_rules(slot_mapper.auto_generate_rules(result.graph))
    return _respond(result)


@router.post("/structures/phases/rename", response_model=StructureResponse)
def rename_phase(request: RenamePhaseRequest) -> StructureResponse:
    result = _parse(request.structure)
    try:
        result.graph.rename_phase(request.old_name, request.new_name)
    except UnknownPhaseError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PhaseNameConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _respond(result)


@router.post("/structures/phases/remove", response_model=StructureResponse)
def remove_phase(request: RemovePhaseRequest) -> StructureResponse:
    result = _parse(request.structure)
    _require(result.graph, request.name)
    result.graph.remove_phase(request.name)
    return _respond(result)


@router.post("/structures/slots", response_model=SlotsResponse)
def list_phase_slots(request: SlotsRequest) -> SlotsResponse:
    """Exit and incoming slots of one phase, with the labels the canvas shows."""
    graph = _parse(request.structure).graph
    _require(graph, request.phase)
    phase = graph.require(request.phase)
    return SlotsResponse(
        phase=phase.name,
        exit_slots=[
            ExitSlotOut(
                slot_id=s.slot_id,
                finish_position=s.finish_position,
                pool_index=s.pool_index,
                label=s.label,
            )
            for s in slot_mapper.exit_slots(phase)
        ],
        incoming_slots=[
            IncomingSlotOut(slot_number=s.slot_number, label=s.label)
            for s in slot_mapper.incoming_slots(phase)
        ],
        presets=slot_mapper.available_presets(graph, phase.name),
    )

"""
Structure editor exceptions.

Services raise these; routes translate them into HTTP status codes.
"""

from typing import List, Optional


class StructureError(Exception):
    """Base exception for phase structure errors"""
    pass


class StructureParseError(StructureError):
    """The stored document is malformed and no graph can be built from it"""
    pass


class PhaseNameConflictError(StructureError):
    """A phase name is already used by a different phase"""

    def __init__(self, name: str, message: Optional[str] = None):
        self.name = name
        super().__init__(message or f"Phase name '{name}' is already in use")


class UnknownPhaseError(StructureError):
    """An operation referenced a phase that does not exist"""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Phase '{name}' not found")


class PhaseCycleError(StructureError):
    """The advancement rules form a directed cycle, so no schedule order exists"""

    def __init__(self, cycle: List[str]):
        self.cycle = cycle
        path = " -> ".join(cycle + cycle[:1])
        super().__init__(f"Advancement rules contain a cycle: {path}")


class MappingPresetError(StructureError):
    """A slot mapping preset cannot be applied to this connection"""
    pass


class StructureNotSavableError(StructureError):
    """Save refused because the structure has blocking validation errors"""

    def __init__(self, report):
        self.report = report
        super().__init__("; ".join(e.message for e in report.errors))

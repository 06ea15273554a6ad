"""
Services Layer

Pure structure-editing logic that:
- Accepts domain inputs (PhaseGraph, phase names, stored documents)
- Returns domain outputs (graphs, rules, reports, positions)
- Does NOT depend on HTTP request/response objects
- Does NOT perform I/O
"""

# src/rowposition/services/__init__.py
"""Positioning services: value semantics, queries, assignment, shifting and coordination."""

from .assignment import AssignmentPolicy
from .coordinator import PositionCoordinator
from .query import PositionQuery, SequenceTable
from .shift import ShiftEngine

__all__ = [
    "AssignmentPolicy",
    "PositionCoordinator",
    "PositionQuery",
    "SequenceTable",
    "ShiftEngine",
]

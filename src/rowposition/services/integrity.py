"""Density checks for positioned tables.

Useful after bulk imports, and in integration tests to prove that the host
mapping scopes its shifts correctly (a shift leaking outside its group, or
onto the row being moved, shows up here as a gap or a duplicate).
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import distinct, func, select
from sqlalchemy.orm import Session

from rowposition.models.positioned import GroupKey
from rowposition.services.coordinator import get_coordinator

logger = logging.getLogger(__name__)


@dataclass
class DensityViolation:
    """A group whose positions are not an unbroken run from the start value."""

    group_key: GroupKey
    count: int
    start_position: int = 0
    positions: list[int | None] = field(default_factory=list)

    @property
    def missing(self) -> list[int]:
        """Slots of the expected run no row holds."""
        expected = range(self.start_position, self.start_position + self.count)
        return sorted(set(expected) - set(self.positions))

    @property
    def duplicates(self) -> list[int]:
        """Positions held by more than one row."""
        counts = Counter(p for p in self.positions if p is not None)
        return sorted(p for p, seen in counts.items() if seen > 1)


def find_density_violations(session: Session, model: type[Any]) -> list[DensityViolation]:
    """Return every group of ``model`` breaking the density invariant.

    Args:
        session: Session used to read the table.
        model: A positioned model.

    Returns:
        One `DensityViolation` per broken group, ordered by group key.
    """
    coordinator = get_coordinator(model)
    config, sequence = coordinator.config, coordinator.sequence
    position = sequence.position
    start = config.start_position

    stmt = select(
        *sequence.group_columns,
        func.count(),
        func.count(distinct(position)),
        func.min(position),
        func.max(position),
    ).select_from(sequence.table)
    if sequence.group_columns:
        stmt = stmt.group_by(*sequence.group_columns)

    violations: list[DensityViolation] = []
    width = len(sequence.group_columns)
    for row in session.execute(stmt):
        group_key = tuple(row[:width])
        count, distinct_count, lowest, highest = row[width:]
        if count == 0:
            continue
        if distinct_count == count and lowest == start and highest == start + count - 1:
            continue

        positions = session.scalars(
            select(position).where(*sequence.group_criteria(group_key)).order_by(position)
        ).all()
        violations.append(DensityViolation(group_key, count, start, list(positions)))

    if violations:
        logger.warning("%d group(s) of %s are not dense", len(violations), sequence.table.name)
    return sorted(violations, key=lambda violation: repr(violation.group_key))

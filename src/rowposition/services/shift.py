"""Shift planning for sibling rows.

A mutation of one row is described as a `Transition` (where the row was,
where it is now). `ShiftEngine.plan` turns a transition into the ordered list
of range shifts that keeps every group dense, and `ShiftEngine.apply` runs
them as bulk statements.

| Transition                          | Shifts                                            |
|-------------------------------------|---------------------------------------------------|
| insert, not terminal                | up ``[new, end)`` in the group                    |
| insert, terminal                    | none                                              |
| update, same group, ``new > old``   | down ``(old, new]``                               |
| update, same group, ``new < old``   | up ``[new, old)``                                 |
| update, group changed               | down ``(old, end)`` in the old group, then up     |
|                                     | ``[new, end)`` in the new one unless terminal     |
| delete                              | down ``(old, end)`` in the group                  |
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy.engine import Connection

from rowposition.models.positioned import GroupKey
from rowposition.services.query import PositionQuery, SequenceTable

logger = logging.getLogger(__name__)


class TransitionKind(Enum):
    """Lifecycle point a transition was observed at."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ShiftDirection(Enum):
    """Direction a range of siblings moves in."""

    UP = 1
    DOWN = -1


@dataclass(frozen=True)
class Transition:
    """Old and new placement of a single row.

    Attributes:
        kind: Lifecycle point of the mutation.
        primary_key: Key of the mutated row, excluded from every shift.
        old_group: Group before the mutation (ignored for inserts).
        old_position: Position before the mutation (ignored for inserts).
        new_group: Group after the mutation (ignored for deletes).
        new_position: Position after the mutation (ignored for deletes).
        terminal: True if the row landed on the last slot of its new group.
    """

    kind: TransitionKind
    primary_key: tuple[Any, ...] | None = None
    old_group: GroupKey = ()
    old_position: int | None = None
    new_group: GroupKey = ()
    new_position: int | None = None
    terminal: bool = False


@dataclass(frozen=True)
class Shift:
    """One bulk shift of the positions in ``[start, stop)`` of a group."""

    group_key: GroupKey
    direction: ShiftDirection
    start: int
    stop: int | None = None
    excluded_key: tuple[Any, ...] | None = None


class ShiftEngine:
    """Translate row transitions into sibling shifts."""

    def __init__(self, sequence: SequenceTable) -> None:
        self.sequence = sequence

    def plan(self, transition: Transition) -> list[Shift]:
        """Return the shifts restoring density after ``transition``, in execution order."""
        if transition.kind is TransitionKind.INSERT:
            return self._open_slot(transition)

        if transition.kind is TransitionKind.DELETE:
            return self._close_gap(transition.old_group, transition.old_position, None)

        if transition.old_group != transition.new_group:
            # The gap is closed first: its range refers to positions before the move.
            shifts = self._close_gap(
                transition.old_group, transition.old_position, transition.primary_key
            )
            return shifts + self._open_slot(transition)

        if transition.old_position is None:
            return self._open_slot(transition)

        return self._reorder(transition)

    def apply(self, connection: Connection, shifts: list[Shift]) -> int:
        """Execute ``shifts`` in order on ``connection``.

        Returns:
            Total number of rows shifted.
        """
        shifted = 0
        for shift in shifts:
            query = PositionQuery.for_group(connection, self.sequence, shift.group_key).excluding(
                shift.excluded_key
            )
            if shift.direction is ShiftDirection.UP:
                shifted += query.shift_up(shift.start, shift.stop)
            else:
                shifted += query.shift_down(shift.start, shift.stop)
        return shifted

    def run(self, connection: Connection, transition: Transition) -> int:
        """Plan and apply the shifts for ``transition``."""
        shifts = self.plan(transition)
        if not shifts:
            logger.debug("No shift needed for %s", transition)
            return 0
        return self.apply(connection, shifts)

    @staticmethod
    def _open_slot(transition: Transition) -> list[Shift]:
        if transition.terminal or transition.new_position is None:
            return []
        return [
            Shift(
                group_key=transition.new_group,
                direction=ShiftDirection.UP,
                start=transition.new_position,
                excluded_key=transition.primary_key,
            )
        ]

    @staticmethod
    def _close_gap(
        group_key: GroupKey, position: int | None, excluded_key: tuple[Any, ...] | None
    ) -> list[Shift]:
        if position is None:
            return []
        return [
            Shift(
                group_key=group_key,
                direction=ShiftDirection.DOWN,
                start=position + 1,
                excluded_key=excluded_key,
            )
        ]

    @staticmethod
    def _reorder(transition: Transition) -> list[Shift]:
        old, new = transition.old_position, transition.new_position
        if new is None or old is None or new == old:
            return []
        if new > old:
            return [
                Shift(
                    group_key=transition.new_group,
                    direction=ShiftDirection.DOWN,
                    start=old + 1,
                    stop=new + 1,
                    excluded_key=transition.primary_key,
                )
            ]
        return [
            Shift(
                group_key=transition.new_group,
                direction=ShiftDirection.UP,
                start=new,
                stop=old,
                excluded_key=transition.primary_key,
            )
        ]

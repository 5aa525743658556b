"""Position assignment for rows entering a group.

Runs before a row is written. It decides where a row without an explicit
position goes, turns end-relative (negative) positions into absolute slots,
and flags rows that land on the last slot so no sibling has to move for them.
"""

from __future__ import annotations

import logging

from sqlalchemy.engine import Connection

from rowposition.core.config import PositionConfig
from rowposition.core.errors import InvalidPositionRange
from rowposition.models.positioned import Positioned
from rowposition.services import semantics
from rowposition.services.query import PositionQuery, SequenceTable

logger = logging.getLogger(__name__)


class AssignmentPolicy:
    """Resolve the position a row takes in its (new) group."""

    def __init__(self, config: PositionConfig, sequence: SequenceTable) -> None:
        self.config = config
        self.sequence = sequence

    def should_assign(self, row: Positioned, joining: bool) -> bool:
        """Return True if the row needs a computed position.

        A row gets one when it has no position at all, or when it changes group
        without the caller picking a slot in the new group.
        """
        if row.get_position() is None:
            return True
        return joining and row.exists and not row.position_assigned

    def next_position(self, row: Positioned, query: PositionQuery) -> int:
        """Return the position of a row saved without an explicit one."""
        if self.config.locker is not None:
            return self.config.locker(row.instance)
        return self.end_position(query)

    def end_position(self, query: PositionQuery) -> int:
        """Return the slot right after the last row of the group."""
        max_position = query.max_position()
        if max_position is None:
            return self.config.start_position
        return max_position + 1

    def assign(self, connection: Connection, row: Positioned, joining: bool) -> int:
        """Give ``row`` its absolute position in the group it is saved into.

        Args:
            connection: Connection of the flush in progress.
            row: Row about to be inserted or updated.
            joining: True when the row is not yet stored in the target group.

        Returns:
            The resolved position, also written to the row.

        Raises:
            InvalidPositionRange: If a negative position addresses a slot before
                the start of the group.
        """
        start = self.config.start_position
        query = PositionQuery.for_row(connection, self.sequence, row).excluding(row.primary_key)

        explicit = not self.should_assign(row, joining)
        if not explicit:
            row.set_position(self.next_position(row, query))

        raw = row.get_position()
        # The row always ends up in the target group, whether or not it is stored there yet.
        length = query.count() + 1
        position = semantics.resolve(raw, length, start)
        if position < start:
            raise InvalidPositionRange(raw, length, start)

        last = semantics.end_slot(start, length)
        if position > last:
            # Locked positions are clamped quietly.
            log = logger.warning if explicit else logger.debug
            log(
                "Position %d is past the end of %s group %r, placing the row at %d",
                position,
                self.sequence.table.name,
                row.get_group_key(),
                last,
            )
            position = last

        if position != raw:
            row.set_position(position)
        row.terminal = semantics.is_terminal(position, start, length)

        logger.debug(
            "Assigned position %d to %r (length=%d, terminal=%s)",
            position,
            row,
            length,
            row.terminal,
        )
        return position

"""Group-scoped position queries.

`SequenceTable` resolves the columns a positioned model is ordered and grouped
by, and `PositionQuery` runs count, max and shift statements against a single
group of that table. Statements are executed on the connection the ORM is
flushing with, so they join the caller's transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import Any

from sqlalchemy import Column, ColumnElement, Table, and_, func, or_, select, update
from sqlalchemy.engine import Connection
from sqlalchemy.orm import ColumnProperty, Mapper, class_mapper
from sqlalchemy.orm.exc import UnmappedClassError

from rowposition.core.config import PositionConfig
from rowposition.core.errors import PositioningConfigError
from rowposition.models.positioned import GroupKey, Positioned

logger = logging.getLogger(__name__)


def _column_for(mapper: Mapper[Any], attribute: str) -> Column[Any]:
    prop = mapper.get_property(attribute) if mapper.has_property(attribute) else None
    if not isinstance(prop, ColumnProperty) or len(prop.columns) != 1:
        raise PositioningConfigError(
            f"{mapper.class_.__name__}.{attribute} is not a single-column mapped attribute"
        )
    column = prop.columns[0]
    if not isinstance(column, Column):
        raise PositioningConfigError(
            f"{mapper.class_.__name__}.{attribute} is not backed by a table column"
        )
    return column


@dataclass(frozen=True)
class SequenceTable:
    """Columns of a mapped table that take part in positioning."""

    table: Table
    position: Column[Any]
    group_columns: tuple[Column[Any], ...]
    key_columns: tuple[Column[Any], ...]

    @classmethod
    def from_model(cls, model: type[Any], config: PositionConfig) -> SequenceTable:
        """Resolve the positioning columns of ``model``.

        Raises:
            PositioningConfigError: If the model is not mapped or the configured
                attributes are not plain columns of its table.
        """
        try:
            mapper = class_mapper(model)
        except UnmappedClassError as exc:
            raise PositioningConfigError(f"{model!r} is not a mapped class") from exc

        position = _column_for(mapper, config.position_column)
        group_columns = tuple(_column_for(mapper, name) for name in config.group_by)
        key_columns = tuple(mapper.primary_key)
        if not key_columns:
            raise PositioningConfigError(f"{model.__name__} has no primary key")

        return cls(
            table=position.table,
            position=position,
            group_columns=group_columns,
            key_columns=key_columns,
        )

    def group_criteria(self, group_key: GroupKey) -> tuple[ColumnElement[bool], ...]:
        """Return WHERE criteria matching the rows of one group."""
        # ``column == None`` renders as IS NULL, so NULL keys form their own group.
        return tuple(column == value for column, value in zip(self.group_columns, group_key))

    def key_criteria(self, primary_key: Sequence[Any]) -> ColumnElement[bool]:
        """Return a WHERE criterion matching a single row."""
        return and_(*(column == value for column, value in zip(self.key_columns, primary_key)))

    def load_persisted(
        self, connection: Connection, primary_key: Sequence[Any]
    ) -> tuple[int | None, GroupKey] | None:
        """Read the stored position and group of a row.

        Returns:
            ``(position, group_key)`` or None if the row is not stored.
        """
        stmt = select(self.position, *self.group_columns).where(self.key_criteria(primary_key))
        row = connection.execute(stmt).first()
        if row is None:
            return None
        return row[0], tuple(row[1:])


@dataclass(frozen=True)
class PositionQuery:
    """Count, max and shift operations scoped to one group of a sequence table.

    Shift ranges are half-open: ``[start, stop)``, or ``[start, end)`` when
    ``stop`` is None. Each shift is a single UPDATE statement.
    """

    connection: Connection
    sequence: SequenceTable
    group_key: GroupKey
    excluded_key: tuple[Any, ...] | None = None

    @classmethod
    def for_group(
        cls, connection: Connection, sequence: SequenceTable, group_key: GroupKey
    ) -> PositionQuery:
        """Build a query over the rows sharing ``group_key``."""
        return cls(connection=connection, sequence=sequence, group_key=tuple(group_key))

    @classmethod
    def for_row(
        cls, connection: Connection, sequence: SequenceTable, row: Positioned
    ) -> PositionQuery:
        """Build a query over the group the row currently belongs to."""
        return cls.for_group(connection, sequence, row.get_group_key())

    @classmethod
    def for_original_group(
        cls, connection: Connection, sequence: SequenceTable, row: Positioned
    ) -> PositionQuery:
        """Build a query over the group the row belonged to before the pending change."""
        return cls.for_group(connection, sequence, row.get_original_group_key())

    def excluding(self, primary_key: Sequence[Any] | None) -> PositionQuery:
        """Return a copy of this query that never touches the given row."""
        if primary_key is None:
            return self
        return replace(self, excluded_key=tuple(primary_key))

    def _criteria(self) -> list[ColumnElement[bool]]:
        criteria = list(self.sequence.group_criteria(self.group_key))
        if self.excluded_key is not None:
            criteria.append(
                or_(
                    *(
                        column != value
                        for column, value in zip(self.sequence.key_columns, self.excluded_key)
                    )
                )
            )
        return criteria

    def count(self) -> int:
        """Return the number of rows in the group."""
        stmt = select(func.count()).select_from(self.sequence.table).where(*self._criteria())
        return int(self.connection.execute(stmt).scalar_one())

    def max_position(self) -> int | None:
        """Return the highest stored position, or None if the group is empty."""
        stmt = select(func.max(self.sequence.position)).where(*self._criteria())
        value = self.connection.execute(stmt).scalar()
        return None if value is None else int(value)

    def shift_up(self, start: int, stop: int | None = None) -> int:
        """Increment positions in ``[start, stop)`` by one.

        Returns:
            Number of rows shifted.
        """
        return self._shift(1, start, stop)

    def shift_down(self, start: int, stop: int | None = None) -> int:
        """Decrement positions in ``[start, stop)`` by one.

        Returns:
            Number of rows shifted.
        """
        return self._shift(-1, start, stop)

    def _shift(self, amount: int, start: int, stop: int | None) -> int:
        if stop is not None and stop <= start:
            return 0

        position = self.sequence.position
        criteria = self._criteria()
        criteria.append(position >= start)
        if stop is not None:
            criteria.append(position < stop)

        stmt = (
            update(self.sequence.table)
            .where(*criteria)
            .values({position: position + amount})
        )
        result = self.connection.execute(stmt)
        logger.debug(
            "Shifted %d row(s) of %s by %+d in [%s, %s) for group %r",
            result.rowcount,
            self.sequence.table.name,
            amount,
            start,
            "end" if stop is None else stop,
            self.group_key,
        )
        return result.rowcount

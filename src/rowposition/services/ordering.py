"""Ordering helpers for positioned models."""

from __future__ import annotations

from typing import Any, TypeVar

from sqlalchemy import Select
from sqlalchemy.orm import ORMExecuteState

from rowposition.core.settings import settings

SelectT = TypeVar("SelectT", bound=Select[Any])


def _position_attribute(model: type[Any]) -> Any:
    # Imported lazily: the coordinator module imports this one.
    from rowposition.core.errors import PositioningConfigError
    from rowposition.services.coordinator import get_coordinator

    try:
        column = get_coordinator(model).config.position_column
    except PositioningConfigError:
        column = settings.position_column
    return getattr(model, column)


def order_by_position(stmt: SelectT, model: type[Any]) -> SelectT:
    """Return ``stmt`` ordered by the positions of ``model``, first slot first."""
    return stmt.order_by(_position_attribute(model).asc())


def order_by_inverse_position(stmt: SelectT, model: type[Any]) -> SelectT:
    """Return ``stmt`` ordered by the positions of ``model``, last slot first."""
    return stmt.order_by(_position_attribute(model).desc())


def apply_position_order(
    orm_execute_state: ORMExecuteState, model: type[Any], position_column: str
) -> None:
    """Append ``ORDER BY position`` to an ORM select returning ``model`` entities.

    Column, aggregate and attribute-refresh selects are left alone, and an
    existing ordering keeps precedence.
    """
    if not orm_execute_state.is_select or orm_execute_state.is_column_load:
        return

    statement = orm_execute_state.statement
    if not isinstance(statement, Select):
        return

    descriptions = statement.column_descriptions
    if len(descriptions) != 1:
        return
    expr = descriptions[0]["expr"]
    if not isinstance(expr, type) or not issubclass(expr, model):
        return

    orm_execute_state.statement = statement.order_by(getattr(model, position_column))

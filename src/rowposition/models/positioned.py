"""Capability interface for positioned rows and its SQLAlchemy adapter.

The positioning services never depend on a concrete model class. They work
with anything satisfying `Positioned`; `SQLAlchemyRow` provides that interface
for any mapped instance by reading its attributes and instance state.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from sqlalchemy import inspect
from sqlalchemy.orm import InstanceState
from sqlalchemy.orm.attributes import set_committed_value

from rowposition.core.config import PositionConfig

GroupKey = tuple[Any, ...]

# Key of the per-flush bookkeeping stored in ``InstanceState.info``.
STATE_INFO_KEY = "rowposition"
# Set on ``InstanceState.info`` whenever the position attribute is assigned.
ASSIGNED_INFO_KEY = "rowposition.assigned"


@runtime_checkable
class Positioned(Protocol):
    """Operations the positioning core needs from a row."""

    # Model object handed to lockers.
    instance: Any

    @property
    def exists(self) -> bool:
        """True if the row is already stored."""

    @property
    def primary_key(self) -> tuple[Any, ...] | None:
        """Primary key values, or None before they are known."""

    @property
    def terminal(self) -> bool:
        """True if the row was placed on the last slot of its group."""

    @terminal.setter
    def terminal(self, value: bool) -> None: ...

    @property
    def position_assigned(self) -> bool:
        """True if the position was set by the caller since the last flush."""

    def get_position(self) -> int | None: ...

    def set_position(self, position: int | None) -> None: ...

    def get_group_key(self) -> GroupKey: ...

    def get_original_position(self) -> int | None: ...

    def get_original_group_key(self) -> GroupKey: ...

    def is_dirty(self, attribute: str) -> bool: ...

    def was_group_changed(self) -> bool: ...

    def was_position_changed(self) -> bool: ...


class SQLAlchemyRow:
    """`Positioned` view over a mapped SQLAlchemy instance.

    Original values are the ones stored in the database when the current
    flush started. The coordinator records them with `remember_original`
    because in-memory history cannot tell what sibling shifts did to a row.
    """

    def __init__(self, instance: Any, config: PositionConfig) -> None:
        self.instance = instance
        self.config = config
        self._state: InstanceState[Any] = inspect(instance)

    def __repr__(self) -> str:
        return f"SQLAlchemyRow({self.instance!r})"

    @property
    def info(self) -> dict[str, Any]:
        return self._state.info.setdefault(STATE_INFO_KEY, {})

    @property
    def exists(self) -> bool:
        return self._state.has_identity

    @property
    def primary_key(self) -> tuple[Any, ...] | None:
        if self._state.key is not None:
            return tuple(self._state.identity)
        values = self._state.mapper.primary_key_from_instance(self.instance)
        if any(value is None for value in values):
            return None
        return tuple(values)

    @property
    def terminal(self) -> bool:
        return bool(self.info.get("terminal", False))

    @terminal.setter
    def terminal(self, value: bool) -> None:
        self.info["terminal"] = value

    @property
    def position_assigned(self) -> bool:
        return bool(self._state.info.get(ASSIGNED_INFO_KEY))

    def mark_position_assigned(self) -> None:
        self._state.info[ASSIGNED_INFO_KEY] = True

    def clear_position_assigned(self) -> None:
        self._state.info.pop(ASSIGNED_INFO_KEY, None)

    def get_position(self) -> int | None:
        return getattr(self.instance, self.config.position_column)

    def set_position(self, position: int | None) -> None:
        setattr(self.instance, self.config.position_column, position)

    def get_group_key(self) -> GroupKey:
        return tuple(getattr(self.instance, name) for name in self.config.group_by)

    def remember_original(self, position: int | None, group_key: GroupKey) -> None:
        """Record the stored position and group for the rest of the flush."""
        self.info["original_position"] = position
        self.info["original_group_key"] = tuple(group_key)

    def fill_unloaded(self, position: int | None, group_key: GroupKey) -> None:
        """Populate expired positioning attributes with their stored values.

        Keeps attribute access during a flush from loading them lazily.
        """
        loaded = self._state.dict
        stored = dict(zip(self.config.group_by, group_key))
        stored[self.config.position_column] = position
        for name, value in stored.items():
            if name not in loaded:
                set_committed_value(self.instance, name, value)

    def get_original_position(self) -> int | None:
        return self.info.get("original_position")

    def get_original_group_key(self) -> GroupKey:
        return self.info.get("original_group_key", self.get_group_key())

    def is_dirty(self, attribute: str) -> bool:
        """Return True if ``attribute`` was modified since it was loaded."""
        return self._state.attrs[attribute].history.has_changes()

    def is_group_dirty(self) -> bool:
        return any(self.is_dirty(name) for name in self.config.group_by)

    def was_group_changed(self) -> bool:
        return self.get_group_key() != self.get_original_group_key()

    def was_position_changed(self) -> bool:
        return self.get_position() != self.get_original_position()

    def forget(self) -> None:
        """Drop the bookkeeping of the current flush."""
        self._state.info.pop(STATE_INFO_KEY, None)

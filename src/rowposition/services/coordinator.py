"""Lifecycle coordination of positioned rows.

`PositionCoordinator` hooks a mapped model into the SQLAlchemy unit of work:

- ``before_insert`` / ``before_update``: the assignment policy resolves the
  position the row is written with, and the stored placement of updated rows
  is read back so the shifts use what the database holds.
- ``after_insert`` / ``after_update``: the shift engine opens or moves slots
  among the siblings.
- ``before_delete`` + session ``after_flush``: the placement of deleted rows is
  captured, then their gaps are closed once every delete of the flush ran.
- session ``after_flush_postexec``: sibling positions cached in the identity
  map are expired so they reload with their shifted values.

The mapper is switched to non-batched persistence so the hooks of each row
run around that row's own statement.

Callers are expected to serialize writes to a group themselves (one
transaction holding a lock on the group), the coordinator does no locking.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import event, inspect
from sqlalchemy.engine import Connection
from sqlalchemy.orm import Mapper, ORMExecuteState, Session, class_mapper, object_session

from rowposition.core.config import PositionConfig
from rowposition.core.errors import PositioningConfigError
from rowposition.models.positioned import GroupKey, SQLAlchemyRow
from rowposition.services.assignment import AssignmentPolicy
from rowposition.services.ordering import apply_position_order
from rowposition.services.query import SequenceTable
from rowposition.services.shift import ShiftEngine, Transition, TransitionKind

logger = logging.getLogger(__name__)

# Key of the coordinator in the ``ClassManager.info`` of a positioned class.
COORDINATOR_INFO_KEY = "rowposition.coordinator"

RowFactory = Callable[[Any, PositionConfig], SQLAlchemyRow]


class PositionCoordinator:
    """Keep the positions of one model dense across inserts, moves and deletes."""

    def __init__(
        self,
        model: type[Any],
        config: PositionConfig | None = None,
        row_factory: RowFactory = SQLAlchemyRow,
    ) -> None:
        """Initialize the coordinator.

        Args:
            model: Mapped class whose rows are positioned.
            config: Positioning options. If None, defaults from settings are used.
            row_factory: Builds the `Positioned` view the services work on for
                an instance of the model.

        Raises:
            PositioningConfigError: If the configured attributes cannot be resolved.
        """
        self.model = model
        self.config = config or PositionConfig()
        self.sequence = SequenceTable.from_model(model, self.config)
        self.policy = AssignmentPolicy(self.config, self.sequence)
        self.engine = ShiftEngine(self.sequence)
        self.row_factory = row_factory
        self._muted = 0
        self._registered = False
        self._mapper_hooks: list[tuple[str, Any]] = []
        self._attribute_hooks: list[tuple[str, Any]] = []
        self._session_hooks: list[tuple[str, Any]] = []
        self._deletes_key = f"rowposition.deletes.{self.sequence.table.fullname}"
        self._stale_key = f"rowposition.stale.{self.sequence.table.fullname}"

    def __repr__(self) -> str:
        return f"PositionCoordinator({self.model.__name__}, {self.config!r})"

    @property
    def mapper(self) -> Mapper[Any]:
        return class_mapper(self.model)

    @property
    def _position_attribute(self) -> Any:
        return getattr(self.model, self.config.position_column)

    @property
    def shifting(self) -> bool:
        """True if siblings are currently shifted on changes."""
        return self.config.shift_positions and not self._muted

    # Registration

    def register(self) -> PositionCoordinator:
        """Attach the coordinator to the model's lifecycle events.

        Raises:
            PositioningConfigError: If another coordinator already manages the model.
        """
        if self._registered:
            return self

        mapper = self.mapper
        existing = mapper.class_manager.info.get(COORDINATOR_INFO_KEY)
        if existing is not None and existing is not self:
            raise PositioningConfigError(f"{self.model.__name__} is already positioned")

        self._mapper_hooks = self._mapper_listeners()
        self._attribute_hooks = [("set", self.position_set)]
        self._session_hooks = self._session_listeners()
        for name, listener in self._mapper_hooks:
            event.listen(self.model, name, listener, propagate=True)
        for name, listener in self._attribute_hooks:
            event.listen(self._position_attribute, name, listener, propagate=True)
        for name, listener in self._session_hooks:
            event.listen(Session, name, listener)

        mapper.base_mapper.batch = False
        mapper.class_manager.info[COORDINATOR_INFO_KEY] = self
        self._registered = True
        logger.info(
            "Positioning %s by %s (group_by=%s, start=%d)",
            self.model.__name__,
            self.config.position_column,
            self.config.group_by or "-",
            self.config.start_position,
        )
        return self

    def unregister(self) -> None:
        """Detach the coordinator from the model's lifecycle events."""
        if not self._registered:
            return

        for name, listener in self._mapper_hooks:
            event.remove(self.model, name, listener)
        for name, listener in self._attribute_hooks:
            event.remove(self._position_attribute, name, listener)
        for name, listener in self._session_hooks:
            event.remove(Session, name, listener)

        mapper = self.mapper
        mapper.class_manager.info.pop(COORDINATOR_INFO_KEY, None)
        mapper.base_mapper.batch = True
        self._registered = False

    def _mapper_listeners(self) -> list[tuple[str, Any]]:
        return [
            ("before_insert", self.before_insert),
            ("after_insert", self.after_insert),
            ("before_update", self.before_update),
            ("after_update", self.after_update),
            ("before_delete", self.before_delete),
        ]

    def _session_listeners(self) -> list[tuple[str, Any]]:
        listeners: list[tuple[str, Any]] = [
            ("before_flush", self.reset_flush_state),
            ("after_flush", self.after_delete),
            ("after_flush_postexec", self.expire_stale_positions),
            ("after_soft_rollback", self.discard_flush_state),
        ]
        if self.config.always_order_by_position:
            listeners.append(("do_orm_execute", self.order_selects))
        return listeners

    # Muting

    @contextmanager
    def muted(self) -> Iterator[None]:
        """Disable position assignment and shifting for the duration of the block."""
        self._muted += 1
        try:
            yield
        finally:
            self._muted -= 1

    # Operations

    def move(self, session: Session, instance: Any, new_position: int) -> bool:
        """Move a stored row to ``new_position`` within its group.

        Returns:
            False if the row already holds that position, True once it was moved.
        """
        row = self._row(instance)
        if row.get_position() == new_position:
            return False

        row.set_position(new_position)
        session.flush()
        return True

    def swap(self, session: Session, instance: Any, other: Any) -> None:
        """Exchange the positions of two rows without touching any sibling."""
        row, other_row = self._row(instance), self._row(other)
        with self.muted():
            position, other_position = row.get_position(), other_row.get_position()
            row.set_position(other_position)
            other_row.set_position(position)
            session.flush()
        logger.debug(
            "Swapped positions %s and %s of %r and %r", position, other_position, row, other_row
        )

    # Attribute events

    def position_set(self, target: Any, value: Any, oldvalue: Any, initiator: Any) -> None:
        """Flag the row so an unchanged value still counts as a chosen position."""
        self._row(target).mark_position_assigned()

    # Mapper events

    def before_insert(self, mapper: Mapper[Any], connection: Connection, target: Any) -> None:
        row = self._row(target)
        row.forget()
        if self._muted:
            return
        self.policy.assign(connection, row, joining=True)

    def after_insert(self, mapper: Mapper[Any], connection: Connection, target: Any) -> None:
        row = self._row(target)
        row.clear_position_assigned()
        if self.shifting:
            transition = Transition(
                kind=TransitionKind.INSERT,
                primary_key=row.primary_key,
                new_group=row.get_group_key(),
                new_position=row.get_position(),
                terminal=row.terminal,
            )
            if self.engine.run(connection, transition):
                self._mark_stale(target, row.get_group_key())
        row.forget()

    def before_update(self, mapper: Mapper[Any], connection: Connection, target: Any) -> None:
        row = self._row(target)
        # Bookkeeping left over from a flush that failed midway.
        row.forget()
        if self._muted:
            return
        if not (row.is_dirty(self.config.position_column) or row.is_group_dirty()):
            return

        persisted = self.sequence.load_persisted(connection, row.primary_key)
        if persisted is None:
            original_position, original_group = None, row.get_group_key()
        else:
            original_position, original_group = persisted
            row.fill_unloaded(original_position, original_group)
        row.remember_original(original_position, original_group)

        self.policy.assign(connection, row, joining=row.was_group_changed())
        row.info["tracked"] = True

    def after_update(self, mapper: Mapper[Any], connection: Connection, target: Any) -> None:
        row = self._row(target)
        row.clear_position_assigned()
        if not row.info.get("tracked"):
            return

        if self.shifting and (row.was_group_changed() or row.was_position_changed()):
            transition = Transition(
                kind=TransitionKind.UPDATE,
                primary_key=row.primary_key,
                old_group=row.get_original_group_key(),
                old_position=row.get_original_position(),
                new_group=row.get_group_key(),
                new_position=row.get_position(),
                terminal=row.terminal,
            )
            if self.engine.run(connection, transition):
                self._mark_stale(target, row.get_original_group_key(), row.get_group_key())
        row.forget()

    def before_delete(self, mapper: Mapper[Any], connection: Connection, target: Any) -> None:
        if not self.shifting:
            return
        session = object_session(target)
        primary_key = self._row(target).primary_key
        if session is None or primary_key is None:
            return

        persisted = self.sequence.load_persisted(connection, primary_key)
        if persisted is None or persisted[0] is None:
            return
        session.info.setdefault(self._deletes_key, []).append(persisted)

    # Session events

    def reset_flush_state(self, session: Session, flush_context: Any, instances: Any) -> None:
        """Drop bookkeeping a failed flush left on the session."""
        session.info.pop(self._deletes_key, None)
        session.info.pop(self._stale_key, None)

    def discard_flush_state(self, session: Session, previous_transaction: Any) -> None:
        """Forget pending deletes and chosen positions rolled back with the transaction."""
        self.reset_flush_state(session, None, None)
        for instance in list(session.identity_map.values()):
            if isinstance(instance, self.model):
                self._row(instance).clear_position_assigned()

    def after_delete(self, session: Session, flush_context: Any) -> None:
        """Close the gaps left by the rows deleted in this flush."""
        removed: list[tuple[int, GroupKey]] = session.info.pop(self._deletes_key, [])
        if not removed:
            return

        connection = session.connection(bind_arguments={"mapper": self.mapper})
        # Highest first so no shift moves a row another gap still refers to.
        for position, group_key in sorted(removed, key=lambda item: item[0], reverse=True):
            transition = Transition(
                kind=TransitionKind.DELETE,
                old_group=group_key,
                old_position=position,
            )
            self.engine.run(connection, transition)
            session.info.setdefault(self._stale_key, set()).add(group_key)

    def expire_stale_positions(self, session: Session, flush_context: Any) -> None:
        """Expire cached positions of siblings shifted during the flush."""
        stale: set[GroupKey] = session.info.pop(self._stale_key, set())
        if not stale:
            return

        position_column = self.config.position_column
        for instance in list(session.identity_map.values()):
            if not isinstance(instance, self.model):
                continue
            loaded = inspect(instance).dict
            if position_column not in loaded:
                continue
            group_key = tuple(loaded.get(name) for name in self.config.group_by)
            if group_key in stale or any(name not in loaded for name in self.config.group_by):
                session.expire(instance, [position_column])

    def order_selects(self, orm_execute_state: ORMExecuteState) -> None:
        """Order entity selects of the model by position."""
        apply_position_order(orm_execute_state, self.model, self.config.position_column)

    # Helpers

    def _row(self, instance: Any) -> SQLAlchemyRow:
        return self.row_factory(instance, self.config)

    def _mark_stale(self, target: Any, *group_keys: GroupKey) -> None:
        session = object_session(target)
        if session is None:
            return
        session.info.setdefault(self._stale_key, set()).update(group_keys)


def get_coordinator(model_or_instance: Any) -> PositionCoordinator:
    """Return the coordinator managing a model class or instance.

    Raises:
        PositioningConfigError: If the model is not positioned.
    """
    model = model_or_instance if isinstance(model_or_instance, type) else type(model_or_instance)
    # Subclasses in an inheritance hierarchy share the coordinator of their base.
    for mapper in class_mapper(model).iterate_to_root():
        coordinator = mapper.class_manager.info.get(COORDINATOR_INFO_KEY)
        if coordinator is not None:
            return coordinator
    raise PositioningConfigError(f"{model.__name__} is not positioned")


def register_positioning(
    model: type[Any],
    config: PositionConfig | None = None,
    **options: Any,
) -> PositionCoordinator:
    """Position ``model`` and return its registered coordinator.

    Args:
        model: Mapped class to position.
        config: Positioning options. Mutually exclusive with ``options``.
        **options: `PositionConfig` fields used when ``config`` is None.

    Example:
        register_positioning(Book, group_by=("category_id",))
    """
    if config is not None and options:
        raise PositioningConfigError("Pass either a PositionConfig or keyword options, not both")
    coordinator = PositionCoordinator(model, config or PositionConfig(**options))
    return coordinator.register()


def move(instance: Any, new_position: int) -> bool:
    """Move a stored row to ``new_position`` using its own session."""
    session = object_session(instance)
    if session is None:
        raise PositioningConfigError(f"{instance!r} is not attached to a session")
    return get_coordinator(instance).move(session, instance, new_position)


def swap(instance: Any, other: Any) -> None:
    """Exchange the positions of two rows using their session."""
    session = object_session(instance)
    if session is None:
        raise PositioningConfigError(f"{instance!r} is not attached to a session")
    get_coordinator(instance).swap(session, instance, other)

"""Per-row-type positioning configuration.

Each positioned model gets its own `PositionConfig`. Defaults come from the
library `Settings` so deployments can change them through the environment,
while a single model can still override any value at registration time.

Example:
    from rowposition.core.config import PositionConfig
    config = PositionConfig(group_by=("category_id",))
    config.lock_positions(0)  # new rows go to the front
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from rowposition.core.settings import settings

Locker = Callable[[Any], int]


def _default_position_column() -> str:
    return settings.position_column


def _default_start_position() -> int:
    return settings.start_position


def _default_always_order() -> bool:
    return settings.always_order_by_position


def _default_shift_positions() -> bool:
    return settings.shift_positions


@dataclass
class PositionConfig:
    """Typed positioning options for one row type.

    Attributes:
        position_column (str): Mapped attribute holding the position.
        start_position (int): Value of the first slot of every group.
        group_by (tuple[str, ...]): Mapped attributes partitioning the sequence.
            Empty means the whole table is one sequence.
        always_order_by_position (bool): Order every ORM select of the model by position.
        shift_positions (bool): Shift siblings when a row is inserted, moved or deleted.
        locker (Locker | None): Strategy deciding the position of rows saved
            without an explicit one. ``None`` means "append to the end".
    """

    position_column: str = field(default_factory=_default_position_column)
    start_position: int = field(default_factory=_default_start_position)
    group_by: tuple[str, ...] = ()
    always_order_by_position: bool = field(default_factory=_default_always_order)
    shift_positions: bool = field(default_factory=_default_shift_positions)
    locker: Locker | None = None

    def __post_init__(self) -> None:
        if isinstance(self.group_by, str):
            self.group_by = (self.group_by,)
        else:
            self.group_by = tuple(self.group_by)

    def lock_positions(self, locker: Locker | int | None = None) -> None:
        """Lock positions of new rows using the given strategy.

        Args:
            locker: A callable receiving the row and returning its position, a
                fixed position, or None to always use the start position.
        """
        if callable(locker):
            self.locker = locker
        elif isinstance(locker, int):
            self.locker = lambda row, value=locker: value
        else:
            self.locker = lambda row: self.start_position

    def unlock_positions(self) -> None:
        """Restore automatic end-of-sequence assignment."""
        self.locker = None

    @contextmanager
    def locked_positions(self, locker: Locker | int | None = None) -> Iterator[None]:
        """Temporarily lock positions, restoring the previous locker afterwards."""
        previous = self.locker
        self.lock_positions(locker)
        try:
            yield
        finally:
            self.locker = previous

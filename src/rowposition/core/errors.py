"""Exceptions raised by the positioning core."""

from __future__ import annotations


class PositionError(RuntimeError):
    """Base exception raised for positioning failures."""


class InvalidPositionRange(PositionError, ValueError):
    """Raised when a negative position cannot address any slot of its group.

    A negative position is first resolved against the length of the target
    group (``-1`` is the last slot). If the resolved value is still below the
    configured start position, the row cannot be placed and this error is raised.
    """

    def __init__(self, position: int, sequence_length: int, start_position: int) -> None:
        self.position = position
        self.sequence_length = sequence_length
        self.start_position = start_position
        super().__init__(
            f"Position {position} is out of range for a sequence of {sequence_length} "
            f"starting at {start_position}"
        )


class PositioningConfigError(PositionError):
    """Raised when a row type cannot be positioned with the given configuration."""

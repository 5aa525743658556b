"""Pure helpers interpreting raw position values.

Positions are addressed from the start of a group with values at or above the
start position and from its end with negative ones, the same way Python
sequences are indexed: ``-1`` is the last slot, ``-2`` the one before it.
"""

from __future__ import annotations


def resolve(raw_position: int, sequence_length: int, start_position: int = 0) -> int:
    """Return the absolute slot addressed by a raw position.

    Args:
        raw_position: Position as supplied by the caller.
        sequence_length: Number of rows in the target group, including the row
            being placed.
        start_position: Value of the first slot of the group.

    Returns:
        ``raw_position`` when it is not below the start position, otherwise the
        slot counted back from the end of the sequence. The result is not clamped.
    """
    if raw_position >= start_position:
        return raw_position
    return start_position + sequence_length + raw_position


def sequence_length(count: int, joining: bool) -> int:
    """Return the group length once the row is part of it.

    Args:
        count: Rows currently stored in the group.
        joining: True when the row is not counted yet (insert or group change).
    """
    return count + 1 if joining else count


def end_slot(start_position: int, length: int) -> int:
    """Return the last valid slot of a sequence of ``length`` rows."""
    return start_position + length - 1


def is_terminal(position: int, start_position: int, length: int) -> bool:
    """Return True if ``position`` is the last slot of the sequence."""
    return position == end_slot(start_position, length)

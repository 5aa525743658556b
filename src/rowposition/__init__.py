"""Dense, gap-free row positions for SQLAlchemy models."""

from rowposition.core.config import PositionConfig
from rowposition.core.errors import InvalidPositionRange, PositionError, PositioningConfigError
from rowposition.services.coordinator import (
    PositionCoordinator,
    get_coordinator,
    move,
    register_positioning,
    swap,
)
from rowposition.services.integrity import DensityViolation, find_density_violations
from rowposition.services.ordering import order_by_inverse_position, order_by_position

__all__ = [
    "DensityViolation",
    "InvalidPositionRange",
    "PositionConfig",
    "PositionCoordinator",
    "PositionError",
    "PositioningConfigError",
    "find_density_violations",
    "get_coordinator",
    "move",
    "order_by_inverse_position",
    "order_by_position",
    "register_positioning",
    "swap",
]

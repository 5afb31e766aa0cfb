"""Hypothesis strategies for point-set and grid testing."""

from ._coordinates import coordinates
from ._point_clouds import point_clouds
from ._unit_fractions import unit_fractions

__all__ = [
    # Numeric strategies
    "coordinates",
    "unit_fractions",
    # Tensor strategies
    "point_clouds",
]

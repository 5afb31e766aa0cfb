"""Space partitioning module exceptions."""


class SpacePartitioningError(Exception):
    """Base exception for space partitioning operations."""

    pass


class InsufficientPointsError(SpacePartitioningError):
    """Not enough points for the requested operation."""

    pass

"""Outlier detection module exceptions."""


class OutlierDetectionError(Exception):
    """Base exception for outlier detection operations."""

    pass


class InsufficientDepthError(OutlierDetectionError):
    """A counting neighborhood has no sampling neighborhood above it."""

    pass

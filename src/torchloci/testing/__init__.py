"""Testing utilities for torchloci."""

from . import strategies

__all__ = [
    "strategies",
]

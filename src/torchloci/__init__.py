"""torchloci: PyTorch approximate LOCI outlier detection."""

from . import (
    outlier_detection,
    space_partitioning,
)

__all__ = [
    "outlier_detection",
    "space_partitioning",
]

__version__ = "0.1.0"

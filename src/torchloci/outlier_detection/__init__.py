"""Density-based outlier detection.

This module provides approximate LOCI (aLOCI): the multi-granularity
deviation factor evaluated on an ensemble of randomly shifted quad-trees.
"""

from ._aloci import aloci, aloci_score
from ._exceptions import InsufficientDepthError, OutlierDetectionError
from ._mdef import mdef_norm
from ._outlier_result import OutlierResult, ScoreAggregator, ScoreRange

__all__ = [
    "InsufficientDepthError",
    "OutlierDetectionError",
    "OutlierResult",
    "ScoreAggregator",
    "ScoreRange",
    "aloci",
    "aloci_score",
    "mdef_norm",
]

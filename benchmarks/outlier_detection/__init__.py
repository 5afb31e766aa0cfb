"""Benchmarks for approximate LOCI.

This module provides timing runs for ensemble construction and scoring.
"""

from .bench_aloci import BenchAloci

__all__ = [
    "BenchAloci",
]

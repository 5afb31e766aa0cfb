"""Benchmarks for approximate LOCI.

Times quad-tree ensemble construction and score evaluation separately, for a
range of point counts, dimensions and grid counts.
"""

from __future__ import annotations

import time
from typing import Any, Callable

import torch

from torchloci.outlier_detection import aloci_score
from torchloci.space_partitioning import grid_ensemble


def benchmark(
    func: Callable,
    *args: Any,
    warmup: int = 1,
    iterations: int = 5,
    **kwargs: Any,
) -> dict[str, float]:
    """Run a simple benchmark on a function.

    Parameters
    ----------
    func : callable
        Function to benchmark.
    *args : Any
        Positional arguments to pass to func.
    warmup : int, optional
        Number of warmup iterations. Default is 1.
    iterations : int, optional
        Number of timed iterations. Default is 5.
    **kwargs : Any
        Keyword arguments to pass to func.

    Returns
    -------
    dict
        Dictionary with timing statistics:
        - 'mean': Mean time in seconds
        - 'std': Standard deviation in seconds
        - 'min': Minimum time in seconds
        - 'max': Maximum time in seconds
    """
    for _ in range(warmup):
        func(*args, **kwargs)

    times = []
    for _ in range(iterations):
        start = time.perf_counter()
        func(*args, **kwargs)
        if torch.cuda.is_available():
            torch.cuda.synchronize()
        times.append(time.perf_counter() - start)

    times = torch.tensor(times, dtype=torch.float64)
    return {
        "mean": times.mean().item(),
        "std": times.std(correction=0).item(),
        "min": times.min().item(),
        "max": times.max().item(),
    }


def format_time(seconds: float) -> str:
    """Format time in appropriate units."""
    if seconds < 1e-6:
        return f"{seconds * 1e9:.3f}ns"
    elif seconds < 1e-3:
        return f"{seconds * 1e6:.3f}us"
    elif seconds < 1:
        return f"{seconds * 1e3:.3f}ms"
    else:
        return f"{seconds:.3f}s"


def print_timing(name: str, timing: dict[str, float]) -> None:
    """Print one benchmark result."""
    print(f"\n{name}")
    print("-" * len(name))
    print(
        f"  mean: {format_time(timing['mean'])} "
        f"+/- {format_time(timing['std'])}"
    )


class BenchAloci:
    """Benchmarks for grid ensemble construction and aLOCI scoring."""

    def __init__(self, warmup: int = 1, iterations: int = 5):
        """Initialize benchmark runner.

        Parameters
        ----------
        warmup : int, optional
            Number of warmup iterations. Default is 1.
        iterations : int, optional
            Number of timed iterations. Default is 5.
        """
        self.warmup = warmup
        self.iterations = iterations

    def _bench(self, func: Callable, *args: Any, **kwargs: Any):
        return benchmark(
            func,
            *args,
            warmup=self.warmup,
            iterations=self.iterations,
            **kwargs,
        )

    def _points(self, n_points: int, n_dims: int) -> torch.Tensor:
        g = torch.Generator().manual_seed(0)
        return torch.rand(n_points, n_dims, generator=g, dtype=torch.float64)

    def bench_construction(self) -> None:
        """Ensemble construction for increasing point counts."""
        print("\n" + "=" * 60)
        print("GRID ENSEMBLE CONSTRUCTION")
        print("=" * 60)

        for n_points in [1_000, 10_000]:
            for grid_count in [1, 4]:
                points = self._points(n_points, 2)
                timing = self._bench(
                    grid_ensemble,
                    points,
                    grid_count=grid_count,
                    generator=torch.Generator().manual_seed(0),
                )
                print_timing(
                    f"grid_ensemble (n={n_points}, G={grid_count})", timing
                )

    def bench_scoring(self) -> None:
        """Scoring against a prebuilt ensemble."""
        print("\n" + "=" * 60)
        print("ALOCI SCORING")
        print("=" * 60)

        for n_dims in [2, 3]:
            for grid_count in [1, 4]:
                points = self._points(10_000, n_dims)
                ensemble = grid_ensemble(
                    points,
                    grid_count=grid_count,
                    generator=torch.Generator().manual_seed(0),
                )
                timing = self._bench(aloci_score, ensemble, points)
                print_timing(
                    f"aloci_score (d={n_dims}, G={grid_count})", timing
                )

    def bench_batch_size(self) -> None:
        """Effect of the chunk size on scoring."""
        print("\n" + "=" * 60)
        print("BATCH SIZE")
        print("=" * 60)

        points = self._points(10_000, 2)
        ensemble = grid_ensemble(
            points, grid_count=4, generator=torch.Generator().manual_seed(0)
        )
        for batch_size in [256, 1024, 10_000]:
            timing = self._bench(
                aloci_score, ensemble, points, batch_size=batch_size
            )
            print_timing(f"aloci_score (batch_size={batch_size})", timing)

    def run_all(self) -> None:
        """Run all benchmarks."""
        self.bench_construction()
        self.bench_scoring()
        self.bench_batch_size()


if __name__ == "__main__":
    bench = BenchAloci()
    bench.run_all()
    print("\n")

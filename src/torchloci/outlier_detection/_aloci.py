"""Approximate LOCI outlier scores over a shifted quad-tree ensemble."""

from __future__ import annotations

from typing import Callable, Optional, Tuple

import torch
from torch import Tensor

from torchloci.space_partitioning import (
    GridEnsemble,
    QuadTree,
    grid_ensemble,
    grid_translate_points,
    quadtree_ancestor,
    quadtree_box_count_sum,
    quadtree_counting_grid,
    quadtree_counting_node,
    quadtree_gather,
    quadtree_sampling_node,
)

from ._exceptions import InsufficientDepthError
from ._mdef import mdef_norm
from ._outlier_result import OutlierResult, ScoreAggregator


def aloci(
    points: Tensor,
    *,
    nmin: int = 20,
    alpha: int = 4,
    grid_count: int = 1,
    seed: int = 0,
    batch_size: int = 1024,
    callback: Optional[Callable[[int, int], None]] = None,
) -> OutlierResult:
    """Score every point of a point set with approximate LOCI.

    Builds a :class:`GridEnsemble` with :func:`grid_ensemble` and scores
    the same points with :func:`aloci_score`.

    Parameters
    ----------
    points : Tensor, shape (n, d)
        Point coordinates.
    nmin : int, default=20
        Minimum occupancy of a sampling neighborhood.
    alpha : int, default=4
        Levels between counting and sampling neighborhoods (at least 1).
    grid_count : int, default=1
        Number of shifted grids.
    seed : int, default=0
        Seed of the generator drawing the grid shifts.
    batch_size : int, default=1024
        Number of points scored per vectorized chunk.
    callback : Callable[[int, int], None], optional
        Called after every chunk with ``(processed, total)``.

    Returns
    -------
    OutlierResult
        Scores, sampling levels and the observed score range.

    References
    ----------
    S. Papadimitriou, H. Kitagawa, P. B. Gibbons and C. Faloutsos,
    "LOCI: Fast Outlier Detection Using the Local Correlation Integral,"
    Proc. 19th IEEE Int. Conf. on Data Engineering (ICDE '03), 2003.

    Examples
    --------
    >>> cluster = torch.rand(1000, 2)
    >>> points = torch.cat([cluster, torch.tensor([[100.0, 100.0]])])
    >>> result = aloci(points)
    >>> result.score.argmax()
    tensor(1000)
    """
    generator = torch.Generator(device=points.device).manual_seed(seed)
    ensemble = grid_ensemble(
        points,
        nmin=nmin,
        alpha=alpha,
        grid_count=grid_count,
        generator=generator,
    )
    return aloci_score(
        ensemble, points, batch_size=batch_size, callback=callback
    )


def aloci_score(
    ensemble: GridEnsemble,
    points: Tensor,
    *,
    batch_size: int = 1024,
    callback: Optional[Callable[[int, int], None]] = None,
) -> OutlierResult:
    """Score points against a frozen grid ensemble.

    Parameters
    ----------
    ensemble : GridEnsemble
        Ensemble built from a point set containing ``points``.
    points : Tensor, shape (n, d)
        Points to score, in unshifted coordinates.
    batch_size : int, default=1024
        Number of points scored per vectorized chunk.
    callback : Callable[[int, int], None], optional
        Called after every chunk with ``(processed, total)``.

    Returns
    -------
    OutlierResult
        Scores, sampling levels and the observed score range.

    Notes
    -----
    For each point the engine

    1. picks, over all grids, the deepest node containing the shifted
       point whose center is nearest to it (lower grid index on ties);
    2. evaluates the normalized MDEF with the sampling neighborhood
       ``alpha`` levels above that counting neighborhood;
    3. climbs one level at a time to the root, re-selecting the nearest
       counting neighborhood across grids at every level, and keeps the
       largest score together with its sampling level.

    Grids that have no node at a requested level simply contribute no
    candidate. Chunks only read the ensemble, so their order does not
    matter.
    """
    if points.dim() != 2:
        raise RuntimeError(
            f"points must be 2D (n, d), got {points.dim()}D"
        )
    if points.size(-1) != ensemble.box.n_dims:
        raise RuntimeError(
            f"points must have {ensemble.box.n_dims} columns to match the "
            f"ensemble, got {points.size(-1)}"
        )
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    alpha = int(ensemble.alpha)
    moments = (
        quadtree_box_count_sum(ensemble.trees, alpha, power=2),
        quadtree_box_count_sum(ensemble.trees, alpha, power=3),
    )

    n_points = points.size(0)
    points = points.to(torch.float64)
    aggregator = ScoreAggregator(n_points, device=points.device)
    for start in range(0, n_points, batch_size):
        stop = min(start + batch_size, n_points)
        indices = torch.arange(start, stop, device=points.device)
        score, level = _score_chunk(ensemble, points[start:stop], moments)
        aggregator.add(indices, score, level)
        if callback is not None:
            callback(stop, n_points)
    return aggregator.result()


def _score_chunk(
    ensemble: GridEnsemble,
    points: Tensor,
    moments: Tuple[Tensor, Tensor],
) -> Tuple[Tensor, Tensor]:
    trees = ensemble.trees
    alpha = int(ensemble.alpha)
    shifted = ensemble.shift(points)

    deepest = quadtree_counting_grid(trees, shifted)
    grid, node = _nearest_node(trees, shifted, deepest)

    level = trees.level[grid, node] - alpha
    if (level < 0).any():
        raise InsufficientDepthError(
            f"counting neighborhoods must lie at least alpha ({alpha}) "
            f"levels below the root, got level "
            f"{int(trees.level[grid, node].min())}"
        )

    best_score, best_level = _mdef_at(ensemble, grid, node, level, moments)

    while True:
        active = level > 0
        if not active.any():
            break
        index = active.nonzero().squeeze(-1)
        level[index] -= 1

        counting_grid, counting_node = grid[index], node[index]
        candidates = quadtree_counting_node(
            trees,
            shifted[:, index],
            trees.level[counting_grid, counting_node] - 1,
        )
        counting_grid, counting_node = _nearest_node(
            trees,
            shifted[:, index],
            candidates,
            counting_grid,
            trees.parent[counting_grid, counting_node],
        )
        grid[index] = counting_grid
        node[index] = counting_node

        score, sampling_level = _mdef_at(
            ensemble, counting_grid, counting_node, level[index], moments
        )
        better = score > best_score[index]
        best_score[index] = torch.where(better, score, best_score[index])
        best_level[index] = torch.where(
            better, sampling_level, best_level[index]
        )

    return best_score, best_level


def _nearest_node(
    trees: QuadTree,
    locations: Tensor,
    candidates: Tensor,
    grid: Optional[Tensor] = None,
    node: Optional[Tensor] = None,
) -> Tuple[Tensor, Tensor]:
    """Per point, the candidate whose center is nearest to the location.

    ``locations`` (G, n, d) and ``candidates`` (G, n) are given per grid and
    distances are measured in each grid's own frame. Absent candidates
    (-1) never win. Without an incumbent the first nearest grid wins; an
    incumbent ``(grid, node)`` is only replaced by a strictly nearer
    candidate from another grid.
    """
    n_grids, n_points = candidates.shape
    column = torch.arange(n_points, device=candidates.device)

    distance = torch.linalg.vector_norm(
        quadtree_gather(trees.center, candidates) - locations, dim=-1
    ).masked_fill(candidates < 0, float("inf"))

    if grid is None:
        grid = torch.zeros_like(column)
        node = candidates[0].clone()
        best = distance[0].clone()
    else:
        grid = grid.clone()
        node = node.clone()
        best = torch.linalg.vector_norm(
            trees.center[grid, node] - locations[grid, column], dim=-1
        )

    for i in range(n_grids):
        closer = (distance[i] < best) & (grid != i)
        grid = grid.masked_fill(closer, i)
        node = torch.where(closer, candidates[i], node)
        best = torch.where(closer, distance[i], best)
    return grid, node


def _mdef_at(
    ensemble: GridEnsemble,
    grid: Tensor,
    node: Tensor,
    level: Tensor,
    moments: Tuple[Tensor, Tensor],
) -> Tuple[Tensor, Tensor]:
    """Normalized MDEF of counting nodes against their best sampling node."""
    trees = ensemble.trees
    n_grids = ensemble.grid_count
    column = torch.arange(grid.shape[0], device=grid.device)

    # Own-grid ancestor, always present.
    start = torch.zeros(
        n_grids, grid.shape[0], dtype=torch.int64, device=grid.device
    )
    start[grid, column] = node
    base = quadtree_ancestor(trees, start, level)[grid, column]

    center = trees.center[grid, node]
    translated = grid_translate_points(
        center,
        ensemble.shifts[grid],
        ensemble.shifts[:, None, :],
        ensemble.box,
    )
    candidates = quadtree_sampling_node(trees, translated, level)
    sampling_grid, sampling_node = _nearest_node(
        trees, translated, candidates, grid, base
    )

    square_sum, cubic_sum = moments
    score = mdef_norm(
        square_sum[sampling_grid, sampling_node],
        cubic_sum[sampling_grid, sampling_node],
        trees.count[sampling_grid, sampling_node],
        trees.count[grid, node],
    )
    return score, trees.level[sampling_grid, sampling_node]

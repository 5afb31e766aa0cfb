"""Shifted quad-tree grids for multi-granularity density queries.

This module provides the spatial index behind approximate LOCI:
- An isotropic bounding box shared by every grid
- Random grid shifts with toroidal wraparound
- Quad-trees built by sequential insertion with a minimum occupancy and
  forced deepening, frozen into batched tensorclasses
- Vectorized counting / sampling neighborhood lookups and box-count moments

Note: Tree construction produces a discrete data structure and is NOT
differentiable.
"""

from ._bounding_box import BoundingBox, bounding_box
from ._exceptions import InsufficientPointsError, SpacePartitioningError
from ._grid_ensemble import GridEnsemble, grid_ensemble
from ._grid_shift import (
    grid_shift_points,
    grid_shifts,
    grid_translate_points,
)
from ._quadtree import QuadTree, quadtree, quadtree_stack
from ._quadtree_box_count import quadtree_box_count_sum
from ._quadtree_builder import QuadTreeBuilder
from ._quadtree_query import (
    quadtree_ancestor,
    quadtree_counting_grid,
    quadtree_counting_node,
    quadtree_gather,
    quadtree_sampling_node,
)

__all__ = [
    "BoundingBox",
    "GridEnsemble",
    "InsufficientPointsError",
    "QuadTree",
    "QuadTreeBuilder",
    "SpacePartitioningError",
    "bounding_box",
    "grid_ensemble",
    "grid_shift_points",
    "grid_shifts",
    "grid_translate_points",
    "quadtree",
    "quadtree_ancestor",
    "quadtree_box_count_sum",
    "quadtree_counting_grid",
    "quadtree_counting_node",
    "quadtree_gather",
    "quadtree_sampling_node",
    "quadtree_stack",
]

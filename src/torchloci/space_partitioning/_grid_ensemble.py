"""Ensemble of randomly shifted quad-trees."""

from __future__ import annotations

import warnings

import torch
from tensordict import tensorclass
from torch import Generator, Tensor

from ._bounding_box import BoundingBox, bounding_box
from ._grid_shift import grid_shift_points, grid_shifts
from ._quadtree import QuadTree, quadtree, quadtree_stack


@tensorclass
class GridEnsemble:
    """Frozen collection of shifted quad-trees over one bounding box.

    Use :func:`grid_ensemble` to construct instances.

    Attributes
    ----------
    trees : QuadTree
        Batched tree with ``batch_size=[G]``; ``trees[i]`` indexes the
        points shifted by ``shifts[i]``.
    shifts : Tensor, shape (G, d), dtype=float64
        Shift vector of every grid. Row 0 is zero.
    box : BoundingBox
        Common universe of all grids.
    alpha : Tensor, scalar, dtype=int64
        Levels between a counting neighborhood and its sampling
        neighborhood.

    Notes
    -----
    Nothing mutates an ensemble after construction, so concurrent readers
    need no synchronization.
    """

    trees: QuadTree
    shifts: Tensor
    box: BoundingBox
    alpha: Tensor

    @property
    def grid_count(self) -> int:
        """Number of grids G."""
        return self.shifts.shape[0]

    def shift(self, points: Tensor) -> Tensor:
        """Shift points into every grid's frame.

        Parameters
        ----------
        points : Tensor, shape (n, d)

        Returns
        -------
        Tensor, shape (G, n, d), dtype=float64
        """
        return grid_shift_points(points, self.shifts[:, None, :], self.box)


def grid_ensemble(
    points: Tensor,
    *,
    nmin: int = 20,
    alpha: int = 4,
    grid_count: int = 1,
    generator: Generator | None = None,
) -> GridEnsemble:
    """Build G shifted quad-trees over a point set.

    Parameters
    ----------
    points : Tensor, shape (n, d)
        Point coordinates. Converted to float64.
    nmin : int, default=20
        Minimum occupancy that justifies subdivision and qualifies a
        sampling neighborhood. Must be >= 1.
    alpha : int, default=4
        Levels between counting and sampling neighborhoods. Values below 1
        are raised to 1 with a warning.
    grid_count : int, default=1
        Number of grids G. Must be >= 1.
    generator : torch.Generator, optional
        A pseudorandom number generator for the grid shifts. If None, uses
        the default generator.

    Returns
    -------
    GridEnsemble
        Frozen ensemble.

    Raises
    ------
    RuntimeError
        If points is not 2D.
    ValueError
        If nmin or grid_count is out of range.
    InsufficientPointsError
        If points is empty.

    Warns
    -----
    UserWarning
        If alpha is coerced to 1.
    RuntimeWarning
        If nmin is not smaller than the number of points, so no tree can
        subdivide before the forced levels.

    Examples
    --------
    >>> g = torch.Generator().manual_seed(0)
    >>> ensemble = grid_ensemble(points, grid_count=4, generator=g)
    >>> ensemble.trees.batch_size
    torch.Size([4])
    """
    alpha = validate_parameters(
        points, nmin=nmin, alpha=alpha, grid_count=grid_count
    )

    box = bounding_box(points)
    shifts = grid_shifts(box, grid_count, generator=generator)
    shifted = grid_shift_points(points, shifts[:, None, :], box)

    trees = [
        quadtree(shifted[i], box, nmin=nmin, alpha=alpha)
        for i in range(grid_count)
    ]

    return GridEnsemble(
        trees=quadtree_stack(trees),
        shifts=shifts,
        box=box,
        alpha=torch.tensor(alpha, dtype=torch.int64, device=points.device),
        batch_size=[],
    )


def validate_parameters(
    points: Tensor,
    *,
    nmin: int,
    alpha: int,
    grid_count: int,
) -> int:
    """Check ensemble parameters before any tree is built.

    Returns
    -------
    int
        ``alpha`` raised to at least 1.
    """
    if points.dim() != 2:
        raise RuntimeError(
            f"points must be 2D (n, d), got {points.dim()}D"
        )
    if not torch.is_floating_point(points):
        raise RuntimeError(
            f"points must be a floating point tensor, got {points.dtype}"
        )
    if nmin < 1:
        raise ValueError(f"nmin must be >= 1, got {nmin}")
    if grid_count < 1:
        raise ValueError(f"grid_count must be >= 1, got {grid_count}")
    if alpha < 1:
        warnings.warn(
            f"alpha must be >= 1, got {alpha}; using 1",
            UserWarning,
            stacklevel=3,
        )
        alpha = 1
    if 0 < points.size(0) <= nmin:
        warnings.warn(
            f"nmin ({nmin}) is not smaller than the number of points "
            f"({points.size(0)}); quad-trees will only carry the "
            f"{alpha} forced levels",
            RuntimeWarning,
            stacklevel=3,
        )
    return alpha

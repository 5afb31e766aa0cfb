"""Random grid shifts with toroidal wraparound."""

from __future__ import annotations

import torch
from torch import Generator, Tensor

from ._bounding_box import BoundingBox


def grid_shifts(
    box: BoundingBox,
    grid_count: int,
    *,
    generator: Generator | None = None,
) -> Tensor:
    """Draw one shift vector per grid.

    Parameters
    ----------
    box : BoundingBox
        Common universe of all grids.
    grid_count : int
        Number of grids G.
    generator : torch.Generator, optional
        A pseudorandom number generator for sampling. If None, uses the
        default generator.

    Returns
    -------
    Tensor, shape (G, d), dtype=float64
        Row 0 is the zero vector, so grid 0 is the unshifted partition. The
        remaining rows are uniform in ``[0, side)`` per dimension.

    Notes
    -----
    Shifts are independent draws; two grids may coincide by chance. The
    result is reproducible only for an identically seeded generator.

    Examples
    --------
    >>> g = torch.Generator().manual_seed(0)
    >>> shifts = grid_shifts(box, 4, generator=g)
    >>> shifts[0]
    tensor([0., 0.], dtype=torch.float64)
    """
    if grid_count < 1:
        raise ValueError(f"grid_count must be >= 1, got {grid_count}")

    device = box.lower.device
    shifts = torch.zeros(
        grid_count, box.n_dims, dtype=torch.float64, device=device
    )
    if grid_count > 1:
        draws = torch.rand(
            grid_count - 1,
            box.n_dims,
            generator=generator,
            dtype=torch.float64,
            device=device,
        )
        shifts[1:] = draws * box.side
    return shifts


def grid_shift_points(
    points: Tensor,
    shift: Tensor,
    box: BoundingBox,
) -> Tensor:
    """Translate points into a shifted grid's frame.

    Parameters
    ----------
    points : Tensor, shape (..., d)
        Coordinates inside ``box``.
    shift : Tensor, shape (..., d)
        Shift vectors, broadcast against ``points``. Entries lie in
        ``(-side, side)``; negative entries move a location back towards an
        unshifted frame.
    box : BoundingBox
        Common universe of all grids.

    Returns
    -------
    Tensor, shape (...broadcast, d), dtype=float64
        Shifted coordinates. Where the sum exceeds ``box.upper`` the side
        length is subtracted, where it falls below ``box.lower`` it is
        added (toroidal wraparound), so every result lies in
        ``[box.lower, box.upper]``.

    Examples
    --------
    Shift every point into every grid at once:

    >>> shifted = grid_shift_points(points, shifts[:, None, :], box)
    >>> shifted.shape
    torch.Size([G, n, d])
    """
    minimum = box.lower
    maximum = box.upper
    side = box.side

    shifted = points.to(torch.float64) + shift
    shifted = torch.where(shifted > maximum, shifted - side, shifted)
    shifted = torch.where(shifted < minimum, shifted + side, shifted)

    # Rounding in x + s - side can land one ulp outside the box.
    return torch.minimum(torch.maximum(shifted, minimum), maximum)


def grid_translate_points(
    points: Tensor,
    source_shift: Tensor,
    target_shift: Tensor,
    box: BoundingBox,
) -> Tensor:
    """Move locations from one grid's frame into another's.

    Parameters
    ----------
    points : Tensor, shape (..., d)
        Coordinates in the frame shifted by ``source_shift``.
    source_shift, target_shift : Tensor, shape (..., d)
        Shift vectors of the source and target grids.
    box : BoundingBox
        Common universe of all grids.

    Returns
    -------
    Tensor, shape (...broadcast, d), dtype=float64
        The same physical locations expressed in the target grid's frame.
    """
    return grid_shift_points(points, target_shift - source_shift, box)

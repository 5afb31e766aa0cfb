"""Isotropic bounding box shared by every grid of an ensemble."""

from __future__ import annotations

import torch
from tensordict import tensorclass
from torch import Tensor

from ._exceptions import InsufficientPointsError


@tensorclass
class BoundingBox:
    """Axis-aligned hypercube enclosing a point set.

    As a tensorclass, BoundingBox supports:
    - Device movement: ``box.to("cuda")`` or ``box.cuda()``
    - Serialization: ``torch.save(box, path)`` / ``torch.load(path)``

    Attributes
    ----------
    lower : Tensor, shape (d,), dtype=float64
        Lower corner.
    upper : Tensor, shape (d,), dtype=float64
        Upper corner.

    Notes
    -----
    **Hypercube invariant:** ``upper - lower`` is the same on every
    dimension. Use :func:`bounding_box` to construct instances so the
    invariant holds.
    """

    lower: Tensor
    upper: Tensor

    @property
    def side(self) -> Tensor:
        """Side length shared by all dimensions."""
        return (self.upper - self.lower).amax(dim=-1)

    @property
    def n_dims(self) -> int:
        """Dimensionality of the box."""
        return self.lower.shape[-1]


def bounding_box(points: Tensor) -> BoundingBox:
    """Smallest hypercube centered on the extent of a point set.

    Parameters
    ----------
    points : Tensor, shape (n, d)
        Point coordinates. Converted to float64.

    Returns
    -------
    BoundingBox
        Box whose side is the largest per-dimension extent. Dimensions with
        a smaller extent are enlarged symmetrically, half of the deficit on
        each side.

    Raises
    ------
    RuntimeError
        If points is not 2D.
    InsufficientPointsError
        If points is empty.

    Examples
    --------
    >>> box = bounding_box(torch.tensor([[0.0, 0.0], [4.0, 2.0]]))
    >>> box.lower
    tensor([ 0., -1.], dtype=torch.float64)
    >>> box.upper
    tensor([4., 3.], dtype=torch.float64)
    """
    if points.dim() != 2:
        raise RuntimeError(
            f"points must be 2D (n, d), got {points.dim()}D"
        )
    if points.size(0) == 0:
        raise InsufficientPointsError(
            "bounding_box requires at least one point"
        )

    points = points.to(torch.float64)
    minimum = points.amin(dim=0)
    maximum = points.amax(dim=0)

    extent = maximum - minimum
    deficit = (extent.amax() - extent) / 2

    return BoundingBox(
        lower=minimum - deficit,
        upper=maximum + deficit,
        batch_size=[],
    )

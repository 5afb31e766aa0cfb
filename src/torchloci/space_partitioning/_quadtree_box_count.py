"""Box-count moments of quad-tree neighborhoods."""

from __future__ import annotations

from typing import TYPE_CHECKING

import torch
from torch import Tensor

if TYPE_CHECKING:
    from ._quadtree import QuadTree


def quadtree_box_count_sum(
    tree: "QuadTree",
    levels: int,
    *,
    power: int = 2,
) -> Tensor:
    r"""Sum of powered bucket counts ``levels`` below every node.

    For a node :math:`s` let :math:`B_s` be its descendants exactly
    ``levels`` below it. The result is

    .. math::
        S_p(s) = \sum_{b \in B_s} c_b^p

    where :math:`c_b` is the bucket count of box :math:`b`. With ``power=2``
    this is the box-count square sum of LOCI, with ``power=3`` the cubic
    sum.

    Parameters
    ----------
    tree : QuadTree
        Tree with batch shape ``(...)``.
    levels : int
        Depth offset of the counted boxes below each node.
    power : int, default=2
        Exponent applied to every bucket count.

    Returns
    -------
    Tensor, shape (..., N), dtype=int64
        One sum per node. Padding nodes yield 0.

    Notes
    -----
    **Sparse regions:** a leaf that stops above the target depth counts as
    a single box holding its own bucket count. Regions without a node hold
    no points and contribute nothing. The sum is resolved entirely within
    ``tree``.

    Examples
    --------
    >>> square_sum = quadtree_box_count_sum(tree, 4, power=2)
    >>> square_sum[0] >= tree.count[0]
    tensor(True)
    """
    if levels < 0:
        raise ValueError(f"levels must be >= 0, got {levels}")
    if power < 1:
        raise ValueError(f"power must be >= 1, got {power}")

    has_parent = tree.parent >= 0
    parent = tree.parent.clamp(min=0)
    n_children = torch.zeros_like(tree.count).scatter_add_(
        -1, parent, has_parent.long()
    )
    own = tree.count**power

    result = own
    for _ in range(levels):
        summed = torch.zeros_like(result).scatter_add_(
            -1, parent, result.masked_fill(~has_parent, 0)
        )
        result = torch.where(n_children > 0, summed, own)
    return result

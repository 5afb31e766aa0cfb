"""Frozen quad-tree snapshot with sorted child-key lookup."""

from __future__ import annotations

from typing import Sequence

import torch
from tensordict import tensorclass
from torch import Tensor

from ._bounding_box import BoundingBox
from ._quadtree_builder import QuadTreeBuilder


@tensorclass
class QuadTree:
    """Read-only quad-tree over a d-dimensional hypercube.

    This class wraps the node arena produced by :class:`QuadTreeBuilder`.
    Use :func:`quadtree` to construct instances and :func:`quadtree_stack`
    to batch several trees.

    As a tensorclass, QuadTree supports:
    - Automatic batching: indexing with ``tree[0]`` or ``tree[:2]``
    - Device movement: ``tree.to("cuda")`` or ``tree.cuda()``
    - Serialization: ``torch.save(tree, path)`` / ``torch.load(path)``

    Attributes
    ----------
    center : Tensor, shape (..., N, d), dtype=float64
        Center of each node's region.
    level : Tensor, shape (..., N), dtype=int64
        Depth of each node, 0 for the root, -1 for padding.
    count : Tensor, shape (..., N), dtype=int64
        Bucket count: number of points inside each node's region.
    parent : Tensor, shape (..., N), dtype=int64
        Parent index, -1 for the root and for padding.
    child_keys : Tensor, shape (..., N), dtype=int64
        Sorted lookup keys ``parent * 2**d + octant`` of every non-root
        node. The root and padding carry the int64 maximum and sort last.
    child_nodes : Tensor, shape (..., N), dtype=int64
        Node index belonging to each entry of ``child_keys``.
    lower, upper : Tensor, shape (..., d), dtype=float64
        Corners of the root hypercube.
    nmin : Tensor, shape (...), dtype=int64
        Minimum occupancy of a sampling neighborhood.
    maximum_depth : Tensor, shape (...), dtype=int64
        Deepest level present.
    node_count : Tensor, shape (...), dtype=int64
        Number of real (non-padding) nodes.

    Notes
    -----
    **Partition invariant:** for every node with children,
    ``count == sum(children.count)``; the root count equals the number of
    inserted points.

    **Arena order:** every parent index is smaller than the indices of its
    children, so the root is node 0.

    **Octant code:** bit ``i`` is set when a point's coordinate ``i`` is
    greater than or equal to the node center's coordinate ``i``.

    Construction is NOT differentiable (discrete structure).

    Examples
    --------
    >>> points = torch.rand(1000, 2)
    >>> tree = quadtree(points, bounding_box(points), nmin=20, alpha=4)
    >>> tree.count[0]
    tensor(1000)
    >>> (tree.maximum_depth >= 4).item()
    True
    """

    center: Tensor
    level: Tensor
    count: Tensor
    parent: Tensor
    child_keys: Tensor
    child_nodes: Tensor
    lower: Tensor
    upper: Tensor
    nmin: Tensor
    maximum_depth: Tensor
    node_count: Tensor

    @property
    def n_dims(self) -> int:
        """Dimensionality of the indexed space."""
        return self.center.shape[-1]

    @property
    def side(self) -> Tensor:
        """Side length of the root hypercube."""
        return (self.upper - self.lower).amax(dim=-1)


def quadtree(
    points: Tensor,
    box: BoundingBox,
    *,
    nmin: int = 20,
    alpha: int = 4,
) -> QuadTree:
    """Build a quad-tree by sequential insertion and forced deepening.

    Parameters
    ----------
    points : Tensor, shape (n, d)
        Point coordinates inside ``box``.
    box : BoundingBox
        Root hypercube.
    nmin : int, default=20
        Leaves split while their count exceeds ``nmin`` and their points are
        distinguishable.
    alpha : int, default=4
        Extra levels added below every leaf after all insertions.

    Returns
    -------
    QuadTree
        Unbatched tree.

    Notes
    -----
    The resulting structure does not depend on insertion order: a node ends
    up split exactly when its final count exceeds ``nmin`` and it holds two
    distinct points.
    """
    if points.dim() != 2:
        raise RuntimeError(
            f"points must be 2D (n, d), got {points.dim()}D"
        )
    if points.size(-1) != box.n_dims:
        raise RuntimeError(
            f"points must have {box.n_dims} columns to match the box, "
            f"got {points.size(-1)}"
        )

    builder = QuadTreeBuilder(
        box.lower.tolist(), box.upper.tolist(), nmin=nmin
    )
    for point in points.to(torch.float64).tolist():
        builder.insert(point)
    builder.add_level(alpha)
    return builder.build(device=points.device)


def quadtree_stack(trees: Sequence[QuadTree]) -> QuadTree:
    """Pad and stack unbatched trees into one batched tree.

    Parameters
    ----------
    trees : Sequence[QuadTree]
        Trees of equal dimensionality.

    Returns
    -------
    QuadTree
        Tree with ``batch_size=[len(trees)]``. Arenas shorter than the
        longest one are padded with ``level == -1``, ``count == 0``,
        ``parent == -1`` and sentinel child keys, which no query can reach.
    """
    if len(trees) == 0:
        raise ValueError("quadtree_stack requires at least one tree")

    n_nodes = max(tree.level.shape[-1] for tree in trees)
    sentinel = torch.iinfo(torch.int64).max

    def pad(tensor: Tensor, value) -> Tensor:
        missing = n_nodes - tensor.shape[0]
        if missing == 0:
            return tensor
        filler = torch.full(
            (missing, *tensor.shape[1:]),
            value,
            dtype=tensor.dtype,
            device=tensor.device,
        )
        return torch.cat([tensor, filler])

    return QuadTree(
        center=torch.stack([pad(t.center, 0.0) for t in trees]),
        level=torch.stack([pad(t.level, -1) for t in trees]),
        count=torch.stack([pad(t.count, 0) for t in trees]),
        parent=torch.stack([pad(t.parent, -1) for t in trees]),
        child_keys=torch.stack([pad(t.child_keys, sentinel) for t in trees]),
        child_nodes=torch.stack([pad(t.child_nodes, 0) for t in trees]),
        lower=torch.stack([t.lower for t in trees]),
        upper=torch.stack([t.upper for t in trees]),
        nmin=torch.stack([t.nmin for t in trees]),
        maximum_depth=torch.stack([t.maximum_depth for t in trees]),
        node_count=torch.stack([t.node_count for t in trees]),
        batch_size=[len(trees)],
    )

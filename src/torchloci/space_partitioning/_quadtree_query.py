"""Point location queries on frozen quad-trees."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Union

import torch
from torch import Tensor

if TYPE_CHECKING:
    from ._quadtree import QuadTree


def quadtree_gather(values: Tensor, nodes: Tensor) -> Tensor:
    """Look up per-node values.

    Parameters
    ----------
    values : Tensor, shape (..., N) or (..., N, d)
        A per-node field of a tree, e.g. ``tree.count`` or ``tree.center``.
    nodes : Tensor, shape (..., n), dtype=int64
        Node indices. Negative (absent) indices read node 0; mask them
        afterwards.

    Returns
    -------
    Tensor, shape (..., n) or (..., n, d)
    """
    nodes = nodes.clamp(min=0)
    if values.dim() == nodes.dim():
        return torch.gather(values, -1, nodes)
    index = nodes.unsqueeze(-1).expand(*nodes.shape, values.shape[-1])
    return torch.gather(values, -2, index)


def _descend(
    tree: "QuadTree",
    points: Tensor,
    maximum_level: Optional[Union[int, Tensor]] = None,
) -> Tensor:
    n_dims = points.shape[-1]
    points = points.to(torch.float64)
    weights = 2 ** torch.arange(n_dims, device=points.device)
    last = tree.child_keys.shape[-1] - 1

    node = torch.zeros(
        points.shape[:-1], dtype=torch.int64, device=points.device
    )
    for _ in range(int(tree.maximum_depth.max())):
        center = quadtree_gather(tree.center, node)
        octant = ((points >= center).long() * weights).sum(dim=-1)
        key = node * (1 << n_dims) + octant

        position = torch.searchsorted(tree.child_keys, key).clamp(max=last)
        found = torch.gather(tree.child_keys, -1, position) == key
        if maximum_level is not None:
            found &= quadtree_gather(tree.level, node) < maximum_level
        if not found.any():
            break
        node = torch.where(
            found, torch.gather(tree.child_nodes, -1, position), node
        )
    return node


def quadtree_counting_grid(tree: "QuadTree", points: Tensor) -> Tensor:
    """Find the deepest node containing each point.

    Parameters
    ----------
    tree : QuadTree
        Tree with batch shape ``(...)``.
    points : Tensor, shape (..., n, d)
        Query coordinates in the tree's frame.

    Returns
    -------
    Tensor, shape (..., n), dtype=int64
        Index of the finest populated node on each point's path. The root
        always qualifies, so the result is never absent.

    Examples
    --------
    >>> nodes = quadtree_counting_grid(tree, points)
    >>> tree.level[nodes]
    tensor([14, 14, 13, ...])
    """
    if points.dim() < 2:
        raise RuntimeError(
            f"points must be at least 2D [..., n, d], got {points.dim()}D"
        )
    return _descend(tree, points)


def quadtree_counting_node(
    tree: "QuadTree",
    points: Tensor,
    level: Union[int, Tensor],
) -> Tensor:
    """Find the node at ``level`` containing each point.

    Parameters
    ----------
    tree : QuadTree
        Tree with batch shape ``(...)``.
    points : Tensor, shape (..., n, d)
        Query coordinates in the tree's frame.
    level : int or Tensor, shape (..., n)
        Target level per point.

    Returns
    -------
    Tensor, shape (..., n), dtype=int64
        Node index, or -1 where the populated path stops above ``level``.
    """
    node = _descend(tree, points, level)
    reached = quadtree_gather(tree.level, node) == level
    return node.masked_fill(~reached, -1)


def quadtree_sampling_node(
    tree: "QuadTree",
    points: Tensor,
    level: Union[int, Tensor],
) -> Tensor:
    """Find the sampling neighborhood at ``level`` containing each point.

    Parameters
    ----------
    tree : QuadTree
        Tree with batch shape ``(...)``.
    points : Tensor, shape (..., n, d)
        Query coordinates in the tree's frame.
    level : int or Tensor, shape (..., n)
        Target level per point.

    Returns
    -------
    Tensor, shape (..., n), dtype=int64
        Node index, or -1 where no node at ``level`` contains the point or
        where that node holds fewer than ``tree.nmin`` points.
    """
    node = quadtree_counting_node(tree, points, level)
    populated = quadtree_gather(tree.count, node) >= tree.nmin.unsqueeze(-1)
    return node.masked_fill(~((node >= 0) & populated), -1)


def quadtree_ancestor(
    tree: "QuadTree",
    nodes: Tensor,
    level: Union[int, Tensor],
) -> Tensor:
    """Walk parent links up to ``level``.

    Parameters
    ----------
    tree : QuadTree
        Tree with batch shape ``(...)``.
    nodes : Tensor, shape (..., n), dtype=int64
        Starting nodes.
    level : int or Tensor, shape (..., n)
        Target level, not deeper than the starting nodes.

    Returns
    -------
    Tensor, shape (..., n), dtype=int64
        The ancestor of each node at ``level`` (the node itself if it
        already is at ``level``).
    """
    while True:
        parent = quadtree_gather(tree.parent, nodes)
        above = (quadtree_gather(tree.level, nodes) > level) & (parent >= 0)
        if not above.any():
            return nodes
        nodes = torch.where(above, parent, nodes)

"""Mutable quad-tree used while points are inserted."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

import torch

# Natural subdivision stops here; float64 cells cannot separate points much
# deeper than the 52-bit mantissa allows.
MAXIMUM_NATURAL_DEPTH = 64


class QuadTreeBuilder:
    """Hypercube-recursive index built by sequential insertion.

    The builder is the single-writer phase of a quad-tree's life. Nodes live
    in an arena addressed by integer index; each node records its level,
    center, bucket count, parent index and a sparse ``octant -> child``
    mapping. Leaves additionally keep the points that reached them so they
    can be redistributed when the leaf splits.

    Call :meth:`insert` for every point, then :meth:`add_level` once, then
    :meth:`build` to obtain the frozen :class:`QuadTree`.

    Parameters
    ----------
    minimum, maximum : Sequence[float]
        Corners of the root hypercube.
    nmin : int, default=20
        A leaf splits once its bucket count exceeds ``nmin`` and it holds at
        least two distinct points.

    Examples
    --------
    >>> builder = QuadTreeBuilder([0.0, 0.0], [1.0, 1.0], nmin=2)
    >>> for point in [[0.1, 0.1], [0.9, 0.9], [0.2, 0.8]]:
    ...     builder.insert(point)
    >>> builder.add_level(1)
    >>> tree = builder.build()
    """

    def __init__(
        self,
        minimum: Sequence[float],
        maximum: Sequence[float],
        *,
        nmin: int = 20,
    ) -> None:
        if len(minimum) != len(maximum):
            raise RuntimeError(
                f"minimum and maximum must have the same length, "
                f"got {len(minimum)} and {len(maximum)}"
            )
        if len(minimum) == 0:
            raise RuntimeError("quad-tree needs at least one dimension")
        if nmin < 1:
            raise ValueError(f"nmin must be >= 1, got {nmin}")

        self.lower = [float(x) for x in minimum]
        self.upper = [float(x) for x in maximum]
        self.nmin = nmin
        self.n_dims = len(self.lower)
        self.side = max(
            hi - lo for lo, hi in zip(self.lower, self.upper)
        )

        self._level: List[int] = []
        self._center: List[List[float]] = []
        self._count: List[int] = []
        self._parent: List[int] = []
        self._octant: List[int] = []
        self._children: List[Optional[Dict[int, int]]] = []
        self._points: List[Optional[List[List[float]]]] = []
        self._distinct: List[bool] = []
        self._deepened = False

        root_center = [
            (lo + hi) / 2 for lo, hi in zip(self.lower, self.upper)
        ]
        self._new_node(0, root_center, -1, -1)

    def __len__(self) -> int:
        return len(self._level)

    @property
    def maximum_depth(self) -> int:
        """Deepest level present."""
        return max(self._level)

    def _new_node(
        self, level: int, center: List[float], parent: int, octant: int
    ) -> int:
        index = len(self._level)
        self._level.append(level)
        self._center.append(center)
        self._count.append(0)
        self._parent.append(parent)
        self._octant.append(octant)
        self._children.append(None)
        self._points.append([])
        self._distinct.append(False)
        return index

    def _orthant(self, node: int, point: List[float]) -> int:
        center = self._center[node]
        octant = 0
        for i in range(self.n_dims):
            if point[i] >= center[i]:
                octant |= 1 << i
        return octant

    def _child(self, node: int, octant: int) -> int:
        children = self._children[node]
        child = children.get(octant)
        if child is None:
            level = self._level[node] + 1
            offset = self.side / 2 ** (level + 1)
            center = [
                c + offset if octant >> i & 1 else c - offset
                for i, c in enumerate(self._center[node])
            ]
            child = self._new_node(level, center, node, octant)
            children[octant] = child
        return child

    def _deposit(self, node: int, point: List[float]) -> None:
        points = self._points[node]
        if points and not self._distinct[node] and point != points[0]:
            self._distinct[node] = True
        points.append(point)

    def _split(self, node: int) -> List[int]:
        points = self._points[node]
        self._points[node] = None
        self._children[node] = {}
        touched = []
        for point in points:
            child = self._child(node, self._orthant(node, point))
            self._count[child] += 1
            self._deposit(child, point)
            if child not in touched:
                touched.append(child)
        return touched

    def _settle(self, node: int) -> None:
        stack = [node]
        while stack:
            node = stack.pop()
            if (
                self._count[node] > self.nmin
                and self._distinct[node]
                and self._level[node] < MAXIMUM_NATURAL_DEPTH
            ):
                stack.extend(self._split(node))

    def insert(self, point: Sequence[float]) -> None:
        """Insert one point, splitting the receiving leaf if it overflows.

        Parameters
        ----------
        point : Sequence[float]
            Coordinates inside the root hypercube.
        """
        if self._deepened:
            raise RuntimeError(
                "cannot insert into a quad-tree after add_level"
            )
        point = [float(x) for x in point]
        if len(point) != self.n_dims:
            raise RuntimeError(
                f"point must have {self.n_dims} coordinates, "
                f"got {len(point)}"
            )

        node = 0
        while True:
            self._count[node] += 1
            if self._children[node] is None:
                break
            node = self._child(node, self._orthant(node, point))

        self._deposit(node, point)
        self._settle(node)

    def add_level(self, alpha: int) -> None:
        """Split every populated leaf ``alpha`` further levels.

        Subdivision here ignores ``nmin`` and point distinctness, so counting
        neighborhoods exist ``alpha`` levels below the finest sampling
        neighborhood. The builder accepts no further insertions afterwards.

        Parameters
        ----------
        alpha : int
            Number of extra levels below each current leaf.
        """
        if alpha < 0:
            raise ValueError(f"alpha must be >= 0, got {alpha}")

        leaves = [
            node
            for node in range(len(self))
            if self._children[node] is None and self._count[node] > 0
        ]
        for leaf in leaves:
            frontier = [leaf]
            for _ in range(alpha):
                frontier = [
                    child for node in frontier for child in self._split(node)
                ]
        self._deepened = True

    def build(self, *, device: torch.device | None = None):
        """Freeze the arena into a :class:`QuadTree`.

        Parameters
        ----------
        device : torch.device, optional
            Device of the returned tensors. Default: CPU.

        Returns
        -------
        QuadTree
            Unbatched tree with ``batch_size=[]``.
        """
        from ._quadtree import QuadTree

        n_nodes = len(self)
        if n_nodes << self.n_dims >= torch.iinfo(torch.int64).max:
            raise ValueError(
                f"{self.n_dims} dimensions with {n_nodes} nodes exceed the "
                f"64-bit child key range"
            )

        parent = torch.tensor(self._parent, dtype=torch.int64, device=device)
        octant = torch.tensor(self._octant, dtype=torch.int64, device=device)

        # Child lookup table: key = parent * 2**d + octant, sorted. The root
        # has no key and sorts last under the sentinel.
        keys = (parent * (1 << self.n_dims) + octant).masked_fill(
            parent < 0, torch.iinfo(torch.int64).max
        )
        child_keys, child_nodes = torch.sort(keys)

        return QuadTree(
            center=torch.tensor(
                self._center, dtype=torch.float64, device=device
            ),
            level=torch.tensor(self._level, dtype=torch.int64, device=device),
            count=torch.tensor(self._count, dtype=torch.int64, device=device),
            parent=parent,
            child_keys=child_keys,
            child_nodes=child_nodes,
            lower=torch.tensor(
                self.lower, dtype=torch.float64, device=device
            ),
            upper=torch.tensor(
                self.upper, dtype=torch.float64, device=device
            ),
            nmin=torch.tensor(self.nmin, dtype=torch.int64, device=device),
            maximum_depth=torch.tensor(
                self.maximum_depth, dtype=torch.int64, device=device
            ),
            node_count=torch.tensor(
                n_nodes, dtype=torch.int64, device=device
            ),
            batch_size=[],
        )

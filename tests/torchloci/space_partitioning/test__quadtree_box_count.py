"""Tests for box-count moments."""

import collections

import pytest
import torch
import torch.testing

from torchloci.space_partitioning import (
    bounding_box,
    quadtree,
    quadtree_box_count_sum,
    quadtree_stack,
)


def _brute_force(tree, levels, power):
    children = collections.defaultdict(list)
    for node, parent in enumerate(tree.parent.tolist()):
        if parent >= 0:
            children[parent].append(node)
    count = tree.count.tolist()

    def total(node, remaining):
        if remaining == 0 or not children[node]:
            return count[node] ** power
        return sum(total(child, remaining - 1) for child in children[node])

    return torch.tensor(
        [total(node, levels) for node in range(len(count))],
        dtype=torch.int64,
    )


def _tree(n=600, nmin=6, alpha=3, seed=0):
    g = torch.Generator().manual_seed(seed)
    points = torch.rand(n, 2, generator=g, dtype=torch.float64)
    return quadtree(points, bounding_box(points), nmin=nmin, alpha=alpha)


class TestQuadTreeBoxCountSum:
    """Tests for quadtree_box_count_sum function."""

    @pytest.mark.parametrize("levels", [0, 1, 3, 5])
    @pytest.mark.parametrize("power", [1, 2, 3])
    def test_matches_brute_force(self, levels, power):
        tree = _tree()

        torch.testing.assert_close(
            quadtree_box_count_sum(tree, levels, power=power),
            _brute_force(tree, levels, power),
        )

    def test_power_one_is_bucket_count(self):
        """Counting boxes partition their sampling box."""
        tree = _tree()

        torch.testing.assert_close(
            quadtree_box_count_sum(tree, 4, power=1), tree.count
        )

    def test_zero_levels_is_own_count(self):
        tree = _tree()

        torch.testing.assert_close(
            quadtree_box_count_sum(tree, 0, power=3), tree.count**3
        )

    def test_single_box_square_sum(self):
        """All points in one counting box give count squared."""
        points = torch.full((7, 2), 0.5, dtype=torch.float64)
        tree = quadtree(points, bounding_box(points), nmin=20, alpha=2)

        assert quadtree_box_count_sum(tree, 2, power=2)[0].item() == 49

    def test_bounds(self):
        """count <= square sum <= count**2 at every node."""
        tree = _tree()

        square_sum = quadtree_box_count_sum(tree, 4, power=2)

        assert (square_sum >= tree.count).all()
        assert (square_sum <= tree.count**2).all()

    def test_padding_yields_zero(self):
        small = _tree(n=40, nmin=20, alpha=1, seed=1)
        large = _tree(n=600, seed=2)
        stacked = quadtree_stack([small, large])

        square_sum = quadtree_box_count_sum(stacked, 2, power=2)

        assert square_sum.shape == stacked.count.shape
        assert (square_sum[0, small.node_count.item():] == 0).all()
        torch.testing.assert_close(
            square_sum[0, : small.node_count.item()],
            quadtree_box_count_sum(small, 2, power=2),
        )

    def test_invalid_arguments_raise(self):
        tree = _tree()

        with pytest.raises(ValueError, match="levels"):
            quadtree_box_count_sum(tree, -1)
        with pytest.raises(ValueError, match="power"):
            quadtree_box_count_sum(tree, 1, power=0)

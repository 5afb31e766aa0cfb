"""Tests for approximate LOCI scoring."""

import warnings

import hypothesis
import pytest
import torch
import torch.testing

from torchloci.outlier_detection import (
    InsufficientDepthError,
    OutlierResult,
    aloci,
    aloci_score,
)
from torchloci.space_partitioning import grid_ensemble
from torchloci.testing.strategies import point_clouds, unit_fractions


def _cluster_with_outlier(n=1000, seed=0):
    g = torch.Generator().manual_seed(seed)
    cluster = torch.rand(n, 2, generator=g, dtype=torch.float64)
    outlier = torch.tensor([[100.0, 100.0]], dtype=torch.float64)
    return torch.cat([cluster, outlier])


def _lattice():
    axis = torch.arange(4, dtype=torch.float64) + 0.5
    return torch.cartesian_prod(axis, axis)


class TestAloci:
    """Tests for aloci function."""

    def test_returns_outlier_result(self):
        points = _cluster_with_outlier(n=200)

        result = aloci(points)

        assert isinstance(result, OutlierResult)
        assert result.score.shape == (201,)
        assert result.level.shape == (201,)
        assert result.score.dtype == torch.float64
        assert result.level.dtype == torch.int64

    def test_isolated_point_scores_highest(self):
        """A far-away point stands out at the coarsest level."""
        points = _cluster_with_outlier()

        result = aloci(points, nmin=20, alpha=4, grid_count=1)

        assert result.score.argmax().item() == 1000
        assert result.score[1000] > 10.0
        assert result.score[1000] > result.score[:1000].max()
        assert result.level[1000].item() == 0

    def test_uniform_lattice_scores_zero(self):
        """No anomaly is found where every counting box holds one point."""
        with pytest.warns(RuntimeWarning, match="nmin"):
            result = aloci(_lattice(), nmin=20, alpha=4, grid_count=1)

        assert (result.score == 0).all()
        assert (result.level == 0).all()
        assert (result.normalized() == 0).all()

    def test_single_point(self):
        with pytest.warns(RuntimeWarning):
            result = aloci(torch.tensor([[1.0, 2.0, 3.0]]), alpha=2)

        assert result.score.tolist() == [0.0]
        assert result.level.tolist() == [0]

    def test_deterministic_for_seed(self):
        points = _cluster_with_outlier(n=300)

        a = aloci(points, nmin=10, grid_count=3, seed=11)
        b = aloci(points, nmin=10, grid_count=3, seed=11)

        torch.testing.assert_close(a.score, b.score)
        torch.testing.assert_close(a.level, b.level)

    def test_score_range_matches_scores(self):
        points = _cluster_with_outlier(n=300)

        result = aloci(points, nmin=10, grid_count=2)

        assert result.score_range.lower == result.score.min()
        assert result.score_range.upper == result.score.max()
        normalized = result.normalized()
        assert normalized.min().item() == 0.0
        assert normalized.max().item() == 1.0

    def test_levels_within_tree_depth(self):
        points = _cluster_with_outlier(n=300)
        g = torch.Generator().manual_seed(0)
        ensemble = grid_ensemble(
            points, nmin=10, alpha=3, grid_count=3, generator=g
        )

        result = aloci_score(ensemble, points)

        assert (result.level >= 0).all()
        deepest = ensemble.trees.maximum_depth.max()
        assert (result.level <= deepest - 3).all()
        assert torch.isfinite(result.score).all()

    def test_alpha_coerced_with_warning(self):
        points = _cluster_with_outlier(n=100)

        with pytest.warns(UserWarning, match="alpha"):
            result = aloci(points, alpha=0)

        assert torch.isfinite(result.score).all()

    @hypothesis.given(
        points=point_clouds(
            min_points=1,
            max_points=40,
            max_dims=3,
            elements=unit_fractions(),
        )
    )
    @hypothesis.settings(deadline=None, max_examples=40)
    def test_scores_finite_and_ranged(self, points):
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", RuntimeWarning)
            result = aloci(points, nmin=3, alpha=2, grid_count=2)

        assert torch.isfinite(result.score).all()
        assert (result.level >= 0).all()
        assert result.score_range.lower == result.score.min()
        assert result.score_range.upper == result.score.max()


class TestAlociScore:
    """Tests for aloci_score function."""

    def test_matches_aloci_with_same_generator(self):
        points = _cluster_with_outlier(n=300)
        g = torch.Generator().manual_seed(4)
        ensemble = grid_ensemble(points, nmin=10, grid_count=3, generator=g)

        result = aloci_score(ensemble, points)
        expected = aloci(points, nmin=10, grid_count=3, seed=4)

        torch.testing.assert_close(result.score, expected.score)

    def test_batch_size_does_not_change_scores(self):
        points = _cluster_with_outlier(n=300)
        g = torch.Generator().manual_seed(0)
        ensemble = grid_ensemble(points, nmin=10, grid_count=3, generator=g)

        whole = aloci_score(ensemble, points, batch_size=1024)
        chunked = aloci_score(ensemble, points, batch_size=7)

        torch.testing.assert_close(whole.score, chunked.score)
        torch.testing.assert_close(whole.level, chunked.level)
        torch.testing.assert_close(
            whole.score_range.upper, chunked.score_range.upper
        )

    def test_callback_reports_progress(self):
        points = _cluster_with_outlier(n=249)
        ensemble = grid_ensemble(points, nmin=10)
        calls = []

        aloci_score(
            ensemble,
            points,
            batch_size=100,
            callback=lambda done, total: calls.append((done, total)),
        )

        assert calls == [(100, 250), (200, 250), (250, 250)]

    def test_subset_scores_match(self):
        """Scoring a subset reuses the frozen ensemble."""
        points = _cluster_with_outlier(n=300)
        ensemble = grid_ensemble(points, nmin=10)

        whole = aloci_score(ensemble, points)
        part = aloci_score(ensemble, points[-5:])

        torch.testing.assert_close(part.score, whole.score[-5:])

    def test_point_in_empty_region_raises(self):
        points = torch.tensor([[0.0, 0.0], [1.0, 1.0]], dtype=torch.float64)
        with pytest.warns(RuntimeWarning):
            ensemble = grid_ensemble(points, nmin=20, alpha=2)

        with pytest.raises(InsufficientDepthError):
            aloci_score(
                ensemble, torch.tensor([[0.9, 0.1]], dtype=torch.float64)
            )

    def test_column_mismatch_raises(self):
        points = _cluster_with_outlier(n=100)
        ensemble = grid_ensemble(points)

        with pytest.raises(RuntimeError, match="columns"):
            aloci_score(ensemble, torch.rand(5, 3))

    def test_wrong_rank_raises(self):
        points = _cluster_with_outlier(n=100)
        ensemble = grid_ensemble(points)

        with pytest.raises(RuntimeError, match="2D"):
            aloci_score(ensemble, torch.rand(5))

    def test_invalid_batch_size_raises(self):
        points = _cluster_with_outlier(n=100)
        ensemble = grid_ensemble(points)

        with pytest.raises(ValueError, match="batch_size"):
            aloci_score(ensemble, points, batch_size=0)

"""Tests for score records and their range."""

import torch
import torch.testing

from torchloci.outlier_detection import (
    OutlierResult,
    ScoreAggregator,
    ScoreRange,
)


def _range(minimum, maximum):
    return ScoreRange(
        lower=torch.tensor(minimum, dtype=torch.float64),
        upper=torch.tensor(maximum, dtype=torch.float64),
        batch_size=[],
    )


class TestScoreRange:
    """Tests for ScoreRange.normalize."""

    def test_maps_onto_unit_interval(self):
        scores = torch.tensor([1.0, 2.0, 3.0], dtype=torch.float64)

        normalized = _range(1.0, 3.0).normalize(scores)

        torch.testing.assert_close(
            normalized, torch.tensor([0.0, 0.5, 1.0], dtype=torch.float64)
        )

    def test_clamps_outside_range(self):
        scores = torch.tensor([-5.0, 10.0], dtype=torch.float64)

        normalized = _range(0.0, 2.0).normalize(scores)

        assert normalized.tolist() == [0.0, 1.0]

    def test_single_value_maps_to_zero(self):
        scores = torch.full((4,), 0.7, dtype=torch.float64)

        assert (_range(0.7, 0.7).normalize(scores) == 0).all()

    def test_empty_range_maps_to_zero(self):
        scores = torch.tensor([1.0], dtype=torch.float64)

        normalized = _range(float("inf"), float("-inf")).normalize(scores)

        assert normalized.tolist() == [0.0]


class TestScoreAggregator:
    """Tests for ScoreAggregator."""

    def test_chunks_in_any_order(self):
        aggregator = ScoreAggregator(5)

        aggregator.add(
            torch.tensor([3, 4]),
            torch.tensor([0.5, -1.0], dtype=torch.float64),
            torch.tensor([2, 1]),
        )
        aggregator.add(
            torch.tensor([0, 1, 2]),
            torch.tensor([2.0, 0.0, 1.0], dtype=torch.float64),
            torch.tensor([0, 3, 1]),
        )
        result = aggregator.result()

        assert isinstance(result, OutlierResult)
        assert result.score.tolist() == [2.0, 0.0, 1.0, 0.5, -1.0]
        assert result.level.tolist() == [0, 3, 1, 2, 1]
        assert result.score_range.lower.item() == -1.0
        assert result.score_range.upper.item() == 2.0

    def test_range_before_any_score(self):
        score_range = ScoreAggregator(3).score_range

        assert score_range.lower.item() == float("inf")
        assert score_range.upper.item() == float("-inf")

    def test_empty_chunk_keeps_range(self):
        aggregator = ScoreAggregator(1)
        aggregator.add(
            torch.tensor([0]),
            torch.tensor([1.5], dtype=torch.float64),
            torch.tensor([0]),
        )
        aggregator.add(
            torch.zeros(0, dtype=torch.int64),
            torch.zeros(0, dtype=torch.float64),
            torch.zeros(0, dtype=torch.int64),
        )

        score_range = aggregator.score_range
        assert score_range.lower.item() == 1.5
        assert score_range.upper.item() == 1.5

    def test_result_is_snapshot(self):
        aggregator = ScoreAggregator(2)
        aggregator.add(
            torch.tensor([0]),
            torch.tensor([1.0], dtype=torch.float64),
            torch.tensor([0]),
        )
        before = aggregator.result()
        aggregator.add(
            torch.tensor([1]),
            torch.tensor([4.0], dtype=torch.float64),
            torch.tensor([2]),
        )

        assert before.score_range.upper.item() == 1.0
        assert before.level.tolist() == [0, -1]


class TestOutlierResult:
    """Tests for OutlierResult.normalized."""

    def test_normalized_uses_score_range(self):
        result = OutlierResult(
            score=torch.tensor([0.0, 1.0, 4.0], dtype=torch.float64),
            level=torch.tensor([0, 0, 0]),
            score_range=_range(0.0, 4.0),
            batch_size=[],
        )

        torch.testing.assert_close(
            result.normalized(),
            torch.tensor([0.0, 0.25, 1.0], dtype=torch.float64),
        )

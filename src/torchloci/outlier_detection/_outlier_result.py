"""Per-point score records and their observed range."""

from __future__ import annotations

import torch
from tensordict import tensorclass
from torch import Tensor


@tensorclass
class ScoreRange:
    """Observed minimum and maximum of a set of outlier scores.

    Attributes
    ----------
    lower : Tensor, scalar, dtype=float64
        Smallest score seen, ``+inf`` before any score.
    upper : Tensor, scalar, dtype=float64
        Largest score seen, ``-inf`` before any score.
    """

    lower: Tensor
    upper: Tensor

    def normalize(self, scores: Tensor) -> Tensor:
        """Map scores onto ``[0, 1]`` against the observed range.

        Scores equal to ``lower`` map to 0 and scores equal to ``upper``
        to 1. An empty or single-valued range maps everything to 0.
        """
        spread = self.upper - self.lower
        if not torch.isfinite(spread) or spread <= 0:
            return torch.zeros_like(scores)
        return ((scores - self.lower) / spread).clamp(0.0, 1.0)


@tensorclass
class OutlierResult:
    """Approximate LOCI scores of a point set.

    Attributes
    ----------
    score : Tensor, shape (n,), dtype=float64
        Maximum normalized MDEF over all sampling levels of each point.
        Larger means more outlying.
    level : Tensor, shape (n,), dtype=int64
        Sampling-neighborhood level at which ``score`` was attained; small
        levels are coarse neighborhoods.
    score_range : ScoreRange
        Observed range of ``score``.
    """

    score: Tensor
    level: Tensor
    score_range: ScoreRange

    def normalized(self) -> Tensor:
        """Scores rescaled onto ``[0, 1]`` by :meth:`ScoreRange.normalize`."""
        return self.score_range.normalize(self.score)


class ScoreAggregator:
    """Collects score records produced chunk by chunk.

    Records are stored by point index, so chunks may arrive in any order.
    The score range is folded by a min/max reduction over each chunk.

    Parameters
    ----------
    n_points : int
        Number of points to be scored.
    device : torch.device, optional
        Device of the stored records.
    """

    def __init__(
        self, n_points: int, *, device: torch.device | None = None
    ) -> None:
        self._score = torch.full(
            (n_points,), float("nan"), dtype=torch.float64, device=device
        )
        self._level = torch.full(
            (n_points,), -1, dtype=torch.int64, device=device
        )
        self._minimum = torch.tensor(
            float("inf"), dtype=torch.float64, device=device
        )
        self._maximum = torch.tensor(
            float("-inf"), dtype=torch.float64, device=device
        )

    def add(self, indices: Tensor, score: Tensor, level: Tensor) -> None:
        """Store the records of one chunk of points."""
        self._score[indices] = score.to(torch.float64)
        self._level[indices] = level.to(torch.int64)
        if score.numel() > 0:
            self._minimum = torch.minimum(self._minimum, score.min())
            self._maximum = torch.maximum(self._maximum, score.max())

    @property
    def score_range(self) -> ScoreRange:
        return ScoreRange(
            lower=self._minimum.clone(),
            upper=self._maximum.clone(),
            batch_size=[],
        )

    def result(self) -> OutlierResult:
        """Snapshot of everything added so far."""
        return OutlierResult(
            score=self._score.clone(),
            level=self._level.clone(),
            score_range=self.score_range,
            batch_size=[],
        )

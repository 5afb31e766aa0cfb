"""Normalized multi-granularity deviation factor."""

import torch
from torch import Tensor


def mdef_norm(
    square_sum: Tensor,
    cubic_sum: Tensor,
    bucket_count: Tensor,
    counting_count: Tensor,
) -> Tensor:
    r"""Normalized MDEF from the box-count moments of a sampling neighborhood.

    Mathematical Definition
    -----------------------
    For a sampling neighborhood holding :math:`N` points spread over
    counting boxes with counts :math:`c_b`, let
    :math:`S_2 = \sum_b c_b^2` and :math:`S_3 = \sum_b c_b^3`. The expected
    counting-neighborhood occupancy seen from a random point of the sample
    and its standard deviation are

    .. math::
        \hat{n} = \frac{S_2}{N}, \qquad
        \sigma_{\hat{n}} = \frac{\sqrt{S_3 N - S_2^2}}{N}

    and the score of a point whose own counting box holds :math:`c` points is

    .. math::
        \frac{\hat{n} - c}{\sigma_{\hat{n}}}

    Parameters
    ----------
    square_sum : Tensor, dtype=int64
        :math:`S_2` per point.
    cubic_sum : Tensor, dtype=int64
        :math:`S_3` per point.
    bucket_count : Tensor, dtype=int64
        :math:`N` per point.
    counting_count : Tensor, dtype=int64
        :math:`c` per point.

    Returns
    -------
    Tensor, dtype=float64
        Score per point. Zero where every counting box holds at most one
        point (``square_sum == bucket_count``) and where the deviation is
        below the smallest normal float64, since both describe uniform
        regions with no detectable anomaly.

    Examples
    --------
    Two boxes holding 4 points and 1 point, scored for the lone point:

    >>> mdef_norm(
    ...     torch.tensor([17]), torch.tensor([65]),
    ...     torch.tensor([5]), torch.tensor([1]),
    ... )
    tensor([2.], dtype=torch.float64)
    """
    saturated = square_sum == bucket_count

    square_sum = square_sum.to(torch.float64)
    cubic_sum = cubic_sum.to(torch.float64)
    bucket_count = bucket_count.to(torch.float64).clamp(min=1.0)

    n_hat = square_sum / bucket_count
    variance = (cubic_sum * bucket_count - square_sum**2).clamp(min=0.0)
    sigma = torch.sqrt(variance) / bucket_count

    degenerate = saturated | (sigma < torch.finfo(torch.float64).tiny)
    safe_sigma = sigma.masked_fill(degenerate, 1.0)
    score = (n_hat - counting_count.to(torch.float64)) / safe_sigma
    return score.masked_fill(degenerate, 0.0)

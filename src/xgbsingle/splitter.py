"""
Exact-greedy split search over one numeric attribute.

Rows are sorted by the attribute once and swept left to right while a pair of
SufficientStatistics accumulators is updated incrementally, so each candidate
threshold is scored in O(1) (XGBoost Algorithm 1, exact greedy).

Rows whose value is missing (NaN) are not part of the sweep. They stay in the
right-hand accumulator throughout, i.e. they are scored on the ">=" side,
which is where partitioning and prediction route them.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple
import numpy as np

from .utils import SufficientStatistics, tree_split_quality, rule_split_quality


@dataclass(frozen=True)
class SplitCandidate:
    """
    A candidate test `attribute < threshold` and its quality.

    For rules, `greater_equal` says which side the rule continues into:
    False for "value < threshold", True for "value >= threshold".
    A quality of -inf means no admissible threshold was found.
    """

    attribute: Optional[int]
    threshold: float
    quality: float
    greater_equal: bool = False

    @classmethod
    def none(cls, attribute: Optional[int] = None) -> "SplitCandidate":
        return cls(attribute, 0.0, -np.inf)


def _sorted_present(column: np.ndarray, indices: np.ndarray) -> Tuple[List[int], List[float]]:
    """Row indices and their values in ascending order, missing values dropped."""
    values = column[indices]
    present = ~np.isnan(values)
    kept, values = indices[present], values[present]
    order = np.argsort(values, kind="stable")
    return kept[order].tolist(), values[order].tolist()


def _threshold(previous: float, value: float) -> float:
    """Midpoint of two consecutive values; `value` itself if rounding collapses it onto `previous`."""
    threshold = (value + previous) / 2.0
    if not previous < threshold:
        threshold = value
    return threshold


def _admissible(stats: SufficientStatistics, min_child_weight: float) -> bool:
    return stats.sum_hessian > 0.0 and stats.sum_hessian >= min_child_weight


def find_best_split(
    column: np.ndarray,
    neg_gradients: np.ndarray,
    hessians: np.ndarray,
    indices: np.ndarray,
    total: SufficientStatistics,
    attribute: int,
    lambda_: float,
    gamma: float,
    min_child_weight: float
) -> SplitCandidate:
    """
    Best binary split of the rows in `indices` on one attribute.

    Args:
        column: Values of the attribute for every row of the dataset.
        neg_gradients: Per-row negative gradients (targets).
        hessians: Per-row hessians (weights).
        indices: Row subset to split.
        total: Statistics of the whole subset.
        attribute: Attribute index recorded in the result.
        lambda_, gamma: Regularisation, see `tree_split_quality`.
        min_child_weight: Minimum hessian sum on both sides.

    Returns:
        The highest-quality SplitCandidate. The threshold is the midpoint
        between two consecutive distinct values; on ties the lowest threshold
        wins.
    """
    left = SufficientStatistics()
    right = total.copy()
    best = SplitCandidate.none(attribute)
    previous = None

    for row, value in zip(*_sorted_present(column, indices)):
        if previous is None or value > previous:
            if (previous is not None
                    and _admissible(left, min_child_weight)
                    and _admissible(right, min_child_weight)):
                quality = tree_split_quality(total, left, right, lambda_, gamma)
                if quality > best.quality:
                    best = SplitCandidate(attribute, _threshold(previous, value), quality)
            previous = value
        g_row, h_row = float(neg_gradients[row]), float(hessians[row])
        left.update(g_row, h_row, add=True)
        right.update(g_row, h_row, add=False)

    return best


def find_best_test_condition(
    column: np.ndarray,
    neg_gradients: np.ndarray,
    hessians: np.ndarray,
    indices: np.ndarray,
    total: SufficientStatistics,
    attribute: int,
    length: int,
    lambda_: float,
    gamma: float,
    min_child_weight: float
) -> SplitCandidate:
    """
    Best single condition to append to a rule of `length` conditions.

    Each boundary yields two candidates, "< threshold" (scored on the left
    statistics) and ">= threshold" (scored on the right statistics), both with
    the penalty of a rule of length `length + 1`. The left candidate is tried
    first; either one replaces the incumbent only if strictly better.
    """
    left = SufficientStatistics()
    right = total.copy()
    best = SplitCandidate.none(attribute)
    previous = None

    for row, value in zip(*_sorted_present(column, indices)):
        if previous is None or value > previous:
            if (previous is not None
                    and _admissible(left, min_child_weight)
                    and _admissible(right, min_child_weight)):
                threshold = _threshold(previous, value)
                quality = rule_split_quality(left, length + 1, lambda_, gamma)
                if quality > best.quality:
                    best = SplitCandidate(attribute, threshold, quality, greater_equal=False)
                quality = rule_split_quality(right, length + 1, lambda_, gamma)
                if quality > best.quality:
                    best = SplitCandidate(attribute, threshold, quality, greater_equal=True)
            previous = value
        g_row, h_row = float(neg_gradients[row]), float(hessians[row])
        left.update(g_row, h_row, add=True)
        right.update(g_row, h_row, add=False)

    return best


def sample_attributes(
    n_attributes: int,
    colsample_bynode: float,
    rng: np.random.Generator
) -> List[int]:
    """
    Attributes to search at one node.

    With colsample_bynode < 1 the attribute list is permuted and a prefix of
    max(1, int(colsample_bynode * n_attributes)) is kept; otherwise every
    attribute is returned in index order and no randomness is consumed.
    """
    attributes = np.arange(n_attributes)
    if colsample_bynode < 1.0:
        attributes = rng.permutation(attributes)
    n_keep = max(1, int(colsample_bynode * n_attributes))
    return attributes[:n_keep].tolist()

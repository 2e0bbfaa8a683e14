"""
Utility functions for single-round XGBoost learners: sufficient statistics,
regularised gain, Newton leaf values, hyperparameters and metrics.

References:
- Chen, T., & Guestrin, C. (2016). XGBoost: A scalable tree boosting system.
  Proceedings of KDD '16, 785-794. Section 2.2 (regularised objective, Eq. 5-7).
"""

from dataclasses import dataclass
import numbers
import numpy as np
from sklearn.metrics import mean_squared_error


# Upper bound on max_depth / max_length; growth is recursive.
MAX_GROWTH_DEPTH = 512

# Minimum quality a split must exceed to be accepted.
MIN_SPLIT_QUALITY = 1e-6


# ===========================
# Sufficient Statistics
# ===========================

class SufficientStatistics:
    """
    Running sums of negative gradients G and hessians H over a row subset.

    Owned by exactly one scan; the split finder moves rows from the right-hand
    accumulator into the left-hand one as it walks the sorted values.
    """

    __slots__ = ("sum_neg_gradient", "sum_hessian")

    def __init__(self, sum_neg_gradient: float = 0.0, sum_hessian: float = 0.0):
        self.sum_neg_gradient = sum_neg_gradient
        self.sum_hessian = sum_hessian

    def update(self, neg_gradient: float, hessian: float, add: bool = True) -> None:
        """Add (or remove) one row's contribution."""
        if add:
            self.sum_neg_gradient += neg_gradient
            self.sum_hessian += hessian
        else:
            self.sum_neg_gradient -= neg_gradient
            self.sum_hessian -= hessian

    def copy(self) -> "SufficientStatistics":
        return SufficientStatistics(self.sum_neg_gradient, self.sum_hessian)

    def __repr__(self) -> str:
        return (
            f"SufficientStatistics(sum_neg_gradient={self.sum_neg_gradient!r}, "
            f"sum_hessian={self.sum_hessian!r})"
        )


# ===========================
# Gain and Leaf Values
# ===========================

def impurity(stats: SufficientStatistics, lambda_: float) -> float:
    """
    Regularised "impurity" G^2 / (H + lambda) of a row subset.

    Defined as 0 when the subset carries no curvature (H <= 0).
    """
    if stats.sum_hessian <= 0.0:
        return 0.0
    return stats.sum_neg_gradient ** 2 / (stats.sum_hessian + lambda_)


def tree_split_quality(
    parent: SufficientStatistics,
    left: SufficientStatistics,
    right: SufficientStatistics,
    lambda_: float,
    gamma: float
) -> float:
    """
    Structure-score gain of a binary split (XGBoost Eq. 7):

        0.5 * [G_L^2/(H_L+λ) + G_R^2/(H_R+λ) - G^2/(H+λ)] - γ
    """
    return 0.5 * (
        impurity(left, lambda_) + impurity(right, lambda_) - impurity(parent, lambda_)
    ) - gamma


def rule_split_quality(
    branch: SufficientStatistics,
    length: int,
    lambda_: float,
    gamma: float
) -> float:
    """
    Quality of a rule whose body covers `branch` and has `length` conditions.

    The penalty γ is charged once per condition, so longer rules must earn
    proportionally more gain:

        0.5 * G^2 / (H + λ) - γ * T
    """
    return 0.5 * (
        branch.sum_neg_gradient ** 2 / (branch.sum_hessian + lambda_)
    ) - gamma * length


def leaf_prediction(stats: SufficientStatistics, eta: float, lambda_: float) -> float:
    """
    Shrunk one-step Newton update: eta * G / (H + λ).

    An empty subset with λ = 0 has no defined Newton step and predicts 0.
    """
    denominator = stats.sum_hessian + lambda_
    if denominator <= 0.0:
        return 0.0
    return eta * stats.sum_neg_gradient / denominator


# ===========================
# Hyperparameters
# ===========================

@dataclass(frozen=True)
class Hyperparameters:
    """
    Hyperparameters shared by the tree and rule learners.

    Attributes:
        eta: Shrinkage applied to every leaf value, in (0, 1].
        lambda_: L2 regularisation on leaf weights, >= 0.
        gamma: Penalty per split (tree) or per condition (rule), >= 0.
        subsample: Fraction of rows kept for training, in (0, 1].
        colsample_bynode: Fraction of attributes searched at each node, in (0, 1].
        max_depth: Maximum tree depth, or maximum number of rule conditions.
        min_child_weight: Minimum hessian sum required on each side of a split.
    """

    eta: float = 0.3
    lambda_: float = 1.0
    gamma: float = 1.0
    subsample: float = 0.5
    colsample_bynode: float = 1.0
    max_depth: int = 6
    min_child_weight: float = 1.0

    def validate(self) -> "Hyperparameters":
        """Raise ValueError if any hyperparameter is out of range."""
        if not 0.0 < self.eta <= 1.0:
            raise ValueError(f"eta must be in (0, 1], got {self.eta}")
        if not self.lambda_ >= 0.0:
            raise ValueError(f"lambda must be >= 0, got {self.lambda_}")
        if not self.gamma >= 0.0:
            raise ValueError(f"gamma must be >= 0, got {self.gamma}")
        if not 0.0 < self.subsample <= 1.0:
            raise ValueError(f"subsample must be in (0, 1], got {self.subsample}")
        if not 0.0 < self.colsample_bynode <= 1.0:
            raise ValueError(
                f"colsample_bynode must be in (0, 1], got {self.colsample_bynode}"
            )
        if not self.min_child_weight >= 0.0:
            raise ValueError(
                f"min_child_weight must be >= 0, got {self.min_child_weight}"
            )
        if isinstance(self.max_depth, bool) or not isinstance(self.max_depth, numbers.Integral):
            raise ValueError(f"max_depth must be an integer, got {self.max_depth!r}")
        if not 0 <= self.max_depth <= MAX_GROWTH_DEPTH:
            raise ValueError(
                f"max_depth must be in [0, {MAX_GROWTH_DEPTH}], got {self.max_depth}"
            )
        return self


# ===========================
# Metrics
# ===========================

def compute_metrics_regression(
    y_true: np.ndarray,
    y_pred: np.ndarray
) -> dict:
    """Compute regression metrics."""
    mse = mean_squared_error(y_true, y_pred)
    rmse = np.sqrt(mse)
    mae = np.mean(np.abs(y_true - y_pred))

    return {
        "mse": mse,
        "rmse": rmse,
        "mae": mae
    }

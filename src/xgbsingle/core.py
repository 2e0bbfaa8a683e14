"""
Single-round XGBoost tree and rule learners.

Both learners grow one regularised structure from per-row negative gradients
(the target) and hessians (the row weights), using exact-greedy split search
(Chen & Guestrin, 2016, Algorithm 1):

- the tree learner bifurcates at the best split of a sample of attributes
  until max_depth, the curvature floor or the gain floor stops it;
- the rule learner follows only the better side of each split, growing one
  conjunctive rule, and also stops as soon as appending a condition no
  longer strictly improves the rule's quality.

Leaves predict the shrunk Newton step eta * G / (H + lambda).

References:
- Chen, T., & Guestrin, C. (2016). XGBoost: A scalable tree boosting system.
  Proceedings of KDD '16, 785-794.
"""

from dataclasses import dataclass
from typing import Optional, List, Sequence, Tuple
import logging
import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, RegressorMixin
from sklearn.utils.validation import check_is_fitted

from .nodes import (
    LeafNode, TreeInternalNode, RuleInternalNode, Node,
    count_leaves, tree_to_string, rule_to_string
)
from .splitter import (
    SplitCandidate, find_best_split, find_best_test_condition, sample_attributes
)
from .utils import (
    SufficientStatistics, Hyperparameters, leaf_prediction, MIN_SPLIT_QUALITY
)

logger = logging.getLogger(__name__)

TREE = "tree"
RULE = "rule"
_KINDS = (TREE, RULE)

MEASURE_NUM_RULES = "measureNumRules"


# ===========================
# Dataset
# ===========================

def _is_numeric_kind(dtype: np.dtype) -> bool:
    return dtype.kind in "biuf"


def _as_numeric_matrix(X) -> Tuple[np.ndarray, Optional[List[str]]]:
    """Convert X to a float matrix, rejecting non-numeric columns."""
    if isinstance(X, pd.DataFrame):
        bad = [c for c in X.columns if not pd.api.types.is_numeric_dtype(X[c])]
        if bad:
            raise ValueError(f"Only numeric attributes are supported, got non-numeric columns {bad}")
        return X.to_numpy(dtype=float, na_value=np.nan), [str(c) for c in X.columns]

    X = np.asarray(X)
    if X.ndim != 2:
        raise ValueError(f"X must be 2-dimensional, got shape {X.shape}")
    if not _is_numeric_kind(X.dtype):
        raise ValueError(f"Only numeric attributes are supported, got dtype {X.dtype}")
    return X.astype(float), None


class Dataset:
    """
    Numeric training table: attributes, target and row weights.

    The target of each row is its negative gradient and the weight its
    hessian. Missing attribute values (NaN) are allowed; the target and the
    weights must be complete.

    Args:
        X: Attributes, shape (n_samples, n_features). A DataFrame supplies
            the feature names.
        y: Target, shape (n_samples,).
        sample_weight: Non-negative row weights; defaults to ones.
        feature_names: Optional attribute names; default x0, x1, ...
    """

    def __init__(
        self,
        X,
        y,
        sample_weight=None,
        feature_names: Optional[Sequence[str]] = None
    ):
        X, frame_names = _as_numeric_matrix(X)

        y = np.asarray(y)
        if not _is_numeric_kind(y.dtype):
            raise ValueError(f"Only a numeric target is supported, got dtype {y.dtype}")
        y = y.astype(float).ravel()
        if y.shape[0] != X.shape[0]:
            raise ValueError(f"X has {X.shape[0]} rows but y has {y.shape[0]}")
        if np.isnan(y).any():
            raise ValueError("Target contains missing values")

        if sample_weight is None:
            sample_weight = np.ones(X.shape[0])
        else:
            sample_weight = np.asarray(sample_weight, dtype=float).ravel()
            if sample_weight.shape[0] != X.shape[0]:
                raise ValueError(
                    f"X has {X.shape[0]} rows but sample_weight has {sample_weight.shape[0]}"
                )
            if not np.all(np.isfinite(sample_weight)) or np.any(sample_weight < 0):
                raise ValueError("sample_weight must be finite and non-negative")

        if feature_names is None:
            feature_names = frame_names or [f"x{j}" for j in range(X.shape[1])]
        if len(feature_names) != X.shape[1]:
            raise ValueError(
                f"Got {len(feature_names)} feature names for {X.shape[1]} attributes"
            )

        self.X = X
        self.y = y
        self.sample_weight = sample_weight
        self.feature_names = tuple(feature_names)

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        target: str,
        weight: Optional[str] = None
    ) -> "Dataset":
        """Build a dataset from a DataFrame; all other columns are attributes."""
        drop = [target] if weight is None else [target, weight]
        return cls(
            frame.drop(columns=drop),
            frame[target],
            None if weight is None else frame[weight],
        )

    @property
    def n_samples(self) -> int:
        return self.X.shape[0]

    @property
    def n_features(self) -> int:
        return self.X.shape[1]


# ===========================
# Growth
# ===========================

@dataclass
class _GrowthContext:
    """Everything one training call threads through the recursion."""

    dataset: Dataset
    params: Hyperparameters
    rng: np.random.Generator


def _subsample_indices(n_samples: int, subsample: float, rng: np.random.Generator) -> np.ndarray:
    """Rows used for training: a random prefix of a permutation when subsample < 1."""
    if subsample < 1.0:
        order = rng.permutation(n_samples)
        return order[:int(subsample * n_samples)]
    else:
        return np.arange(n_samples)


def _node_statistics(ctx: _GrowthContext, indices: np.ndarray) -> SufficientStatistics:
    return SufficientStatistics(
        float(np.sum(ctx.dataset.y[indices])),
        float(np.sum(ctx.dataset.sample_weight[indices]))
    )


def _make_leaf(ctx: _GrowthContext, stats: SufficientStatistics) -> LeafNode:
    return LeafNode(leaf_prediction(stats, ctx.params.eta, ctx.params.lambda_))


def _is_terminal(ctx: _GrowthContext, stats: SufficientStatistics, depth: int) -> bool:
    return (
        stats.sum_hessian <= 0.0
        or stats.sum_hessian < ctx.params.min_child_weight
        or depth >= ctx.params.max_depth
    )


def _best_split(
    ctx: _GrowthContext,
    indices: np.ndarray,
    stats: SufficientStatistics,
    rule_length: Optional[int] = None
) -> SplitCandidate:
    """
    Best split over the attributes sampled for this node.

    Scores binary splits when `rule_length` is None and rule conditions
    otherwise. Earlier attributes win ties.
    """
    data, params = ctx.dataset, ctx.params
    best = SplitCandidate.none()
    for attribute in sample_attributes(data.n_features, params.colsample_bynode, ctx.rng):
        column = data.X[:, attribute]
        if rule_length is None:
            candidate = find_best_split(
                column, data.y, data.sample_weight, indices, stats, attribute,
                params.lambda_, params.gamma, params.min_child_weight
            )
        else:
            candidate = find_best_test_condition(
                column, data.y, data.sample_weight, indices, stats, attribute,
                rule_length, params.lambda_, params.gamma, params.min_child_weight
            )
        if candidate.quality > best.quality:
            best = candidate
    return best


def _partition(
    ctx: _GrowthContext,
    candidate: SplitCandidate,
    indices: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    """Split rows into (value < threshold, the rest); missing values go to the rest."""
    goes_left = ctx.dataset.X[indices, candidate.attribute] < candidate.threshold
    return indices[goes_left], indices[~goes_left]


def grow_tree(ctx: _GrowthContext, indices: np.ndarray, depth: int = 0) -> Node:
    """Recursively grow a tree for the rows in `indices`."""
    stats = _node_statistics(ctx, indices)
    if _is_terminal(ctx, stats, depth):
        logger.debug(f"depth={depth}: leaf (H={stats.sum_hessian:.6g})")
        return _make_leaf(ctx, stats)

    best = _best_split(ctx, indices, stats)
    if best.quality <= MIN_SPLIT_QUALITY:
        logger.debug(f"depth={depth}: leaf (best quality {best.quality:.6g})")
        return _make_leaf(ctx, stats)

    logger.debug(
        f"depth={depth}: split {ctx.dataset.feature_names[best.attribute]} < "
        f"{best.threshold:.6g} (quality {best.quality:.6g})"
    )
    left, right = _partition(ctx, best, indices)
    return TreeInternalNode(
        best.attribute, best.threshold, best.quality,
        grow_tree(ctx, left, depth + 1),
        grow_tree(ctx, right, depth + 1)
    )


def grow_rule(
    ctx: _GrowthContext,
    indices: np.ndarray,
    length: int = 0,
    parent_quality: float = -np.inf
) -> Node:
    """
    Recursively grow a single rule for the rows in `indices`.

    Only the side chosen by the winning condition is grown further; rows on
    the other side are left uncovered.
    """
    stats = _node_statistics(ctx, indices)
    if _is_terminal(ctx, stats, length):
        logger.debug(f"length={length}: rule ends (H={stats.sum_hessian:.6g})")
        return _make_leaf(ctx, stats)

    best = _best_split(ctx, indices, stats, rule_length=length)
    if best.quality <= MIN_SPLIT_QUALITY or best.quality - parent_quality <= MIN_SPLIT_QUALITY:
        logger.debug(
            f"length={length}: rule ends (quality {best.quality:.6g}, "
            f"previous {parent_quality:.6g})"
        )
        return _make_leaf(ctx, stats)

    logger.debug(
        f"length={length}: add {ctx.dataset.feature_names[best.attribute]} "
        f"{'>=' if best.greater_equal else '<'} {best.threshold:.6g} "
        f"(quality {best.quality:.6g})"
    )
    left, right = _partition(ctx, best, indices)
    covered = right if best.greater_equal else left
    return RuleInternalNode(
        best.attribute, best.threshold, best.quality, best.greater_equal,
        grow_rule(ctx, covered, length + 1, best.quality)
    )


def train(
    dataset: Dataset,
    params: Hyperparameters,
    seed: Optional[int] = None,
    kind: str = TREE
) -> Node:
    """
    Grow a tree (kind="tree") or a rule (kind="rule") from `dataset`.

    Randomness is drawn from one generator seeded with `seed`: first the row
    permutation (only if subsample < 1), then one attribute permutation per
    node in depth-first order (only if colsample_bynode < 1). Identical
    inputs therefore reproduce an identical model.

    Returns:
        The root node of the grown structure.
    """
    if kind not in _KINDS:
        raise ValueError(f"Unknown learner kind '{kind}'. Valid values are {_KINDS}")
    params.validate()

    rng = np.random.default_rng(seed)
    ctx = _GrowthContext(dataset, params, rng)
    indices = _subsample_indices(dataset.n_samples, params.subsample, rng)

    if kind == TREE:
        return grow_tree(ctx, indices, 0)
    return grow_rule(ctx, indices, 0, -np.inf)


# ===========================
# Prediction
# ===========================

def predict(model: Node, row) -> float:
    """
    Prediction of a trained tree or rule for one row of attribute values.

    Trees route `value < threshold` left and everything else (including
    missing values) right. Rules return 0.0 as soon as the row fails a
    condition.
    """
    node = model
    while True:
        if isinstance(node, LeafNode):
            return node.prediction
        elif isinstance(node, TreeInternalNode):
            node = node.left if row[node.attribute] < node.threshold else node.right
        elif isinstance(node, RuleInternalNode):
            goes_left = row[node.attribute] < node.threshold
            if goes_left == node.greater_equal:
                return 0.0
            node = node.next
        else:
            raise TypeError(f"Unexpected node type: {type(node).__name__}")


# ===========================
# Estimators
# ===========================

class XGBoostSingleBase(RegressorMixin, BaseEstimator):
    """
    Base class for the scikit-learn style single-round learners.

    Hyperparameters are plain constructor arguments (see `get_params` /
    `set_params`) and are validated when `fit` is called.
    """

    _kind = TREE

    def _hyperparameters(self) -> Hyperparameters:
        raise NotImplementedError

    def fit(self, X, y, sample_weight=None):
        """
        Grow the model.

        Args:
            X: Training features, shape (n_samples, n_features).
            y: Negative gradients, shape (n_samples,).
            sample_weight: Hessians, shape (n_samples,); defaults to ones.

        Returns:
            self
        """
        if self.verbose:
            logging.basicConfig(level=logging.INFO)

        dataset = Dataset(X, y, sample_weight=sample_weight)
        self.root_ = train(dataset, self._hyperparameters(), self.random_state, self._kind)
        self.feature_names_ = np.asarray(dataset.feature_names, dtype=object)
        self.n_features_in_ = dataset.n_features

        if self.verbose:
            logger.info(
                f"Built {self._kind} with {count_leaves(self.root_)} leaves "
                f"from {dataset.n_samples} rows (subsample={self.subsample})"
            )
        return self

    def predict(self, X) -> np.ndarray:
        """
        Predict every row of X.

        Args:
            X: Features, shape (n_samples, n_features).

        Returns:
            Predictions, shape (n_samples,).
        """
        check_is_fitted(self, "root_")
        X, _ = _as_numeric_matrix(X)
        if X.shape[1] != self.n_features_in_:
            raise ValueError(
                f"X has {X.shape[1]} features, but the model was trained with "
                f"{self.n_features_in_}"
            )
        return np.array([predict(self.root_, row) for row in X], dtype=float)

    def enumerate_measures(self) -> List[str]:
        return [MEASURE_NUM_RULES]

    def get_measure(self, measure_name: str) -> float:
        """Value of a named measure; only "measureNumRules" (the leaf count) exists."""
        if measure_name == MEASURE_NUM_RULES:
            check_is_fitted(self, "root_")
            return count_leaves(self.root_)
        raise ValueError(f"Measure {measure_name} not supported.")

    def __sklearn_is_fitted__(self) -> bool:
        return hasattr(self, "root_")

    def _render(self) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        if not hasattr(self, "root_"):
            return f"{type(self).__name__}: no model built yet."
        return self._render()


class XGBoostTreeRegressor(XGBoostSingleBase):
    """
    One regularised regression tree grown with XGBoost's exact greedy
    algorithm from given gradients (y) and hessians (sample_weight).
    """

    _kind = TREE

    def __init__(
        self,
        eta: float = 0.3,
        lambda_: float = 1.0,
        gamma: float = 1.0,
        subsample: float = 0.5,
        colsample_bynode: float = 1.0,
        max_depth: int = 6,
        min_child_weight: float = 1.0,
        random_state: Optional[int] = 1,
        num_decimal_places: int = 2,
        verbose: bool = False
    ):
        """
        Args:
            eta: Shrinkage applied to leaf values, in (0, 1].
            lambda_: L2 regularisation on leaf values.
            gamma: Minimum gain required per split.
            subsample: Fraction of rows used for training.
            colsample_bynode: Fraction of attributes searched per node.
            max_depth: Maximum depth of the tree.
            min_child_weight: Minimum hessian sum in each child.
            random_state: Random seed for reproducibility.
            num_decimal_places: Precision used by `str(model)`.
            verbose: Enable logging output.
        """
        self.eta = eta
        self.lambda_ = lambda_
        self.gamma = gamma
        self.subsample = subsample
        self.colsample_bynode = colsample_bynode
        self.max_depth = max_depth
        self.min_child_weight = min_child_weight
        self.random_state = random_state
        self.num_decimal_places = num_decimal_places
        self.verbose = verbose

    def _hyperparameters(self) -> Hyperparameters:
        return Hyperparameters(
            eta=self.eta, lambda_=self.lambda_, gamma=self.gamma,
            subsample=self.subsample, colsample_bynode=self.colsample_bynode,
            max_depth=self.max_depth, min_child_weight=self.min_child_weight
        )

    def _render(self) -> str:
        return tree_to_string(self.root_, self.feature_names_, self.num_decimal_places)


class XGBoostRuleRegressor(XGBoostSingleBase):
    """
    One conjunctive rule grown with XGBoost's gain, following the better side
    of each split. Rows not covered by the rule predict 0.
    """

    _kind = RULE

    def __init__(
        self,
        eta: float = 0.3,
        lambda_: float = 1.0,
        gamma: float = 1.0,
        subsample: float = 0.5,
        colsample_bynode: float = 1.0,
        max_length: int = 6,
        min_child_weight: float = 1.0,
        random_state: Optional[int] = 1,
        num_decimal_places: int = 2,
        verbose: bool = False
    ):
        """
        Args:
            eta: Shrinkage applied to the rule's prediction, in (0, 1].
            lambda_: L2 regularisation on the prediction.
            gamma: Penalty per condition in the rule.
            subsample: Fraction of rows used for training.
            colsample_bynode: Fraction of attributes searched per condition.
            max_length: Maximum number of conditions.
            min_child_weight: Minimum hessian sum on each side of a condition.
            random_state: Random seed for reproducibility.
            num_decimal_places: Precision used by `str(model)`.
            verbose: Enable logging output.
        """
        self.eta = eta
        self.lambda_ = lambda_
        self.gamma = gamma
        self.subsample = subsample
        self.colsample_bynode = colsample_bynode
        self.max_length = max_length
        self.min_child_weight = min_child_weight
        self.random_state = random_state
        self.num_decimal_places = num_decimal_places
        self.verbose = verbose

    def _hyperparameters(self) -> Hyperparameters:
        return Hyperparameters(
            eta=self.eta, lambda_=self.lambda_, gamma=self.gamma,
            subsample=self.subsample, colsample_bynode=self.colsample_bynode,
            max_depth=self.max_length, min_child_weight=self.min_child_weight
        )

    def _render(self) -> str:
        return rule_to_string(self.root_, self.feature_names_, self.num_decimal_places)

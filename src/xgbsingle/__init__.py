"""
Single-round XGBoost learners implemented from scratch.

Grows one regularised regression tree, or one conjunctive rule, from given
per-row gradients and hessians using the exact greedy split search of
Chen & Guestrin (2016), "XGBoost: A scalable tree boosting system".
"""

from .core import (
    Dataset, XGBoostTreeRegressor, XGBoostRuleRegressor, train, predict
)
from .utils import Hyperparameters

__version__ = "0.1.0"
__all__ = [
    "Dataset", "Hyperparameters", "XGBoostTreeRegressor", "XGBoostRuleRegressor",
    "train", "predict",
]

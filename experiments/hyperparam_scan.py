"""
Hyperparameter scan for the single-round tree and rule learners.

Fits one boosting round on top of the constant model f_0 = mean(y) for
squared-error loss, so the negative gradients are the residuals y - f_0 and
every hessian is 1. Scans gamma and max_depth / max_length and reports the
test MSE of f_0 + model(x).
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from itertools import product
from sklearn.datasets import load_diabetes
from sklearn.model_selection import train_test_split

from xgbsingle.core import XGBoostTreeRegressor, XGBoostRuleRegressor
from xgbsingle.utils import compute_metrics_regression

OUTPUT_DIR = Path(__file__).parent


def prepare_data():
    """Load diabetes data and compute first-round gradients."""
    print("Loading diabetes data...")
    X, y = load_diabetes(return_X_y=True, as_frame=True)

    X_train, X_test, y_train, y_test = train_test_split(
        X, y, test_size=0.2, random_state=42
    )

    f0 = float(np.mean(y_train))
    print(f"Train: {X_train.shape}, Test: {X_test.shape}, f_0 = {f0:.3f}")

    return X_train, X_test, y_train.to_numpy(), y_test.to_numpy(), f0


def grid_search(X_train, X_test, y_train, y_test, f0):
    """Grid search over gamma and size for both learners."""
    print("\n" + "="*60)
    print("Hyperparameter Grid Search")
    print("="*60)

    param_grid = {
        'learner': ['tree', 'rule'],
        'gamma': [0.0, 10.0, 100.0, 1000.0],
        'size': [1, 2, 4, 6],
    }

    residuals = y_train - f0
    results = []

    for learner, gamma, size in product(
        param_grid['learner'],
        param_grid['gamma'],
        param_grid['size']
    ):
        common = dict(
            eta=1.0, lambda_=1.0, gamma=gamma, subsample=1.0,
            colsample_bynode=1.0, min_child_weight=1.0, random_state=42
        )
        if learner == 'tree':
            model = XGBoostTreeRegressor(max_depth=size, **common)
        else:
            model = XGBoostRuleRegressor(max_length=size, **common)
        model.fit(X_train, residuals)

        metrics = compute_metrics_regression(y_test, f0 + model.predict(X_test))
        results.append({
            'learner': learner,
            'gamma': gamma,
            'size': size,
            'n_leaves': model.get_measure('measureNumRules'),
            'test_mse': metrics['mse'],
        })
        print(f"{learner:>4} gamma={gamma:<7} size={size}: "
              f"test_mse={metrics['mse']:.2f}")

    baseline = compute_metrics_regression(y_test, np.full_like(y_test, f0))
    print(f"\nBaseline f_0 test MSE: {baseline['mse']:.2f}")

    return pd.DataFrame(results).sort_values('test_mse')


def plot_effects(df):
    """Test MSE against size, one line per gamma, one panel per learner."""
    fig, axes = plt.subplots(1, 2, figsize=(12, 4), sharey=True)

    for ax, learner in zip(axes, ['tree', 'rule']):
        subset = df[df['learner'] == learner]
        for gamma, group in subset.groupby('gamma'):
            group = group.sort_values('size')
            ax.plot(group['size'], group['test_mse'], marker='o',
                    linewidth=2, label=f'gamma={gamma:g}')
        ax.set_xlabel('max_depth' if learner == 'tree' else 'max_length')
        ax.set_ylabel('Test MSE')
        ax.set_title(f'Single {learner}')
        ax.legend()
        ax.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(OUTPUT_DIR / 'hyperparameter_effects.png', dpi=150)
    print("\nSaved plot: hyperparameter_effects.png")


def main():
    """Run hyperparameter scan."""
    X_train, X_test, y_train, y_test, f0 = prepare_data()

    df = grid_search(X_train, X_test, y_train, y_test, f0)
    plot_effects(df)

    print("\nBest configuration:")
    print(df.iloc[0].to_string())

    best_rule = df[df['learner'] == 'rule'].iloc[0]
    rule = XGBoostRuleRegressor(
        eta=1.0, lambda_=1.0, gamma=best_rule['gamma'], subsample=1.0,
        max_length=int(best_rule['size']), min_child_weight=1.0
    ).fit(X_train, y_train - f0)
    print("\nBest rule:")
    print(rule)


if __name__ == "__main__":
    main()

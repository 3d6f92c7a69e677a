"""
Benchmark best-first boosted forests against sklearn gradient boosting.

Fits BoostedTreeRegressor on the diabetes dataset and BoostedTreeClassifier
on breast cancer for a few split budgets, compares with sklearn's
GradientBoosting{Regressor,Classifier}, and plots validation loss curves.
"""

import os
import sys
import logging
import pandas as pd
import matplotlib.pyplot as plt
from sklearn.datasets import load_diabetes, load_breast_cancer
from sklearn.ensemble import GradientBoostingRegressor, GradientBoostingClassifier
from sklearn.metrics import mean_squared_error, accuracy_score
from sklearn.model_selection import train_test_split

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from boostforest import BoostedTreeRegressor, BoostedTreeClassifier

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)

SPLIT_BUDGETS = [1, 3, 7, 15]


def regression_runs(output_dir):
    """Diabetes regression: test MSE per split budget, plus sklearn baseline."""
    data = load_diabetes()
    X_train, X_test, y_train, y_test = train_test_split(
        data.data, data.target, test_size=0.2, random_state=42
    )

    rows = []
    fig, ax = plt.subplots(figsize=(7, 4))
    for budget in SPLIT_BUDGETS:
        model = BoostedTreeRegressor(
            n_estimators=100, learning_rate=0.1, max_splits_per_round=budget, min_samples_leaf=5
        )
        model.fit(X_train, y_train, X_val=X_test, y_val=y_test)
        test_mse = mean_squared_error(y_test, model.predict(X_test))
        rows.append({"model": "boostforest", "max_splits": budget, "test_mse": test_mse})
        ax.plot(model.val_scores_, label=f"max_splits={budget}")
        logger.info(f"boostforest max_splits={budget}: test MSE={test_mse:.2f}")

    sk = GradientBoostingRegressor(n_estimators=100, learning_rate=0.1, max_depth=3, random_state=42)
    sk.fit(X_train, y_train)
    sk_mse = mean_squared_error(y_test, sk.predict(X_test))
    rows.append({"model": "sklearn", "max_splits": 7, "test_mse": sk_mse})
    logger.info(f"sklearn depth=3: test MSE={sk_mse:.2f}")

    ax.set_xlabel("Boosting round")
    ax.set_ylabel("Validation loss (0.5 * MSE)")
    ax.set_title("Diabetes: validation loss by split budget")
    ax.legend()
    fig.tight_layout()
    fig.savefig(os.path.join(output_dir, "regression_val_loss.png"), dpi=150)
    plt.close(fig)

    return pd.DataFrame(rows)


def classification_runs():
    """Breast cancer classification: test accuracy per split budget, plus sklearn baseline."""
    data = load_breast_cancer()
    X_train, X_test, y_train, y_test = train_test_split(
        data.data, data.target, test_size=0.2, random_state=42, stratify=data.target
    )

    rows = []
    for budget in SPLIT_BUDGETS:
        model = BoostedTreeClassifier(n_estimators=100, learning_rate=0.1, max_splits_per_round=budget)
        model.fit(X_train, y_train)
        metrics = model.evaluate(X_test, y_test)
        rows.append({"model": "boostforest", "max_splits": budget, **metrics})
        logger.info(f"boostforest max_splits={budget}: accuracy={metrics['accuracy']:.4f}")

    sk = GradientBoostingClassifier(n_estimators=100, learning_rate=0.1, max_depth=3, random_state=42)
    sk.fit(X_train, y_train)
    rows.append({
        "model": "sklearn",
        "max_splits": 7,
        "accuracy": accuracy_score(y_test, sk.predict(X_test)),
    })

    return pd.DataFrame(rows)


def main():
    output_dir = os.path.join(os.path.dirname(__file__), 'outputs')
    os.makedirs(output_dir, exist_ok=True)

    regression = regression_runs(output_dir)
    classification = classification_runs()

    regression.to_csv(os.path.join(output_dir, "regression_results.csv"), index=False)
    classification.to_csv(os.path.join(output_dir, "classification_results.csv"), index=False)

    print("\n" + "=" * 60)
    print(regression.to_string(index=False))
    print("=" * 60)
    print(classification.to_string(index=False))
    print("=" * 60)


if __name__ == "__main__":
    main()

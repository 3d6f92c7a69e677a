"""
Utility functions for boosting: weighted losses, link functions and metrics.

References:
- Friedman, J. H. (2001). Greedy function approximation: A gradient boosting machine.
- Friedman, J., Hastie, T., & Tibshirani, R. (2000). Additive logistic regression:
  a statistical view of boosting (LogitBoost).
"""

from typing import Optional
import numpy as np
from scipy.special import expit
from sklearn.metrics import (
    accuracy_score, log_loss, mean_absolute_error, mean_squared_error, roc_auc_score
)


# ===========================
# Loss Functions
# ===========================

def _weights_or_ones(weights: Optional[np.ndarray], n: int) -> np.ndarray:
    if weights is None:
        return np.ones(n)
    return np.asarray(weights, dtype=np.float64)


def squared_error_loss(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    weights: Optional[np.ndarray] = None
) -> float:
    """Weighted squared error: L = Σ w_i * 0.5 * (y_i - f_i)^2 / Σ w_i."""
    w = _weights_or_ones(weights, len(y_true))
    total = np.sum(w)
    if total == 0:
        return 0.0
    return float(0.5 * np.sum(w * (y_true - y_pred) ** 2) / total)


def logistic_loss(
    y_true: np.ndarray,
    y_pred_raw: np.ndarray,
    weights: Optional[np.ndarray] = None
) -> float:
    """
    Weighted binomial deviance for y ∈ {0,1} and raw scores F:
    L = -Σ w_i [y_i log(p_i) + (1-y_i) log(1-p_i)] / Σ w_i, with p = sigmoid(F).
    """
    w = _weights_or_ones(weights, len(y_true))
    total = np.sum(w)
    if total == 0:
        return 0.0
    # Clip to avoid log(0)
    p = np.clip(sigmoid(y_pred_raw), 1e-15, 1 - 1e-15)
    return float(-np.sum(w * (y_true * np.log(p) + (1 - y_true) * np.log(1 - p))) / total)


def sigmoid(x: np.ndarray) -> np.ndarray:
    """Numerically stable sigmoid function."""
    return expit(x)


# ===========================
# Metrics
# ===========================

def compute_metrics_regression(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    sample_weight: Optional[np.ndarray] = None
) -> dict:
    """Weighted mse, rmse and mae of ``y_pred`` against ``y_true``."""
    mse = mean_squared_error(y_true, y_pred, sample_weight=sample_weight)
    mae = mean_absolute_error(y_true, y_pred, sample_weight=sample_weight)

    return {
        "mse": mse,
        "rmse": float(np.sqrt(mse)),
        "mae": mae
    }


def compute_metrics_classification(
    y_true: np.ndarray,
    y_pred_proba: np.ndarray,
    sample_weight: Optional[np.ndarray] = None
) -> dict:
    """
    Weighted log loss, accuracy and ROC AUC for class-1 probabilities.

    Labels are predicted at the 0.5 threshold. ROC AUC is NaN unless both
    classes occur in ``y_true``.
    """
    proba = np.clip(y_pred_proba, 1e-15, 1 - 1e-15)
    y_pred = (proba >= 0.5).astype(int)

    if len(np.unique(y_true)) == 2:
        auc = roc_auc_score(y_true, proba, sample_weight=sample_weight)
    else:
        auc = np.nan

    return {
        "log_loss": log_loss(y_true, proba, sample_weight=sample_weight, labels=[0, 1]),
        "accuracy": accuracy_score(y_true, y_pred, sample_weight=sample_weight),
        "roc_auc": auc
    }

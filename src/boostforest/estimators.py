"""
Estimator front-ends over ``ForestTrainer``.

``BoostedTreeRegressor`` boosts squared error and ``BoostedTreeClassifier``
boosts binomial deviance with Newton steps. Both grow one best-first tree per
round with exhaustive threshold splits and constant edge outputs.

References:
- Friedman, J. H. (2001). Greedy function approximation: A gradient boosting machine.
  Annals of Statistics, 29(5), 1189-1232.
- Friedman, J., Hastie, T., & Tibshirani, R. (2000). Additive logistic regression:
  a statistical view of boosting (LogitBoost). Annals of Statistics, 28(2), 337-407.
"""

from typing import List, Optional
import logging
import numpy as np

from .config import TrainerConfig
from .examples import examples_from_arrays
from .forest import Forest
from .strategies import (
    Booster, ConstantEdgePredictorFactory, LogisticBooster,
    SquaredErrorBooster, ThresholdSplitFinder
)
from .trainer import ForestTrainer, RoundSummary, TrainingObserver
from .utils import sigmoid, compute_metrics_regression, compute_metrics_classification

logger = logging.getLogger(__name__)


class _ValidationTracker(TrainingObserver):
    """Records the validation loss of the partially grown forest after every round."""

    def __init__(self, forest: Forest, booster: Booster, X_val: np.ndarray, y_val: np.ndarray):
        self.forest = forest
        self.booster = booster
        self.X_val = X_val
        self.y_val = y_val
        self.weights = np.ones(len(y_val))
        self.scores: List[float] = []

    def on_round_end(self, summary):
        outputs = self.forest.predict(self.X_val)
        self.scores.append(self.booster.loss(self.weights, self.y_val, outputs))


class BoostedForestBase:
    """
    Base class for boosted forest estimators.

    Wires a booster, a threshold split finder and constant edge predictors
    into a ``ForestTrainer``.
    """

    def __init__(
        self,
        n_estimators: int = 100,
        learning_rate: float = 0.1,
        max_splits_per_round: int = 8,
        min_split_gain: float = 0.0,
        min_child_weight: float = 0.0,
        min_samples_leaf: int = 1,
        verbose: bool = False
    ):
        """
        Args:
            n_estimators: Number of boosting rounds (one tree per round).
            learning_rate: Shrinkage ν ∈ (0, 1] applied to edge outputs.
            max_splits_per_round: Maximum splits per tree (leaves = splits + 1).
            min_split_gain: Minimum gain for a split to be applied.
            min_child_weight: Minimum weak weight in each child of a split.
            min_samples_leaf: Minimum number of samples in each child of a split.
            verbose: Enable logging output.
        """
        self.n_estimators = n_estimators
        self.learning_rate = learning_rate
        self.max_splits_per_round = max_splits_per_round
        self.min_split_gain = min_split_gain
        self.min_child_weight = min_child_weight
        self.min_samples_leaf = min_samples_leaf
        self.verbose = verbose

        # Model state
        self.forest_: Optional[Forest] = None
        self.history_: List[RoundSummary] = []

        # Training history
        self.train_scores_: List[float] = []
        self.val_scores_: List[float] = []

        if self.verbose:
            logger.setLevel(logging.INFO)

    def _make_booster(self) -> Booster:
        raise NotImplementedError

    def _check_targets(self, y: np.ndarray) -> None:
        pass

    def fit(
        self,
        X: np.ndarray,
        y: np.ndarray,
        sample_weight: Optional[np.ndarray] = None,
        X_val: Optional[np.ndarray] = None,
        y_val: Optional[np.ndarray] = None
    ) -> "BoostedForestBase":
        """
        Fit the boosted forest.

        Args:
            X: Training features, shape (n_samples, n_features).
            y: Training targets, shape (n_samples,).
            sample_weight: Optional non-negative weights, shape (n_samples,).
            X_val: Optional validation features for tracking generalisation.
            y_val: Optional validation targets.

        Returns:
            self
        """
        y = np.asarray(y, dtype=np.float64)
        self._check_targets(y)

        booster = self._make_booster()
        config = TrainerConfig(
            num_rounds=self.n_estimators,
            min_split_gain=self.min_split_gain,
            max_splits_per_round=self.max_splits_per_round,
        )
        forest = Forest()
        observers: List[TrainingObserver] = []
        tracker = None
        if X_val is not None and y_val is not None:
            tracker = _ValidationTracker(
                forest, booster, np.asarray(X_val, dtype=np.float64), np.asarray(y_val, dtype=np.float64)
            )
            observers.append(tracker)

        trainer = ForestTrainer(
            booster=booster,
            finder=ThresholdSplitFinder(
                min_child_weight=self.min_child_weight,
                min_child_size=self.min_samples_leaf,
            ),
            edge_predictor_factory=ConstantEdgePredictorFactory(self.learning_rate),
            config=config,
            forest=forest,
            observers=observers,
            verbose=self.verbose,
        )
        trainer.train(examples_from_arrays(X, y, sample_weight))

        self.forest_ = forest
        self.history_ = list(trainer.history_)
        self.train_scores_ = [summary.train_loss for summary in trainer.history_]
        self.val_scores_ = tracker.scores if tracker is not None else []

        if self.verbose:
            logger.info(
                f"Fitted {forest.num_trees} trees with {forest.num_splits} splits, "
                f"final train loss={self.train_scores_[-1]:.6f}"
            )
        return self

    def _predict_raw(self, X: np.ndarray) -> np.ndarray:
        """Raw forest outputs, shape (n_samples,)."""
        if self.forest_ is None:
            raise RuntimeError("Model must be fitted before prediction")
        X = np.asarray(X, dtype=np.float64)
        if X.ndim != 2:
            raise ValueError(f"X must be 2D, got shape {X.shape}")
        return self.forest_.predict(X)


class BoostedTreeRegressor(BoostedForestBase):
    """
    Least-squares boosting with best-first trees.

    Each round the weak targets are the residuals y - F, the round bias is
    their weighted mean, and every leaf of the new tree moves its examples
    towards the weighted mean residual of that leaf.
    """

    def _make_booster(self) -> Booster:
        return SquaredErrorBooster()

    def predict(self, X: np.ndarray) -> np.ndarray:
        """Predict regression targets."""
        return self._predict_raw(X)

    def evaluate(self, X: np.ndarray, y: np.ndarray, sample_weight: Optional[np.ndarray] = None) -> dict:
        """Regression metrics (mse, rmse, mae) on ``X``, ``y``, optionally weighted."""
        return compute_metrics_regression(np.asarray(y), self.predict(X), sample_weight)


class BoostedTreeClassifier(BoostedForestBase):
    """
    Binary classification by Newton boosting of the logistic loss.

    Labels must be in {0, 1}. Raw outputs are log-odds; probabilities are
    sigmoid(F).
    """

    def _make_booster(self) -> Booster:
        return LogisticBooster()

    def _check_targets(self, y: np.ndarray) -> None:
        if not np.all(np.isin(y, (0.0, 1.0))):
            raise ValueError("Labels must be binary (0/1)")

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """
        Predict class probabilities.

        Args:
            X: Features, shape (n_samples, n_features).

        Returns:
            Probabilities for class 1, shape (n_samples,).
        """
        return sigmoid(self._predict_raw(X))

    def predict(self, X: np.ndarray) -> np.ndarray:
        """Predicted labels {0, 1}, shape (n_samples,)."""
        return (self.predict_proba(X) >= 0.5).astype(int)

    def evaluate(self, X: np.ndarray, y: np.ndarray, sample_weight: Optional[np.ndarray] = None) -> dict:
        """Classification metrics (log_loss, accuracy, roc_auc) on ``X``, ``y``, optionally weighted."""
        return compute_metrics_classification(np.asarray(y), self.predict_proba(X), sample_weight)
